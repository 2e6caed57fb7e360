# polyglot_press/persistence/sql.py
"""基于 SQLAlchemy 异步 ORM 的持久化实现（默认 SQLite/aiosqlite）。"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from polyglot_press.core.exceptions import DatabaseError
from polyglot_press.core.types import ClusterAIRecord, ClusterRef, Market
from polyglot_press.db.schema import (
    ArticleRow,
    Base,
    ClusterAIRow,
    ClusterRow,
    MarketRow,
    TranslationRow,
)
from polyglot_press.persistence.memory import as_utc
from polyglot_press.utils import parse_lang_list

logger = structlog.get_logger(__name__)


def _to_naive_utc(value: datetime) -> datetime:
    # SQLite 不保存时区偏移，统一以无时区的 UTC 存取
    return as_utc(value).replace(tzinfo=None)


class SQLRepository:
    """`ContentRepository` 的 SQL 实现。"""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._sessionmaker = async_sessionmaker(engine, expire_on_commit=False)

    async def connect(self) -> None:
        """确保所有表都已创建。"""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise DatabaseError(f"初始化数据库失败: {e}") from e
        logger.info("数据库连接就绪", url=self.engine.url.render_as_string())

    async def close(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._sessionmaker() as session, session.begin():
                yield session
        except SQLAlchemyError as e:
            raise DatabaseError(f"数据库操作失败: {e}") from e

    # --- 上游协作方写入（入库、聚类） ---

    async def add_market(self, market: Market) -> None:
        async with self._transaction() as session:
            await session.merge(
                MarketRow(
                    code=market.code,
                    pivot_lang=market.pivot_lang,
                    pretranslate_langs=list(market.pretranslate_langs),
                    show_langs=list(market.show_langs),
                    enabled=market.enabled,
                )
            )

    async def upsert_cluster(
        self, cluster_id: str, updated_at: datetime | None = None
    ) -> None:
        stamp = _to_naive_utc(updated_at or datetime.now(timezone.utc))
        async with self._transaction() as session:
            await session.merge(ClusterRow(id=cluster_id, updated_at=stamp))

    # --- ContentRepository ---

    async def list_markets(self, market_code: str | None = None) -> list[Market]:
        stmt = select(MarketRow).where(MarketRow.enabled.is_(True))
        if market_code is not None:
            stmt = stmt.where(MarketRow.code == market_code)
        async with self._transaction() as session:
            rows = (await session.scalars(stmt.order_by(MarketRow.code))).all()
        return [
            Market(
                code=row.code,
                pivot_lang=row.pivot_lang,
                pretranslate_langs=parse_lang_list(row.pretranslate_langs),
                show_langs=parse_lang_list(row.show_langs),
                enabled=row.enabled,
            )
            for row in rows
        ]

    async def list_recent_clusters(
        self, since: datetime, limit: int
    ) -> list[ClusterRef]:
        stmt = (
            select(ClusterRow)
            .where(ClusterRow.updated_at >= _to_naive_utc(since))
            .order_by(ClusterRow.updated_at.desc())
            .limit(limit)
        )
        async with self._transaction() as session:
            rows = (await session.scalars(stmt)).all()
        return [
            ClusterRef(cluster_id=row.id, updated_at=as_utc(row.updated_at))
            for row in rows
        ]

    async def get_current_cluster_ai(
        self, cluster_id: str
    ) -> dict[str, ClusterAIRecord]:
        stmt = select(ClusterAIRow).where(
            ClusterAIRow.cluster_id == cluster_id, ClusterAIRow.is_current.is_(True)
        )
        async with self._transaction() as session:
            rows = (await session.scalars(stmt)).all()
        return {row.lang: self._to_record(row) for row in rows}

    async def supersede_cluster_ai(self, record: ClusterAIRecord) -> ClusterAIRecord:
        async with self._transaction() as session:
            await session.execute(
                update(ClusterAIRow)
                .where(
                    ClusterAIRow.cluster_id == record.cluster_id,
                    ClusterAIRow.lang == record.lang,
                    ClusterAIRow.is_current.is_(True),
                )
                .values(is_current=False)
            )
            row = ClusterAIRow(
                cluster_id=record.cluster_id,
                lang=record.lang,
                title=record.title,
                summary=record.summary,
                details=record.details,
                pivot_hash=record.pivot_hash,
                model=record.model,
                is_current=True,
                created_at=_to_naive_utc(record.created_at or datetime.now(timezone.utc)),
            )
            session.add(row)
            await session.flush()
            return self._to_record(row)

    async def save_cleaned_article(self, article_id: str, html: str) -> None:
        async with self._transaction() as session:
            await session.merge(ArticleRow(id=article_id, full_text=html))

    async def upsert_translation(
        self, key: str, src_lang: str, dst_lang: str, text: str
    ) -> None:
        async with self._transaction() as session:
            await session.merge(
                TranslationRow(key=key, src_lang=src_lang, dst_lang=dst_lang, text=text)
            )

    async def get_translation(self, key: str) -> str | None:
        async with self._transaction() as session:
            row = await session.get(TranslationRow, key)
            return row.text if row else None

    async def get_article_text(self, article_id: str) -> str | None:
        async with self._transaction() as session:
            row = await session.get(ArticleRow, article_id)
            return row.full_text if row else None

    async def rows_for(self, cluster_id: str, lang: str) -> list[ClusterAIRecord]:
        """返回某个 (聚类, 语言) 的所有历史行，按插入顺序。"""
        stmt = (
            select(ClusterAIRow)
            .where(ClusterAIRow.cluster_id == cluster_id, ClusterAIRow.lang == lang)
            .order_by(ClusterAIRow.id)
        )
        async with self._transaction() as session:
            rows = (await session.scalars(stmt)).all()
        return [self._to_record(row) for row in rows]

    @staticmethod
    def _to_record(row: ClusterAIRow) -> ClusterAIRecord:
        return ClusterAIRecord(
            id=row.id,
            cluster_id=row.cluster_id,
            lang=row.lang,
            title=row.title,
            summary=row.summary,
            details=row.details,
            pivot_hash=row.pivot_hash,
            model=row.model,
            is_current=row.is_current,
            created_at=as_utc(row.created_at) if row.created_at else None,
        )
