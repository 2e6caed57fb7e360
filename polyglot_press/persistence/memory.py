# polyglot_press/persistence/memory.py
"""一个纯内存的持久化实现，用于测试和不需要数据库的一次性运行。"""

import asyncio
from datetime import datetime, timezone

from polyglot_press.core.types import ClusterAIRecord, ClusterRef, Market


def as_utc(value: datetime) -> datetime:
    """将无时区的时间视为 UTC。"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class InMemoryRepository:
    """`ContentRepository` 的内存实现。"""

    def __init__(self) -> None:
        self.markets: dict[str, Market] = {}
        self.clusters: dict[str, datetime] = {}
        self.cluster_ai_rows: list[ClusterAIRecord] = []
        self.articles: dict[str, str] = {}
        self.translations: dict[str, tuple[str, str, str]] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        pass

    async def close(self) -> None:
        pass

    # --- 上游协作方写入（入库、聚类） ---

    async def add_market(self, market: Market) -> None:
        self.markets[market.code] = market

    async def upsert_cluster(
        self, cluster_id: str, updated_at: datetime | None = None
    ) -> None:
        self.clusters[cluster_id] = as_utc(updated_at or datetime.now(timezone.utc))

    # --- ContentRepository ---

    async def list_markets(self, market_code: str | None = None) -> list[Market]:
        return [
            m
            for code, m in sorted(self.markets.items())
            if m.enabled and (market_code is None or code == market_code)
        ]

    async def list_recent_clusters(
        self, since: datetime, limit: int
    ) -> list[ClusterRef]:
        threshold = as_utc(since)
        recent = [
            ClusterRef(cluster_id=cid, updated_at=ts)
            for cid, ts in self.clusters.items()
            if ts >= threshold
        ]
        recent.sort(key=lambda ref: ref.updated_at, reverse=True)
        return recent[:limit]

    async def get_current_cluster_ai(
        self, cluster_id: str
    ) -> dict[str, ClusterAIRecord]:
        return {
            row.lang: row.model_copy()
            for row in self.cluster_ai_rows
            if row.cluster_id == cluster_id and row.is_current
        }

    async def supersede_cluster_ai(self, record: ClusterAIRecord) -> ClusterAIRecord:
        async with self._lock:
            for index, row in enumerate(self.cluster_ai_rows):
                if (
                    row.cluster_id == record.cluster_id
                    and row.lang == record.lang
                    and row.is_current
                ):
                    self.cluster_ai_rows[index] = row.model_copy(
                        update={"is_current": False}
                    )
            stored = record.model_copy(
                update={
                    "id": self._next_id,
                    "is_current": True,
                    "created_at": record.created_at or datetime.now(timezone.utc),
                }
            )
            self._next_id += 1
            self.cluster_ai_rows.append(stored)
            return stored.model_copy()

    async def save_cleaned_article(self, article_id: str, html: str) -> None:
        self.articles[article_id] = html

    async def upsert_translation(
        self, key: str, src_lang: str, dst_lang: str, text: str
    ) -> None:
        self.translations[key] = (src_lang, dst_lang, text)

    async def get_translation(self, key: str) -> str | None:
        entry = self.translations.get(key)
        return entry[2] if entry else None

    # --- 查询辅助 ---

    def rows_for(self, cluster_id: str, lang: str) -> list[ClusterAIRecord]:
        """返回某个 (聚类, 语言) 的所有历史行，按插入顺序。"""
        return [
            row
            for row in self.cluster_ai_rows
            if row.cluster_id == cluster_id and row.lang == lang
        ]
