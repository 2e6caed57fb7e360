# polyglot_press/db/schema.py
"""SQL 持久化层的 ORM 模型。"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """声明式基类。"""


class MarketRow(Base):
    """市场配置（只读）。"""

    __tablename__ = "markets"
    code: Mapped[str] = mapped_column(String, primary_key=True)
    pivot_lang: Mapped[str] = mapped_column(String, nullable=False, default="en")
    pretranslate_langs: Mapped[list[str]] = mapped_column(JSON, default=list)
    show_langs: Mapped[list[str]] = mapped_column(JSON, default=list)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class ClusterRow(Base):
    """文章聚类。"""

    __tablename__ = "clusters"
    id: Mapped[str] = mapped_column(String, primary_key=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (Index("ix_clusters_updated_at", "updated_at"),)


class ClusterAIRow(Base):
    """
    聚类在某种语言下的 AI 内容。
    每个 (cluster_id, lang) 最多只有一行 `is_current` 为真。
    """

    __tablename__ = "cluster_ai"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cluster_id: Mapped[str] = mapped_column(
        ForeignKey("clusters.id", ondelete="CASCADE"), nullable=False
    )
    lang: Mapped[str] = mapped_column(String, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    details: Mapped[str] = mapped_column(Text, nullable=False, default="")
    pivot_hash: Mapped[str | None] = mapped_column(String)
    model: Mapped[str | None] = mapped_column(String)
    is_current: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        Index(
            "uq_cluster_ai_current",
            "cluster_id",
            "lang",
            unique=True,
            sqlite_where=text("is_current = 1"),
            postgresql_where=text("is_current"),
        ),
    )


class ArticleRow(Base):
    """文章及其净化后的规范 HTML。"""

    __tablename__ = "articles"
    id: Mapped[str] = mapped_column(String, primary_key=True)
    full_text: Mapped[str | None] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class TranslationRow(Base):
    """按键存储的翻译：文章全文译文与机器翻译缓存共用此表。"""

    __tablename__ = "translations"
    key: Mapped[str] = mapped_column(String, primary_key=True)
    src_lang: Mapped[str] = mapped_column(String, nullable=False)
    dst_lang: Mapped[str] = mapped_column(String, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
