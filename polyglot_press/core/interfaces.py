# polyglot_press/core/interfaces.py
"""
本模块使用 typing.Protocol 定义了持久化层的接口。

编排器和调度器只依赖这些方法，不关心底层是内存还是 SQL 实现。
"""

from datetime import datetime
from typing import Protocol

from polyglot_press.core.types import ClusterAIRecord, ClusterRef, Market


class ContentRepository(Protocol):
    """内容、聚类和翻译的持久化接口。"""

    async def connect(self) -> None:
        """建立连接或准备底层存储。"""
        ...

    async def close(self) -> None:
        """释放底层资源。"""
        ...

    async def list_markets(self, market_code: str | None = None) -> list[Market]:
        """返回所有启用的市场，可按市场代码过滤。"""
        ...

    async def list_recent_clusters(
        self, since: datetime, limit: int
    ) -> list[ClusterRef]:
        """返回 `updated_at >= since` 的聚类，最近的优先。"""
        ...

    async def get_current_cluster_ai(
        self, cluster_id: str
    ) -> dict[str, ClusterAIRecord]:
        """返回某个聚类每种语言的当前记录，以语言代码为键。"""
        ...

    async def supersede_cluster_ai(self, record: ClusterAIRecord) -> ClusterAIRecord:
        """
        原子地将同一 (聚类, 语言) 的旧当前记录降级，并插入新的当前记录。
        返回带有分配 ID 的新记录。
        """
        ...

    async def save_cleaned_article(self, article_id: str, html: str) -> None:
        """保存文章净化后的规范 HTML。"""
        ...

    async def upsert_translation(
        self, key: str, src_lang: str, dst_lang: str, text: str
    ) -> None:
        """按键插入或更新一条翻译。"""
        ...

    async def get_translation(self, key: str) -> str | None:
        """按键读取一条翻译。"""
        ...
