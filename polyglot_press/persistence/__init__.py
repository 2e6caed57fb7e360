# polyglot_press/persistence/__init__.py
"""本模块作为持久化层的公共入口，按配置创建具体的仓储实现。"""

from sqlalchemy.ext.asyncio import create_async_engine

from polyglot_press.config import PolyglotPressConfig
from polyglot_press.core.exceptions import ConfigurationError
from polyglot_press.core.interfaces import ContentRepository
from polyglot_press.persistence.memory import InMemoryRepository
from polyglot_press.persistence.sql import SQLRepository


def create_repository(config: PolyglotPressConfig) -> ContentRepository:
    """
    根据配置创建并返回一个仓储实例。
    这是实例化持久化层的唯一入口。
    """
    if config.is_memory_database:
        return InMemoryRepository()

    db_url = config.database_url
    if not db_url.startswith(("sqlite+aiosqlite", "postgresql+asyncpg")):
        raise ConfigurationError(
            f"不支持的数据库类型或驱动: '{db_url}'。"
            "请使用 'sqlite+aiosqlite://' 或 'postgresql+asyncpg://'。"
        )
    try:
        engine = create_async_engine(db_url)
    except ImportError as e:
        raise ConfigurationError(f"缺少数据库驱动: {e}") from e
    return SQLRepository(engine)


__all__ = [
    "ContentRepository",
    "InMemoryRepository",
    "SQLRepository",
    "create_repository",
]
