# tests/integration/conftest.py
"""
集成测试的共享 Fixtures。

每个测试函数都使用一个独立的数据库：默认是临时目录中的 SQLite 文件；
设置 PP_TEST_POSTGRES_URL 后，同一组测试也会在 PostgreSQL 上运行。
"""

import os
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from polyglot_press.config import PolyglotPressConfig
from polyglot_press.coordinator import Coordinator
from polyglot_press.db.schema import Base
from polyglot_press.logging_config import setup_logging
from polyglot_press.persistence.sql import SQLRepository

setup_logging(log_level=os.getenv("TEST_LOG_LEVEL", "WARNING"), log_format="console")

PG_DATABASE_URL = os.getenv("PP_TEST_POSTGRES_URL", "")

_BACKENDS = ["sqlite"]
if PG_DATABASE_URL.startswith("postgresql+asyncpg"):
    _BACKENDS.append("postgres")


@pytest.fixture(params=_BACKENDS)
def database_url(request: pytest.FixtureRequest, tmp_path: Path) -> str:
    if request.param == "postgres":
        return PG_DATABASE_URL
    return f"sqlite+aiosqlite:///{tmp_path / 'polyglot_press.db'}"


@pytest_asyncio.fixture
async def sql_repository(database_url: str) -> AsyncGenerator[SQLRepository, None]:
    """提供一个已建表的 SQL 仓储，测试结束后删除所有表。"""
    repository = SQLRepository(create_async_engine(database_url))
    await repository.connect()
    try:
        yield repository
    finally:
        async with repository.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await repository.close()


@pytest_asyncio.fixture
async def coordinator(
    database_url: str, sql_repository: SQLRepository
) -> AsyncGenerator[Coordinator, None]:
    """提供一个已初始化的、使用 Debug 提供商与测试数据库的 Coordinator。"""
    config = PolyglotPressConfig(
        database_url=database_url,
        active_provider="debug",
        provider_configs={"debug": {"echo_prefix": "[t] "}},
        _env_file=None,  # type: ignore[call-arg]
    )
    coord = Coordinator(config, sql_repository)
    await coord.initialize()
    yield coord
    await coord.close()
