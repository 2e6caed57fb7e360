# tests/conftest.py
"""项目全局共享的测试 Fixtures。"""

from collections.abc import Generator
from typing import Any

import pytest
from pytest_mock import MockerFixture
from rich.console import Console

from polyglot_press.cache import TranslationCache
from polyglot_press.config import RetryPolicyConfig
from polyglot_press.persistence.memory import InMemoryRepository
from polyglot_press.translation import TranslationClient
from tests.helpers.factories import ScriptedProvider, echo_source


@pytest.fixture(scope="session", autouse=True)
def disable_rich_colors_for_tests(
    session_mocker: MockerFixture,
) -> Generator[None, None, None]:
    """全局禁用 rich 库的颜色输出，以确保测试结果的确定性。"""
    original_init = Console.__init__

    def new_init(self: Console, *args: Any, **kwargs: Any) -> None:
        kwargs["force_terminal"] = False
        kwargs["color_system"] = None
        original_init(self, *args, **kwargs)

    session_mocker.patch("rich.console.Console.__init__", new=new_init)
    yield


@pytest.fixture
def repository() -> InMemoryRepository:
    """提供一个空的内存仓储。"""
    return InMemoryRepository()


@pytest.fixture
def no_backoff() -> RetryPolicyConfig:
    """不等待的重试策略，避免测试变慢。"""
    return RetryPolicyConfig(max_attempts=2, initial_backoff=0, max_backoff=0)


@pytest.fixture
def echo_provider() -> ScriptedProvider:
    """原样回显源文本的提供商。"""
    return ScriptedProvider(echo_source)


@pytest.fixture
def echo_client(
    echo_provider: ScriptedProvider,
    repository: InMemoryRepository,
    no_backoff: RetryPolicyConfig,
) -> TranslationClient:
    """基于回显提供商与内存仓储的翻译客户端。"""
    return TranslationClient(
        echo_provider, TranslationCache(), store=repository, retry_policy=no_backoff
    )
