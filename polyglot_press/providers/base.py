# polyglot_press/providers/base.py
"""
本模块定义了所有补全提供商必须继承的抽象基类，以及共用的令牌桶限速器。

提供商对系统而言是一个不透明的文本补全函数：给定提示词，返回文本或错误。
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

from polyglot_press.core.types import CompletionError, CompletionResult

_ConfigType = TypeVar("_ConfigType", bound="BaseProviderConfig")


class TokenBucket:
    """异步令牌桶限速器。等待发生在锁外，不会阻塞其他协程计算等待时间。"""

    def __init__(self, refill_rate: float, capacity: float):
        if refill_rate <= 0 or capacity <= 0:
            raise ValueError("速率和容量必须为正数")
        self.refill_rate = refill_rate
        self.capacity = capacity
        self.tokens = capacity
        self.last_refill_time = time.monotonic()
        self._lock = asyncio.Lock()

    @classmethod
    def from_limits(cls, rpm: int | None, rps: int | None) -> "TokenBucket | None":
        """根据每分钟/每秒请求数创建限速器；两者均未配置时返回 None。"""
        if rpm:
            return cls(refill_rate=rpm / 60, capacity=rpm)
        if rps:
            return cls(refill_rate=rps, capacity=rps)
        return None

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill_time
        if elapsed > 0:
            self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
            self.last_refill_time = now

    async def acquire(self, tokens_needed: int = 1) -> None:
        """获取令牌，不足时异步等待。"""
        if tokens_needed > self.capacity:
            raise ValueError("请求的令牌数不能超过桶的容量")
        while True:
            async with self._lock:
                self._refill()
                if self.tokens >= tokens_needed:
                    self.tokens -= tokens_needed
                    return
                wait_time = (tokens_needed - self.tokens) / self.refill_rate
            await asyncio.sleep(wait_time)


class BaseProviderConfig(BaseModel):
    """所有提供商配置模型的基类，提供通用的速率与并发控制选项。"""

    rpm: int | None = Field(
        default=None, description="每分钟最大请求数 (Requests Per Minute)", gt=0
    )
    rps: int | None = Field(
        default=None, description="每秒最大请求数 (Requests Per Second)", gt=0
    )
    max_concurrency: int | None = Field(
        default=None, description="最大并发请求数", gt=0
    )
    max_output_tokens: int = Field(default=4096, gt=0)
    temperature: float = Field(default=0.2, ge=0)


class BaseCompletionProvider(ABC, Generic[_ConfigType]):
    """补全提供商的纯异步抽象基类，内置速率限制和并发控制。"""

    CONFIG_MODEL: type[_ConfigType]
    VERSION: str = "1.0.0"

    def __init__(self, config: _ConfigType):
        self.config = config
        self._rate_limiter = TokenBucket.from_limits(config.rpm, config.rps)
        self._concurrency_semaphore: asyncio.Semaphore | None = None
        self.initialized: bool = False

        if config.max_concurrency:
            self._concurrency_semaphore = asyncio.Semaphore(config.max_concurrency)

    @property
    def name(self) -> str:
        """从类名自动推断提供商的名称。"""
        return self.__class__.__name__.replace("Provider", "").lower()

    async def initialize(self) -> None:
        """提供商的异步初始化钩子，用于设置连接池、健康检查等。"""
        self.initialized = True

    async def close(self) -> None:
        """提供商的异步关闭钩子，用于安全释放资源。"""
        self.initialized = False

    @abstractmethod
    async def _execute_completion(
        self, prompt: str, max_output_tokens: int, temperature: float
    ) -> CompletionResult:
        """[子类实现] 真正执行一次补全调用。"""
        ...

    async def acomplete(
        self,
        prompt: str,
        *,
        max_output_tokens: int | None = None,
        temperature: float | None = None,
    ) -> CompletionResult:
        """[模板方法] 执行一次补全，应用速率与并发限制，并把意外异常转换为错误结果。"""
        tokens = max_output_tokens or self.config.max_output_tokens
        temp = self.config.temperature if temperature is None else temperature

        if self._rate_limiter:
            await self._rate_limiter.acquire()
        try:
            if self._concurrency_semaphore:
                async with self._concurrency_semaphore:
                    return await self._execute_completion(prompt, tokens, temp)
            return await self._execute_completion(prompt, tokens, temp)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return CompletionError(
                error_message=f"提供商执行异常: {e.__class__.__name__}: {e}",
                is_retryable=True,
            )
