# polyglot_press/providers/openai.py
"""提供一个使用 OpenAI 兼容 Chat Completions API 的补全提供商。"""

import os
from typing import Any, cast

import httpx
import structlog
from openai import (
    APIConnectionError,
    APIStatusError,
    AsyncOpenAI,
    AuthenticationError,
    InternalServerError,
    PermissionDeniedError,
    RateLimitError,
)
from openai.types.chat import (
    ChatCompletionMessageParam,
    ChatCompletionSystemMessageParam,
    ChatCompletionUserMessageParam,
)
from pydantic import Field, HttpUrl, SecretStr, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from polyglot_press.core.exceptions import ConfigurationError
from polyglot_press.core.types import CompletionError, CompletionResult, CompletionSuccess
from polyglot_press.providers.base import BaseCompletionProvider, BaseProviderConfig

logger = structlog.get_logger(__name__)

CI_DUMMY_KEY = "dummy-key-for-ci"


class OpenAIProviderConfig(BaseSettings, BaseProviderConfig):
    """OpenAI 提供商的配置模型。"""

    model_config = SettingsConfigDict(env_prefix="PP_OPENAI_", extra="ignore")
    api_key: SecretStr | None = Field(default=None, alias="pp_openai_api_key")
    endpoint: HttpUrl = Field(default=cast(HttpUrl, "https://api.openai.com/v1"))
    model: str = "gpt-4o-mini"
    system_prompt: str | None = (
        "You are a professional news translator. Follow the instructions exactly."
    )
    timeout_total: float = 30.0
    timeout_connect: float = 5.0
    max_retries: int = 0

    @field_validator("endpoint", mode="before")
    @classmethod
    def _validate_endpoint(cls, v: Any, info: ValidationInfo) -> Any:
        if isinstance(v, str) and not v.strip():
            if info.field_name and info.field_name in cls.model_fields:
                return cls.model_fields[info.field_name].default
        return v


class OpenAIProvider(BaseCompletionProvider[OpenAIProviderConfig]):
    """使用 OpenAI API 的补全提供商实现。"""

    CONFIG_MODEL = OpenAIProviderConfig
    VERSION = "1.0.0"

    def __init__(self, config: OpenAIProviderConfig):
        super().__init__(config)
        if not config.api_key:
            if "PYTEST_CURRENT_TEST" in os.environ or "CI" in os.environ:
                config.api_key = SecretStr(CI_DUMMY_KEY)
            else:
                raise ConfigurationError(
                    "OpenAI 提供商配置错误: 缺少 API 密钥 (PP_OPENAI_API_KEY)。"
                )

        assert config.api_key is not None
        timeout = httpx.Timeout(config.timeout_total, connect=config.timeout_connect)
        self.client = AsyncOpenAI(
            api_key=config.api_key.get_secret_value(),
            base_url=str(config.endpoint),
            timeout=timeout,
            max_retries=config.max_retries,
        )

    async def initialize(self) -> None:
        assert self.config.api_key is not None
        if self.config.api_key.get_secret_value() == CI_DUMMY_KEY:
            logger.warning("OpenAI 提供商处于CI/测试模式, 跳过健康检查。")
            await super().initialize()
            return
        logger.info(
            "OpenAI 提供商正在初始化并执行健康检查...",
            endpoint=str(self.config.endpoint),
        )
        try:
            await self.client.models.list(timeout=10)
            logger.info("✅ OpenAI 提供商健康检查通过。")
        except AuthenticationError as e:
            raise ConfigurationError(f"OpenAI API Key 无效或权限不足: {e}") from e
        except APIConnectionError as e:
            raise ConfigurationError(
                f"无法连接到 OpenAI 端点 '{self.config.endpoint}': {e}"
            ) from e
        await super().initialize()

    async def close(self) -> None:
        if not self.client.is_closed():
            await self.client.close()
            logger.info("OpenAI 提供商的 HTTP 客户端已关闭。")
        await super().close()

    async def _execute_completion(
        self, prompt: str, max_output_tokens: int, temperature: float
    ) -> CompletionResult:
        messages: list[ChatCompletionMessageParam] = []
        if self.config.system_prompt:
            messages.append(
                ChatCompletionSystemMessageParam(
                    role="system", content=self.config.system_prompt
                )
            )
        messages.append(ChatCompletionUserMessageParam(role="user", content=prompt))

        try:
            response = await self.client.chat.completions.create(
                model=self.config.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_output_tokens,
            )
        except (RateLimitError, InternalServerError, APIConnectionError) as e:
            return CompletionError(error_message=str(e), is_retryable=True)
        except (PermissionDeniedError, AuthenticationError, APIStatusError) as e:
            error_msg = (
                e.body.get("message", str(e)) if isinstance(e.body, dict) else str(e)
            )
            return CompletionError(
                error_message=f"API Error: {error_msg}", is_retryable=False
            )

        if not response.choices:
            return CompletionError(
                error_message="API 返回了空的 'choices' 列表。", is_retryable=True
            )
        content = response.choices[0].message.content
        if not content or not content.strip():
            return CompletionError(error_message="API 返回了空内容。", is_retryable=True)
        return CompletionSuccess(text=content)
