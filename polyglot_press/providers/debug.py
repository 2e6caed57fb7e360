# polyglot_press/providers/debug.py
"""提供一个用于开发和测试的调试补全提供商。"""

import asyncio
from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from polyglot_press.core.types import CompletionError, CompletionResult, CompletionSuccess
from polyglot_press.providers.base import BaseCompletionProvider, BaseProviderConfig


class DebugProviderConfig(BaseSettings, BaseProviderConfig):
    """Debug 提供商的配置模型。"""

    model_config = SettingsConfigDict(env_prefix="PP_DEBUG_", extra="ignore")

    mode: str = Field(default="SUCCESS", description="SUCCESS 或 FAIL")
    fail_on_text: Optional[str] = Field(
        default=None, description="输入包含该文本时返回错误"
    )
    fail_is_retryable: bool = Field(default=True)
    translation_map: Dict[str, str] = Field(default_factory=dict)
    echo_marker: str = Field(
        default="Input:\n", description="提示词中源文本之前的分隔标记"
    )
    echo_prefix: str = ""
    delay_seconds: float = Field(default=0.0, ge=0)


class DebugProvider(BaseCompletionProvider[DebugProviderConfig]):
    """
    一个不联网的调试提供商。

    它从提示词中取出分隔标记之后的源文本，按 `translation_map` 映射，
    未命中时原样回显（可加前缀）。
    """

    CONFIG_MODEL = DebugProviderConfig
    VERSION = "1.0.0"

    def extract_source(self, prompt: str) -> str:
        marker = self.config.echo_marker
        if marker and marker in prompt:
            return prompt.split(marker, 1)[1]
        return prompt

    async def _execute_completion(
        self, prompt: str, max_output_tokens: int, temperature: float
    ) -> CompletionResult:
        if self.config.delay_seconds:
            await asyncio.sleep(self.config.delay_seconds)

        source = self.extract_source(prompt)
        if self.config.mode == "FAIL":
            return CompletionError(
                error_message="DebugProvider 处于 FAIL 模式。",
                is_retryable=self.config.fail_is_retryable,
            )
        if self.config.fail_on_text and self.config.fail_on_text in source:
            return CompletionError(
                error_message=f"模拟失败：检测到配置的文本 '{self.config.fail_on_text}'",
                is_retryable=self.config.fail_is_retryable,
            )

        mapped = self.config.translation_map.get(source)
        if mapped is not None:
            return CompletionSuccess(text=mapped)
        return CompletionSuccess(text=f"{self.config.echo_prefix}{source}")
