# polyglot_press/config.py
"""集中定义 Polyglot-Press 的配置模型，支持环境变量与 .env 文件。"""

import enum
import os
from typing import Annotated, Any, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from polyglot_press.cache import CacheConfig
from polyglot_press.utils import AUTO_LANG, parse_lang_list, validate_lang_codes

MEMORY_DATABASE_URL = "memory://"


class ProviderName(str, enum.Enum):
    DEBUG = "debug"
    OPENAI = "openai"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: Literal["json", "console"] = "console"


class RetryPolicyConfig(BaseModel):
    max_attempts: int = Field(default=2, gt=0)
    initial_backoff: float = Field(default=0.2, ge=0)
    max_backoff: float = Field(default=5.0, ge=0)

    @model_validator(mode="after")
    def check_backoff_consistency(self) -> "RetryPolicyConfig":
        if self.max_backoff < self.initial_backoff:
            raise ValueError("max_backoff 必须大于或等于 initial_backoff")
        return self

    def backoff_for(self, attempt: int) -> float:
        """第 `attempt` 次失败后的等待时间（指数退避，封顶）。"""
        return min(self.initial_backoff * (2 ** (attempt - 1)), self.max_backoff)


class ChunkingConfig(BaseModel):
    soft_limit: int = Field(default=3000, gt=0)
    hard_limit: int = Field(default=8000, gt=0)

    @model_validator(mode="after")
    def check_limits(self) -> "ChunkingConfig":
        if self.hard_limit < self.soft_limit:
            raise ValueError("hard_limit 必须大于或等于 soft_limit")
        return self


class PipelineConfig(BaseModel):
    max_cleaned_bytes: int = Field(default=512_000, gt=0)
    block_concurrency: int = Field(default=3, gt=0)
    lang_concurrency: int = Field(default=2, gt=0)
    default_langs_ttl: int = Field(
        default=300, gt=0, description="市场默认目标语言的缓存时间（秒）"
    )


class PretranslationConfig(BaseModel):
    recent_hours: int = Field(default=24, gt=0)
    max_clusters: int = Field(default=200, gt=0)
    concurrency: int = Field(default=4, gt=0)
    per_item_timeout_ms: int = Field(default=8000, gt=0)
    field_chunk_max_chars: int = Field(default=2800, gt=0)
    max_article_chars: int = Field(default=50_000, gt=0)


class PolyglotPressConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PP_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    database_url: str = "sqlite+aiosqlite:///polyglot_press.db"
    active_provider: ProviderName = ProviderName.DEBUG
    default_source_lang: str = AUTO_LANG
    pretranslate_langs: Annotated[list[str], NoDecode] = Field(default_factory=list)
    market: str | None = None

    provider_configs: dict[str, Any] = Field(default_factory=dict)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    pretranslation: PretranslationConfig = Field(default_factory=PretranslationConfig)
    retry_policy: RetryPolicyConfig = Field(default_factory=RetryPolicyConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("pretranslate_langs", mode="before")
    @classmethod
    def parse_pretranslate_langs(cls, v: Any) -> list[str]:
        return parse_lang_list(v)

    @field_validator("pretranslate_langs")
    @classmethod
    def validate_pretranslate_langs(cls, v: list[str]) -> list[str]:
        validate_lang_codes(v)
        return v

    @field_validator("default_source_lang")
    @classmethod
    def validate_source_lang_code(cls, v: str) -> str:
        if v != AUTO_LANG:
            validate_lang_codes([v])
        return v

    @property
    def is_memory_database(self) -> bool:
        return self.database_url == MEMORY_DATABASE_URL

    @property
    def db_path(self) -> str:
        parsed_url = urlparse(self.database_url)
        if not parsed_url.scheme.startswith("sqlite"):
            raise ValueError("db_path 属性仅在 database_url 为 sqlite 类型时可用。")

        path = parsed_url.path
        if (
            os.name == "nt"
            and path.startswith("/")
            and len(path) > 2
            and path[2] == ":"
        ):
            path = path[1:]
        while path.startswith("//"):
            path = path[1:]
        if path.startswith("/") and not self.database_url.startswith(
            f"{parsed_url.scheme}:////"
        ):
            path = path[1:]
        return path or ":memory:"
