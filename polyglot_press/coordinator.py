# polyglot_press/coordinator.py
"""本模块包含 Polyglot-Press 的主协调器，负责组装各组件并暴露两个入口。"""

from collections.abc import Sequence
from typing import Any

import structlog

from polyglot_press.cache import TranslationCache
from polyglot_press.config import PolyglotPressConfig
from polyglot_press.core.interfaces import ContentRepository
from polyglot_press.core.types import ArticleProcessingReport, PretranslationReport
from polyglot_press.fields import FieldTranslator
from polyglot_press.pipeline import ContentPipeline
from polyglot_press.pretranslator import PretranslationScheduler
from polyglot_press.provider_registry import create_provider
from polyglot_press.providers.base import BaseCompletionProvider
from polyglot_press.translation import TranslationClient

logger = structlog.get_logger(__name__)


class Coordinator:
    """异步主协调器：持有仓储、提供商、缓存，以及流水线和调度器。"""

    def __init__(
        self,
        config: PolyglotPressConfig,
        repository: ContentRepository,
        provider: BaseCompletionProvider[Any] | None = None,
    ):
        self.config = config
        self.repository = repository
        self.provider = provider or create_provider(
            config.active_provider.value,
            config.provider_configs.get(config.active_provider.value),
        )
        self.cache = TranslationCache(config.cache)
        self.client = TranslationClient(
            self.provider,
            self.cache,
            store=repository,
            retry_policy=config.retry_policy,
            block_concurrency=config.pipeline.block_concurrency,
        )
        self.pipeline = ContentPipeline(
            repository,
            self.client,
            chunking=config.chunking,
            config=config.pipeline,
            default_source_lang=config.default_source_lang,
            default_target_langs=config.pretranslate_langs,
        )
        self.scheduler = PretranslationScheduler(
            repository,
            FieldTranslator(
                self.client,
                chunk_max_chars=config.pretranslation.field_chunk_max_chars,
                max_article_chars=config.pretranslation.max_article_chars,
            ),
            provider_name=self.provider.name,
            config=config.pretranslation,
            market=config.market,
        )
        self.initialized = False

    async def initialize(self) -> None:
        """连接持久化层并初始化提供商。"""
        if self.initialized:
            return
        logger.info("协调器初始化开始...", provider=self.provider.name)
        await self.repository.connect()
        if not self.provider.initialized:
            await self.provider.initialize()
        self.initialized = True
        logger.info("协调器初始化完成。")

    async def close(self) -> None:
        """关闭提供商与持久化层。"""
        if not self.initialized:
            return
        await self.provider.close()
        await self.repository.close()
        self.initialized = False
        logger.info("协调器已关闭。")

    async def process_and_persist_article(
        self,
        article_id: str,
        raw_html: str | None,
        source_lang: str | None = None,
        target_langs: Sequence[str] | None = None,
        url: str | None = None,
    ) -> ArticleProcessingReport:
        self._ensure_initialized()
        return await self.pipeline.process_and_persist_article(
            article_id, raw_html, source_lang, target_langs, url
        )

    async def run_pretranslation_cycle(self, **overrides: Any) -> PretranslationReport:
        self._ensure_initialized()
        return await self.scheduler.run_pretranslation_cycle(**overrides)

    async def clear_translation_cache(self) -> None:
        await self.client.clear_cache()

    def _ensure_initialized(self) -> None:
        if not self.initialized:
            raise RuntimeError("Coordinator is not initialized.")
