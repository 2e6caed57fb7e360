# polyglot_press/pipeline.py
"""
本模块包含文章内容流水线的编排器。

一篇文章只净化和分块一次，随后对每个目标语言并发地：翻译分块 → 重组 →
再次净化 → 添加书写方向 → 持久化。单个语言的失败不会影响其他语言。
"""

import asyncio
from collections.abc import Sequence

import structlog
from cachetools import TTLCache

from polyglot_press.chunker import chunk
from polyglot_press.config import ChunkingConfig, PipelineConfig
from polyglot_press.core.exceptions import DatabaseError, ProviderError
from polyglot_press.core.interfaces import ContentRepository
from polyglot_press.core.types import (
    ArticleProcessingReport,
    Chunk,
    LanguageResult,
    LanguageStatus,
    SanitizedDocument,
)
from polyglot_press.sanitizer import sanitize
from polyglot_press.translation import TranslationClient
from polyglot_press.utils import AUTO_LANG, normalize_bcp47, normalize_target_langs

logger = structlog.get_logger(__name__)

_DEFAULT_LANGS_KEY = "default_target_langs"


def article_translation_key(article_id: str, lang: str) -> str:
    return f"article:{article_id}:full_text:{lang}"


class ContentPipeline:
    """文章净化、翻译与持久化的编排器。"""

    def __init__(
        self,
        repository: ContentRepository,
        client: TranslationClient,
        *,
        chunking: ChunkingConfig | None = None,
        config: PipelineConfig | None = None,
        default_source_lang: str = AUTO_LANG,
        default_target_langs: Sequence[str] = (),
    ):
        self.repository = repository
        self.client = client
        self.chunking = chunking or ChunkingConfig()
        self.config = config or PipelineConfig()
        self.default_source_lang = default_source_lang
        self._configured_langs = list(default_target_langs)
        self._langs_cache: TTLCache[str, list[str]] = TTLCache(
            maxsize=1, ttl=self.config.default_langs_ttl
        )

    async def default_target_langs(self) -> list[str]:
        """
        未显式指定目标语言时使用的默认集合。

        优先使用配置；否则取所有启用市场的展示语言并集，结果短时缓存。
        """
        if self._configured_langs:
            return normalize_target_langs(self._configured_langs)
        cached = self._langs_cache.get(_DEFAULT_LANGS_KEY)
        if cached is not None:
            return list(cached)

        langs: list[str] = []
        for market in await self.repository.list_markets():
            langs.extend(market.show_langs or market.pretranslate_langs)
        resolved = normalize_target_langs(langs)
        self._langs_cache[_DEFAULT_LANGS_KEY] = resolved
        return list(resolved)

    async def process_and_persist_article(
        self,
        article_id: str,
        raw_html: str | None,
        source_lang: str | None = None,
        target_langs: Sequence[str] | None = None,
        url: str | None = None,
    ) -> ArticleProcessingReport:
        """净化文章、保存规范 HTML，并为每个目标语言生成和保存译文。"""
        if not article_id:
            raise ValueError("article_id 不能为空")

        src = normalize_bcp47(source_lang or self.default_source_lang, fallback=AUTO_LANG)
        log = logger.bind(article_id=article_id, source_lang=src)

        document = sanitize(raw_html)
        if document.cleaned_bytes > self.config.max_cleaned_bytes:
            log.warning(
                "净化后的文章超过大小上限",
                cleaned_bytes=document.cleaned_bytes,
                limit=self.config.max_cleaned_bytes,
            )

        cleaned_error: str | None = None
        try:
            await self.repository.save_cleaned_article(article_id, document.html)
        except DatabaseError as e:
            cleaned_error = str(e)
            log.error("保存净化后的文章失败", error=cleaned_error)

        requested = (
            list(target_langs)
            if target_langs is not None
            else await self.default_target_langs()
        )
        targets = normalize_target_langs(requested, src)
        chunks = chunk(
            document.nodes, self.chunking.soft_limit, self.chunking.hard_limit
        )
        log.debug("文章已净化并分块", chunks=len(chunks), targets=targets)

        semaphore = asyncio.Semaphore(self.config.lang_concurrency)

        async def _bounded(lang: str) -> LanguageResult:
            async with semaphore:
                return await self._render_language(article_id, document, chunks, src, lang)

        results = await asyncio.gather(*(_bounded(lang) for lang in targets))

        report = ArticleProcessingReport(
            article_id=article_id,
            source_lang=src,
            url=url,
            cleaned_bytes=document.cleaned_bytes,
            cleaned_hash=document.cleaned_hash,
            targets=targets,
            results=list(results),
            cleaned_error=cleaned_error,
        )
        log.info(
            "文章处理完成",
            cleaned_bytes=report.cleaned_bytes,
            ok=sum(r.status is LanguageStatus.OK for r in results),
            skipped=sum(r.status is LanguageStatus.SKIPPED for r in results),
            failed=sum(r.status is LanguageStatus.ERROR for r in results),
        )
        return report

    async def _render_language(
        self,
        article_id: str,
        document: SanitizedDocument,
        chunks: list[Chunk],
        src: str,
        lang: str,
    ) -> LanguageResult:
        key = article_translation_key(article_id, lang)
        log = logger.bind(article_id=article_id, dst_lang=lang)

        if document.is_empty:
            return LanguageResult(
                lang=lang, status=LanguageStatus.SKIPPED, reason="empty_output"
            )

        try:
            translated_html = await self.client.translate_chunks(chunks, src, lang)
        except ProviderError as e:
            log.error("文章翻译失败", error=str(e))
            return LanguageResult(
                lang=lang,
                status=LanguageStatus.ERROR,
                reason="provider_error",
                error=str(e),
            )
        except Exception as e:
            log.error("文章翻译时发生意外错误", exc_info=True)
            return LanguageResult(
                lang=lang,
                status=LanguageStatus.ERROR,
                reason="unexpected_error",
                error=str(e),
            )

        if not translated_html.strip():
            return LanguageResult(
                lang=lang, status=LanguageStatus.SKIPPED, reason="empty_output"
            )

        localized = sanitize(translated_html)
        if localized.is_empty:
            log.warning("译文净化后为空，已跳过")
            return LanguageResult(
                lang=lang, status=LanguageStatus.SKIPPED, reason="sanitized_empty"
            )

        final_html = self.client.localize_direction(localized, lang)
        try:
            await self.repository.upsert_translation(key, src, lang, final_html)
        except DatabaseError as e:
            log.error("保存译文失败", error=str(e))
            return LanguageResult(
                lang=lang,
                status=LanguageStatus.ERROR,
                reason="db_upsert_error",
                error=str(e),
            )
        except Exception as e:
            log.error("保存译文时发生意外错误", exc_info=True)
            return LanguageResult(
                lang=lang,
                status=LanguageStatus.ERROR,
                reason="unexpected_error",
                error=str(e),
            )

        return LanguageResult(lang=lang, status=LanguageStatus.OK, key=key)
