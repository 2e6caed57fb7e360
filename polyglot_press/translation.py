# polyglot_press/translation.py
"""
本模块包含翻译客户端：缓存优先，未命中时调用补全提供商。

客户端不关心内容来自哪里，只负责：
- 以 (文本, 源语言, 目标语言) 为键查询/写入进程内缓存；
- 可选地查询/写入持久化翻译表；
- 构造提示词、重试可重试的提供商错误、清理输出中的代码围栏；
- 对右到左语言的输出添加方向标注。
"""

import asyncio
import hashlib
import re
import time
from collections.abc import Sequence

import structlog
from pydantic import BaseModel

from polyglot_press.cache import TranslationCache
from polyglot_press.chunker import reassemble
from polyglot_press.config import RetryPolicyConfig
from polyglot_press.core.exceptions import DatabaseError, ProviderError
from polyglot_press.core.interfaces import ContentRepository
from polyglot_press.core.types import (
    Chunk,
    CompletionSuccess,
    SanitizedDocument,
    StructuralMarkup,
)
from polyglot_press.providers.base import BaseCompletionProvider
from polyglot_press.utils import AUTO_LANG, is_rtl_lang, normalize_bcp47, same_language_root

logger = structlog.get_logger(__name__)

PROMPT_INPUT_MARKER = "Input:\n"

HTML_PROMPT_TEMPLATE = (
    "Translate from {src} to {dst}.\n"
    "Preserve ALL HTML tags and attributes exactly; only translate visible text.\n"
    "Do not add or remove tags. Return HTML only for the given fragment.\n"
    f"{PROMPT_INPUT_MARKER}{{text}}"
)
TEXT_PROMPT_TEMPLATE = (
    "Translate from {src} to {dst}. Keep meaning, names, and terminology consistent.\n"
    "Return only the translation.\n"
    f"{PROMPT_INPUT_MARKER}{{text}}"
)

RTL_BLOCK_TAGS = frozenset({"p", "h2", "h3", "ul", "ol", "table", "blockquote"})

_EDGES_RE = re.compile(r"\A(\s*)(.*?)(\s*)\Z", re.DOTALL)
_FENCE_RE = re.compile(r"^\s*```[\w-]*[ \t]*\n?(.*?)\n?[ \t]*```\s*$", re.DOTALL)


def strip_code_fences(text: str) -> str:
    """去掉模型有时会包裹在输出外层的 Markdown 代码围栏。"""
    match = _FENCE_RE.match(text)
    return match.group(1) if match else text


def store_key(text: str, src_lang: str, dst_lang: str) -> str:
    """持久化翻译表中机器翻译缓存条目的键。"""
    digest = hashlib.sha1(f"{src_lang}|{dst_lang}|{text}".encode("utf-8")).hexdigest()
    return f"{src_lang}->{dst_lang}:{digest}"


def _describe_lang(code: str) -> str:
    return "the source language" if code == AUTO_LANG else code


class TranslationMetrics(BaseModel):
    """翻译客户端的运行计数。"""

    cache_hits: int = 0
    cache_misses: int = 0
    store_hits: int = 0
    provider_calls: int = 0
    provider_errors: int = 0
    last_latency_ms: float = 0.0
    total_latency_ms: float = 0.0

    @property
    def average_latency_ms(self) -> float:
        if not self.provider_calls:
            return 0.0
        return self.total_latency_ms / self.provider_calls


class TranslationClient:
    """缓存优先的翻译客户端。"""

    def __init__(
        self,
        provider: BaseCompletionProvider,
        cache: TranslationCache,
        *,
        store: ContentRepository | None = None,
        retry_policy: RetryPolicyConfig | None = None,
        block_concurrency: int = 3,
    ):
        self.provider = provider
        self.cache = cache
        self.store = store
        self.retry_policy = retry_policy or RetryPolicyConfig()
        self.block_concurrency = block_concurrency
        self.metrics = TranslationMetrics()

    async def translate(
        self, text: str, src_lang: str | None, dst_lang: str | None, *, html: bool = False
    ) -> str | None:
        """
        翻译一段文本。

        目标语言为空或文本为空时返回 None，且不调用提供商。
        首尾空白会被原样保留；纯空白文本直接返回。
        """
        if not dst_lang or not text:
            return None
        src = normalize_bcp47(src_lang, fallback=AUTO_LANG)
        dst = normalize_bcp47(dst_lang)
        lead, core, trail = _EDGES_RE.match(text).groups()  # type: ignore[union-attr]
        if not core or same_language_root(src, dst):
            return text

        cached = await self.cache.get(core, src, dst)
        if cached is not None:
            self.metrics.cache_hits += 1
            return f"{lead}{cached}{trail}"
        self.metrics.cache_misses += 1

        # HTML 分块只走进程内缓存，持久化翻译表只存放纯文本条目
        stored = None if html else await self._lookup_store(core, src, dst)
        if stored is not None:
            self.metrics.store_hits += 1
            await self.cache.set(core, src, dst, stored)
            return f"{lead}{stored}{trail}"

        template = HTML_PROMPT_TEMPLATE if html else TEXT_PROMPT_TEMPLATE
        prompt = template.format(src=_describe_lang(src), dst=dst, text=core)
        translated = await self.complete(prompt)
        if translated:
            await self.remember(core, src, dst, translated, persist=not html)
        return f"{lead}{translated}{trail}"

    async def translate_chunks(
        self, chunks: Sequence[Chunk], src_lang: str | None, dst_lang: str
    ) -> str:
        """以有限并发翻译所有非原样分块，并按原顺序重组。"""
        semaphore = asyncio.Semaphore(self.block_concurrency)

        async def _run(item: Chunk) -> tuple[int, str]:
            async with semaphore:
                result = await self.translate(item.text, src_lang, dst_lang, html=True)
                return item.index, result if result is not None else ""

        results = await asyncio.gather(
            *(_run(item) for item in chunks if not item.verbatim),
            return_exceptions=True,
        )
        outputs: dict[int, str] = {}
        for result in results:
            if isinstance(result, BaseException):
                raise result
            index, text = result
            outputs[index] = text
        return reassemble(chunks, outputs)

    async def complete(self, prompt: str) -> str:
        """调用提供商并按重试策略处理可重试错误；最终失败时抛出 ProviderError。"""
        policy = self.retry_policy
        for attempt in range(1, policy.max_attempts + 1):
            self.metrics.provider_calls += 1
            started = time.monotonic()
            result = await self.provider.acomplete(prompt)
            latency_ms = (time.monotonic() - started) * 1000
            self.metrics.last_latency_ms = latency_ms
            self.metrics.total_latency_ms += latency_ms

            if isinstance(result, CompletionSuccess):
                return strip_code_fences(result.text).strip()

            self.metrics.provider_errors += 1
            logger.warning(
                "提供商调用失败",
                provider=self.provider.name,
                attempt=attempt,
                is_retryable=result.is_retryable,
                error=result.error_message,
            )
            if not result.is_retryable or attempt >= policy.max_attempts:
                raise ProviderError(result.error_message, is_retryable=result.is_retryable)
            await asyncio.sleep(policy.backoff_for(attempt))
        raise ProviderError("重试次数必须大于零")

    async def peek(self, text: str, src_lang: str | None, dst_lang: str) -> str | None:
        """只查询进程内缓存，不计数、不调用提供商。"""
        src = normalize_bcp47(src_lang, fallback=AUTO_LANG)
        dst = normalize_bcp47(dst_lang)
        lead, core, trail = _EDGES_RE.match(text).groups()  # type: ignore[union-attr]
        if not core:
            return text
        cached = await self.cache.get(core, src, dst)
        return None if cached is None else f"{lead}{cached}{trail}"

    async def remember(
        self, text: str, src_lang: str, dst_lang: str, value: str, *, persist: bool = True
    ) -> None:
        """将一条翻译写入缓存与持久化翻译表。"""
        src = normalize_bcp47(src_lang, fallback=AUTO_LANG)
        dst = normalize_bcp47(dst_lang)
        core = text.strip()
        await self.cache.set(core, src, dst, value)
        if self.store is None or not persist:
            return
        try:
            await self.store.upsert_translation(store_key(core, src, dst), src, dst, value)
        except DatabaseError as e:
            logger.warning("写入持久化翻译缓存失败", error=str(e))

    async def clear_cache(self) -> None:
        await self.cache.clear()

    async def _lookup_store(self, text: str, src: str, dst: str) -> str | None:
        if self.store is None:
            return None
        try:
            return await self.store.get_translation(store_key(text, src, dst))
        except DatabaseError as e:
            logger.warning("读取持久化翻译缓存失败", error=str(e))
            return None

    @staticmethod
    def localize_direction(document: SanitizedDocument, dst_lang: str) -> str:
        """
        为右到左语言的顶层块添加 `dir="rtl"`。

        左到右语言原样返回文档 HTML；原样区域不受影响。
        """
        if not is_rtl_lang(dst_lang):
            return document.html
        parts: list[str] = []
        depth = 0
        for node in document.nodes:
            if isinstance(node, StructuralMarkup) and not node.void:
                if not node.closing and depth == 0 and node.tag in RTL_BLOCK_TAGS:
                    parts.append(f'{node.markup[:-1]} dir="rtl">')
                else:
                    parts.append(node.markup)
                depth = max(0, depth - 1) if node.closing else depth + 1
            else:
                parts.append(node.html)
        return "".join(parts)
