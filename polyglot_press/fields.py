# polyglot_press/fields.py
"""翻译聚类 AI 记录的 `{title, summary, details}` 字段组。"""

import json
import re

import structlog

from polyglot_press.chunker import split_text
from polyglot_press.core.exceptions import ProviderError
from polyglot_press.core.types import TranslatedFields
from polyglot_press.translation import PROMPT_INPUT_MARKER, TranslationClient
from polyglot_press.utils import AUTO_LANG, normalize_bcp47, same_language_root

logger = structlog.get_logger(__name__)

FIELD_NAMES = ("title", "summary", "details")

FIELDS_PROMPT_TEMPLATE = (
    "Translate the JSON string values from {src} to {dst}. "
    "Keep meaning, names, and terminology consistent.\n"
    'Return only a JSON object with the keys "title", "summary" and "details".\n'
    f"{PROMPT_INPUT_MARKER}{{payload}}"
)

_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")


class FieldTranslator:
    """
    将一组字段翻译到目标语言。

    - 所有非空字段都已缓存时，不调用提供商。
    - 详情较短时，三个字段合并为一次 JSON 约束的调用；解析失败则逐字段回退。
    - 详情较长时，按段落（必要时按句子）分片翻译；超过上限的详情不翻译。
    """

    def __init__(
        self,
        client: TranslationClient,
        *,
        chunk_max_chars: int = 2800,
        max_article_chars: int = 50_000,
    ):
        self.client = client
        self.chunk_max_chars = chunk_max_chars
        self.max_article_chars = max_article_chars

    async def translate_fields(
        self, fields: TranslatedFields, src_lang: str | None, dst_lang: str | None
    ) -> TranslatedFields:
        if not dst_lang or fields.is_blank():
            return fields
        src = normalize_bcp47(src_lang, fallback=AUTO_LANG)
        dst = normalize_bcp47(dst_lang)
        if same_language_root(src, dst):
            return fields

        cached = await self._from_cache(fields, src, dst)
        if cached is not None:
            return cached

        if len(fields.details) > self.chunk_max_chars:
            return await self._translate_long(fields, src, dst)

        try:
            return await self._translate_as_json(fields, src, dst)
        except (ProviderError, ValueError) as e:
            logger.warning(
                "字段批量翻译失败，回退到逐字段翻译", dst_lang=dst, error=str(e)
            )
        return await self._translate_each(fields, src, dst)

    async def _from_cache(
        self, fields: TranslatedFields, src: str, dst: str
    ) -> TranslatedFields | None:
        values: dict[str, str] = {}
        for name in FIELD_NAMES:
            text = getattr(fields, name)
            if not text.strip():
                values[name] = text
                continue
            hit = await self.client.peek(text, src, dst)
            if hit is None:
                return None
            values[name] = hit
        return TranslatedFields(**values)

    async def _translate_as_json(
        self, fields: TranslatedFields, src: str, dst: str
    ) -> TranslatedFields:
        payload = json.dumps(fields.model_dump(), ensure_ascii=False)
        prompt = FIELDS_PROMPT_TEMPLATE.format(
            src="the source language" if src == AUTO_LANG else src,
            dst=dst,
            payload=payload,
        )
        raw = await self.client.complete(prompt)
        parsed = _parse_json_object(raw)

        values: dict[str, str] = {}
        for name in FIELD_NAMES:
            source = getattr(fields, name)
            if not source.strip():
                values[name] = source
                continue
            translated = parsed.get(name)
            if not isinstance(translated, str) or not translated.strip():
                raise ValueError(f"JSON 输出缺少字段 '{name}'")
            values[name] = translated.strip()
            await self.client.remember(source, src, dst, values[name])
        return TranslatedFields(**values)

    async def _translate_each(
        self, fields: TranslatedFields, src: str, dst: str
    ) -> TranslatedFields:
        values: dict[str, str] = {}
        for name in FIELD_NAMES:
            text = getattr(fields, name)
            values[name] = (await self.client.translate(text, src, dst)) or text
        return TranslatedFields(**values)

    async def _translate_long(
        self, fields: TranslatedFields, src: str, dst: str
    ) -> TranslatedFields:
        title = (await self.client.translate(fields.title, src, dst)) or fields.title
        summary = (
            await self.client.translate(fields.summary, src, dst)
        ) or fields.summary

        if len(fields.details) > self.max_article_chars:
            logger.warning(
                "详情超过翻译上限，已跳过",
                dst_lang=dst,
                details_chars=len(fields.details),
                limit=self.max_article_chars,
            )
            return TranslatedFields(title=title, summary=summary, details="")

        translated_parts: list[str] = []
        for piece in self._split_details(fields.details):
            translated_parts.append(
                (await self.client.translate(piece, src, dst)) or piece
            )
        return TranslatedFields(
            title=title, summary=summary, details="\n\n".join(translated_parts)
        )

    def _split_details(self, details: str) -> list[str]:
        """按段落聚合为不超过上限的片段，超长段落再按句子切分。"""
        pieces: list[str] = []
        buffer = ""
        for paragraph in _PARAGRAPH_SPLIT_RE.split(details.strip()):
            paragraph = paragraph.strip()
            if not paragraph:
                continue
            if len(paragraph) > self.chunk_max_chars:
                if buffer:
                    pieces.append(buffer)
                    buffer = ""
                pieces.extend(
                    part.strip()
                    for part in split_text(paragraph, self.chunk_max_chars)
                    if part.strip()
                )
                continue
            candidate = f"{buffer}\n\n{paragraph}" if buffer else paragraph
            if len(candidate) > self.chunk_max_chars:
                pieces.append(buffer)
                buffer = paragraph
            else:
                buffer = candidate
        if buffer:
            pieces.append(buffer)
        return pieces


def _parse_json_object(raw: str) -> dict[str, object]:
    """宽松地从模型输出中解析出一个 JSON 对象。"""
    start, end = raw.find("{"), raw.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("输出中没有 JSON 对象")
    try:
        parsed = json.loads(raw[start : end + 1])
    except json.JSONDecodeError as e:
        raise ValueError(f"JSON 解析失败: {e}") from e
    if not isinstance(parsed, dict):
        raise ValueError("JSON 输出不是对象")
    return parsed
