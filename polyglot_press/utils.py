# polyglot_press/utils.py
"""
本模块包含项目范围内的通用工具函数：语言代码的规范化与校验、
右到左语言判断，以及内容指纹。
"""

import hashlib
import re
from collections.abc import Iterable

from langcodes import Language
from langcodes.tag_parser import LanguageTagError

# 语言子标签应该由 2-3 个字母组成 (BCP 47)
LANGUAGE_SUBTAG_PATTERN = re.compile(r"^[a-zA-Z]{2,3}$")

RTL_LANG_ROOTS = frozenset({"ar", "he", "fa", "ur"})

AUTO_LANG = "auto"


def validate_lang_codes(lang_codes: list[str]) -> None:
    """使用 `langcodes` 库校验语言代码列表中的每个代码是否符合 BCP 47 规范。"""
    for code in lang_codes:
        try:
            lang = Language.get(code)
            if not lang.language or not LANGUAGE_SUBTAG_PATTERN.match(lang.language):
                raise LanguageTagError(
                    f"Tag '{code}' lacks a valid 2-3 letter language subtag."
                )
        except LanguageTagError as e:
            raise ValueError(f"提供的语言代码 '{code}' 格式无效。原因: {e}") from e


def normalize_bcp47(code: str | None, fallback: str = "en") -> str:
    """
    将语言代码规范化为 BCP-47 的常见书写形式。

    下划线视为连字符；语言子标签小写，两位地区码大写，四位文字码首字母大写。
    例如 `zh_hant_tw` -> `zh-Hant-TW`，`EN-us` -> `en-US`。
    空值返回 `fallback`。
    """
    raw = (code or "").strip().replace("_", "-")
    if not raw:
        return fallback
    parts = [p for p in raw.split("-") if p]
    if not parts:
        return fallback
    normalized = [parts[0].lower()]
    for part in parts[1:]:
        if len(part) == 2 and part.isalpha():
            normalized.append(part.upper())
        elif len(part) == 4 and part.isalpha():
            normalized.append(part.capitalize())
        else:
            normalized.append(part.lower())
    return "-".join(normalized)


def lang_root(code: str | None) -> str:
    """返回语言代码的主语言子标签，例如 `en-US` -> `en`。"""
    return normalize_bcp47(code, fallback="").split("-")[0]


def same_language_root(a: str | None, b: str | None) -> bool:
    root_a, root_b = lang_root(a), lang_root(b)
    return bool(root_a) and root_a == root_b


def is_rtl_lang(code: str | None) -> bool:
    """判断一个语言是否为右到左书写。"""
    return lang_root(code) in RTL_LANG_ROOTS


def parse_lang_list(value: str | Iterable[str] | None) -> list[str]:
    """
    解析多种形式的语言列表配置。

    支持 Python 列表、逗号分隔字符串，以及 PostgreSQL 数组字面量 `{de,fr}`。
    """
    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("{") and text.endswith("}"):
            text = text[1:-1]
        items: Iterable[str] = text.split(",")
    else:
        items = value
    return [str(item).strip().strip('"') for item in items if str(item).strip()]


def normalize_target_langs(
    codes: Iterable[str], source_lang: str | None = None
) -> list[str]:
    """
    规范化、去重目标语言列表，并剔除与源语言同根的语言。

    保持首次出现的顺序。当源语言为 `en-US` 时，`en-GB` 也会被剔除。
    """
    seen: set[str] = set()
    result: list[str] = []
    for code in codes:
        normalized = normalize_bcp47(code, fallback="")
        if not normalized or normalized in seen:
            continue
        if source_lang and same_language_root(normalized, source_lang):
            continue
        seen.add(normalized)
        result.append(normalized)
    return result


def content_fingerprint(title: str, summary: str, details: str) -> str:
    """计算枢纽语言内容的稳定指纹（SHA-1 的前 10 位十六进制）。"""
    payload = "\n".join([title or "", summary or "", details or ""])
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()[:10]
