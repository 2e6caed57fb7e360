# polyglot_press/chunker.py
"""
本模块把净化后的节点序列切分为适合单次翻译调用的分块，并负责按序重组。

- 原样区域（`VerbatimBlock`）总是独立成块，且永远不会被翻译。
- 标签与完整的链接是原子单元，绝不会被切开。
- 分块优先在顶层块边界处结束（软上限），块内只有在超过硬上限时才会被切断。
- 所有分块的文本按序拼接后与文档 HTML 完全一致。
"""

import re
from collections.abc import Iterable, Mapping

from polyglot_press.core.types import (
    Chunk,
    SanitizedNode,
    StructuralMarkup,
    TranslatableText,
    VerbatimBlock,
)

DEFAULT_SOFT_LIMIT = 3000
DEFAULT_HARD_LIMIT = 8000

_SENTENCE_END_RE = re.compile(r"[.!?;。！？；…](?:\s+|$)")
_WHITESPACE_RE = re.compile(r"\s+")
_ENTITY_TAIL_RE = re.compile(r"&[#a-zA-Z0-9]{0,10}$")


def chunk(
    nodes: Iterable[SanitizedNode],
    soft_limit: int = DEFAULT_SOFT_LIMIT,
    hard_limit: int = DEFAULT_HARD_LIMIT,
) -> list[Chunk]:
    """将节点序列切分为有序的分块列表。"""
    if soft_limit <= 0 or hard_limit < soft_limit:
        raise ValueError("分块上限必须为正数，且 hard_limit 不能小于 soft_limit")

    chunks: list[Chunk] = []
    buffer: list[str] = []
    size = 0
    depth = 0

    def flush() -> None:
        nonlocal size
        if buffer:
            chunks.append(Chunk(index=len(chunks), text="".join(buffer)))
            buffer.clear()
            size = 0

    for node in nodes:
        if isinstance(node, VerbatimBlock):
            flush()
            chunks.append(Chunk(index=len(chunks), text=node.raw, verbatim=True))
            continue

        if isinstance(node, TranslatableText):
            pieces = split_text(node.text, soft_limit)
        else:
            pieces = [node.html]

        for piece in pieces:
            projected = size + len(piece)
            if buffer and projected > soft_limit and (
                depth == 0 or projected > hard_limit
            ):
                flush()
            buffer.append(piece)
            size += len(piece)

        if isinstance(node, StructuralMarkup) and not node.void:
            depth = max(0, depth - 1) if node.closing else depth + 1

    flush()
    return chunks


def split_text(text: str, limit: int) -> list[str]:
    """
    将过长的文本切分为不超过 `limit` 的片段。

    依次尝试句末、空白，最后才硬切；切点之后的空白归属前一个片段，
    并且不会把 HTML 实体从中间切开。
    """
    pieces: list[str] = []
    while len(text) > limit:
        cut = _find_cut(text[:limit])
        pieces.append(text[:cut])
        text = text[cut:]
    if text:
        pieces.append(text)
    return pieces


def _find_cut(window: str) -> int:
    sentence_ends = [m.end() for m in _SENTENCE_END_RE.finditer(window)]
    if sentence_ends and sentence_ends[-1] > 0:
        return sentence_ends[-1]

    spaces = [m.end() for m in _WHITESPACE_RE.finditer(window)]
    if spaces and spaces[-1] > 0:
        return spaces[-1]

    entity = _ENTITY_TAIL_RE.search(window)
    if entity and entity.start() > 0:
        return entity.start()
    return len(window)


def reassemble(chunks: Iterable[Chunk], outputs: Mapping[int, str]) -> str:
    """
    按分块顺序拼接翻译结果。

    原样分块始终取自分块本身；其他分块必须在 `outputs` 中有对应的结果。
    """
    parts: list[str] = []
    for item in sorted(chunks, key=lambda c: c.index):
        if item.verbatim:
            parts.append(item.text)
        else:
            parts.append(outputs[item.index])
    return "".join(parts)
