# polyglot_press/sanitizer.py
"""
本模块负责把任意来源的、可能残缺的 HTML 片段规范化为可安全展示的文档。

处理流程：
1. 在解析之前，从原始输入中截取 `pre` 块和独立的 `code` 元素，
   用占位标签替换，保证其内容逐字节不变。
2. 使用 BeautifulSoup (`html.parser`) 解析剩余部分，执行标签白名单、
   属性过滤、链接改写、结构修复和空白折叠。
3. 将顶层块序列化并以换行连接，再切分为扁平的 `SanitizedNode` 列表。

净化过程永远不会因为输入而抛出异常：空输入得到空文档，
意外错误降级为单个纯文本段落。
"""

import html
import re
from collections.abc import Callable, Sequence
from typing import NamedTuple
from urllib.parse import urlsplit

import structlog
from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.dammit import EntitySubstitution
from bs4.element import CData, Comment, Declaration, Doctype, ProcessingInstruction
from bs4.formatter import HTMLFormatter

from polyglot_press.core.types import (
    Link,
    LinkSafety,
    SanitizedDocument,
    SanitizedNode,
    StructuralMarkup,
    TranslatableText,
    VerbatimBlock,
)

logger = structlog.get_logger(__name__)

ALLOWED_TAGS = frozenset(
    {
        "h2", "h3", "p", "strong", "em", "a", "ul", "ol", "li", "br",
        "blockquote", "pre", "code", "img", "table", "thead", "tbody",
        "tfoot", "tr", "th", "td", "caption",
    }
)
BLOCK_TAGS = frozenset({"h2", "h3", "p", "ul", "ol", "blockquote", "pre", "table"})
VOID_TAGS = frozenset({"br", "img"})
TABLE_PART_TAGS = frozenset({"thead", "tbody", "tfoot", "tr", "th", "td", "caption"})

DROP_WITH_CONTENT_TAGS = (
    "script", "style", "noscript", "iframe", "form", "header", "footer", "nav",
    "aside", "svg", "canvas", "picture", "video", "audio", "object", "embed",
    "template", "button", "input", "select", "textarea", "head", "title",
    "meta", "link", "base",
)
UNWRAP_TAGS = frozenset(
    {
        "html", "body", "div", "span", "section", "article", "main", "font",
        "center", "u", "s", "small", "big", "sub", "sup", "mark", "abbr",
        "cite", "q", "time", "dfn", "kbd", "samp", "var", "del", "ins",
        "label", "bdi", "bdo", "nobr", "figcaption",
    }
)
RENAMED_TAGS = {
    "h1": "h2",
    "h4": "h3",
    "h5": "h3",
    "h6": "h3",
    "b": "strong",
    "i": "em",
}
CELL_ATTRS = ("colspan", "rowspan", "scope", "headers")
COLLAPSE_TAGS = ("p", "h2", "h3", "li", "blockquote")
TRIM_TAGS = ("td", "th", "caption")
PRUNE_EMPTY_TAGS = ("p", "h2", "h3", "li", "blockquote", "a", "strong", "em")
WHITESPACE_FREE_CONTAINERS = ("ul", "ol", "table", "thead", "tbody", "tfoot", "tr")
SAFE_SCHEMES = frozenset({"http", "https", "mailto", "tel"})
SAFE_IMAGE_SCHEMES = frozenset({"http", "https"})

SLOT_TAG = "verbatim-slot"

_VERBATIM_RE = re.compile(r"<(pre|code)\b[^>]*>(.*?)</\1\s*>", re.IGNORECASE | re.DOTALL)
_INNER_TAG_RE = re.compile(r"<(/?)([a-zA-Z][\w-]*)\b[^>]*>")
_SLOT_RE = re.compile(r'<verbatim-slot data-index="(\d+)"></verbatim-slot>')
_SLOT_LIKE_RE = re.compile(r"</?verbatim-slot\b[^>]*>", re.IGNORECASE)
_TOKEN_RE = re.compile(
    r"(?P<link><a\b[^>]*>.*?</a\s*>)|(?P<tag><[^>]+>)", re.IGNORECASE | re.DOTALL
)
_TAG_NAME_RE = re.compile(r"^<\s*(/?)\s*([a-zA-Z][\w-]*)")
_HREF_ATTR_RE = re.compile(r'\bhref="([^"]*)"')
_ANY_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"[\s\u00a0]+")
_SCHEME_RE = re.compile(r"^([a-zA-Z][a-zA-Z0-9+.\-]*):")
_CONTROL_RE = re.compile(r"[\x00-\x20\x7f]+")

_FORMATTER = HTMLFormatter(
    entity_substitution=EntitySubstitution.substitute_xml,
    void_element_close_prefix=None,
)

_IGNORED_STRINGS = (Comment, Doctype, Declaration, ProcessingInstruction, CData)
_EDGE_STOP_TAGS = frozenset({"img", "br", SLOT_TAG})


class _Verbatim(NamedTuple):
    raw: str
    block: bool


def classify_href(href: str | None) -> tuple[LinkSafety, str | None]:
    """
    对链接的 href 进行安全分类。

    返回 `(分类, 改写后的 href)`；改写结果为 None 表示链接应被降级为纯文本。
    协议相对地址在主机无法解析时抛出 ValueError。
    """
    value = (href or "").strip()
    if not value or value == "#":
        return LinkSafety.EMPTY, None
    if value.startswith("#"):
        return LinkSafety.FRAGMENT, value

    # 浏览器会忽略 scheme 中的空白与控制字符，并把反斜杠当作斜杠
    probe = _CONTROL_RE.sub("", value).replace("\\", "/")
    if probe.startswith("//"):
        rewritten = f"https:{probe}"
        if not urlsplit(rewritten).hostname:
            raise ValueError(f"无法解析协议相对地址中的主机: {value!r}")
        return LinkSafety.PROTOCOL_RELATIVE, rewritten

    match = _SCHEME_RE.match(probe)
    if match:
        if match.group(1).lower() in SAFE_SCHEMES:
            return LinkSafety.ABSOLUTE, value
        return LinkSafety.UNSAFE, None
    if probe.startswith("/"):
        return LinkSafety.ROOT_RELATIVE, value
    return LinkSafety.RELATIVE, value


def sanitize(raw_html: str | None) -> SanitizedDocument:
    """将原始 HTML 片段净化为 `SanitizedDocument`。"""
    if not raw_html or not raw_html.strip():
        return SanitizedDocument()
    try:
        return _sanitize(raw_html)
    except Exception:
        logger.warning(
            "HTML 净化失败，已降级为纯文本段落。", input_length=len(raw_html), exc_info=True
        )
        return _plain_text_document(raw_html)


def _sanitize(raw_html: str) -> SanitizedDocument:
    prepared, verbatim = _extract_verbatim(raw_html)
    soup = BeautifulSoup(prepared, "html.parser", multi_valued_attributes=None)

    for node in soup.find_all(string=lambda s: isinstance(s, _IGNORED_STRINGS)):
        node.extract()
    for tag in soup.find_all(list(DROP_WITH_CONTENT_TAGS)):
        if not tag.decomposed:
            tag.decompose()

    _flatten_figures(soup)
    for element in soup.find_all(True):
        if element.decomposed or not _is_attached(element, soup):
            continue
        _normalize_element(soup, element)

    _wrap_orphan_list_items(soup)
    _drop_container_whitespace(soup)
    _normalize_whitespace(soup)
    _prune_empty(soup)

    blocks = _collect_top_level_blocks(soup, verbatim)
    document_html = "\n".join(block.decode(formatter=_FORMATTER) for block in blocks)
    return SanitizedDocument(nodes=tuple(_tokenize(document_html, verbatim)))


def _extract_verbatim(raw_html: str) -> tuple[str, list[_Verbatim]]:
    """截取 `pre`/`code` 区域并替换为占位标签。"""
    captured: list[_Verbatim] = []
    raw_html = _SLOT_LIKE_RE.sub("", raw_html)

    def _keep_code_tags(match: re.Match[str]) -> str:
        if match.group(2).lower() == "code":
            return f"<{match.group(1)}code>"
        return ""

    def _replace(match: re.Match[str]) -> str:
        tag = match.group(1).lower()
        inner = _INNER_TAG_RE.sub(_keep_code_tags, match.group(2))
        captured.append(_Verbatim(f"<{tag}>{inner}</{tag}>", block=tag == "pre"))
        return f'<{SLOT_TAG} data-index="{len(captured) - 1}"></{SLOT_TAG}>'

    return _VERBATIM_RE.sub(_replace, raw_html), captured


def _is_attached(element: Tag, soup: BeautifulSoup) -> bool:
    node: Tag | None = element
    while node is not None:
        if node is soup:
            return True
        node = node.parent
    return False


def _collapse(text: str) -> str:
    return _WS_RE.sub(" ", text)


def _flatten_figures(soup: BeautifulSoup) -> None:
    """将 `figure` 替换为其中的图片，外加一个承载图注的段落。"""
    for figure in soup.find_all("figure"):
        if figure.decomposed or not _is_attached(figure, soup):
            continue
        caption = figure.find("figcaption")
        caption_text = _collapse(caption.get_text(" ")).strip() if caption else ""
        for image in figure.find_all("img"):
            figure.insert_before(image.extract())
        if caption_text:
            paragraph = soup.new_tag("p")
            paragraph.string = caption_text
            figure.insert_before(paragraph)
        figure.decompose()


def _normalize_element(soup: BeautifulSoup, element: Tag) -> None:
    if element.name == SLOT_TAG:
        return
    element.name = RENAMED_TAGS.get(element.name, element.name)
    name = element.name

    if name not in ALLOWED_TAGS:
        _replace_disallowed(soup, element)
    elif name == "a":
        _rewrite_anchor(element)
    elif name == "img":
        _rewrite_image(element)
    elif name in ("th", "td"):
        element.attrs = {k: element.attrs[k] for k in CELL_ATTRS if k in element.attrs}
    else:
        element.attrs = {}


def _replace_disallowed(soup: BeautifulSoup, element: Tag) -> None:
    # 只有顶层的未知元素会变成段落，嵌套时直接展开以免产生嵌套段落
    keeps_structure = element.find([SLOT_TAG, "li", *BLOCK_TAGS]) is not None
    if element.name in UNWRAP_TAGS or keeps_structure or element.parent is not soup:
        element.unwrap()
        return
    text = _collapse(element.get_text(" ")).strip()
    if not text:
        element.decompose()
        return
    paragraph = soup.new_tag("p")
    paragraph.string = text
    element.replace_with(paragraph)


def _rewrite_anchor(anchor: Tag) -> None:
    if anchor.find_parent("a") is not None:
        anchor.unwrap()
        return
    try:
        _, href = classify_href(anchor.get("href"))
    except ValueError:
        anchor.name = "span"
        anchor.attrs = {}
        return
    if href is None:
        anchor.unwrap()
        return

    target = anchor.get("target")
    attrs = {
        "href": href,
        "rel": "noopener noreferrer nofollow" if target == "_blank" else "nofollow",
    }
    if target:
        attrs["target"] = target
    anchor.attrs = attrs


def _rewrite_image(image: Tag) -> None:
    try:
        safety, src = classify_href(image.get("src"))
    except ValueError:
        safety, src = LinkSafety.UNSAFE, None
    if src is not None and safety is LinkSafety.ABSOLUTE:
        scheme = src.split(":", 1)[0].lower()
        if scheme not in SAFE_IMAGE_SCHEMES:
            src = None
    if src is None or safety is LinkSafety.FRAGMENT:
        alt = _collapse(image.get("alt") or "").strip()
        if alt:
            image.replace_with(alt)
        else:
            image.decompose()
        return
    attrs = {"src": src}
    if image.get("alt"):
        attrs["alt"] = image["alt"]
    image.attrs = attrs


def _wrap_orphan_list_items(soup: BeautifulSoup) -> None:
    for item in soup.find_all("li"):
        if item.find_parent(["ul", "ol"]) is not None:
            continue
        previous = item.previous_sibling
        while isinstance(previous, NavigableString) and not previous.strip():
            previous = previous.previous_sibling
        if isinstance(previous, Tag) and previous.name == "ul":
            previous.append(item.extract())
        else:
            item.wrap(soup.new_tag("ul"))


def _drop_container_whitespace(soup: BeautifulSoup) -> None:
    for container in soup.find_all(list(WHITESPACE_FREE_CONTAINERS)):
        for child in list(container.children):
            if isinstance(child, NavigableString) and not child.strip():
                child.extract()


def _normalize_whitespace(soup: BeautifulSoup) -> None:
    for element in soup.find_all([*COLLAPSE_TAGS, *TRIM_TAGS]):
        element.smooth()
        for string in element.find_all(string=True):
            collapsed = _collapse(string)
            if collapsed != string:
                string.replace_with(collapsed)
        if element.name in TRIM_TAGS:
            _trim_edges(element)


def _trim_edges(element: Tag) -> None:
    """去掉元素首尾的空白；整段为空白的字符串直接移除。"""
    _trim_side(list(element.descendants), str.lstrip)
    _trim_side(list(reversed(list(element.descendants))), str.rstrip)


def _trim_side(nodes: Sequence[object], strip: Callable[[str], str]) -> None:
    for node in nodes:
        if isinstance(node, Tag):
            if node.name in _EDGE_STOP_TAGS:
                return
            continue
        if not isinstance(node, NavigableString):
            continue
        trimmed = strip(str(node))
        if trimmed:
            if trimmed != node:
                node.replace_with(trimmed)
            return
        node.extract()


def _has_content(element: Tag) -> bool:
    if element.get_text(strip=True):
        return True
    return element.find(["img", "br", SLOT_TAG]) is not None


def _prune_empty(soup: BeautifulSoup) -> None:
    for element in reversed(soup.find_all(list(PRUNE_EMPTY_TAGS))):
        if not element.decomposed and not _has_content(element):
            element.decompose()
    for element in reversed(soup.find_all(["ul", "ol"])):
        if not element.decomposed and element.find("li") is None:
            element.decompose()


def _collect_top_level_blocks(
    soup: BeautifulSoup, verbatim: list[_Verbatim]
) -> list[Tag]:
    """把顶层内容整理为块级元素列表，零散的行内内容包进 `<p>`。"""
    blocks: list[Tag] = []
    pending: list[Tag | NavigableString] = []

    def flush() -> None:
        if not pending:
            return
        paragraph = soup.new_tag("p")
        for node in pending:
            paragraph.append(node.extract())
        pending.clear()
        paragraph.smooth()
        for string in paragraph.find_all(string=True):
            string.replace_with(_collapse(string))
        _trim_edges(paragraph)
        if _has_content(paragraph):
            blocks.append(paragraph)

    for node in list(soup.contents):
        if isinstance(node, NavigableString):
            if not isinstance(node, _IGNORED_STRINGS):
                pending.append(node)
            continue
        if node.name == SLOT_TAG:
            if verbatim[int(node["data-index"])].block:
                flush()
                blocks.append(node)
            else:
                pending.append(node)
        elif node.name in BLOCK_TAGS:
            flush()
            blocks.append(node)
        elif node.name in TABLE_PART_TAGS:
            flush()
            text = _collapse(node.get_text(" ")).strip()
            if text:
                paragraph = soup.new_tag("p")
                paragraph.string = text
                blocks.append(paragraph)
        else:
            pending.append(node)
    flush()
    return blocks


def _tokenize(document_html: str, verbatim: list[_Verbatim]) -> list[SanitizedNode]:
    nodes: list[SanitizedNode] = []
    position = 0
    for match in _SLOT_RE.finditer(document_html):
        nodes.extend(_tokenize_markup(document_html[position : match.start()]))
        captured = verbatim[int(match.group(1))]
        nodes.append(VerbatimBlock(raw=captured.raw, block=captured.block))
        position = match.end()
    nodes.extend(_tokenize_markup(document_html[position:]))
    return nodes


def _tokenize_markup(segment: str) -> list[SanitizedNode]:
    nodes: list[SanitizedNode] = []
    position = 0
    for match in _TOKEN_RE.finditer(segment):
        if match.start() > position:
            nodes.append(TranslatableText(text=segment[position : match.start()]))
        token = match.group(0)
        if match.group("link"):
            nodes.append(_link_node(token))
        else:
            name_match = _TAG_NAME_RE.match(token)
            tag = name_match.group(2).lower() if name_match else ""
            nodes.append(
                StructuralMarkup(
                    markup=token,
                    tag=tag,
                    closing=bool(name_match and name_match.group(1)),
                    void=tag in VOID_TAGS,
                )
            )
        position = match.end()
    if position < len(segment):
        nodes.append(TranslatableText(text=segment[position:]))
    return nodes


def _link_node(markup: str) -> Link:
    href_match = _HREF_ATTR_RE.search(markup.split(">", 1)[0])
    href = html.unescape(href_match.group(1)) if href_match else ""
    inner = markup.split(">", 1)[1].rsplit("<", 1)[0]
    anchor_text = html.unescape(_ANY_TAG_RE.sub("", inner))
    try:
        safety, _ = classify_href(href)
    except ValueError:
        safety = LinkSafety.UNSAFE
    return Link(markup=markup, href=href, anchor_text=anchor_text, safety=safety)


def _plain_text(markup: str) -> str:
    return _collapse(html.unescape(_ANY_TAG_RE.sub(" ", markup)))


def _plain_text_document(raw_html: str) -> SanitizedDocument:
    """降级输出：标签被剥离为纯文本段落，原样区域仍逐字节保留。"""
    prepared, verbatim = _extract_verbatim(raw_html)
    blocks: list[list[SanitizedNode]] = []
    pending: list[str | _Verbatim] = []

    def flush() -> None:
        if pending and isinstance(pending[0], str):
            pending[0] = pending[0].lstrip()
        if pending and isinstance(pending[-1], str):
            pending[-1] = pending[-1].rstrip()
        items = [item for item in pending if item]
        pending.clear()
        if not items:
            return
        paragraph: list[SanitizedNode] = [StructuralMarkup(markup="<p>", tag="p")]
        for item in items:
            if isinstance(item, str):
                paragraph.append(
                    TranslatableText(text=EntitySubstitution.substitute_xml(item))
                )
            else:
                paragraph.append(VerbatimBlock(raw=item.raw, block=False))
        paragraph.append(StructuralMarkup(markup="</p>", tag="p", closing=True))
        blocks.append(paragraph)

    position = 0
    for match in _SLOT_RE.finditer(prepared):
        pending.append(_plain_text(prepared[position : match.start()]))
        captured = verbatim[int(match.group(1))]
        if captured.block:
            flush()
            blocks.append([VerbatimBlock(raw=captured.raw, block=True)])
        else:
            pending.append(captured)
        position = match.end()
    pending.append(_plain_text(prepared[position:]))
    flush()

    nodes: list[SanitizedNode] = []
    for index, block in enumerate(blocks):
        if index:
            nodes.append(TranslatableText(text="\n"))
        nodes.extend(block)
    return SanitizedDocument(nodes=tuple(nodes))
