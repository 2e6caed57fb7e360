# polyglot_press/core/types.py
"""
本模块定义了 Polyglot-Press 系统的核心数据类型。

包括净化后文档的节点模型、分块、补全提供商的返回结果，
以及市场、聚类 AI 记录和各入口的执行报告。
"""

from __future__ import annotations

import hashlib
from datetime import datetime
from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class CompletionSuccess(BaseModel):
    """代表补全提供商成功返回的一次结果。"""

    text: str


class CompletionError(BaseModel):
    """代表补全提供商返回的一次失败结果，并指明是否可重试。"""

    error_message: str
    is_retryable: bool


CompletionResult = Union[CompletionSuccess, CompletionError]


# --- 净化文档节点 ---


class LinkSafety(str, Enum):
    """链接 href 的安全分类。"""

    ABSOLUTE = "absolute"
    PROTOCOL_RELATIVE = "protocol_relative"
    ROOT_RELATIVE = "root_relative"
    RELATIVE = "relative"
    FRAGMENT = "fragment"
    EMPTY = "empty"
    UNSAFE = "unsafe"


class _Node(BaseModel):
    model_config = ConfigDict(frozen=True)


class TranslatableText(_Node):
    """一段可以交给翻译器的可见文本（已转义）。"""

    kind: Literal["text"] = "text"
    text: str

    @property
    def html(self) -> str:
        return self.text


class VerbatimBlock(_Node):
    """不可翻译、不可拆分的原样区域（`pre` 或独立的 `code`）。"""

    kind: Literal["verbatim"] = "verbatim"
    raw: str
    block: bool = True

    @property
    def html(self) -> str:
        return self.raw


class StructuralMarkup(_Node):
    """单个标签（起始、结束或空元素），属性已经过白名单过滤。"""

    kind: Literal["markup"] = "markup"
    markup: str
    tag: str
    closing: bool = False
    void: bool = False

    @property
    def html(self) -> str:
        return self.markup


class Link(_Node):
    """一个完整的 `<a>` 元素，作为原子单元参与分块。"""

    kind: Literal["link"] = "link"
    markup: str
    href: str
    anchor_text: str
    safety: LinkSafety

    @property
    def html(self) -> str:
        return self.markup


SanitizedNode = Union[TranslatableText, VerbatimBlock, StructuralMarkup, Link]


class SanitizedDocument(BaseModel):
    """净化后的文档：一个有序的扁平节点列表。"""

    model_config = ConfigDict(frozen=True)

    nodes: tuple[SanitizedNode, ...] = ()

    @property
    def html(self) -> str:
        return "".join(node.html for node in self.nodes)

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    @property
    def cleaned_bytes(self) -> int:
        return len(self.html.encode("utf-8"))

    @property
    def cleaned_hash(self) -> str:
        return hashlib.sha256(self.html.encode("utf-8")).hexdigest()


class Chunk(BaseModel):
    """分块器的输出单元。`verbatim` 为真时该块永远不会被翻译。"""

    model_config = ConfigDict(frozen=True)

    index: int
    text: str
    verbatim: bool = False


# --- 文章处理 ---


class LanguageStatus(str, Enum):
    OK = "ok"
    SKIPPED = "skipped"
    ERROR = "error"


class LanguageResult(BaseModel):
    """单个目标语言的处理结果。"""

    lang: str
    status: LanguageStatus
    reason: str | None = None
    error: str | None = None
    key: str | None = None


class ArticleProcessingReport(BaseModel):
    """`process_and_persist_article` 的返回摘要。"""

    article_id: str
    source_lang: str
    url: str | None = None
    cleaned_bytes: int
    cleaned_hash: str
    targets: list[str] = Field(default_factory=list)
    results: list[LanguageResult] = Field(default_factory=list)
    cleaned_error: str | None = None


# --- 预翻译 ---


class Market(BaseModel):
    """一个市场的只读配置。"""

    code: str
    pivot_lang: str = "en"
    pretranslate_langs: list[str] = Field(default_factory=list)
    show_langs: list[str] = Field(default_factory=list)
    enabled: bool = True

    @property
    def target_langs(self) -> list[str]:
        """预翻译语言集合；未配置时回退到展示语言集合。"""
        return self.pretranslate_langs or self.show_langs


class ClusterRef(BaseModel):
    cluster_id: str
    updated_at: datetime


class TranslatedFields(BaseModel):
    """聚类 AI 记录中需要翻译的三个文本字段。"""

    title: str = ""
    summary: str = ""
    details: str = ""

    def is_blank(self) -> bool:
        return not (self.title.strip() or self.summary.strip() or self.details.strip())


class ClusterAIRecord(BaseModel):
    """某个聚类在某种语言下的 AI 生成内容的一行。"""

    id: int | None = None
    cluster_id: str
    lang: str
    title: str = ""
    summary: str = ""
    details: str = ""
    pivot_hash: str | None = None
    model: str | None = None
    is_current: bool = True
    created_at: datetime | None = None

    @property
    def fields(self) -> TranslatedFields:
        return TranslatedFields(
            title=self.title, summary=self.summary, details=self.details
        )


class PretranslationJob(BaseModel):
    """一次扫描中产生的、尚未持久化的翻译任务。"""

    model_config = ConfigDict(frozen=True)

    cluster_id: str
    target_lang: str
    pivot_lang: str
    pivot: TranslatedFields
    pivot_hash: str

    @property
    def dedup_key(self) -> tuple[str, str, str]:
        return (self.cluster_id, self.target_lang, self.pivot_hash)


class PretranslationReport(BaseModel):
    """`run_pretranslation_cycle` 的返回摘要。"""

    clusters_checked: int = 0
    jobs_created: int = 0
    translations_inserted: int = 0
    skipped_fresh: int = 0
    jobs_skipped: int = 0
    jobs_failed: int = 0
    error: str | None = None
