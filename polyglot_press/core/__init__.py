# polyglot_press/core/__init__.py
"""核心类型、接口与异常的统一出口。"""

from .exceptions import (
    ConfigurationError,
    DatabaseError,
    PolyglotPressError,
    ProviderError,
    ProviderNotFoundError,
    TranslationTimeoutError,
)
from .interfaces import ContentRepository
from .types import (
    ArticleProcessingReport,
    Chunk,
    ClusterAIRecord,
    ClusterRef,
    CompletionError,
    CompletionResult,
    CompletionSuccess,
    LanguageResult,
    LanguageStatus,
    Link,
    LinkSafety,
    Market,
    PretranslationJob,
    PretranslationReport,
    SanitizedDocument,
    SanitizedNode,
    StructuralMarkup,
    TranslatableText,
    TranslatedFields,
    VerbatimBlock,
)

__all__ = [
    "ArticleProcessingReport",
    "Chunk",
    "ClusterAIRecord",
    "ClusterRef",
    "CompletionError",
    "CompletionResult",
    "CompletionSuccess",
    "ConfigurationError",
    "ContentRepository",
    "DatabaseError",
    "LanguageResult",
    "LanguageStatus",
    "Link",
    "LinkSafety",
    "Market",
    "PolyglotPressError",
    "PretranslationJob",
    "PretranslationReport",
    "ProviderError",
    "ProviderNotFoundError",
    "SanitizedDocument",
    "SanitizedNode",
    "StructuralMarkup",
    "TranslatableText",
    "TranslatedFields",
    "TranslationTimeoutError",
    "VerbatimBlock",
]
