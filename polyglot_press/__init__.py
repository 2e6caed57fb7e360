# polyglot_press/__init__.py
"""Polyglot-Press: 新闻内容净化与多语言渲染流水线。

提供 HTML 净化、分块、缓存优先的翻译客户端、文章编排器与预翻译调度器。
"""

__version__ = "0.1.0"

from .config import PolyglotPressConfig, ProviderName
from .coordinator import Coordinator
from .persistence import InMemoryRepository, SQLRepository, create_repository
from .sanitizer import sanitize

__all__ = [
    "__version__",
    "Coordinator",
    "InMemoryRepository",
    "PolyglotPressConfig",
    "ProviderName",
    "SQLRepository",
    "create_repository",
    "sanitize",
]
