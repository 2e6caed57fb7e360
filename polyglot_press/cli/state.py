# polyglot_press/cli/state.py
"""定义 CLI 应用的共享状态对象。"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from polyglot_press.config import PolyglotPressConfig


class State:
    """通过 Typer 上下文传递的共享状态。"""

    def __init__(self, config: "PolyglotPressConfig") -> None:
        self.config = config
