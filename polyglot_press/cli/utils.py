# polyglot_press/cli/utils.py
"""提供 CLI 命令使用的共享工具函数。"""

from polyglot_press.config import PolyglotPressConfig
from polyglot_press.coordinator import Coordinator
from polyglot_press.persistence import create_repository


def create_coordinator(config: PolyglotPressConfig) -> Coordinator:
    """根据配置创建一个尚未初始化的 Coordinator。"""
    return Coordinator(config, create_repository(config))
