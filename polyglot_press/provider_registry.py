# polyglot_press/provider_registry.py
"""本模块负责动态发现和加载 `polyglot_press.providers` 包下所有可用的补全提供商。"""

import importlib
import pkgutil
from typing import Any, Dict, List

import structlog

from polyglot_press.core.exceptions import ProviderNotFoundError
from polyglot_press.providers.base import BaseCompletionProvider

log = structlog.get_logger(__name__)
PROVIDER_REGISTRY: Dict[str, type[BaseCompletionProvider[Any]]] = {}


def discover_providers() -> None:
    """
    动态发现 `polyglot_press.providers` 包下的所有提供商并注册。

    幂等：只在首次调用时执行发现。缺少可选依赖的模块会被跳过并记录。
    """
    if PROVIDER_REGISTRY:
        return

    import polyglot_press.providers

    registered: List[str] = []
    skipped: List[Dict[str, str]] = []

    for module_info in pkgutil.iter_modules(polyglot_press.providers.__path__):
        module_name = module_info.name
        if module_name == "base" or module_name.startswith("_"):
            continue
        try:
            module = importlib.import_module(f"polyglot_press.providers.{module_name}")
        except ImportError as e:
            skipped.append({"provider": module_name, "missing_dependency": str(e.name)})
            continue
        for attr in vars(module).values():
            if (
                isinstance(attr, type)
                and issubclass(attr, BaseCompletionProvider)
                and attr is not BaseCompletionProvider
                and attr.__module__ == module.__name__
            ):
                provider_name = attr.__name__.replace("Provider", "").lower()
                PROVIDER_REGISTRY[provider_name] = attr
                registered.append(provider_name)

    log_payload: Dict[str, Any] = {}
    if registered:
        log_payload["registered"] = sorted(registered)
    if skipped:
        log_payload["skipped"] = skipped
    log.info("提供商发现完成。", **log_payload)


def create_provider(
    name: str, config_data: dict[str, Any] | None = None
) -> BaseCompletionProvider[Any]:
    """按名称创建一个提供商实例。"""
    discover_providers()
    provider_class = PROVIDER_REGISTRY.get(name)
    if provider_class is None:
        raise ProviderNotFoundError(f"提供商 '{name}' 未在注册表中找到。")
    config = provider_class.CONFIG_MODEL(**(config_data or {}))
    log.info("提供商实例已创建", provider=name, version=provider_class.VERSION)
    return provider_class(config)
