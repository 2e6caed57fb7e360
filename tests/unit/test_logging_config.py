# tests/unit/test_logging_config.py
"""针对 `polyglot_press.logging_config` 模块的单元测试。"""

import json
from collections.abc import Generator

import pytest

from polyglot_press.logging_config import PanelRenderer, setup_logging


@pytest.fixture(autouse=True)
def restore_logging() -> Generator[None, None, None]:
    yield
    setup_logging(log_level="WARNING", log_format="console")


def test_json_format_emits_one_object_per_event(
    capsys: pytest.CaptureFixture[str],
) -> None:
    """测试 json 格式下每个事件输出为一行 JSON。"""
    setup_logging(log_level="DEBUG", log_format="json")

    lines = [line for line in capsys.readouterr().err.splitlines() if line.startswith("{")]
    events = [json.loads(line) for line in lines]
    configured = [e for e in events if e.get("event") == "日志系统已配置完成。"]
    assert configured
    assert configured[0]["log_format"] == "json"
    assert configured[0]["app_log_level"] == "DEBUG"
    assert configured[0]["level"] == "debug"


def test_panel_renderer_includes_event_and_context() -> None:
    """测试控制台渲染器输出事件文本与键值上下文。"""
    renderer = PanelRenderer(show_timestamp=False)
    output = renderer(
        None,
        "info",
        {"event": "文章处理完成", "level": "info", "logger": "polyglot_press.pipeline", "ok": 2},
    )
    assert "文章处理完成" in output
    assert "ok" in output


def test_panel_renderer_skips_empty_events() -> None:
    assert PanelRenderer()(None, "info", {"event": "  "}) == ""
