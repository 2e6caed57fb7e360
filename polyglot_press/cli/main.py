# polyglot_press/cli/main.py
"""Polyglot-Press CLI 的主入口点。"""

from typing import Annotated

import typer
from rich.console import Console

import polyglot_press
from polyglot_press.cli.article import article_app
from polyglot_press.cli.db import db_app
from polyglot_press.cli.pretranslate import pretranslate_app
from polyglot_press.cli.state import State
from polyglot_press.config import PolyglotPressConfig
from polyglot_press.logging_config import setup_logging
from polyglot_press.provider_registry import discover_providers

app = typer.Typer(
    name="polyglot-press",
    help="📰 Polyglot-Press: 新闻内容净化与多语言渲染流水线。",
    add_completion=False,
    no_args_is_help=True,
)

app.add_typer(article_app, name="article")
app.add_typer(pretranslate_app, name="pretranslate")
app.add_typer(db_app, name="db")

console = Console()


def version_callback(value: bool) -> None:
    """处理 --version 选项的回调函数。"""
    if value:
        console.print(
            f"Polyglot-Press [bold cyan]v{polyglot_press.__version__}[/bold cyan]"
        )
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="显示版本信息并退出。",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """主回调函数：先配置日志，再发现提供商，最后把配置放入上下文。"""
    try:
        config = PolyglotPressConfig()
        setup_logging(log_level=config.logging.level, log_format=config.logging.format)
        discover_providers()
        ctx.obj = State(config=config)
    except Exception as e:
        console.print("[bold red]❌ 启动失败：无法加载配置或初始化日志。[/bold red]")
        console.print(f"[dim]{e}[/dim]")
        raise typer.Exit(code=1) from e


if __name__ == "__main__":
    app()
