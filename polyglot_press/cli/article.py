# polyglot_press/cli/article.py
"""处理单篇文章的 CLI 命令。"""

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from polyglot_press.cli.state import State
from polyglot_press.cli.utils import create_coordinator
from polyglot_press.coordinator import Coordinator
from polyglot_press.core.types import ArticleProcessingReport, LanguageStatus
from polyglot_press.utils import validate_lang_codes

console = Console()
article_app = typer.Typer(help="净化并翻译单篇文章")

_STATUS_STYLES = {
    LanguageStatus.OK: "green",
    LanguageStatus.SKIPPED: "yellow",
    LanguageStatus.ERROR: "bold red",
}


async def _async_process(
    coordinator: Coordinator,
    article_id: str,
    raw_html: str,
    source_lang: str | None,
    target_langs: list[str] | None,
    url: str | None,
) -> ArticleProcessingReport:
    try:
        await coordinator.initialize()
        return await coordinator.process_and_persist_article(
            article_id, raw_html, source_lang, target_langs, url
        )
    finally:
        await coordinator.close()


def render_report(report: ArticleProcessingReport) -> Table:
    table = Table(title=f"文章 {report.article_id} ({report.source_lang})")
    table.add_column("语言")
    table.add_column("状态")
    table.add_column("原因")
    table.add_column("错误", overflow="fold")
    for result in report.results:
        style = _STATUS_STYLES[result.status]
        table.add_row(
            result.lang,
            f"[{style}]{result.status.value}[/{style}]",
            result.reason or "",
            result.error or "",
        )
    return table


@article_app.command("process")
def article_process(
    ctx: typer.Context,
    article_id: Annotated[str, typer.Argument(help="文章 ID。")],
    html_file: Annotated[
        Path,
        typer.Option(
            "--file", "-f", exists=True, dir_okay=False, help="包含原始 HTML 的文件。"
        ),
    ],
    source_lang: Annotated[
        Optional[str], typer.Option("--source-lang", "-s", help="源语言代码。")
    ] = None,
    target_langs: Annotated[
        Optional[list[str]],
        typer.Option("--target", "-t", help="目标语言；省略时使用市场默认语言。"),
    ] = None,
    url: Annotated[Optional[str], typer.Option("--url", help="文章原始地址。")] = None,
) -> None:
    """净化文章 HTML，保存规范内容，并生成各目标语言的译文。"""
    try:
        if source_lang:
            validate_lang_codes([source_lang])
        if target_langs:
            validate_lang_codes(target_langs)
    except ValueError as e:
        console.print(f"[bold red]❌ 语言代码错误: {e}[/bold red]")
        raise typer.Exit(code=1) from e

    state: State = ctx.obj
    coordinator = create_coordinator(state.config)
    raw_html = html_file.read_text(encoding="utf-8")
    report = asyncio.run(
        _async_process(
            coordinator, article_id, raw_html, source_lang, target_langs or None, url
        )
    )

    console.print(
        f"净化后大小: [cyan]{report.cleaned_bytes}[/cyan] 字节  "
        f"哈希: [dim]{report.cleaned_hash[:16]}[/dim]"
    )
    if report.cleaned_error:
        console.print(f"[bold red]❌ 保存净化内容失败: {report.cleaned_error}[/bold red]")
    if report.results:
        console.print(render_report(report))
    else:
        console.print("[yellow]没有需要翻译的目标语言。[/yellow]")

    if report.cleaned_error or any(
        r.status is LanguageStatus.ERROR for r in report.results
    ):
        raise typer.Exit(code=1)
