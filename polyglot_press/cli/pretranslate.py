# polyglot_press/cli/pretranslate.py
"""运行预翻译扫描的 CLI 命令。"""

import asyncio
from typing import Annotated, Any, Optional

import typer
from rich.console import Console

from polyglot_press.cli.state import State
from polyglot_press.cli.utils import create_coordinator
from polyglot_press.coordinator import Coordinator
from polyglot_press.core.types import PretranslationReport

console = Console()
pretranslate_app = typer.Typer(help="预翻译调度")


async def _async_run(
    coordinator: Coordinator, overrides: dict[str, Any]
) -> PretranslationReport:
    try:
        await coordinator.initialize()
        return await coordinator.run_pretranslation_cycle(**overrides)
    finally:
        await coordinator.close()


@pretranslate_app.command("run")
def pretranslate_run(
    ctx: typer.Context,
    recent_hours: Annotated[
        Optional[int], typer.Option("--recent-hours", min=1, help="只检查最近 N 小时更新的聚类。")
    ] = None,
    concurrency: Annotated[
        Optional[int], typer.Option("--concurrency", "-c", min=1, help="并发任务数（上限 16）。")
    ] = None,
    timeout_ms: Annotated[
        Optional[int], typer.Option("--timeout-ms", min=1, help="单个任务的超时（毫秒）。")
    ] = None,
    max_clusters: Annotated[
        Optional[int], typer.Option("--max-clusters", min=1, help="单次扫描的聚类上限。")
    ] = None,
    market: Annotated[
        Optional[str], typer.Option("--market", "-m", help="只处理指定市场。")
    ] = None,
) -> None:
    """执行一次预翻译扫描。"""
    state: State = ctx.obj
    overrides = {
        "recent_hours": recent_hours,
        "concurrency": concurrency,
        "per_item_timeout_ms": timeout_ms,
        "max_clusters": max_clusters,
        "market": market,
    }
    coordinator = create_coordinator(state.config)
    report = asyncio.run(
        _async_run(coordinator, {k: v for k, v in overrides.items() if v is not None})
    )

    console.print(
        f"检查聚类: [cyan]{report.clusters_checked}[/cyan]  "
        f"创建任务: [cyan]{report.jobs_created}[/cyan]  "
        f"新增译文: [green]{report.translations_inserted}[/green]  "
        f"已是最新: [dim]{report.skipped_fresh}[/dim]  "
        f"失败: [red]{report.jobs_failed}[/red]"
    )
    if report.error:
        console.print(f"[bold red]❌ 扫描失败: {report.error}[/bold red]")
        raise typer.Exit(code=1)
