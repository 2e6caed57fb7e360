# polyglot_press/cli/db.py
"""处理数据库相关操作的 CLI 命令。"""

import asyncio

import structlog
import typer
from rich.console import Console

from polyglot_press.cli.state import State
from polyglot_press.core.exceptions import DatabaseError
from polyglot_press.persistence import create_repository

logger = structlog.get_logger(__name__)
console = Console()
db_app = typer.Typer(help="数据库管理命令")


async def _create_tables(state: State) -> None:
    repository = create_repository(state.config)
    try:
        await repository.connect()
    finally:
        await repository.close()


@db_app.command("init")
def db_init(ctx: typer.Context) -> None:
    """创建所有缺失的数据表。"""
    state: State = ctx.obj
    if state.config.is_memory_database:
        console.print("[yellow]警告：内存数据库无需初始化。[/yellow]")
        raise typer.Exit()

    console.print(f"数据库: [cyan]{state.config.database_url}[/cyan]")
    try:
        asyncio.run(_create_tables(state))
    except DatabaseError as e:
        logger.error("数据库初始化失败。", exc_info=True)
        console.print("[bold red]❌ 数据库初始化失败！请检查日志获取详细信息。[/bold red]")
        raise typer.Exit(code=1) from e
    console.print("[bold green]✅ 数据表已就绪！[/bold green]")
