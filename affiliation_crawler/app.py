"""Typer CLI entrypoint for Affiliation-Crawler."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigRepository, GlobalConfig
from .errors import RecordFormatError
from .infra import KeyValueStore, SQLiteManager, UserAgentPool
from .logging_conf import configure_logging, crawler_log_path, tail_log
from .orchestrator import STORE_KEYS, run_pipeline
from .records import Record, first_unresolved_index, read_records, write_records
from .ui import StatusPanel, render_records_table

EXPORT_FILENAME = "affiliations_export.csv"

app = typer.Typer(
    help="Affiliation-Crawler 命令行工具",
    no_args_is_help=True,
    rich_markup_mode=None,
)
records_app = typer.Typer(
    name="records",
    help="记录导入导出与管理命令",
    no_args_is_help=True,
    rich_markup_mode=None,
)
log_app = typer.Typer(
    name="log",
    help="日志查看命令",
    no_args_is_help=True,
    rich_markup_mode=None,
)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    config: GlobalConfig
    storage: SQLiteManager
    store: KeyValueStore
    ua_pool: UserAgentPool | None = None


def build_state(verbose: bool) -> AppState:
    repository = ConfigRepository()
    global_config = repository.load_global_config()
    storage = SQLiteManager()
    store = KeyValueStore(storage, repository.store_path())

    ua_pool: UserAgentPool | None = UserAgentPool.from_config(global_config.browser)
    if ua_pool.empty:
        ua_pool = None

    configure_logging(verbose=verbose)
    return AppState(
        repository=repository,
        config=global_config,
        storage=storage,
        store=store,
        ua_pool=ua_pool,
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _load_snapshot(store: KeyValueStore) -> tuple[list[Record], int, bool]:
    data = store.load(STORE_KEYS)
    records = [Record.from_dict(item) for item in data.get("records") or []]
    return records, int(data.get("current_index") or 0), bool(data.get("is_running"))


def _render_status_table(
    records: list[Record], current_index: int, is_running: bool, last_note: Optional[str]
) -> Table:
    completed = sum(1 for record in records if record.has_affiliation)
    table = Table(title="运行状态", box=box.SIMPLE_HEAD, show_header=False)
    table.add_column("项目", style="cyan", no_wrap=True)
    table.add_column("值")
    table.add_row("运行中", "是" if is_running else "否")
    table.add_row("记录总数", str(len(records)))
    table.add_row("已完成", str(completed))
    table.add_row("当前位置", str(current_index))
    table.add_row("剩余", str(max(0, len(records) - current_index)))
    table.add_row("最近提示", last_note or "-")
    return table


@app.callback()
def main(
    ctx: typer.Context, verbose: bool = typer.Option(False, "--verbose", help="开启调试日志", is_flag=True)
) -> None:
    ctx.obj = build_state(verbose)


@records_app.command("import", help="从 CSV 文件导入作者与论文标题。")
def records_import(
    ctx: typer.Context,
    file: Path = typer.Argument(..., help="包含 author / title 列的 CSV 文件。"),
) -> None:
    state = _get_state(ctx)
    try:
        records = read_records(file)
    except FileNotFoundError:
        console.print(f"文件不存在：{file}", style="red")
        raise typer.Exit(code=1)
    except (RecordFormatError, UnicodeDecodeError) as exc:
        console.print(f"导入失败：{exc}", style="red")
        raise typer.Exit(code=1)
    start_index = first_unresolved_index(records)
    state.store.replace(
        {
            "records": [record.to_dict() for record in records],
            "current_index": start_index,
            "is_running": False,
        }
    )
    console.print(
        f"已导入 {len(records)} 条记录，{len(records) - start_index} 条待处理。",
        style="green",
    )
    if records:
        console.print(render_records_table(records, start_index, state.config.preview_limit))


@records_app.command("export", help="导出记录及已获取的机构信息。")
def records_export(
    ctx: typer.Context,
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="导出文件路径。"),
) -> None:
    state = _get_state(ctx)
    records, _, _ = _load_snapshot(state.store)
    if not records:
        console.print("暂无记录可导出。", style="yellow")
        raise typer.Exit(code=1)
    target = output or state.repository.outputs_dir() / EXPORT_FILENAME
    write_records(records, target)
    console.print(f"已导出 {len(records)} 条记录至 {target}", style="green")


@records_app.command("show", help="预览已导入的记录及处理状态。")
def records_show(
    ctx: typer.Context,
    limit: Optional[int] = typer.Option(None, "--limit", help="显示记录数量。"),
) -> None:
    state = _get_state(ctx)
    records, current_index, _ = _load_snapshot(state.store)
    if not records:
        console.print("暂无记录，使用 `affiliation-crawler records import` 导入 CSV。", style="yellow")
        raise typer.Exit(code=0)
    effective_limit = limit if limit is not None else state.config.preview_limit
    console.print(render_records_table(records, current_index, effective_limit))


@records_app.command("clear", help="清空全部记录并重置处理进度。")
def records_clear(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", help="跳过确认提示。", is_flag=True),
) -> None:
    state = _get_state(ctx)
    if not yes:
        confirmed = typer.confirm("确认清空全部记录？处理进度将被重置。", default=False)
        if not confirmed:
            console.print("已取消清空操作。", style="yellow")
            raise typer.Exit(code=0)
    state.store.clear()
    console.print("已清空全部记录。", style="green")


@app.command("run", help="启动浏览器并依次处理记录（Ctrl+C 暂停）。")
def run(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    records, current_index, _ = _load_snapshot(state.store)
    if not records:
        console.print("暂无记录，使用 `affiliation-crawler records import` 导入 CSV。", style="yellow")
        raise typer.Exit(code=1)
    panel = StatusPanel(console)
    console.print(f"开始处理：共 {len(records)} 条，从第 {current_index + 1} 条开始。", style="cyan")
    try:
        final_state = asyncio.run(
            run_pipeline(state.store, state.config, publish=panel.publish, ua_pool=state.ua_pool)
        )
    except KeyboardInterrupt:
        # 中断时 run_pipeline 已持久化暂停状态
        _, paused_at, _ = _load_snapshot(state.store)
        console.print(f"已暂停，下次运行将从第 {paused_at + 1} 条继续。", style="yellow")
        raise typer.Exit(code=0)
    console.print(
        f"处理结束：当前位置 {final_state.current_index}/{len(records)}。", style="green"
    )


@app.command("status", help="查看处理进度与最近提示。")
def status(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    records, current_index, is_running = _load_snapshot(state.store)
    last_note = state.store.load(["debug_info"]).get("debug_info")
    console.print(_render_status_table(records, current_index, is_running, last_note))


@log_app.command("show", help="查看全局日志的最近内容。")
def log_show(
    tail: int = typer.Option(100, "--tail", help="显示最近 N 行内容。"),
) -> None:
    lines = tail_log(crawler_log_path(), tail)
    if not lines:
        console.print("暂无日志信息，请稍后再试。", style="dim")
        return
    console.print(f"全局日志 · 最近 {len(lines)} 行", style="cyan")
    console.print("".join(lines), markup=False, highlight=False)


app.add_typer(records_app, name="records")
app.add_typer(log_app, name="log")


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
