"""CLI interface for todosync."""

from __future__ import annotations

import asyncio
import contextlib
import locale
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from todosync import __version__
from todosync.app import TodoApp
from todosync.config import CONFIG_FILE, AppConfig
from todosync.errors import TaskValidationError
from todosync.logging_setup import setup_logging
from todosync.models import FILTER_OPTIONS, SORT_OPTIONS, SORT_ORDERS, Task
from todosync.observable import Change

console = Console()

T = TypeVar("T")


def _run(ctx: click.Context, action: Callable[[TodoApp], Awaitable[T]]) -> T:
    """Run an action against a live app, saving on the way out."""
    config: AppConfig = ctx.obj["config"]

    async def runner() -> T:
        async with TodoApp(config) as app:
            return await action(app)

    return asyncio.run(runner())


def _task_table(tasks: list[Task], title: str) -> Table:
    table = Table(title=title, show_header=True)
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("", width=1)
    table.add_column("Task", style="white")
    table.add_column("Created", style="dim")

    for task in tasks:
        icon = "[green]✓[/green]" if task.completed else "[dim]○[/dim]"
        text = escape(task.text)
        if task.completed:
            text = f"[dim strike]{text}[/dim strike]"
        table.add_row(str(task.id), icon, text, task.created_at[:16].replace("T", " "))
    return table


def _print_tasks(app: TodoApp) -> None:
    tasks = app.filtered_tasks
    info = app.search_info
    counts = app.task_counts

    if tasks:
        console.print(_task_table(tasks, app.filters.description.capitalize()))
    elif info.has_query:
        console.print(f'[yellow]No tasks match[/yellow] "{escape(info.query)}"')
    else:
        console.print("[dim]No tasks found.[/dim]")

    console.print(
        f"  [cyan]{counts.all}[/cyan] total · "
        f"[yellow]{counts.pending}[/yellow] pending · "
        f"[green]{counts.completed}[/green] completed"
    )


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="todosync")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help=f"Config file (default: {CONFIG_FILE})",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """todosync - a local task list that stays in sync across terminals.

    \b
    Examples:
      todosync add "Buy milk"
      todosync list --filter pending --sort text
      todosync toggle 3
      todosync watch           # live view, follows other terminals
    """
    ctx.ensure_object(dict)
    config = AppConfig.load(config_path)
    setup_logging(
        level="DEBUG" if verbose else config.logging.level,
        log_file=config.logging.file,
    )
    # Sort task text in the user's collation order
    with contextlib.suppress(locale.Error):
        locale.setlocale(locale.LC_COLLATE, "")
    ctx.obj["config"] = config

    # If no subcommand, show help
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@main.command()
@click.argument("text", nargs=-1, required=True)
@click.pass_context
def add(ctx: click.Context, text: tuple[str, ...]) -> None:
    """Add a task."""

    async def action(app: TodoApp) -> Task | None:
        return await app.add_task(" ".join(text))

    try:
        task = _run(ctx, action)
    except TaskValidationError as e:
        console.print(f"[red]Invalid task:[/red] {e}")
        ctx.exit(1)

    if task is None:
        console.print("[yellow]Nothing to add.[/yellow] Task text is empty.")
        ctx.exit(1)

    console.print(f"[green]Added:[/green] #{task.id} {escape(task.text)}")


@main.command("list")
@click.option("--filter", "-f", "status", type=click.Choice(FILTER_OPTIONS), help="Status filter")
@click.option("--search", "-s", help="Only tasks containing this text")
@click.option("--sort", "sort_by", type=click.Choice(SORT_OPTIONS), help="Sort key")
@click.option("--order", "sort_order", type=click.Choice(SORT_ORDERS), help="Sort direction")
@click.option("--reset", is_flag=True, help="Clear saved filters before listing")
@click.pass_context
def list_command(
    ctx: click.Context,
    status: str | None,
    search: str | None,
    sort_by: str | None,
    sort_order: str | None,
    reset: bool,
) -> None:
    """List tasks using the saved (or given) filters.

    Filter options are remembered for the next invocation.
    """

    async def action(app: TodoApp) -> None:
        if reset:
            app.reset_filters()
        if status:
            app.set_filter(status)
        if search is not None:
            app.set_search(search)
        if sort_by or sort_order:
            app.set_sorting(sort_by or app.filters.sort_by, sort_order or app.filters.sort_order)
        _print_tasks(app)

    _run(ctx, action)


def _task_action(ctx: click.Context, task_id: int, verb: str, fn: Callable[[TodoApp], Task | None]) -> None:
    async def action(app: TodoApp) -> Task | None:
        return fn(app)

    task = _run(ctx, action)
    if task is None:
        console.print(f"[red]Task not found:[/red] {task_id}")
        ctx.exit(1)
    console.print(f"[green]{verb}:[/green] #{task.id} {escape(task.text)}")


@main.command()
@click.argument("task_id", type=int)
@click.pass_context
def toggle(ctx: click.Context, task_id: int) -> None:
    """Toggle a task between pending and completed."""
    _task_action(ctx, task_id, "Toggled", lambda app: app.toggle_task(task_id))


@main.command()
@click.argument("task_id", type=int)
@click.argument("text", nargs=-1, required=True)
@click.pass_context
def edit(ctx: click.Context, task_id: int, text: tuple[str, ...]) -> None:
    """Change a task's text."""
    try:
        _task_action(
            ctx, task_id, "Updated", lambda app: app.update_task(task_id, {"text": " ".join(text)})
        )
    except TaskValidationError as e:
        console.print(f"[red]Invalid task:[/red] {e}")
        ctx.exit(1)


@main.command("rm")
@click.argument("task_id", type=int)
@click.pass_context
def remove(ctx: click.Context, task_id: int) -> None:
    """Delete a task."""
    _task_action(ctx, task_id, "Deleted", lambda app: app.delete_task(task_id))


@main.command("clear-completed")
@click.pass_context
def clear_completed(ctx: click.Context) -> None:
    """Delete all completed tasks."""

    async def action(app: TodoApp) -> int:
        return app.clear_completed()

    count = _run(ctx, action)
    console.print(f"[green]Removed {count} completed task(s).[/green]")


@main.command("complete-all")
@click.pass_context
def complete_all(ctx: click.Context) -> None:
    """Mark every task as completed."""

    async def action(app: TodoApp) -> int:
        return app.mark_all_complete()

    count = _run(ctx, action)
    console.print(f"[green]Marked {count} task(s) complete.[/green]")


@main.command("uncomplete-all")
@click.pass_context
def uncomplete_all(ctx: click.Context) -> None:
    """Mark every task as pending."""

    async def action(app: TodoApp) -> int:
        return app.mark_all_incomplete()

    count = _run(ctx, action)
    console.print(f"[green]Marked {count} task(s) pending.[/green]")


@main.command()
@click.argument("mode", type=click.Choice(["dark", "light", "toggle", "system"]), required=False)
@click.pass_context
def theme(ctx: click.Context, mode: str | None) -> None:
    """Show or change the theme preference."""

    async def action(app: TodoApp) -> str:
        if mode == "dark":
            app.set_theme(True)
        elif mode == "light":
            app.set_theme(False)
        elif mode == "toggle":
            app.toggle_theme()
        elif mode == "system":
            app.use_system_theme()
        info = app.theme.info
        return f"{'dark' if info.is_dark else 'light'} ({info.mode})"

    console.print(f"[cyan]Theme:[/cyan] {_run(ctx, action)}")


@main.command("export")
@click.argument("output", type=click.Path(path_type=Path, dir_okay=False), required=False)
@click.pass_context
def export_command(ctx: click.Context, output: Path | None) -> None:
    """Export saved data as JSON (to OUTPUT or stdout)."""

    async def action(app: TodoApp) -> str | None:
        return app.export_data()

    data = _run(ctx, action)
    if data is None:
        console.print("[red]Nothing to export.[/red]")
        ctx.exit(1)

    if output is None:
        click.echo(data)
        return
    output.write_text(data + "\n", encoding="utf-8")
    console.print(f"[green]Exported to[/green] {output}")


@main.command("import")
@click.argument("source", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.pass_context
def import_command(ctx: click.Context, source: Path) -> None:
    """Replace saved data with an exported JSON file."""
    text = source.read_text(encoding="utf-8")

    async def action(app: TodoApp) -> tuple[bool, int]:
        ok = app.import_data(text)
        return ok, len(app.store.tasks)

    ok, count = _run(ctx, action)
    if not ok:
        console.print(f"[red]Import failed:[/red] {source} is not a valid export")
        ctx.exit(1)
    console.print(f"[green]Imported {count} task(s)[/green] from {source}")


@main.command()
@click.pass_context
def info(ctx: click.Context) -> None:
    """Show task statistics and storage usage."""

    async def action(app: TodoApp) -> dict:
        return app.get_stats()

    stats = _run(ctx, action)
    config: AppConfig = ctx.obj["config"]

    tasks_table = Table(title="Tasks", show_header=True)
    tasks_table.add_column("Metric", style="cyan")
    tasks_table.add_column("Value", style="white")
    tasks_table.add_row("Total", str(stats["tasks"].total))
    tasks_table.add_row("Pending", str(stats["tasks"].pending))
    tasks_table.add_row("Completed", str(stats["tasks"].completed))
    tasks_table.add_row("Progress", f"{stats['tasks'].completion_percentage}%")
    console.print(tasks_table)
    console.print()

    storage = stats["storage"]
    storage_table = Table(title="Storage", show_header=True)
    storage_table.add_column("Setting", style="cyan")
    storage_table.add_column("Value", style="white")
    storage_table.add_row("Directory", config.storage.directory)
    storage_table.add_row("Key", config.storage.key)
    storage_table.add_row("Used", f"{storage.used} bytes ({storage.usage_percentage:.2f}%)")
    storage_table.add_row("Available", f"{storage.available} bytes")
    if storage.error:
        storage_table.add_row("Error", f"[red]{storage.error}[/red]")
    console.print(storage_table)
    console.print()

    filters = stats["filters"]
    console.print(
        Panel.fit(
            f"Theme: {stats['theme'].mode}"
            f" ({'dark' if stats['theme'].is_dark else 'light'})\n"
            f"Filters: {filters['description']}",
            title="View",
        )
    )


@main.command("clear-all")
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation")
@click.pass_context
def clear_all(ctx: click.Context, yes: bool) -> None:
    """Delete all tasks and saved preferences."""
    if not yes and not click.confirm("Delete all tasks and preferences?"):
        console.print("[dim]Cancelled.[/dim]")
        return

    async def action(app: TodoApp) -> None:
        app.clear_all_data()

    _run(ctx, action)
    console.print("[green]All data cleared.[/green]")


@main.command()
@click.pass_context
def watch(ctx: click.Context) -> None:
    """Show tasks and refresh whenever they change, here or elsewhere.

    Press Ctrl+C to stop.
    """

    async def action(app: TodoApp) -> None:
        changed = asyncio.Event()

        def on_change(_: Change) -> None:
            changed.set()

        unsubscribers = [
            app.store.subscribe(on_change),
            app.filters.subscribe(on_change),
            app.theme.subscribe(on_change),
        ]
        try:
            while True:
                console.clear()
                _print_tasks(app)
                console.print("[dim]Watching for changes. Ctrl+C to stop.[/dim]")
                await changed.wait()
                changed.clear()
        finally:
            for unsubscribe in unsubscribers:
                unsubscribe()

    try:
        _run(ctx, action)
    except KeyboardInterrupt:
        console.print("[dim]Stopped.[/dim]")
