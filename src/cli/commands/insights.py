"""Pending-insight CLI commands."""

import click
from rich.console import Console
from rich.table import Table

from cli.utils import get_engine, run
from context import ContextError

console = Console()


@click.group()
def insights():
    """Review insights waiting for confirmation."""
    pass


@insights.command("list")
@click.argument("user_id")
def insights_list(user_id: str):
    """List pending insights, oldest first."""
    engine = get_engine()
    try:
        pending = run(engine, engine.repository.list_pending_insights(user_id))
    except ContextError as e:
        console.print(f"[red]Error:[/] {e.message}")
        return

    if not pending:
        console.print("[yellow]Nothing pending.[/]")
        return

    table = Table(show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Category", style="cyan")
    table.add_column("Insight")
    table.add_column("Conf", justify="right")
    for i in pending:
        table.add_row(i.id, i.category.value, i.content, f"{i.confidence:.0%}")
    console.print(table)


@insights.command("confirm")
@click.argument("user_id")
@click.argument("insight_id")
def insights_confirm(user_id: str, insight_id: str):
    """Merge a pending insight into the profile."""
    engine = get_engine()
    try:
        p = run(engine, engine.repository.confirm_insight(user_id, insight_id))
    except ContextError as e:
        console.print(f"[red]Error:[/] {e.message}")
        return
    if p is None:
        console.print(f"[yellow]No pending insight {insight_id}.[/]")
    else:
        console.print(f"[green]Confirmed[/] {insight_id}")


@insights.command("dismiss")
@click.argument("user_id")
@click.argument("insight_id", required=False)
@click.option("--all", "dismiss_all", is_flag=True, help="Defer every pending insight")
def insights_dismiss(user_id: str, insight_id: str | None, dismiss_all: bool):
    """Dismiss one insight for good, or defer all of them with --all."""
    if not insight_id and not dismiss_all:
        raise click.UsageError("Give an INSIGHT_ID or --all")

    engine = get_engine()
    try:
        if dismiss_all:
            count = run(engine, engine.repository.dismiss_all_insights(user_id))
            console.print(f"[green]Deferred[/] {count} pending insights")
        else:
            run(engine, engine.repository.dismiss_insight(user_id, insight_id))
            console.print(f"[green]Dismissed[/] {insight_id}")
    except ContextError as e:
        console.print(f"[red]Error:[/] {e.message}")
