"""Profile CLI commands."""

import click
from rich.console import Console
from rich.table import Table

from cli.utils import get_engine, run
from context import ContextError

console = Console()


@click.group()
def profile():
    """View and delete a user's context profile."""
    pass


@profile.command("show")
@click.argument("user_id")
def profile_show(user_id: str):
    """Show everything stored for a user."""
    engine = get_engine()
    try:
        p = run(engine, engine.repository.load_profile(user_id))
    except ContextError as e:
        console.print(f"[red]Error:[/] {e.message}")
        return
    if p is None:
        console.print(f"[yellow]No profile for {user_id}.[/]")
        return

    console.print(f"\n[cyan bold]{p.user_id}[/] [dim](version {p.version})[/]")

    if p.values:
        table = Table(title="Values", show_header=True)
        table.add_column("ID", style="dim")
        table.add_column("Value")
        table.add_column("Source", style="green")
        for v in p.values:
            table.add_row(v.id[:8], v.content, v.source.value)
        console.print(table)

    if p.goals:
        table = Table(title="Goals", show_header=True)
        table.add_column("ID", style="dim")
        table.add_column("Goal")
        table.add_column("Status", style="cyan")
        for g in p.goals:
            table.add_row(g.id[:8], g.content, g.status.value)
        console.print(table)

    situation = p.situation.summary
    if situation:
        console.print(f"\n[bold]Situation:[/] {situation}")

    prefs = p.coaching_preferences
    style = prefs.effective_coaching_style or "balanced"
    console.print(f"\n[bold]Coaching style:[/] {style}")
    if prefs.inferred_patterns:
        console.print(f"[bold]Learned patterns:[/] {len(prefs.inferred_patterns)}")
    console.print(f"[dim]Sessions: {prefs.session_count} | Updated: {p.updated_at:%Y-%m-%d}[/]")


@profile.command("delete")
@click.argument("user_id")
@click.confirmation_option(prompt="Delete this user's profile, pending insights and learning signals?")
def profile_delete(user_id: str):
    """Delete a user's profile and everything derived from it."""
    engine = get_engine()
    existed = run(engine, engine.delete_user(user_id))
    if existed:
        console.print(f"[green]Deleted[/] {user_id}")
    else:
        console.print(f"[yellow]No profile for {user_id}; cleared derived data.[/]")
