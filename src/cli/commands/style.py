"""Coaching-style CLI commands."""

import click
from rich.console import Console

from cli.utils import get_engine, run
from context import ContextError
from patterns.style import MANUAL_STYLE_PRESETS, format_style_instructions, resolve_style_preferences

console = Console()


@click.group()
def style():
    """Show or override a user's coaching style."""
    pass


@style.command("show")
@click.argument("user_id")
@click.option("-d", "--domain", default=None, help="Resolve the style for one domain")
def style_show(user_id: str, domain: str | None):
    """Show the effective style and the instructions it produces."""
    engine = get_engine()
    try:
        p = run(engine, engine.repository.load_profile(user_id))
    except ContextError as e:
        console.print(f"[red]Error:[/] {e.message}")
        return
    if p is None:
        console.print(f"[yellow]No profile for {user_id}.[/]")
        return

    prefs = p.coaching_preferences
    manual = prefs.manual_style
    console.print(f"Override: [cyan]{manual or 'none'}[/]")
    console.print(f"Inferred: [cyan]{prefs.coaching_style.inferred_style or 'not enough sessions'}[/]")

    instructions = format_style_instructions(resolve_style_preferences(prefs, domain))
    if instructions:
        console.print(f"\n{instructions}")


@style.command("set")
@click.argument("user_id")
@click.argument("preset", type=click.Choice(sorted(MANUAL_STYLE_PRESETS)))
def style_set(user_id: str, preset: str):
    """Override the inferred style with a preset."""
    engine = get_engine()
    try:
        run(engine, engine.repository.set_style_override(user_id, preset))
    except ContextError as e:
        console.print(f"[red]Error:[/] {e.message}")
        return
    console.print(f"[green]Style set[/] to {preset}")


@style.command("clear")
@click.argument("user_id")
def style_clear(user_id: str):
    """Remove the override and fall back to the inferred style."""
    engine = get_engine()
    try:
        run(engine, engine.repository.clear_style_override(user_id))
    except ContextError as e:
        console.print(f"[red]Error:[/] {e.message}")
        return
    console.print("[green]Override cleared[/]")
