"""Pattern CLI commands."""

import click
from rich.console import Console
from rich.table import Table

from cli.utils import get_engine, run

console = Console()


@click.group()
def patterns():
    """Inspect learned cross-session patterns."""
    pass


@patterns.command("detect")
@click.argument("user_id")
def patterns_detect(user_id: str):
    """Re-run pattern and style inference now and show the result."""
    engine = get_engine()

    async def _detect():
        p = await engine.refresh_derived(user_id)
        if p is None:
            return None, []
        # Preview only; nothing is marked as surfaced
        syntheses = engine.patterns.cross_domain(
            user_id, p.coaching_preferences.session_count, surface=False
        )
        return p, syntheses

    with console.status("Detecting patterns..."):
        p, syntheses = run(engine, _detect())

    if p is None:
        console.print(f"[yellow]No profile for {user_id}.[/]")
        return

    learned = p.coaching_preferences.inferred_patterns
    if not learned:
        console.print("[yellow]No recurring patterns yet.[/]")
    else:
        table = Table(show_header=True)
        table.add_column("ID", style="dim")
        table.add_column("Pattern")
        table.add_column("Sessions", justify="right")
        table.add_column("Conf", justify="right")
        table.add_column("Domains", style="cyan")
        for pat in learned:
            table.add_row(
                pat.id,
                pat.pattern_text,
                str(pat.source_count),
                f"{pat.confidence:.0%}",
                ", ".join(pat.domains),
            )
        console.print(table)

    for s in syntheses:
        console.print(f"\n[bold]Across {', '.join(s.domains)}:[/] {s.synthesis}")
