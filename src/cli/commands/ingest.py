"""Transcript ingestion command."""

import json
from pathlib import Path

import click
from rich.console import Console

from cli.utils import get_engine, run
from insights.models import Turn

console = Console()


def load_transcript(path: Path) -> tuple[str, str | None, list[Turn]]:
    """Read a transcript file.

    Accepts either a bare list of {"role", "content"} turns or an object with
    "turns" and optional "conversation_id" and "domain".
    """
    data = json.loads(path.read_text())
    if isinstance(data, list):
        data = {"turns": data}
    turns = [
        Turn(role=t["role"], content=t["content"])
        for t in data.get("turns", [])
        if t.get("content")
    ]
    return data.get("conversation_id") or path.stem, data.get("domain"), turns


@click.command()
@click.argument("user_id")
@click.argument("transcript", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-d", "--domain", default=None, help="Coaching domain of the conversation")
def ingest(user_id: str, transcript: Path, domain: str | None):
    """Feed a JSON transcript through insight extraction."""
    try:
        conversation_id, file_domain, turns = load_transcript(transcript)
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        console.print(f"[red]Invalid transcript:[/] {e}")
        return
    if not turns:
        console.print("[yellow]Transcript has no turns.[/]")
        return

    domain = domain or file_domain
    engine = get_engine()

    async def _ingest():
        repo = engine.repository
        if await repo.load_profile(user_id) is None:
            await repo.create_profile(user_id)
        before = {i.id for i in await repo.list_pending_insights(user_id)}
        engine.on_new_turns(user_id, conversation_id, turns, domain=domain)
        await engine.wait_idle()
        # Whatever is left below the cadence
        await engine.extract_now(user_id, conversation_id, domain=domain)
        return [i for i in await repo.list_pending_insights(user_id) if i.id not in before]

    with console.status("Extracting insights..."):
        proposed = run(engine, _ingest())

    if not proposed:
        console.print("[yellow]No new insights.[/]")
        return
    console.print(f"[green]Proposed {len(proposed)} insights:[/]")
    for i in proposed:
        console.print(f"  [dim]{i.id}[/] [cyan]{i.category.value}[/] {i.content}")
