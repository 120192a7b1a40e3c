"""CLI entry point for the context engine."""

import click

from cli.commands import ingest, insights, patterns, profile, style
from cli.config import load_config_model
from cli.logging_config import setup_logging
from observability import log_run_summary


@click.group()
@click.version_option(version="0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit JSON log lines")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, json_logs: bool):
    """Context engine - inspect and curate what the coach knows about a user."""
    try:
        log_cfg = load_config_model().logging
        level, json_mode = log_cfg.level, log_cfg.json_mode
    except ValueError:
        level, json_mode = "INFO", False
    setup_logging(json_mode=json_mode or json_logs, level="DEBUG" if verbose else level)
    ctx.call_on_close(log_run_summary)


cli.add_command(profile)
cli.add_command(insights)
cli.add_command(style)
cli.add_command(patterns)
cli.add_command(ingest)


if __name__ == "__main__":
    cli()
