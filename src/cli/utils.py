"""Shared CLI utilities."""

import asyncio
import sys
from pathlib import Path

import structlog
from rich.console import Console

console = Console()
logger = structlog.get_logger()


def get_engine(config_path: Path | None = None):
    """Build a ContextEngine from config. Runs without an LLM if no key is configured."""
    from cli.config import load_config_model
    from context import ContextEngine
    from llm import LLMError, create_cheap_provider

    try:
        config = load_config_model(config_path)
    except ValueError as e:
        console.print(f"[red]Config error:[/] {e}")
        sys.exit(1)

    provider = None
    if config.llm.enabled:
        try:
            provider = create_cheap_provider(
                provider=config.llm.provider,
                api_key=config.llm.api_key,
                model=config.llm.model,
            )
        except LLMError as e:
            logger.warning("cli.llm_unavailable", error=str(e))

    config.paths.db_path.parent.mkdir(parents=True, exist_ok=True)
    return ContextEngine.from_config(config, provider=provider)


def run(engine, coro):
    """Run a coroutine against the engine, draining background work before exit."""

    async def _main():
        try:
            return await coro
        finally:
            await engine.wait_idle()
            await engine.shutdown()

    return asyncio.run(_main())
