"""Tests for the context engine wiring and its background scheduling."""

import asyncio

import pytest

from cli.config_models import EngineConfig
from conftest import llm_json, make_turns
from context import ContextEngine
from observability import metrics
from shared_types import SignalType


@pytest.fixture
def engine(db_path, provider):
    config = EngineConfig.from_dict({"paths": {"db_path": str(db_path)}})
    return ContextEngine.from_config(config, provider=provider)


class TestTurns:
    @pytest.mark.asyncio
    async def test_below_cadence_schedules_nothing(self, engine, provider):
        assert engine.on_new_turns("u1", "c1", make_turns(4)) is False
        await engine.wait_idle()
        provider.generate.assert_not_called()

    @pytest.mark.asyncio
    async def test_cadence_schedules_extraction(self, engine, provider):
        provider.generate.return_value = llm_json(("values honesty", "value", 0.9))

        assert engine.on_new_turns("u1", "c1", make_turns(5)) is True
        await engine.wait_idle()

        pending = await engine.repository.list_pending_insights("u1")
        assert [i.content for i in pending] == ["values honesty"]

    @pytest.mark.asyncio
    async def test_pattern_candidates_recorded_with_domain(self, engine, provider):
        provider.generate.return_value = llm_json(("avoids conflict", "pattern", 0.85))
        engine.on_new_turns("u1", "c1", make_turns(5), domain="career")
        await engine.wait_idle()

        observed = engine.patterns.observations.fetch("u1")
        assert [(o.theme, o.domain, o.conversation_id) for o in observed] == [
            ("avoids conflict", "career", "c1")
        ]

    @pytest.mark.asyncio
    async def test_extract_now_ignores_cadence(self, engine, provider):
        provider.generate.return_value = llm_json(("parent of two", "situation", 0.95))
        engine.on_new_turns("u1", "c1", make_turns(2))

        result = await engine.extract_now("u1", "c1")

        assert [i.content for i in result.proposed] == ["parent of two"]
        assert (await engine.extract_now("u1", "c1")).proposed == []

    @pytest.mark.asyncio
    async def test_background_failure_is_contained(self, engine, monkeypatch):
        async def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(engine.pipeline, "run_cycle", broken)
        assert engine.on_new_turns("u1", "c1", make_turns(5)) is True
        await engine.wait_idle()
        assert metrics.count("context.background_failures") == 1

    @pytest.mark.asyncio
    async def test_cancel_and_shutdown(self, engine, monkeypatch):
        async def slow(*args, **kwargs):
            await asyncio.sleep(10)

        monkeypatch.setattr(engine.pipeline, "run_cycle", slow)
        engine.on_new_turns("u1", "c1", make_turns(5))
        await asyncio.sleep(0)

        assert engine.cancel_background() == 1
        await engine.shutdown()
        assert metrics.count("context.background_failures") == 0


class TestSessions:
    @pytest.mark.asyncio
    async def test_session_completed_updates_profile(self, engine):
        await engine.repository.create_profile("u1")

        engine.on_session_completed("u1", "c1", message_count=12, avg_message_length=80, duration_seconds=900, domain="career")
        await engine.wait_idle()

        sessions = engine.signals.store.fetch("u1", SignalType.SESSION_COMPLETED)
        assert sessions[0].signal_data["domain"] == "career"
        profile = await engine.repository.load_profile("u1")
        assert profile.coaching_preferences.session_count == 1

    @pytest.mark.asyncio
    async def test_refresh_without_profile(self, engine):
        assert await engine.refresh_derived("u1") is None


class TestPromptContext:
    @pytest.mark.asyncio
    async def test_unknown_user_is_empty(self, engine):
        assert await engine.prompt_context("u1") == ""

    @pytest.mark.asyncio
    async def test_includes_profile_and_style(self, engine):
        await engine.repository.create_profile("u1")
        await engine.repository.add_value("u1", "honesty")
        await engine.repository.set_style_override("u1", "direct")

        text = await engine.prompt_context("u1")

        assert "Values: honesty" in text
        assert "This user prefers direct" in text
        assert "Recurring patterns" not in text


class TestDeleteUser:
    @pytest.mark.asyncio
    async def test_removes_all_user_data(self, engine, provider):
        await engine.repository.create_profile("u1")
        provider.generate.return_value = llm_json(
            ("values honesty", "value", 0.9), ("avoids conflict", "pattern", 0.85)
        )
        engine.on_new_turns("u1", "c1", make_turns(5))
        await engine.wait_idle()
        engine.on_new_turns("u1", "c2", make_turns(2))

        assert await engine.delete_user("u1") is True

        assert await engine.repository.load_profile("u1") is None
        assert await engine.repository.list_pending_insights("u1") == []
        assert engine.patterns.observations.fetch("u1") == []
        assert engine.pipeline.buffered("u1", "c2") == []
