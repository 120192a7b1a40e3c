"""Tests for merging and the confirm/dismiss lifecycle."""

from unittest.mock import AsyncMock

import pytest

from insights.errors import InsightValidationError
from insights.models import ExtractedInsight
from insights.workflow import merge_insight
from profiles.models import ContextValue, InferredPattern, Profile
from shared_types import ContextSource, GoalStatus, InsightCategory, SignalType


def _insight(content, category="value", confidence=0.9):
    return ExtractedInsight.create(content, category, confidence, "conv-1")


def _commit_onto(profile: Profile):
    """Commit double that applies the mutation to a local profile."""

    async def commit(apply):
        apply(profile)
        return profile

    return commit


class TestMergeInsight:
    def test_value(self):
        p = Profile.empty("u1")
        insight = _insight("values honesty", confidence=0.85)
        assert merge_insight(p, insight) is True
        assert p.values[0].content == "values honesty"
        assert p.values[0].source == ContextSource.EXTRACTED
        assert p.values[0].confidence == 0.85
        assert insight.id in p.confirmed_insight_ids

    def test_goal_is_active_and_extracted(self):
        p = Profile.empty("u1")
        merge_insight(p, _insight("career change", "goal"))
        goal = p.goals[0]
        assert goal.status == GoalStatus.ACTIVE
        assert goal.source == ContextSource.EXTRACTED

    def test_situation_appends_to_freeform(self):
        p = Profile.empty("u1")
        p.situation.freeform = "lives in Leeds"
        merge_insight(p, _insight("parent of two", "situation"))
        assert p.situation.freeform == "lives in Leeds; parent of two"

    def test_pattern_merges_into_existing(self):
        p = Profile.empty("u1")
        p.coaching_preferences.inferred_patterns.append(
            InferredPattern(pattern_text="avoids conflict at work", confidence=0.7, source_count=2)
        )
        merge_insight(p, _insight("avoids conflict at work", "pattern", 0.9))
        patterns = p.coaching_preferences.inferred_patterns
        assert len(patterns) == 1
        assert patterns[0].source_count == 3
        assert patterns[0].confidence == 0.9

    def test_merge_twice_is_noop(self):
        p = Profile.empty("u1")
        insight = _insight("values honesty")
        merge_insight(p, insight)
        before = p.model_dump()
        assert merge_insight(p, insight) is False
        assert p.model_dump() == before

    def test_empty_content_rejected(self):
        blank = ExtractedInsight(id="x", content="  ", category=InsightCategory.VALUE, confidence=0.9)
        with pytest.raises(InsightValidationError):
            merge_insight(Profile.empty("u1"), blank)


class TestConfirmationWorkflow:
    @pytest.mark.asyncio
    async def test_confirm_merges_removes_and_signals(self, workflow, pending_store, signal_store, sink):
        insight = _insight("career change", "goal")
        await workflow.propose("u1", [insight])
        profile = Profile.empty("u1")

        result = await workflow.confirm("u1", insight.id, _commit_onto(profile))
        await sink.flush()

        assert result.goals[0].content == "career change"
        assert pending_store.list_pending("u1") == []
        signals = signal_store.fetch("u1", SignalType.INSIGHT_CONFIRMED)
        assert signals[0].signal_data["insight_id"] == insight.id

    @pytest.mark.asyncio
    async def test_confirm_unknown_id_returns_none(self, workflow):
        commit = AsyncMock()
        assert await workflow.confirm("u1", "missing", commit) is None
        commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_commit_leaves_pending(self, workflow, pending_store):
        insight = _insight("honesty")
        await workflow.propose("u1", [insight])
        commit = AsyncMock(side_effect=RuntimeError("save failed"))

        with pytest.raises(RuntimeError):
            await workflow.confirm("u1", insight.id, commit)
        assert pending_store.get("u1", insight.id) is not None

    @pytest.mark.asyncio
    async def test_dismiss_records_id_and_tombstones(self, workflow, pending_store, signal_store, sink):
        insight = _insight("values creativity")
        await workflow.propose("u1", [insight])
        profile = Profile.empty("u1")

        await workflow.dismiss("u1", insight.id, _commit_onto(profile))
        await sink.flush()

        assert profile.coaching_preferences.is_dismissed(insight.id)
        assert pending_store.list_pending("u1") == []
        assert pending_store.dismissed_texts("u1") == ["values creativity"]
        assert signal_store.fetch("u1", SignalType.INSIGHT_DISMISSED)[0].signal_data["category"] == "value"

    @pytest.mark.asyncio
    async def test_dismiss_all_defers_without_recording(self, workflow, pending_store):
        await workflow.propose("u1", [_insight("honesty"), _insight("courage")])
        assert await workflow.dismiss_all("u1") == 2
        assert pending_store.list_pending("u1") == []
        assert pending_store.dismissed_texts("u1") == []

    @pytest.mark.asyncio
    async def test_propose_skips_already_pending(self, workflow):
        insight = _insight("honesty")
        assert await workflow.propose("u1", [insight]) == [insight]
        assert await workflow.propose("u1", [insight]) == []
