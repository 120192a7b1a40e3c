"""Tests for profile model helpers."""

from datetime import datetime

from profiles.models import (
    CoachingPreferences,
    ContextGoal,
    ContextValue,
    DiscoveryProfileData,
    InferredPattern,
    ManualOverrides,
    Profile,
)
from shared_types import DiscoveryFieldKey, GoalStatus, SituationField


class TestManualOverride:
    def test_set_writes_both_fields(self):
        prefs = CoachingPreferences()
        prefs.set_manual_override("challenging")
        assert prefs.manual_overrides.style == "challenging"
        assert prefs.manual_override == "challenging"

    def test_reads_legacy_field(self):
        prefs = CoachingPreferences(manual_override="supportive")
        assert prefs.manual_style == "supportive"

    def test_structured_field_wins(self):
        prefs = CoachingPreferences(
            manual_override="supportive", manual_overrides=ManualOverrides(style="direct")
        )
        assert prefs.manual_style == "direct"

    def test_clear_falls_back_to_inferred(self):
        prefs = CoachingPreferences()
        prefs.coaching_style.inferred_style = "reflective"
        prefs.set_manual_override("direct")
        assert prefs.effective_coaching_style == "direct"

        prefs.clear_manual_override()
        assert prefs.manual_override is None
        assert prefs.manual_overrides is None
        assert prefs.effective_coaching_style == "reflective"


class TestProfileQueries:
    def test_has_context(self):
        p = Profile.empty("u1")
        assert not p.has_context
        p.situation.set(SituationField.OCCUPATION, "nurse")
        assert p.has_context

    def test_active_goals(self):
        p = Profile.empty("u1")
        p.add_goal(ContextGoal(content="run a marathon"))
        p.add_goal(ContextGoal(content="learn piano", status=GoalStatus.ACHIEVED))
        assert [g.content for g in p.active_goals] == ["run a marathon"]

    def test_known_texts_covers_every_source(self):
        p = Profile.empty("u1")
        p.add_value(ContextValue(content="honesty"))
        p.add_goal(ContextGoal(content="career change"))
        p.situation.freeform = "parent of two"
        p.set_discovery_field(DiscoveryFieldKey.VISION, "a calmer life")
        p.coaching_preferences.inferred_patterns.append(
            InferredPattern(pattern_text="avoids conflict", confidence=0.8)
        )
        assert set(p.known_texts()) == {
            "honesty",
            "career change",
            "parent of two",
            "a calmer life",
            "avoids conflict",
        }

    def test_summary(self):
        p = Profile.empty("u1")
        assert p.summary() == ""
        p.add_value(ContextValue(content="honesty"))
        p.add_goal(ContextGoal(content="get fit"))
        p.coaching_preferences.set_manual_override("direct")
        summary = p.summary()
        assert "Values: honesty" in summary
        assert "Goals: get fit" in summary
        assert "Coaching style: direct" in summary

    def test_has_discovery_data_needs_completion(self):
        p = Profile.empty("u1")
        p.vision = "a calmer life"
        assert not p.has_discovery_data
        p.discovery_completed_at = datetime.now()
        assert p.has_discovery_data


class TestDiscoveryProfileData:
    def test_apply_sets_fields_and_completion(self):
        p = Profile.empty("u1")
        at = datetime(2026, 3, 1, 12, 0)
        DiscoveryProfileData(
            vision="lead a team",
            coaching_domains=["career", "health"],
            key_themes=["growth"],
        ).apply_to(p, at)

        assert p.vision == "lead a team"
        assert p.coaching_domains == ["career", "health"]
        assert p.discovery_completed_at == at
        assert p.has_discovery_data
