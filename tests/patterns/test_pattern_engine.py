"""Tests for deriving pattern and style fields from stored history."""

from datetime import datetime, timedelta

import pytest

from insights.models import ExtractedInsight
from patterns.cache import PatternCache
from patterns.detector import PatternDetector
from patterns.engine import PatternStyleEngine
from patterns.observations import ObservationStore, ThemeObservation
from patterns.synthesizer import CrossDomainSynthesizer
from profiles.models import ContextValue, InferredPattern, Profile
from shared_types import SignalType
from signals.store import LearningSignal


def record_sessions(signal_store, user_id, n, domain=None):
    for i in range(n):
        data = {
            "conversation_id": f"s{i}",
            "message_count": 12,
            "avg_message_length": 90,
            "duration_seconds": 900,
        }
        if domain:
            data["domain"] = domain
        signal_store.record(
            LearningSignal(
                user_id=user_id,
                signal_type=SignalType.SESSION_COMPLETED,
                signal_data=data,
                created_at=datetime.now() - timedelta(minutes=n - i),
            )
        )


def pattern_insight(conv, content="avoids conflict", confidence=0.85):
    return ExtractedInsight.create(content, "pattern", confidence, conv)


@pytest.fixture
def cache(db_path):
    return PatternCache(db_path)


@pytest.fixture
def engine(db_path, signal_store, cache, provider):
    detector = PatternDetector()
    return PatternStyleEngine(
        ObservationStore(db_path),
        signal_store,
        cache,
        detector=detector,
        synthesizer=CrossDomainSynthesizer(detector, cache, provider=provider, use_llm=False),
    )


class TestDerive:
    def test_record_observations(self, engine):
        count = engine.record_observations("u1", [pattern_insight("c1")], domain="career")
        assert count == 1
        stored = engine.observations.fetch("u1")
        assert stored[0].theme == "avoids conflict"
        assert stored[0].domain == "career"
        assert stored[0].conversation_id == "c1"

    def test_record_observations_prunes_past_horizon(self, engine):
        engine.observations.record(
            "u1",
            [
                ThemeObservation(
                    theme="enjoys running",
                    conversation_id="c0",
                    confidence=0.9,
                    observed_at=datetime.now() - timedelta(days=90),
                )
            ],
        )
        engine.record_observations("u1", [pattern_insight("c1")])
        assert [o.conversation_id for o in engine.observations.fetch("u1")] == ["c1"]

    def test_derive_and_apply(self, engine, signal_store):
        for conv in ("c1", "c2", "c3"):
            engine.record_observations("u1", [pattern_insight(conv)])
        record_sessions(signal_store, "u1", 5, domain="career")

        update = engine.derive("u1", Profile.empty("u1"))
        assert update.session_count == 5
        assert update.style is not None
        assert update.usage == {"career": 100.0}

        profile = Profile.empty("u1")
        assert update.apply(profile) is True
        prefs = profile.coaching_preferences
        assert prefs.session_count == 5
        assert [p.pattern_text for p in prefs.inferred_patterns] == ["avoids conflict"]
        assert prefs.coaching_style.inferred_style == update.style.label
        assert prefs.domain_usage_stats.domains == {"career": 100.0}

        # Re-applying the same update is a no-op
        assert update.apply(profile) is False

    def test_apply_keeps_user_fields(self, engine, signal_store):
        record_sessions(signal_store, "u1", 5)
        update = engine.derive("u1", Profile.empty("u1"))

        profile = Profile.empty("u1")
        profile.add_value(ContextValue(content="honesty"))
        profile.coaching_preferences.set_manual_override("direct")
        update.apply(profile)

        assert [v.content for v in profile.values] == ["honesty"]
        assert profile.coaching_preferences.manual_style == "direct"

    def test_apply_never_lowers_session_count(self, engine):
        update = engine.derive("u1", Profile.empty("u1"))
        profile = Profile.empty("u1")
        profile.coaching_preferences.session_count = 9
        update.apply(profile)
        assert profile.coaching_preferences.session_count == 9

    def test_style_not_reanalyzed_too_soon(self, engine, signal_store):
        record_sessions(signal_store, "u1", 6)
        profile = Profile.empty("u1")
        prefs = profile.coaching_preferences
        prefs.session_count = 6
        prefs.session_count_at_style_analysis = 5
        prefs.last_style_analysis_at = datetime.now()

        assert engine.derive("u1", profile).style is None

    def test_signal_failure_skips_style(self, engine, signal_store, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("locked")

        monkeypatch.setattr(signal_store, "session_count", boom)
        update = engine.derive("u1", Profile.empty("u1"))
        assert update.session_count is None
        assert update.style is None


class TestPatternSummaries:
    def _profile(self, session_count, *patterns):
        profile = Profile.empty("u1")
        profile.coaching_preferences.session_count = session_count
        profile.coaching_preferences.inferred_patterns = list(patterns)
        return profile

    def _pattern(self, text, sources=3, confidence=0.8):
        return InferredPattern(
            pattern_text=text, confidence=confidence, source_count=sources, last_observed=datetime.now()
        )

    def test_hidden_before_enough_sessions(self, engine):
        assert engine.pattern_summaries("u1", self._profile(4, self._pattern("avoids conflict"))) == []

    def test_ranked_and_capped(self, engine):
        profile = self._profile(
            5,
            self._pattern("a", sources=3),
            self._pattern("b", sources=6),
            self._pattern("c", sources=4),
            self._pattern("d", sources=5),
            self._pattern("weak", sources=9, confidence=0.5),
        )
        summaries = engine.pattern_summaries("u1", profile)
        assert [s.theme for s in summaries] == ["b", "d", "c"]

    def test_engagement_breaks_ties(self, engine, signal_store):
        signal_store.record(LearningSignal("u1", SignalType.PATTERN_ENGAGED, {"theme": "second"}))
        profile = self._profile(5, self._pattern("first"), self._pattern("second"))
        summaries = engine.pattern_summaries("u1", profile)
        assert summaries[0].theme == "second"
        assert summaries[0].engagement_count == 1

    def test_cached_until_enough_new_sessions(self, engine):
        engine.pattern_summaries("u1", self._profile(5, self._pattern("a")))

        more = (self._pattern("a"), self._pattern("b", sources=7))
        assert [s.theme for s in engine.pattern_summaries("u1", self._profile(7, *more))] == ["a"]
        assert [s.theme for s in engine.pattern_summaries("u1", self._profile(8, *more))] == ["b", "a"]


class TestCrossDomain:
    def _seed(self, engine):
        for i, domain in enumerate(("career", "career", "relationships", "relationships")):
            engine.record_observations("u1", [pattern_insight(f"c{i}", confidence=0.9)], domain=domain)

    def test_surfaces_once_per_session(self, engine):
        self._seed(engine)
        first = engine.cross_domain("u1", session_count=5)
        assert [p.theme for p in first] == ["avoids conflict"]
        assert engine.cross_domain("u1", session_count=5) == []

    def test_preview_does_not_record(self, engine):
        self._seed(engine)
        assert len(engine.cross_domain("u1", 5, surface=False)) == 1
        assert len(engine.cross_domain("u1", 5, surface=False)) == 1

    def test_delete_user(self, engine, cache):
        self._seed(engine)
        engine.cross_domain("u1", 5)
        engine.delete_user("u1")
        assert engine.observations.fetch("u1") == []
        assert cache.get_syntheses("u1") is None
