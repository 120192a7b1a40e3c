"""Tests for learning-signal persistence and aggregates."""

from datetime import datetime, timedelta

from shared_types import SignalType
from signals.store import LearningSignal, LearningSignalAggregates


def _session(user_id, minutes_ago, domain=None, duration=600, messages=12):
    data = {
        "conversation_id": f"c{minutes_ago}",
        "message_count": messages,
        "avg_message_length": 80,
        "duration_seconds": duration,
    }
    if domain:
        data["domain"] = domain
    return LearningSignal(
        user_id=user_id,
        signal_type=SignalType.SESSION_COMPLETED,
        signal_data=data,
        created_at=datetime.now() - timedelta(minutes=minutes_ago),
    )


class TestLearningSignalStore:
    def test_record_and_fetch_newest_first(self, signal_store):
        signal_store.record(_session("u1", 30))
        signal_store.record(_session("u1", 10))
        signal_store.record(_session("u2", 5))

        fetched = signal_store.fetch("u1")
        assert [s.signal_data["conversation_id"] for s in fetched] == ["c10", "c30"]

    def test_fetch_filters_by_type(self, signal_store):
        signal_store.record(_session("u1", 10))
        signal_store.record(LearningSignal("u1", SignalType.INSIGHT_CONFIRMED, {"insight_id": "x"}))

        confirmed = signal_store.fetch("u1", SignalType.INSIGHT_CONFIRMED)
        assert len(confirmed) == 1
        assert confirmed[0].signal_data == {"insight_id": "x"}

    def test_recent_sessions(self, signal_store):
        for minutes in (40, 30, 20, 10):
            signal_store.record(_session("u1", minutes, domain="career"))

        sessions = signal_store.recent_sessions("u1", limit=3)
        assert [s.conversation_id for s in sessions] == ["c10", "c20", "c30"]
        assert sessions[0].domain == "career"
        assert sessions[0].duration_seconds == 600

    def test_session_count(self, signal_store):
        assert signal_store.session_count("u1") == 0
        signal_store.record(_session("u1", 10))
        signal_store.record(LearningSignal("u1", SignalType.INSIGHT_DISMISSED))
        assert signal_store.session_count("u1") == 1

    def test_engagement_by_theme(self, signal_store):
        for theme in ("avoids conflict", "avoids conflict", "overcommits"):
            signal_store.record(LearningSignal("u1", SignalType.PATTERN_ENGAGED, {"theme": theme}))
        signal_store.record(LearningSignal("u1", SignalType.PATTERN_ENGAGED, {}))

        assert signal_store.engagement_by_theme("u1") == {"avoids conflict": 2, "overcommits": 1}

    def test_delete_user(self, signal_store):
        signal_store.record(_session("u1", 10))
        signal_store.record(_session("u2", 10))

        assert signal_store.delete_user("u1") == 1
        assert signal_store.fetch("u1") == []
        assert len(signal_store.fetch("u2")) == 1


class TestAggregates:
    def test_compute(self):
        signals = [
            _session("u1", 10, domain="career", duration=600, messages=10),
            _session("u1", 20, domain="career", duration=1200, messages=20),
            _session("u1", 30, domain="health", duration=300, messages=3),
            LearningSignal("u1", SignalType.INSIGHT_CONFIRMED),
            LearningSignal("u1", SignalType.INSIGHT_DISMISSED),
            LearningSignal("u1", SignalType.INSIGHT_DISMISSED),
        ]
        agg = LearningSignalAggregates.compute(signals)

        assert agg.session_count == 3
        assert agg.domain_preferences == {"career": 2, "health": 1}
        assert agg.average_session_duration_seconds == 700
        assert agg.average_messages_per_session == 11
        assert agg.insights_confirmed == 1
        assert agg.insights_dismissed == 2

    def test_empty(self):
        agg = LearningSignalAggregates.compute([])
        assert agg.session_count == 0
        assert agg.average_session_duration_seconds == 0

    def test_store_aggregates(self, signal_store):
        signal_store.record(_session("u1", 10, domain="career"))
        agg = signal_store.aggregates("u1")
        assert agg.session_count == 1
        assert agg.domain_preferences == {"career": 1}
