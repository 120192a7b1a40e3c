"""Tests for the pending-insight queue."""

import sqlite3
from datetime import datetime, timedelta

from insights.models import ExtractedInsight
from insights.pending import PendingInsightStore


def _insight(content, category="value", confidence=0.9):
    return ExtractedInsight.create(content, category, confidence, "conv-1")


class TestPendingStore:
    def test_add_and_list(self, pending_store):
        added = pending_store.add("u1", [_insight("honesty"), _insight("get fit", "goal")])
        assert len(added) == 2
        listed = pending_store.list_pending("u1")
        assert {i.content for i in listed} == {"honesty", "get fit"}
        assert listed[0].source_conversation_id == "conv-1"

    def test_add_skips_existing_ids(self, pending_store):
        pending_store.add("u1", [_insight("honesty")])
        assert pending_store.add("u1", [_insight("Honesty")]) == []

    def test_scoped_per_user(self, pending_store):
        pending_store.add("u1", [_insight("honesty")])
        assert pending_store.list_pending("u2") == []
        assert pending_store.add("u2", [_insight("honesty")]) != []

    def test_get_and_remove(self, pending_store):
        insight = _insight("honesty")
        pending_store.add("u1", [insight])
        assert pending_store.get("u1", insight.id).content == "honesty"
        assert pending_store.remove("u1", insight.id) is True
        assert pending_store.get("u1", insight.id) is None

    def test_dismissed_becomes_tombstone(self, pending_store):
        insight = _insight("values creativity")
        pending_store.add("u1", [insight])
        pending_store.mark_dismissed("u1", insight.id)

        assert pending_store.list_pending("u1") == []
        assert pending_store.get("u1", insight.id) is None
        assert pending_store.dismissed_texts("u1") == ["values creativity"]
        # Tombstone blocks the same id from being queued again
        assert pending_store.add("u1", [insight]) == []

    def test_clear_pending_keeps_tombstones(self, pending_store):
        a, b = _insight("honesty"), _insight("courage")
        pending_store.add("u1", [a, b])
        pending_store.mark_dismissed("u1", b.id)
        assert pending_store.clear_pending("u1") == 1
        assert pending_store.dismissed_texts("u1") == ["courage"]

    def test_expired_rows_purged_on_list(self, db_path):
        store = PendingInsightStore(db_path, retention_days=14)
        store.add("u1", [_insight("honesty")])
        old = (datetime.now() - timedelta(days=20)).isoformat()
        with sqlite3.connect(db_path) as conn:
            conn.execute("UPDATE pending_insights SET created_at = ?", (old,))
        assert store.list_pending("u1") == []

    def test_delete_user(self, pending_store):
        pending_store.add("u1", [_insight("honesty")])
        assert pending_store.delete_user("u1") == 1
        assert pending_store.list_pending("u1") == []
