"""Pending-insight queue: proposed insights awaiting a user decision."""

import sqlite3
from collections.abc import Iterable
from datetime import datetime, timedelta
from pathlib import Path

import structlog

from db import wal_connect
from shared_types import InsightCategory

from .models import ExtractedInsight

logger = structlog.get_logger()

PENDING = "pending"
DISMISSED = "dismissed"


class PendingInsightStore:
    """SQLite queue of proposed insights, scoped per user.

    Dismissed insights stay behind as tombstones (content only, no longer
    listed) so re-extraction of similar wording can be suppressed. Pending
    rows older than the retention window expire on read.
    """

    def __init__(self, db_path: str | Path, retention_days: int = 14):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.retention_days = retention_days
        self._init_db()

    def _init_db(self):
        with wal_connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS pending_insights (
                    user_id TEXT NOT NULL,
                    id TEXT NOT NULL,
                    content TEXT NOT NULL,
                    category TEXT NOT NULL,
                    confidence REAL NOT NULL,
                    source_conversation_id TEXT,
                    status TEXT NOT NULL DEFAULT 'pending',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (user_id, id)
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_pending_user_status
                ON pending_insights(user_id, status, created_at)
            """)

    def add(self, user_id: str, insights: Iterable[ExtractedInsight]) -> list[ExtractedInsight]:
        """Queue insights. Already queued or tombstoned ids are skipped.

        Returns the insights that were actually added.
        """
        added = []
        with wal_connect(self.db_path) as conn:
            for insight in insights:
                cur = conn.execute(
                    """INSERT OR IGNORE INTO pending_insights
                       (user_id, id, content, category, confidence, source_conversation_id,
                        status, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        user_id,
                        insight.id,
                        insight.content,
                        insight.category.value,
                        insight.confidence,
                        insight.source_conversation_id,
                        PENDING,
                        insight.created_at.isoformat(),
                    ),
                )
                if cur.rowcount == 1:
                    added.append(insight)
        return added

    def list_pending(self, user_id: str) -> list[ExtractedInsight]:
        """Unexpired pending insights, oldest first."""
        self.purge_expired(user_id)
        with wal_connect(self.db_path, row_factory=True) as conn:
            rows = conn.execute(
                """SELECT * FROM pending_insights
                   WHERE user_id = ? AND status = ?
                   ORDER BY created_at ASC""",
                (user_id, PENDING),
            ).fetchall()
        return [self._row_to_insight(r) for r in rows]

    def get(self, user_id: str, insight_id: str) -> ExtractedInsight | None:
        with wal_connect(self.db_path, row_factory=True) as conn:
            row = conn.execute(
                "SELECT * FROM pending_insights WHERE user_id = ? AND id = ? AND status = ?",
                (user_id, insight_id, PENDING),
            ).fetchone()
        return self._row_to_insight(row) if row else None

    def remove(self, user_id: str, insight_id: str) -> bool:
        with wal_connect(self.db_path) as conn:
            cur = conn.execute(
                "DELETE FROM pending_insights WHERE user_id = ? AND id = ? AND status = ?",
                (user_id, insight_id, PENDING),
            )
        return cur.rowcount > 0

    def mark_dismissed(self, user_id: str, insight_id: str) -> bool:
        """Turn a pending row into a tombstone."""
        with wal_connect(self.db_path) as conn:
            cur = conn.execute(
                "UPDATE pending_insights SET status = ? WHERE user_id = ? AND id = ?",
                (DISMISSED, user_id, insight_id),
            )
        return cur.rowcount > 0

    def dismissed_texts(self, user_id: str) -> list[str]:
        with wal_connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT content FROM pending_insights WHERE user_id = ? AND status = ?",
                (user_id, DISMISSED),
            ).fetchall()
        return [r[0] for r in rows]

    def clear_pending(self, user_id: str) -> int:
        """Drop every pending row without tombstoning. Returns the count cleared."""
        with wal_connect(self.db_path) as conn:
            cur = conn.execute(
                "DELETE FROM pending_insights WHERE user_id = ? AND status = ?",
                (user_id, PENDING),
            )
        return cur.rowcount

    def purge_expired(self, user_id: str | None = None) -> int:
        cutoff = (datetime.now() - timedelta(days=self.retention_days)).isoformat()
        query = "DELETE FROM pending_insights WHERE status = ? AND created_at < ?"
        params: list = [PENDING, cutoff]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        with wal_connect(self.db_path) as conn:
            cur = conn.execute(query, params)
        if cur.rowcount:
            logger.info("insights.expired", user_id=user_id, count=cur.rowcount)
        return cur.rowcount

    def delete_user(self, user_id: str) -> int:
        with wal_connect(self.db_path) as conn:
            cur = conn.execute("DELETE FROM pending_insights WHERE user_id = ?", (user_id,))
        return cur.rowcount

    @staticmethod
    def _row_to_insight(row: sqlite3.Row) -> ExtractedInsight:
        return ExtractedInsight(
            id=row["id"],
            content=row["content"],
            category=InsightCategory(row["category"]),
            confidence=row["confidence"],
            source_conversation_id=row["source_conversation_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )
