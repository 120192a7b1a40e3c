"""Learning-signal persistence and aggregates."""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import structlog

from db import wal_connect
from shared_types import SignalType

logger = structlog.get_logger()


@dataclass
class LearningSignal:
    user_id: str
    signal_type: SignalType
    signal_data: dict = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class SessionMetrics:
    """Engagement numbers from one completed session."""

    conversation_id: str
    message_count: int
    avg_message_length: int
    duration_seconds: int
    domain: str | None = None
    completed_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_signal(cls, signal: LearningSignal) -> "SessionMetrics":
        data = signal.signal_data
        return cls(
            conversation_id=str(data.get("conversation_id", "")),
            message_count=int(data.get("message_count", 0)),
            avg_message_length=int(data.get("avg_message_length", 0)),
            duration_seconds=int(data.get("duration_seconds", 0)),
            domain=data.get("domain"),
            completed_at=signal.created_at,
        )


@dataclass
class LearningSignalAggregates:
    domain_preferences: dict[str, int] = field(default_factory=dict)
    session_count: int = 0
    average_session_duration_seconds: int = 0
    average_messages_per_session: int = 0
    insights_confirmed: int = 0
    insights_dismissed: int = 0

    @classmethod
    def compute(cls, signals: list[LearningSignal]) -> "LearningSignalAggregates":
        domains: dict[str, int] = {}
        sessions = total_duration = total_messages = 0
        confirmed = dismissed = 0

        for signal in signals:
            if signal.signal_type == SignalType.SESSION_COMPLETED:
                sessions += 1
                data = signal.signal_data
                if isinstance(data.get("domain"), str):
                    domains[data["domain"]] = domains.get(data["domain"], 0) + 1
                if isinstance(data.get("duration_seconds"), int):
                    total_duration += data["duration_seconds"]
                if isinstance(data.get("message_count"), int):
                    total_messages += data["message_count"]
            elif signal.signal_type == SignalType.INSIGHT_CONFIRMED:
                confirmed += 1
            elif signal.signal_type == SignalType.INSIGHT_DISMISSED:
                dismissed += 1

        return cls(
            domain_preferences=domains,
            session_count=sessions,
            average_session_duration_seconds=total_duration // sessions if sessions else 0,
            average_messages_per_session=total_messages // sessions if sessions else 0,
            insights_confirmed=confirmed,
            insights_dismissed=dismissed,
        )


class LearningSignalStore:
    """Append-only SQLite table of learning signals."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        with wal_connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS learning_signals (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    signal_type TEXT NOT NULL,
                    signal_data TEXT NOT NULL DEFAULT '{}',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_signals_user_type
                ON learning_signals(user_id, signal_type, created_at)
            """)

    def record(self, signal: LearningSignal) -> LearningSignal:
        with wal_connect(self.db_path) as conn:
            conn.execute(
                """INSERT INTO learning_signals (id, user_id, signal_type, signal_data, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    signal.id,
                    signal.user_id,
                    signal.signal_type.value,
                    json.dumps(signal.signal_data),
                    signal.created_at.isoformat(),
                ),
            )
        return signal

    def fetch(
        self, user_id: str, signal_type: SignalType | None = None, limit: int = 100
    ) -> list[LearningSignal]:
        """Most recent signals first."""
        query = "SELECT * FROM learning_signals WHERE user_id = ?"
        params: list = [user_id]
        if signal_type:
            query += " AND signal_type = ?"
            params.append(signal_type.value)
        query += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)

        with wal_connect(self.db_path, row_factory=True) as conn:
            rows = conn.execute(query, params).fetchall()

        signals = []
        for r in rows:
            try:
                data = json.loads(r["signal_data"])
            except json.JSONDecodeError:
                logger.warning("signals.corrupt_row", signal_id=r["id"])
                data = {}
            signals.append(
                LearningSignal(
                    id=r["id"],
                    user_id=r["user_id"],
                    signal_type=SignalType(r["signal_type"]),
                    signal_data=data,
                    created_at=datetime.fromisoformat(r["created_at"]),
                )
            )
        return signals

    def recent_sessions(self, user_id: str, limit: int = 10) -> list[SessionMetrics]:
        signals = self.fetch(user_id, SignalType.SESSION_COMPLETED, limit=limit)
        return [SessionMetrics.from_signal(s) for s in signals]

    def session_count(self, user_id: str) -> int:
        with wal_connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM learning_signals WHERE user_id = ? AND signal_type = ?",
                (user_id, SignalType.SESSION_COMPLETED.value),
            ).fetchone()
        return row[0]

    def aggregates(self, user_id: str, limit: int = 500) -> LearningSignalAggregates:
        return LearningSignalAggregates.compute(self.fetch(user_id, limit=limit))

    def engagement_by_theme(self, user_id: str) -> dict[str, int]:
        """Count of pattern_engaged signals per theme."""
        counts: dict[str, int] = {}
        for s in self.fetch(user_id, SignalType.PATTERN_ENGAGED, limit=500):
            theme = s.signal_data.get("theme")
            if isinstance(theme, str):
                counts[theme] = counts.get(theme, 0) + 1
        return counts

    def delete_user(self, user_id: str) -> int:
        with wal_connect(self.db_path) as conn:
            cur = conn.execute("DELETE FROM learning_signals WHERE user_id = ?", (user_id,))
        return cur.rowcount
