"""Theme observations: raw per-conversation sightings of a recurring pattern."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from db import wal_connect


@dataclass(frozen=True)
class ThemeObservation:
    theme: str
    conversation_id: str
    confidence: float
    domain: str | None = None
    observed_at: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])


class ObservationStore:
    """SQLite log of theme observations, scoped per user."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        with wal_connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS theme_observations (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    theme TEXT NOT NULL,
                    conversation_id TEXT NOT NULL,
                    domain TEXT,
                    confidence REAL NOT NULL,
                    observed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_observations_user
                ON theme_observations(user_id, observed_at)
            """)

    def record(self, user_id: str, observations: list[ThemeObservation]) -> int:
        with wal_connect(self.db_path) as conn:
            conn.executemany(
                """INSERT OR IGNORE INTO theme_observations
                   (id, user_id, theme, conversation_id, domain, confidence, observed_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                [
                    (
                        o.id,
                        user_id,
                        o.theme,
                        o.conversation_id,
                        o.domain,
                        o.confidence,
                        o.observed_at.isoformat(),
                    )
                    for o in observations
                ],
            )
        return len(observations)

    def fetch(self, user_id: str, since: datetime | None = None, limit: int = 1000) -> list[ThemeObservation]:
        """The newest ``limit`` observations, returned oldest first."""
        query = "SELECT * FROM theme_observations WHERE user_id = ?"
        params: list = [user_id]
        if since:
            query += " AND observed_at >= ?"
            params.append(since.isoformat())
        query += " ORDER BY observed_at DESC LIMIT ?"
        params.append(limit)
        with wal_connect(self.db_path, row_factory=True) as conn:
            rows = conn.execute(query, params).fetchall()
        return [
            ThemeObservation(
                id=r["id"],
                theme=r["theme"],
                conversation_id=r["conversation_id"],
                domain=r["domain"],
                confidence=r["confidence"],
                observed_at=datetime.fromisoformat(r["observed_at"]),
            )
            for r in reversed(rows)
        ]

    def prune(self, user_id: str, before: datetime) -> int:
        """Drop observations older than ``before``."""
        with wal_connect(self.db_path) as conn:
            cur = conn.execute(
                "DELETE FROM theme_observations WHERE user_id = ? AND observed_at < ?",
                (user_id, before.isoformat()),
            )
        return cur.rowcount

    def delete_user(self, user_id: str) -> int:
        with wal_connect(self.db_path) as conn:
            cur = conn.execute("DELETE FROM theme_observations WHERE user_id = ?", (user_id,))
        return cur.rowcount
