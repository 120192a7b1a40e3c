"""Per-user pattern caches: prompt summaries and cross-domain syntheses."""

import json
from dataclasses import asdict
from datetime import datetime, timedelta
from pathlib import Path

import structlog

from db import wal_connect

from .models import CrossDomainPattern, DomainEvidence, PatternSummary

logger = structlog.get_logger()


class PatternCache:
    """SQLite-backed caches. Nothing here is shared across users."""

    def __init__(self, db_path: str | Path, synthesis_ttl_hours: int = 24):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.synthesis_ttl = timedelta(hours=synthesis_ttl_hours)
        self._init_db()

    def _init_db(self):
        with wal_connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS pattern_cache (
                    user_id TEXT PRIMARY KEY,
                    summaries TEXT NOT NULL DEFAULT '[]',
                    session_count_at_analysis INTEGER NOT NULL DEFAULT 0,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS pattern_syntheses (
                    user_id TEXT NOT NULL,
                    theme TEXT NOT NULL,
                    domains TEXT NOT NULL DEFAULT '[]',
                    confidence REAL NOT NULL,
                    evidence TEXT NOT NULL DEFAULT '[]',
                    synthesis TEXT NOT NULL DEFAULT '',
                    surface_count INTEGER NOT NULL DEFAULT 0,
                    last_surfaced_session INTEGER,
                    last_surfaced_at TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (user_id, theme)
                )
            """)

    # -- prompt summaries --

    def get_summaries(self, user_id: str) -> tuple[list[PatternSummary], int] | None:
        """Cached summaries and the session count they were computed at."""
        with wal_connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT summaries, session_count_at_analysis FROM pattern_cache WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        try:
            items = json.loads(row[0])
        except json.JSONDecodeError:
            logger.warning("patterns.cache_corrupt", user_id=user_id)
            return None
        summaries = []
        for item in items:
            seen = item.get("last_seen_at")
            item["last_seen_at"] = datetime.fromisoformat(seen) if seen else None
            summaries.append(PatternSummary(**item))
        return summaries, row[1]

    def set_summaries(self, user_id: str, summaries: list[PatternSummary], session_count: int) -> None:
        payload = []
        for s in summaries:
            item = asdict(s)
            item["last_seen_at"] = s.last_seen_at.isoformat() if s.last_seen_at else None
            payload.append(item)
        with wal_connect(self.db_path) as conn:
            conn.execute(
                """INSERT INTO pattern_cache (user_id, summaries, session_count_at_analysis, updated_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(user_id) DO UPDATE SET
                       summaries = excluded.summaries,
                       session_count_at_analysis = excluded.session_count_at_analysis,
                       updated_at = excluded.updated_at""",
                (user_id, json.dumps(payload), session_count, datetime.now().isoformat()),
            )

    # -- cross-domain syntheses --

    def get_syntheses(self, user_id: str, now: datetime | None = None) -> list[CrossDomainPattern] | None:
        """Fresh cached syntheses, or None when missing or past the TTL."""
        now = now or datetime.now()
        with wal_connect(self.db_path, row_factory=True) as conn:
            rows = conn.execute(
                """SELECT * FROM pattern_syntheses WHERE user_id = ?
                   ORDER BY confidence DESC""",
                (user_id,),
            ).fetchall()
        if not rows:
            return None
        newest = max(datetime.fromisoformat(r["updated_at"]) for r in rows)
        if now - newest > self.synthesis_ttl:
            return None
        return [self._row_to_pattern(r) for r in rows]

    def set_syntheses(self, user_id: str, patterns: list[CrossDomainPattern]) -> None:
        """Upsert patterns, keeping surfacing history for known themes."""
        now = datetime.now().isoformat()
        with wal_connect(self.db_path) as conn:
            for p in patterns:
                conn.execute(
                    """INSERT INTO pattern_syntheses
                       (user_id, theme, domains, confidence, evidence, synthesis, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?)
                       ON CONFLICT(user_id, theme) DO UPDATE SET
                           domains = excluded.domains,
                           confidence = excluded.confidence,
                           evidence = excluded.evidence,
                           synthesis = excluded.synthesis,
                           updated_at = excluded.updated_at""",
                    (
                        user_id,
                        p.theme,
                        json.dumps(p.domains),
                        p.confidence,
                        json.dumps([asdict(e) for e in p.evidence]),
                        p.synthesis,
                        now,
                    ),
                )

    def last_surfaced_session(self, user_id: str, theme: str) -> int | None:
        with wal_connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT last_surfaced_session FROM pattern_syntheses WHERE user_id = ? AND theme = ?",
                (user_id, theme),
            ).fetchone()
        return row[0] if row else None

    def surfaced_in_session(self, user_id: str, session_count: int) -> int:
        with wal_connect(self.db_path) as conn:
            row = conn.execute(
                """SELECT COUNT(*) FROM pattern_syntheses
                   WHERE user_id = ? AND last_surfaced_session = ?""",
                (user_id, session_count),
            ).fetchone()
        return row[0]

    def record_surfaced(self, user_id: str, theme: str, session_count: int) -> None:
        with wal_connect(self.db_path) as conn:
            conn.execute(
                """UPDATE pattern_syntheses
                   SET surface_count = surface_count + 1,
                       last_surfaced_session = ?,
                       last_surfaced_at = ?
                   WHERE user_id = ? AND theme = ?""",
                (session_count, datetime.now().isoformat(), user_id, theme),
            )

    def delete_user(self, user_id: str) -> None:
        with wal_connect(self.db_path) as conn:
            conn.execute("DELETE FROM pattern_cache WHERE user_id = ?", (user_id,))
            conn.execute("DELETE FROM pattern_syntheses WHERE user_id = ?", (user_id,))

    @staticmethod
    def _row_to_pattern(row) -> CrossDomainPattern:
        return CrossDomainPattern(
            theme=row["theme"],
            domains=json.loads(row["domains"]),
            confidence=row["confidence"],
            evidence=[DomainEvidence(**e) for e in json.loads(row["evidence"])],
            synthesis=row["synthesis"],
        )
