"""Profile storage: one versioned JSON document per user in SQLite."""

import sqlite3
from datetime import datetime
from pathlib import Path

import structlog
from pydantic import ValidationError as PydanticValidationError

from db import wal_connect

from .models import Profile

logger = structlog.get_logger()


class ProfileStoreError(Exception):
    """Base profile store error."""


class ProfileNotFoundError(ProfileStoreError):
    """No profile stored for this user. Expected for brand-new users."""


class ProfileConflictError(ProfileStoreError):
    """Caller's base version does not match the stored version."""

    def __init__(self, user_id: str, expected: int, actual: int):
        super().__init__(f"Version conflict for {user_id}: based on {expected}, stored {actual}")
        self.user_id = user_id
        self.expected = expected
        self.actual = actual


class StorageUnavailableError(ProfileStoreError):
    """Transient storage failure; safe to retry."""


class ProfileStore:
    """SQLite persistence with optimistic concurrency on an integer version."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        with wal_connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS context_profiles (
                    user_id TEXT PRIMARY KEY,
                    version INTEGER NOT NULL,
                    document TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

    def _connect(self) -> sqlite3.Connection:
        try:
            return wal_connect(self.db_path)
        except sqlite3.OperationalError as e:
            raise StorageUnavailableError(str(e)) from e

    def exists(self, user_id: str) -> bool:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT 1 FROM context_profiles WHERE user_id = ?", (user_id,)
                ).fetchone()
        except sqlite3.OperationalError as e:
            raise StorageUnavailableError(str(e)) from e
        return row is not None

    def load(self, user_id: str) -> Profile:
        """Load the committed profile or raise ProfileNotFoundError."""
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT version, document FROM context_profiles WHERE user_id = ?",
                    (user_id,),
                ).fetchone()
        except sqlite3.OperationalError as e:
            raise StorageUnavailableError(str(e)) from e

        if row is None:
            raise ProfileNotFoundError(user_id)
        return self._decode(row[0], row[1])

    def create(self, user_id: str) -> Profile:
        """Create an empty profile. Returns the existing one if already present."""
        profile = Profile.empty(user_id)
        profile.version = 1
        now = datetime.now().isoformat()
        try:
            with self._connect() as conn:
                cur = conn.execute(
                    """INSERT OR IGNORE INTO context_profiles
                       (user_id, version, document, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?)""",
                    (user_id, profile.version, self._encode(profile), now, now),
                )
                created = cur.rowcount == 1
        except sqlite3.OperationalError as e:
            raise StorageUnavailableError(str(e)) from e

        if created:
            logger.info("profile.created", user_id=user_id)
            return profile
        return self.load(user_id)

    def save(self, profile: Profile) -> Profile:
        """Atomically write the profile if its base version is still current.

        Returns the committed copy with version + 1. Raises ProfileConflictError
        when another writer committed first, ProfileNotFoundError when the
        profile was deleted underneath the caller.
        """
        committed = profile.model_copy(deep=True)
        committed.version = profile.version + 1
        committed.updated_at = datetime.now()

        try:
            with self._connect() as conn:
                cur = conn.execute(
                    """UPDATE context_profiles
                       SET version = ?, document = ?, updated_at = ?
                       WHERE user_id = ? AND version = ?""",
                    (
                        committed.version,
                        self._encode(committed),
                        committed.updated_at.isoformat(),
                        profile.user_id,
                        profile.version,
                    ),
                )
                if cur.rowcount == 1:
                    return committed

                row = conn.execute(
                    "SELECT version FROM context_profiles WHERE user_id = ?",
                    (profile.user_id,),
                ).fetchone()
        except sqlite3.OperationalError as e:
            raise StorageUnavailableError(str(e)) from e

        if row is None:
            raise ProfileNotFoundError(profile.user_id)
        logger.info(
            "profile.save_conflict",
            user_id=profile.user_id,
            expected=profile.version,
            actual=row[0],
        )
        raise ProfileConflictError(profile.user_id, profile.version, row[0])

    def delete(self, user_id: str) -> bool:
        """Hard-delete a profile (account deletion). Returns True if one existed."""
        try:
            with self._connect() as conn:
                cur = conn.execute("DELETE FROM context_profiles WHERE user_id = ?", (user_id,))
        except sqlite3.OperationalError as e:
            raise StorageUnavailableError(str(e)) from e
        return cur.rowcount > 0

    @staticmethod
    def _encode(profile: Profile) -> str:
        return profile.model_dump_json(exclude={"version"})

    @staticmethod
    def _decode(version: int, document: str) -> Profile:
        try:
            profile = Profile.model_validate_json(document)
        except PydanticValidationError as e:
            logger.warning("profile.decode_failed", error=str(e))
            raise StorageUnavailableError(f"Stored profile is unreadable: {e}") from e
        profile.version = version
        return profile
