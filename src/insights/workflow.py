"""Confirmation workflow: turning pending insights into profile content.

Nothing here writes the profile directly. Every profile change is handed to
a ``commit`` callable supplied by the repository, which applies it
optimistically, persists it and rolls back on failure. Side effects (pending
queue, learning signals) only run after the commit succeeds.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime

import structlog

from profiles.models import ContextGoal, ContextValue, InferredPattern, Profile
from shared_types import ContextSource, GoalStatus, InsightCategory, SignalType
from signals.sink import SignalSink

from .dedup import find_duplicate
from .errors import InsightValidationError
from .models import ExtractedInsight
from .pending import PendingInsightStore

logger = structlog.get_logger()

Mutation = Callable[[Profile], bool | None]
Commit = Callable[[Mutation], Awaitable[Profile]]


def merge_insight(profile: Profile, insight: ExtractedInsight) -> bool:
    """Merge a confirmed insight into the profile. Returns False if already merged."""
    if insight.id in profile.confirmed_insight_ids:
        return False
    content = insight.content.strip()
    if not content:
        raise InsightValidationError("Insight content is empty")

    if insight.category == InsightCategory.VALUE:
        profile.add_value(
            ContextValue(
                content=content,
                source=ContextSource.EXTRACTED,
                confidence=insight.confidence,
            )
        )
    elif insight.category == InsightCategory.GOAL:
        profile.add_goal(
            ContextGoal(content=content, source=ContextSource.EXTRACTED, status=GoalStatus.ACTIVE)
        )
    elif insight.category == InsightCategory.SITUATION:
        existing = profile.situation.freeform
        profile.situation.freeform = f"{existing}; {content}" if existing else content
    elif insight.category == InsightCategory.PATTERN:
        merge_pattern(profile, insight)

    profile.confirmed_insight_ids.append(insight.id)
    profile.touch()
    return True


def merge_pattern(profile: Profile, insight: ExtractedInsight) -> None:
    patterns = profile.coaching_preferences.inferred_patterns
    now = datetime.now()
    match = next((p for p in patterns if p.id == insight.id), None)
    if match is None:
        text = find_duplicate(insight.content, (p.pattern_text for p in patterns))
        match = next((p for p in patterns if p.pattern_text == text), None) if text else None

    if match is not None:
        match.source_count += 1
        match.confidence = max(match.confidence, insight.confidence)
        match.last_observed = now
        return

    patterns.append(
        InferredPattern(
            id=insight.id,
            pattern_text=insight.content,
            confidence=insight.confidence,
            source_count=1,
            last_observed=now,
        )
    )


class ConfirmationWorkflow:
    """Pending-insight lifecycle: propose, confirm, dismiss, defer."""

    def __init__(self, pending: PendingInsightStore, signals: SignalSink | None = None):
        self.pending = pending
        self.signals = signals

    async def list_pending(self, user_id: str) -> list[ExtractedInsight]:
        return await asyncio.to_thread(self.pending.list_pending, user_id)

    async def propose(self, user_id: str, insights: list[ExtractedInsight]) -> list[ExtractedInsight]:
        if not insights:
            return []
        added = await asyncio.to_thread(self.pending.add, user_id, insights)
        if added:
            logger.info("insights.proposed", user_id=user_id, count=len(added))
        return added

    async def confirm(self, user_id: str, insight_id: str, commit: Commit) -> Profile | None:
        """Merge a pending insight into the profile via ``commit``.

        Returns the committed profile, or None when the id is unknown
        (already confirmed, dismissed or expired).
        """
        insight = await asyncio.to_thread(self.pending.get, user_id, insight_id)
        if insight is None:
            logger.info("insights.confirm_unknown", user_id=user_id, insight_id=insight_id)
            return None
        if not insight.content.strip():
            raise InsightValidationError("Insight content is empty")

        profile = await commit(lambda p: merge_insight(p, insight))

        await self._after_commit(self.pending.remove, user_id, insight_id)
        self._emit(
            user_id,
            SignalType.INSIGHT_CONFIRMED,
            {"insight_id": insight.id, "category": insight.category.value},
        )
        logger.info("insights.confirmed", user_id=user_id, insight_id=insight_id)
        return profile

    async def dismiss(self, user_id: str, insight_id: str, commit: Commit) -> Profile:
        insight = await asyncio.to_thread(self.pending.get, user_id, insight_id)

        def apply(profile: Profile) -> bool:
            if profile.coaching_preferences.is_dismissed(insight_id):
                return False
            profile.coaching_preferences.record_dismissal(insight_id)
            profile.touch()
            return True

        profile = await commit(apply)

        await self._after_commit(self.pending.mark_dismissed, user_id, insight_id)
        data = {"insight_id": insight_id}
        if insight is not None:
            data["category"] = insight.category.value
        self._emit(user_id, SignalType.INSIGHT_DISMISSED, data)
        logger.info("insights.dismissed", user_id=user_id, insight_id=insight_id)
        return profile

    async def dismiss_all(self, user_id: str) -> int:
        """Defer every pending insight. Nothing is recorded as dismissed."""
        cleared = await asyncio.to_thread(self.pending.clear_pending, user_id)
        logger.info("insights.deferred", user_id=user_id, count=cleared)
        return cleared

    async def _after_commit(self, fn, user_id: str, insight_id: str) -> None:
        # The profile write already succeeded; a stale pending row is harmless
        try:
            await asyncio.to_thread(fn, user_id, insight_id)
        except Exception as e:
            logger.warning("insights.pending_update_failed", user_id=user_id, insight_id=insight_id, error=str(e))

    def _emit(self, user_id: str, signal_type: SignalType, data: dict) -> None:
        if self.signals is not None:
            self.signals.emit(user_id, signal_type, data)
