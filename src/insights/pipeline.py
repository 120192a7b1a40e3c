"""Extraction pipeline: cadence gating, turn buffering, extract -> propose."""

import asyncio
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog

from observability import metrics
from profiles.models import Profile
from shared_types import InsightCategory

from .errors import ExtractionUnavailableError
from .extractor import InsightExtractor
from .models import ExtractedInsight, Turn
from .workflow import ConfirmationWorkflow

logger = structlog.get_logger()


@dataclass
class CycleResult:
    proposed: list[ExtractedInsight] = field(default_factory=list)
    # Every pattern-category candidate seen, duplicates included
    patterns: list[ExtractedInsight] = field(default_factory=list)


@dataclass
class _ConversationBuffer:
    turns: deque = field(default_factory=deque)
    assistant_turns_since_run: int = 0
    running: bool = False
    # Total turns ever appended; unaffected by deque eviction
    appended: int = 0


class ExtractionPipeline:
    """Buffers conversation turns and runs extraction every N assistant turns.

    Turns are dropped from the buffer only after a successful extraction. If
    analysis is unavailable they stay, so the next tick retries them.
    """

    def __init__(
        self,
        extractor: InsightExtractor,
        workflow: ConfirmationWorkflow,
        cadence_turns: int = 5,
        max_buffer_turns: int = 40,
    ):
        self.extractor = extractor
        self.workflow = workflow
        self.cadence_turns = cadence_turns
        self.max_buffer_turns = max_buffer_turns
        self._buffers: dict[tuple[str, str], _ConversationBuffer] = {}

    def _buffer(self, user_id: str, conversation_id: str) -> _ConversationBuffer:
        key = (user_id, conversation_id)
        if key not in self._buffers:
            self._buffers[key] = _ConversationBuffer(turns=deque(maxlen=self.max_buffer_turns))
        return self._buffers[key]

    def observe(self, user_id: str, conversation_id: str, turns: Iterable[Turn]) -> bool:
        """Buffer new turns. Returns True when an extraction cycle is due."""
        buf = self._buffer(user_id, conversation_id)
        for turn in turns:
            buf.turns.append(turn)
            buf.appended += 1
            if turn.is_assistant:
                buf.assistant_turns_since_run += 1
        return buf.assistant_turns_since_run >= self.cadence_turns and not buf.running

    def buffered(self, user_id: str, conversation_id: str) -> list[Turn]:
        return list(self._buffer(user_id, conversation_id).turns)

    async def run_cycle(
        self, user_id: str, conversation_id: str, profile: Profile | None
    ) -> CycleResult:
        """Extract from the buffered window and queue the results as pending.

        Never raises ExtractionUnavailableError; an empty result means the
        cycle was skipped or deferred.
        """
        buf = self._buffer(user_id, conversation_id)
        if buf.running or not buf.turns:
            return CycleResult()
        buf.running = True
        window = list(buf.turns)
        taken_at = buf.appended
        try:
            pending = await self.workflow.list_pending(user_id)
            suppressed = await asyncio.to_thread(self.workflow.pending.dismissed_texts, user_id)
            with metrics.timer("insights.extraction"):
                raw = await asyncio.to_thread(self.extractor.analyze, conversation_id, window)
        except ExtractionUnavailableError as e:
            metrics.counter("insights.extraction_unavailable")
            logger.warning(
                "insights.cycle_deferred",
                user_id=user_id,
                conversation_id=conversation_id,
                buffered=len(window),
                error=str(e),
            )
            return CycleResult()
        finally:
            buf.running = False

        # Only the turns this cycle saw are consumed; later arrivals stay buffered
        arrived = min(buf.appended - taken_at, len(buf.turns))
        while len(buf.turns) > arrived:
            buf.turns.popleft()
        buf.assistant_turns_since_run = sum(1 for t in buf.turns if t.is_assistant)

        metrics.counter("insights.extraction_cycles")
        candidates = self.extractor.select(raw, profile, pending, suppressed)
        added = await self.workflow.propose(user_id, candidates)
        logger.info(
            "insights.cycle_complete",
            user_id=user_id,
            conversation_id=conversation_id,
            extracted=len(raw),
            proposed=len(added),
        )
        dismissed = set(profile.coaching_preferences.dismissed_insights.insight_ids) if profile else set()
        patterns = [
            c for c in raw if c.category == InsightCategory.PATTERN and c.id not in dismissed
        ]
        return CycleResult(proposed=added, patterns=patterns)

    def forget(self, user_id: str, conversation_id: str | None = None) -> None:
        """Drop buffered turns for one conversation, or all of a user's."""
        for key in list(self._buffers):
            if key[0] == user_id and (conversation_id is None or key[1] == conversation_id):
                del self._buffers[key]
