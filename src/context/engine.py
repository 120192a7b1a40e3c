"""Context engine: wires extraction, confirmation, inference and the repository together.

The conversation path only ever calls the cheap, non-blocking entry points
(``on_new_turns``, ``on_session_completed``). Everything expensive runs in
tracked background tasks whose failures are logged and never propagate.
"""

import asyncio
from collections.abc import Coroutine, Iterable
from pathlib import Path

import structlog

from insights.extractor import InsightExtractor
from insights.models import Turn
from insights.pending import PendingInsightStore
from insights.pipeline import CycleResult, ExtractionPipeline
from insights.workflow import ConfirmationWorkflow
from observability import metrics
from patterns.cache import PatternCache
from patterns.detector import PatternDetector
from patterns.engine import PatternStyleEngine
from patterns.observations import ObservationStore
from patterns.style import StyleAnalyzer, format_style_instructions, resolve_style_preferences
from patterns.synthesizer import CrossDomainSynthesizer
from profiles.models import Profile
from profiles.store import ProfileStore
from shared_types import SignalType
from signals.sink import SignalSink
from signals.store import LearningSignal, LearningSignalStore

from .errors import ContextError
from .repository import ContextRepository

logger = structlog.get_logger()


class ContextEngine:
    def __init__(
        self,
        repository: ContextRepository,
        pipeline: ExtractionPipeline,
        patterns: PatternStyleEngine,
        signals: SignalSink,
    ):
        self.repository = repository
        self.pipeline = pipeline
        self.patterns = patterns
        self.signals = signals
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, config, provider=None) -> "ContextEngine":
        """Build the full stack from an EngineConfig. All stores share one SQLite file."""
        db_path = Path(config.paths.db_path).expanduser()
        ext, pat, sty = config.extraction, config.patterns, config.style

        signal_store = LearningSignalStore(db_path)
        sink = SignalSink(signal_store, maxsize=config.signals.queue_size)
        pending = PendingInsightStore(db_path, retention_days=ext.pending_retention_days)
        workflow = ConfirmationWorkflow(pending, sink)
        extractor = InsightExtractor(
            provider=provider,
            confidence_floor=ext.confidence_floor,
            max_insights=ext.max_insights_per_cycle,
            max_window_turns=ext.max_window_turns,
            max_chars=ext.max_window_chars,
        )
        pipeline = ExtractionPipeline(
            extractor,
            workflow,
            cadence_turns=ext.cadence_turns,
            max_buffer_turns=ext.max_buffer_turns,
        )

        detector = PatternDetector(
            min_source_count=pat.min_source_count,
            confidence_threshold=pat.confidence_threshold,
            similarity_threshold=pat.similarity_threshold,
            half_life_days=pat.decay_half_life_days,
            decay_floor=pat.decay_floor,
        )
        cache = PatternCache(db_path, synthesis_ttl_hours=pat.synthesis_cache_hours)
        synthesizer = CrossDomainSynthesizer(
            detector,
            cache,
            provider=provider,
            confidence_threshold=pat.cross_domain_confidence,
            min_domains=pat.min_domains,
            max_per_session=pat.max_syntheses_per_session,
            min_sessions_between=pat.min_sessions_between_synthesis,
            use_llm=pat.use_llm_synthesis and config.llm.enabled,
        )
        analyzer = StyleAnalyzer(
            min_sessions=sty.min_sessions,
            min_domain_sessions=sty.min_domain_sessions,
            max_sessions=sty.max_sessions_analyzed,
            max_confidence=sty.max_inferred_confidence,
        )
        pattern_engine = PatternStyleEngine(
            ObservationStore(db_path),
            signal_store,
            cache,
            detector=detector,
            synthesizer=synthesizer,
            analyzer=analyzer,
            min_sessions_for_patterns=pat.min_sessions_for_summaries,
            summary_refresh_sessions=pat.summary_refresh_sessions,
            max_patterns_in_prompt=pat.max_patterns_in_prompt,
        )

        repository = ContextRepository(
            ProfileStore(db_path),
            workflow,
            sink,
            max_conflict_retries=config.repository.max_conflict_retries,
        )
        return cls(repository, pipeline, pattern_engine, sink)

    # -- background task bookkeeping --

    def _spawn(self, coro: Coroutine, name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            metrics.counter("context.background_failures")
            logger.warning("context.background_failed", task=task.get_name(), error=str(exc))

    async def wait_idle(self) -> None:
        """Wait for every scheduled background task, including ones they spawn."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.signals.flush()

    def cancel_background(self) -> int:
        """Cancel in-flight cycles. Buffered turns stay for the next tick."""
        count = 0
        for task in list(self._tasks):
            if not task.done():
                task.cancel()
                count += 1
        if count:
            logger.info("context.background_cancelled", count=count)
        return count

    async def shutdown(self) -> None:
        self.cancel_background()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.signals.close()

    # -- ingestion --

    def on_new_turns(
        self,
        user_id: str,
        conversation_id: str,
        turns: Iterable[Turn],
        domain: str | None = None,
    ) -> bool:
        """Buffer turns; schedule an extraction cycle when the cadence is reached.

        Returns immediately. True means a cycle was scheduled.
        """
        if not self.pipeline.observe(user_id, conversation_id, turns):
            return False
        self._spawn(
            self._extraction_cycle(user_id, conversation_id, domain),
            name=f"extract:{user_id}:{conversation_id}",
        )
        return True

    async def _snapshot(self, user_id: str) -> Profile | None:
        profile = self.repository.get_profile(user_id)
        if profile is not None:
            return profile
        try:
            return await self.repository.load_profile(user_id)
        except ContextError as e:
            logger.warning("context.snapshot_failed", user_id=user_id, error=str(e))
            return None

    async def _extraction_cycle(self, user_id: str, conversation_id: str, domain: str | None) -> CycleResult:
        profile = await self._snapshot(user_id)
        result = await self.pipeline.run_cycle(user_id, conversation_id, profile)
        if result.patterns:
            await asyncio.to_thread(self.patterns.record_observations, user_id, result.patterns, domain)
        return result

    async def extract_now(self, user_id: str, conversation_id: str, domain: str | None = None) -> CycleResult:
        """Run a cycle over whatever is buffered, ignoring the cadence. Used at conversation end."""
        if not self.pipeline.buffered(user_id, conversation_id):
            return CycleResult()
        return await self._extraction_cycle(user_id, conversation_id, domain)

    def on_session_completed(
        self,
        user_id: str,
        conversation_id: str,
        message_count: int,
        avg_message_length: int,
        duration_seconds: int,
        domain: str | None = None,
    ) -> None:
        """Record session engagement and schedule a refresh of derived fields."""
        data = {
            "conversation_id": conversation_id,
            "message_count": message_count,
            "avg_message_length": avg_message_length,
            "duration_seconds": duration_seconds,
        }
        if domain:
            data["domain"] = domain
        self._spawn(self._complete_session(user_id, data), name=f"session:{user_id}:{conversation_id}")

    async def _complete_session(self, user_id: str, data: dict) -> None:
        # Written directly rather than via the sink: the refresh below reads it
        signal = LearningSignal(user_id=user_id, signal_type=SignalType.SESSION_COMPLETED, signal_data=data)
        try:
            await asyncio.to_thread(self.signals.store.record, signal)
        except Exception as e:
            logger.warning("signals.record_failed", user_id=user_id, error=str(e))
        await self.refresh_derived(user_id)

    async def refresh_derived(self, user_id: str) -> Profile | None:
        """Recompute patterns and style and write them in one repository mutation."""
        profile = await self._snapshot(user_id)
        if profile is None:
            return None
        with metrics.timer("patterns.derive"):
            update = await asyncio.to_thread(self.patterns.derive, user_id, profile)
        try:
            return await self.repository.apply_derived(user_id, update.apply)
        except ContextError as e:
            # Stale derived fields are fine; they refresh next session
            logger.warning("context.derived_write_failed", user_id=user_id, kind=e.kind.value, error=str(e))
            return None

    # -- reads for the conversation pipeline --

    async def prompt_context(self, user_id: str, domain: str | None = None) -> str:
        """Text block describing the user for the coaching prompt. Empty if nothing is known."""
        profile = await self._snapshot(user_id)
        if profile is None:
            return ""

        sections = []
        summary = profile.summary()
        if summary:
            sections.append(f"What you know about this user: {summary}")

        style = format_style_instructions(
            resolve_style_preferences(profile.coaching_preferences, domain)
        )
        if style:
            sections.append(style)

        summaries = await asyncio.to_thread(self.patterns.pattern_summaries, user_id, profile)
        if summaries:
            lines = [
                f"- {s.theme} (seen in {s.occurrence_count} sessions)" for s in summaries
            ]
            sections.append("Recurring patterns:\n" + "\n".join(lines))

        syntheses = await asyncio.to_thread(
            self.patterns.cross_domain, user_id, profile.coaching_preferences.session_count
        )
        if syntheses:
            sections.append("Cross-domain insight to explore gently:\n" + syntheses[0].synthesis)

        return "\n\n".join(sections)

    async def delete_user(self, user_id: str) -> bool:
        """Account deletion: profile, pending insights, signals, observations, caches."""
        self.pipeline.forget(user_id)
        existed = await self.repository.delete_profile(user_id)
        await asyncio.to_thread(self.patterns.delete_user, user_id)
        return existed
