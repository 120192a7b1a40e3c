"""Pattern & style engine: derives profile fields from observations and signals.

Derivation runs off the conversation path. Its output is a ``DerivedUpdate``
whose ``apply`` writes only derived fields, so it can be re-applied to fresh
state after a write conflict without clobbering user edits.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

import structlog

from insights.models import ExtractedInsight
from profiles.models import DomainUsageStats, Profile
from signals.store import LearningSignalStore, SessionMetrics

from .cache import PatternCache
from .detector import PatternDetector, decayed_confidence
from .models import CrossDomainPattern, PatternSummary
from .observations import ObservationStore, ThemeObservation
from .style import StyleAnalysis, StyleAnalyzer, domain_usage, should_refresh_style_analysis
from .synthesizer import CrossDomainSynthesizer

logger = structlog.get_logger()

MIN_SESSIONS_FOR_PATTERNS = 5
CACHE_REFRESH_THRESHOLD = 3
MAX_PATTERNS_IN_PROMPT = 3


@dataclass
class DerivedUpdate:
    detector: PatternDetector
    observations: list[ThemeObservation] = field(default_factory=list)
    session_count: int | None = None
    style: StyleAnalysis | None = None
    usage: dict[str, float] | None = None
    now: datetime = field(default_factory=datetime.now)

    @property
    def empty(self) -> bool:
        return not self.observations and self.session_count is None and self.style is None and self.usage is None

    def apply(self, profile: Profile) -> bool:
        prefs = profile.coaching_preferences
        before = prefs.model_dump()

        if self.session_count is not None:
            prefs.session_count = max(prefs.session_count, self.session_count)
        if self.observations or prefs.inferred_patterns:
            prefs.inferred_patterns = self.detector.detect(
                self.observations,
                prefs.inferred_patterns,
                set(prefs.dismissed_insights.insight_ids),
                self.now,
            )
        if self.style is not None:
            self.style.apply_to(prefs, prefs.session_count)
        if self.usage is not None:
            prefs.domain_usage_stats = DomainUsageStats(domains=self.usage, last_calculated=self.now)

        changed = prefs.model_dump() != before
        if changed:
            profile.touch()
        return changed


class PatternStyleEngine:
    def __init__(
        self,
        observations: ObservationStore,
        signals: LearningSignalStore,
        cache: PatternCache,
        detector: PatternDetector | None = None,
        synthesizer: CrossDomainSynthesizer | None = None,
        analyzer: StyleAnalyzer | None = None,
        min_sessions_for_patterns: int = MIN_SESSIONS_FOR_PATTERNS,
        summary_refresh_sessions: int = CACHE_REFRESH_THRESHOLD,
        max_patterns_in_prompt: int = MAX_PATTERNS_IN_PROMPT,
    ):
        self.observations = observations
        self.signals = signals
        self.cache = cache
        self.detector = detector or PatternDetector()
        self.synthesizer = synthesizer or CrossDomainSynthesizer(self.detector, cache)
        self.analyzer = analyzer or StyleAnalyzer()
        self.min_sessions_for_patterns = min_sessions_for_patterns
        self.summary_refresh_sessions = summary_refresh_sessions
        self.max_patterns_in_prompt = max_patterns_in_prompt

    def record_observations(
        self, user_id: str, insights: list[ExtractedInsight], domain: str | None = None
    ) -> int:
        observations = [
            ThemeObservation(
                theme=i.content,
                conversation_id=i.source_conversation_id or "",
                confidence=i.confidence,
                domain=domain,
            )
            for i in insights
        ]
        if not observations:
            return 0
        recorded = self.observations.record(user_id, observations)
        horizon = self.detector.horizon_days
        if horizon:
            pruned = self.observations.prune(user_id, datetime.now() - timedelta(days=horizon))
            if pruned:
                logger.debug("patterns.observations_pruned", user_id=user_id, count=pruned)
        return recorded

    def derive(self, user_id: str, profile: Profile) -> DerivedUpdate:
        """Compute derived fields from a profile snapshot. Failing steps are skipped."""
        update = DerivedUpdate(detector=self.detector)

        try:
            update.observations = self.observations.fetch(user_id)
        except Exception as e:
            logger.warning("patterns.observations_failed", user_id=user_id, error=str(e))

        sessions: list[SessionMetrics] = []
        try:
            update.session_count = self.signals.session_count(user_id)
            sessions = self.signals.recent_sessions(user_id, limit=self.analyzer.max_sessions)
        except Exception as e:
            logger.warning("patterns.signals_failed", user_id=user_id, error=str(e))

        prefs = profile.coaching_preferences.model_copy(deep=True)
        if update.session_count is not None:
            prefs.session_count = max(prefs.session_count, update.session_count)
        if sessions and should_refresh_style_analysis(prefs):
            try:
                update.style = self.analyzer.analyze(sessions)
                update.usage = domain_usage(sessions)
            except Exception as e:
                logger.warning("patterns.style_failed", user_id=user_id, error=str(e))

        logger.info(
            "patterns.derived",
            user_id=user_id,
            observations=len(update.observations),
            style=update.style.label if update.style else None,
        )
        return update

    def pattern_summaries(self, user_id: str, profile: Profile) -> list[PatternSummary]:
        """Top recurring patterns for the prompt, cached until enough new sessions."""
        prefs = profile.coaching_preferences
        session_count = prefs.session_count
        if session_count < self.min_sessions_for_patterns:
            return []

        try:
            cached = self.cache.get_summaries(user_id)
            if cached is not None and session_count - cached[1] < self.summary_refresh_sessions:
                return cached[0]
            engagement = self.signals.engagement_by_theme(user_id)
        except Exception as e:
            logger.warning("patterns.summary_failed", user_id=user_id, error=str(e))
            return []

        now = datetime.now()
        eligible = [
            p
            for p in prefs.inferred_patterns
            if p.source_count >= self.detector.min_source_count
            and decayed_confidence(p, now, self.detector.half_life_days) >= self.detector.confidence_threshold
        ]
        ranked = sorted(
            eligible,
            key=lambda p: (
                p.source_count,
                engagement.get(p.pattern_text, 0),
                p.last_observed or datetime.min,
            ),
            reverse=True,
        )
        summaries = [
            PatternSummary(
                theme=p.pattern_text,
                occurrence_count=p.source_count,
                domains=list(p.domains),
                confidence=p.confidence,
                synthesis=p.pattern_text,
                last_seen_at=p.last_observed,
                engagement_count=engagement.get(p.pattern_text, 0),
            )
            for p in ranked[: self.max_patterns_in_prompt]
        ]

        try:
            self.cache.set_summaries(user_id, summaries, session_count)
        except Exception as e:
            logger.warning("patterns.summary_cache_failed", user_id=user_id, error=str(e))
        return summaries

    def cross_domain(self, user_id: str, session_count: int, surface: bool = True) -> list[CrossDomainPattern]:
        """Rate-limited cross-domain syntheses. Surfacing is recorded when ``surface``."""
        try:
            clusters = self.detector.cluster(self.observations.fetch(user_id))
            patterns = self.synthesizer.synthesize(user_id, clusters)
            allowed = self.synthesizer.surfaceable(user_id, patterns, session_count)
            if surface:
                for p in allowed:
                    self.synthesizer.mark_surfaced(user_id, p.theme, session_count)
        except Exception as e:
            logger.warning("patterns.synthesis_failed", user_id=user_id, error=str(e))
            return []
        return allowed

    def delete_user(self, user_id: str) -> None:
        self.observations.delete_user(user_id)
        self.cache.delete_user(user_id)
