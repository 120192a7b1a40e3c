"""Cross-session pattern detection from theme observations."""

import math
from dataclasses import dataclass, field
from datetime import datetime

import structlog

from insights.dedup import is_duplicate, similarity
from insights.models import insight_id
from profiles.models import InferredPattern
from shared_types import InsightCategory

from .observations import ThemeObservation

logger = structlog.get_logger()


@dataclass
class ThemeCluster:
    """Observations judged to describe the same theme. The earliest one names it."""

    theme: str
    observations: list[ThemeObservation] = field(default_factory=list)

    @property
    def conversations(self) -> set[str]:
        return {o.conversation_id for o in self.observations}

    @property
    def domains(self) -> list[str]:
        return sorted({o.domain for o in self.observations if o.domain})

    @property
    def mean_confidence(self) -> float:
        if not self.observations:
            return 0.0
        return sum(o.confidence for o in self.observations) / len(self.observations)

    @property
    def last_observed(self) -> datetime | None:
        return max((o.observed_at for o in self.observations), default=None)

    def matches(self, theme: str, threshold: float) -> bool:
        if is_duplicate(theme, self.theme):
            return True
        return any(similarity(theme, o.theme) >= threshold for o in self.observations)


def decayed_confidence(
    pattern: InferredPattern, now: datetime | None = None, half_life_days: float = 45.0
) -> float:
    """Stored confidence halved for every half-life since the pattern was last seen."""
    if pattern.last_observed is None:
        return pattern.confidence
    now = now or datetime.now()
    age_days = max(0.0, (now - pattern.last_observed).total_seconds() / 86400)
    return pattern.confidence * 0.5 ** (age_days / half_life_days)


class PatternDetector:
    """Clusters observations and promotes recurring clusters to inferred patterns."""

    def __init__(
        self,
        min_source_count: int = 3,
        confidence_threshold: float = 0.7,
        similarity_threshold: float = 0.5,
        session_bonus: float = 0.05,
        half_life_days: float = 45.0,
        decay_floor: float = 0.5,
    ):
        self.min_source_count = min_source_count
        self.confidence_threshold = confidence_threshold
        self.similarity_threshold = similarity_threshold
        self.session_bonus = session_bonus
        self.half_life_days = half_life_days
        self.decay_floor = decay_floor

    @property
    def horizon_days(self) -> float | None:
        """Age past which even a full-confidence sighting has decayed below the floor."""
        if self.decay_floor <= 0:
            return None
        return self.half_life_days * math.log2(1.0 / self.decay_floor)

    def cluster(self, observations: list[ThemeObservation]) -> list[ThemeCluster]:
        clusters: list[ThemeCluster] = []
        for obs in sorted(observations, key=lambda o: o.observed_at):
            target = next(
                (c for c in clusters if c.matches(obs.theme, self.similarity_threshold)), None
            )
            if target is None:
                target = ThemeCluster(theme=obs.theme)
                clusters.append(target)
            target.observations.append(obs)
        return clusters

    def cluster_confidence(self, cluster: ThemeCluster) -> float:
        extra_sessions = max(0, len(cluster.conversations) - self.min_source_count)
        return round(min(1.0, cluster.mean_confidence + self.session_bonus * extra_sessions), 3)

    def qualifying(self, clusters: list[ThemeCluster]) -> list[ThemeCluster]:
        return [
            c
            for c in clusters
            if len(c.conversations) >= self.min_source_count
            and self.cluster_confidence(c) >= self.confidence_threshold
        ]

    def detect(
        self,
        observations: list[ThemeObservation],
        existing: list[InferredPattern],
        dismissed_ids: set[str] | None = None,
        now: datetime | None = None,
    ) -> list[InferredPattern]:
        """Merge freshly detected patterns into the existing list, then decay.

        Returns a new list; ``existing`` is not modified.
        """
        dismissed_ids = dismissed_ids or set()
        now = now or datetime.now()
        merged = [p.model_copy(deep=True) for p in existing if p.id not in dismissed_ids]

        for cluster in self.qualifying(self.cluster(observations)):
            pid = insight_id(InsightCategory.PATTERN, cluster.theme)
            if pid in dismissed_ids:
                continue
            confidence = self.cluster_confidence(cluster)
            match = next(
                (p for p in merged if p.id == pid or is_duplicate(cluster.theme, p.pattern_text)),
                None,
            )
            if match is None:
                merged.append(
                    InferredPattern(
                        id=pid,
                        pattern_text=cluster.theme,
                        confidence=confidence,
                        source_count=len(cluster.conversations),
                        domains=cluster.domains,
                        last_observed=cluster.last_observed,
                    )
                )
                logger.info("patterns.detected", pattern_id=pid, sources=len(cluster.conversations))
                continue

            match.source_count = max(match.source_count, len(cluster.conversations))
            match.domains = sorted(set(match.domains) | set(cluster.domains))
            if match.last_observed is None or (
                cluster.last_observed and cluster.last_observed >= match.last_observed
            ):
                match.confidence = confidence
                match.last_observed = cluster.last_observed

        kept = []
        for p in merged:
            current = decayed_confidence(p, now, self.half_life_days)
            if current < self.decay_floor:
                logger.info("patterns.decayed", pattern_id=p.id, confidence=round(current, 3))
                continue
            kept.append(p)
        return sorted(kept, key=lambda p: p.confidence, reverse=True)
