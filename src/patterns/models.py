"""Pattern-layer value types."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class DomainEvidence:
    domain: str
    summary: str


@dataclass
class CrossDomainPattern:
    theme: str
    domains: list[str]
    confidence: float
    evidence: list[DomainEvidence] = field(default_factory=list)
    synthesis: str = ""


@dataclass
class PatternSummary:
    """Prompt-ready recurring pattern."""

    theme: str
    occurrence_count: int
    domains: list[str]
    confidence: float
    synthesis: str
    last_seen_at: datetime | None = None
    engagement_count: int = 0
