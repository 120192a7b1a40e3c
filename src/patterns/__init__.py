"""Patterns: cross-session pattern detection, cross-domain synthesis and style inference."""

from .detector import PatternDetector, ThemeCluster, decayed_confidence
from .engine import DerivedUpdate, PatternStyleEngine
from .models import CrossDomainPattern, DomainEvidence, PatternSummary
from .observations import ObservationStore, ThemeObservation

__all__ = [
    "CrossDomainPattern",
    "DerivedUpdate",
    "DomainEvidence",
    "ObservationStore",
    "PatternDetector",
    "PatternStyleEngine",
    "PatternSummary",
    "ThemeCluster",
    "ThemeObservation",
    "decayed_confidence",
]
