"""Learning signals: best-effort behavioural side channel."""

from .sink import SignalSink
from .store import LearningSignal, LearningSignalAggregates, LearningSignalStore, SessionMetrics

__all__ = [
    "LearningSignal",
    "LearningSignalAggregates",
    "LearningSignalStore",
    "SessionMetrics",
    "SignalSink",
]
