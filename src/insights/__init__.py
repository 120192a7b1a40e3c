"""Insights: extraction of candidate context from conversations and the confirm/dismiss lifecycle."""

from .errors import ExtractionUnavailableError, InsightValidationError
from .models import ExtractedInsight, Turn, insight_id
from .pending import PendingInsightStore

__all__ = [
    "ExtractedInsight",
    "ExtractionUnavailableError",
    "InsightValidationError",
    "PendingInsightStore",
    "Turn",
    "insight_id",
]
