"""Insight-layer errors."""


class InsightError(Exception):
    """Base insight error."""


class ExtractionUnavailableError(InsightError):
    """Analysis could not run this tick (LLM failure or unusable response).

    The pipeline swallows this and keeps the turns buffered for the next cycle.
    """


class InsightValidationError(InsightError):
    """Insight content rejected before it reaches the store."""
