"""Data models for extracted insights and the conversation turns they come from."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from shared_types import InsightCategory

from .dedup import normalize

# Fixed namespace so the same content always maps to the same insight id
_INSIGHT_NAMESPACE = uuid.UUID("6f1c2a4e-8b1d-4f43-9a57-2c0e3d5b7a91")


def insight_id(category: InsightCategory | str, content: str) -> str:
    """Content-derived id: stable across re-extraction of the same text."""
    key = f"{InsightCategory(category).value}:{normalize(content)}"
    return uuid.uuid5(_INSIGHT_NAMESPACE, key).hex[:16]


@dataclass(frozen=True)
class Turn:
    role: str  # user | assistant
    content: str

    @property
    def is_assistant(self) -> bool:
        return self.role == "assistant"


@dataclass(frozen=True)
class ExtractedInsight:
    id: str
    content: str
    category: InsightCategory
    confidence: float
    source_conversation_id: str | None = None
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def create(
        cls,
        content: str,
        category: InsightCategory | str,
        confidence: float,
        source_conversation_id: str | None = None,
    ) -> "ExtractedInsight":
        category = InsightCategory(category)
        content = content.strip()
        return cls(
            id=insight_id(category, content),
            content=content,
            category=category,
            confidence=max(0.0, min(1.0, float(confidence))),
            source_conversation_id=source_conversation_id,
        )
