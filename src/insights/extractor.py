"""LLM-powered insight extraction from conversation turns."""

import json
from collections.abc import Iterable, Sequence

import structlog

from cli.retry import llm_retry
from llm.base import LLMRateLimitError
from profiles.models import Profile
from shared_types import InsightCategory

from .dedup import find_duplicate
from .errors import ExtractionUnavailableError
from .models import ExtractedInsight, Turn

logger = structlog.get_logger()

_EXTRACTION_SYSTEM = """You are a context extraction assistant for a personal coaching app.

Analyze the conversation and identify:
1. VALUES: things the user considers important (honesty, family, growth, creativity, independence)
2. GOALS: things the user is working toward (career change, better health, learning a skill)
3. SITUATION: life circumstances mentioned (parent, student, career stage, location, relationship status)
4. PATTERNS: recurring tendencies the user describes in themselves (avoids conflict, overcommits at work)

Rules:
- Only extract CLEAR, EXPLICIT mentions. Do not infer or assume.
- Each insight is a brief factual phrase, under 50 characters when possible.
- Assign a confidence score (0.0-1.0) based on how explicit the mention was.
- Only include insights with confidence >= {confidence_floor}.
- Extract at most {max_insights} insights. Prioritize higher confidence.
- Output ONLY JSON. No preamble, no markdown fences.

Response format:
{{
  "insights": [
    {{"content": "values honesty", "category": "value", "confidence": 0.85}},
    {{"content": "working toward career change", "category": "goal", "confidence": 0.9}},
    {{"content": "parent of two children", "category": "situation", "confidence": 0.95}}
  ]
}}

If nothing clear is found, output: {{"insights": []}}"""

_USER_PROMPT = (
    "Analyze this conversation and extract any context about the user's values, "
    "goals, life situation, or recurring patterns:\n\n{conversation}"
)

VALID_CATEGORIES = {c.value for c in InsightCategory}


class InsightExtractor:
    """Turns a bounded window of conversation into candidate insights.

    Read-only with respect to the profile: it only uses the snapshot it is
    handed to filter out duplicates and previously dismissed insights.
    """

    def __init__(
        self,
        provider=None,
        confidence_floor: float = 0.7,
        max_insights: int = 5,
        max_window_turns: int = 20,
        max_chars: int = 6000,
    ):
        self._provider = provider
        self.confidence_floor = confidence_floor
        self.max_insights = max_insights
        self.max_window_turns = max_window_turns
        self.max_chars = max_chars

    def _get_provider(self):
        if self._provider:
            return self._provider
        from llm.factory import create_cheap_provider

        self._provider = create_cheap_provider()
        return self._provider

    def format_window(self, turns: Sequence[Turn]) -> str:
        """Render the most recent turns, newest kept when over the char budget."""
        window = [t for t in turns if t.content.strip()][-self.max_window_turns :]
        lines = [f"{'Coach' if t.is_assistant else 'User'}: {t.content.strip()}" for t in window]
        text = "\n".join(lines)
        if len(text) > self.max_chars:
            text = text[-self.max_chars :]
        return text

    def extract(
        self,
        conversation_id: str,
        turns: Sequence[Turn],
        profile: Profile | None = None,
        pending: Iterable[ExtractedInsight] = (),
        suppressed_texts: Iterable[str] = (),
    ) -> list[ExtractedInsight]:
        """Extract new, non-duplicate insights from the given turns.

        Raises ExtractionUnavailableError when the model call fails or returns
        something unusable.
        """
        return self.select(self.analyze(conversation_id, turns), profile, pending, suppressed_texts)

    def analyze(self, conversation_id: str, turns: Sequence[Turn]) -> list[ExtractedInsight]:
        """Raw candidates above the confidence floor, before any dedup."""
        conversation = self.format_window(turns)
        if len(conversation.strip()) < 20:
            return []

        system = _EXTRACTION_SYSTEM.format(
            confidence_floor=self.confidence_floor, max_insights=self.max_insights
        )
        try:
            response = self._generate(system, _USER_PROMPT.format(conversation=conversation))
        except Exception as e:
            logger.warning("insights.extraction_failed", conversation_id=conversation_id, error=str(e))
            raise ExtractionUnavailableError(str(e)) from e

        return self._parse_response(response, conversation_id)

    @llm_retry(max_attempts=2, exceptions=(LLMRateLimitError,))
    def _generate(self, system: str, prompt: str) -> str:
        return self._get_provider().generate(
            messages=[{"role": "user", "content": prompt}],
            system=system,
            max_tokens=800,
        )

    def _parse_response(self, response: str | None, conversation_id: str) -> list[ExtractedInsight]:
        text = (response or "").strip()
        if not text:
            return []
        # Strip markdown fences if present
        if text.startswith("```"):
            text = text.split("\n", 1)[-1]
        if text.endswith("```"):
            text = text.rsplit("```", 1)[0]
        text = text.strip()

        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning("insights.parse_failed", response=text[:200])
            raise ExtractionUnavailableError("Unparsable extraction response") from e

        items = parsed.get("insights", []) if isinstance(parsed, dict) else parsed
        if not isinstance(items, list):
            raise ExtractionUnavailableError("Extraction response has no insight list")

        insights = []
        for item in items:
            if not isinstance(item, dict):
                continue
            content = str(item.get("content", "")).strip()
            category = str(item.get("category", "")).strip().lower()
            confidence = item.get("confidence", 0.0)

            if not content or category not in VALID_CATEGORIES:
                continue
            if not isinstance(confidence, (int, float)) or confidence < self.confidence_floor:
                continue

            insights.append(
                ExtractedInsight.create(content, category, confidence, conversation_id)
            )
        return insights

    def select(
        self,
        candidates: list[ExtractedInsight],
        profile: Profile | None = None,
        pending: Iterable[ExtractedInsight] = (),
        suppressed_texts: Iterable[str] = (),
    ) -> list[ExtractedInsight]:
        """Drop suppressed, duplicate and surplus candidates."""
        pending = list(pending)
        suppressed_texts = list(suppressed_texts)
        known = profile.known_texts() if profile else []
        dismissed = set(profile.coaching_preferences.dismissed_insights.insight_ids) if profile else set()
        confirmed = set(profile.confirmed_insight_ids) if profile else set()
        pending_ids = {p.id for p in pending}
        pending_texts = [p.content for p in pending]

        accepted: list[ExtractedInsight] = []
        # Highest confidence first so the cap keeps the strongest
        for insight in sorted(candidates, key=lambda i: i.confidence, reverse=True):
            if insight.id in dismissed or insight.id in confirmed:
                logger.debug("insights.suppressed", insight_id=insight.id)
                continue
            if insight.id in pending_ids:
                continue
            reason = None
            if find_duplicate(insight.content, known):
                reason = "profile"
            elif find_duplicate(insight.content, pending_texts):
                reason = "pending"
            elif find_duplicate(insight.content, suppressed_texts):
                reason = "dismissed"
            elif find_duplicate(insight.content, (a.content for a in accepted)):
                reason = "batch"
            if reason:
                logger.debug("insights.duplicate", content=insight.content, against=reason)
                continue
            accepted.append(insight)
            if len(accepted) >= self.max_insights:
                break

        return accepted
