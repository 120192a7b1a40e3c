"""Coaching-style inference from session engagement, and prompt-ready style instructions.

Four spectra, each 0.0-1.0:
  direct_vs_exploratory      0 = exploratory, 1 = direct
  brief_vs_detailed          0 = detailed,    1 = brief
  action_vs_reflective       0 = reflective,  1 = action
  challenging_vs_supportive  0 = supportive,  1 = challenging

A manual override always wins over anything inferred here.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime

from profiles.models import CoachingPreferences, StyleDimensions
from signals.store import SessionMetrics

MIN_SESSIONS_FOR_STYLE = 5
MIN_DOMAIN_SESSIONS = 3
STRONG_PREFERENCE_HIGH = 0.65
STRONG_PREFERENCE_LOW = 0.35
ANALYSIS_REFRESH_INTERVAL = 5
MAX_SESSIONS_TO_ANALYZE = 10
# Inference never claims more certainty than an explicit choice
MAX_INFERRED_CONFIDENCE = 0.6

_SUPPORTIVE = StyleDimensions(
    direct_vs_exploratory=0.4,
    brief_vs_detailed=0.45,
    action_vs_reflective=0.4,
    challenging_vs_supportive=0.15,
)
_PLAYFUL = StyleDimensions(
    direct_vs_exploratory=0.58,
    brief_vs_detailed=0.58,
    action_vs_reflective=0.62,
    challenging_vs_supportive=0.22,
    playful_humor=True,
    concrete_examples=True,
)

MANUAL_STYLE_PRESETS: dict[str, StyleDimensions] = {
    "balanced": StyleDimensions(),
    "direct": StyleDimensions(
        direct_vs_exploratory=0.85,
        brief_vs_detailed=0.65,
        action_vs_reflective=0.8,
        challenging_vs_supportive=0.6,
    ),
    "compassionate": _SUPPORTIVE,
    "supportive": _SUPPORTIVE,
    "challenging": StyleDimensions(
        direct_vs_exploratory=0.72,
        brief_vs_detailed=0.55,
        action_vs_reflective=0.78,
        challenging_vs_supportive=0.88,
    ),
    "exploratory": StyleDimensions(
        direct_vs_exploratory=0.2,
        brief_vs_detailed=0.35,
        action_vs_reflective=0.32,
        challenging_vs_supportive=0.3,
    ),
    "playful": _PLAYFUL,
    "humorous": _PLAYFUL,
    "human": StyleDimensions(
        direct_vs_exploratory=0.55,
        brief_vs_detailed=0.52,
        action_vs_reflective=0.58,
        challenging_vs_supportive=0.25,
        playful_humor=True,
        concrete_examples=True,
    ),
}


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def preset_for(style: str | None) -> StyleDimensions | None:
    if not style:
        return None
    return MANUAL_STYLE_PRESETS.get(style.strip().lower())


def compute_style_scores(sessions: list[SessionMetrics]) -> StyleDimensions:
    if not sessions:
        return StyleDimensions()

    lengths = [s.avg_message_length for s in sessions if s.avg_message_length > 0]
    brief = 0.5
    if lengths:
        mean_len = sum(lengths) / len(lengths)
        brief = _clamp(1 - (mean_len - 50) / 200)

    avg_count = sum(s.message_count for s in sessions) / len(sessions)
    avg_duration = sum(s.duration_seconds for s in sessions) / len(sessions)
    direct = 0.5
    if avg_duration > 0:
        per_minute = avg_count / (avg_duration / 60)
        direct = _clamp(0.3 + (per_minute - 0.5) * 0.25)

    action = _clamp(0.3 + (avg_count / 20) * 0.4)
    challenge = _clamp(0.3 + ((avg_duration / 60) / 30) * 0.4)

    return StyleDimensions(
        direct_vs_exploratory=round(direct, 2),
        brief_vs_detailed=round(brief, 2),
        action_vs_reflective=round(action, 2),
        challenging_vs_supportive=round(challenge, 2),
    )


def build_style_label(dims: StyleDimensions) -> str:
    labels = []
    for value, high, low in (
        (dims.direct_vs_exploratory, "direct", "exploratory"),
        (dims.action_vs_reflective, "action-oriented", "reflective"),
        (dims.challenging_vs_supportive, "challenging", "supportive"),
        (dims.brief_vs_detailed, "concise", "detailed"),
    ):
        if value > STRONG_PREFERENCE_HIGH:
            labels.append(high)
        elif value < STRONG_PREFERENCE_LOW:
            labels.append(low)
    if dims.playful_humor:
        labels.append("playful")
    return ", ".join(labels) if labels else "balanced"


def resolve_style_preferences(
    prefs: CoachingPreferences | None, domain: str | None = None
) -> StyleDimensions | None:
    """Style to coach with: manual preset, then domain style, then global.

    None means not enough evidence yet; coach balanced.
    """
    if prefs is None:
        return None
    preset = preset_for(prefs.manual_style)
    if preset is not None:
        return preset
    if prefs.session_count < MIN_SESSIONS_FOR_STYLE:
        return None
    if domain and domain in prefs.domain_styles:
        return prefs.domain_styles[domain]
    return prefs.style_dimensions


def format_style_instructions(dims: StyleDimensions | None) -> str:
    if dims is None:
        return ""

    instructions = []
    if dims.direct_vs_exploratory > STRONG_PREFERENCE_HIGH:
        instructions.append("Lead with concrete next steps rather than open-ended exploration.")
    elif dims.direct_vs_exploratory < STRONG_PREFERENCE_LOW:
        instructions.append("Use open-ended questions to help them discover their own insights.")

    if dims.brief_vs_detailed > STRONG_PREFERENCE_HIGH:
        instructions.append("Keep responses concise and focused.")
    elif dims.brief_vs_detailed < STRONG_PREFERENCE_LOW:
        instructions.append("Provide detailed explanations and thorough exploration of topics.")

    if dims.action_vs_reflective > STRONG_PREFERENCE_HIGH:
        instructions.append("Keep recommendations specific and actionable.")
    elif dims.action_vs_reflective < STRONG_PREFERENCE_LOW:
        instructions.append("Prioritize reflection and self-discovery over action items.")

    if dims.challenging_vs_supportive > STRONG_PREFERENCE_HIGH:
        instructions.append("Challenge assumptions and push for deeper thinking.")
    elif dims.challenging_vs_supportive < STRONG_PREFERENCE_LOW:
        instructions.append("Prioritize empathy and validation before suggesting actions.")

    if dims.playful_humor:
        instructions.append(
            "Use light, kind humor occasionally when it fits naturally. "
            "Never use sarcasm or humor about pain."
        )
        instructions.append(
            'Avoid therapy-style opener loops like repeatedly starting with "I hear you." '
            "Vary openings naturally."
        )
    if dims.concrete_examples:
        instructions.append("Use brief, relatable examples to make the coaching feel practical and human.")

    if not instructions:
        return ""
    return f"This user prefers {build_style_label(dims)} coaching.\n" + "\n".join(instructions)


def should_refresh_style_analysis(prefs: CoachingPreferences | None) -> bool:
    if prefs is None or prefs.last_style_analysis_at is None:
        return True
    return prefs.session_count - prefs.session_count_at_style_analysis >= ANALYSIS_REFRESH_INTERVAL


def domain_usage(sessions: list[SessionMetrics]) -> dict[str, float]:
    """Share of sessions per domain, as percentages summing to about 100."""
    counts: dict[str, int] = defaultdict(int)
    for s in sessions:
        counts[s.domain or "general"] += 1
    total = sum(counts.values())
    if not total:
        return {}
    return {d: round(100 * n / total, 1) for d, n in sorted(counts.items())}


@dataclass
class StyleAnalysis:
    dimensions: StyleDimensions
    label: str
    confidence: float
    domain_styles: dict[str, StyleDimensions] = field(default_factory=dict)
    analyzed_at: datetime = field(default_factory=datetime.now)

    def apply_to(self, prefs: CoachingPreferences, session_count: int) -> None:
        """Write inferred fields only; the manual override is never touched."""
        prefs.style_dimensions = self.dimensions
        prefs.domain_styles = dict(self.domain_styles)
        prefs.preferred_style = self.label
        prefs.last_style_analysis_at = self.analyzed_at
        prefs.session_count_at_style_analysis = session_count
        prefs.coaching_style.inferred_style = self.label
        prefs.coaching_style.confidence = self.confidence
        prefs.coaching_style.last_inferred = self.analyzed_at


class StyleAnalyzer:
    def __init__(
        self,
        min_sessions: int = MIN_SESSIONS_FOR_STYLE,
        min_domain_sessions: int = MIN_DOMAIN_SESSIONS,
        max_sessions: int = MAX_SESSIONS_TO_ANALYZE,
        max_confidence: float = MAX_INFERRED_CONFIDENCE,
    ):
        self.min_sessions = min_sessions
        self.min_domain_sessions = min_domain_sessions
        self.max_sessions = max_sessions
        self.max_confidence = max_confidence

    def analyze(self, sessions: list[SessionMetrics]) -> StyleAnalysis | None:
        """Infer style from the most recent sessions. None below the minimum."""
        recent = sessions[: self.max_sessions]
        if len(recent) < self.min_sessions:
            return None

        by_domain: dict[str, list[SessionMetrics]] = defaultdict(list)
        for s in recent:
            by_domain[s.domain or "general"].append(s)

        dims = compute_style_scores(recent)
        return StyleAnalysis(
            dimensions=dims,
            label=build_style_label(dims),
            confidence=round(min(self.max_confidence, 0.1 * len(recent)), 2),
            domain_styles={
                d: compute_style_scores(group)
                for d, group in by_domain.items()
                if len(group) >= self.min_domain_sessions
            },
        )
