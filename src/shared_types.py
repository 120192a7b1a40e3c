"""Shared enums and types for the context engine."""

from enum import StrEnum


class ContextSource(StrEnum):
    USER = "user"
    EXTRACTED = "extracted"


class GoalStatus(StrEnum):
    ACTIVE = "active"
    ACHIEVED = "achieved"
    ARCHIVED = "archived"


class InsightCategory(StrEnum):
    VALUE = "value"
    GOAL = "goal"
    SITUATION = "situation"
    PATTERN = "pattern"


class SignalType(StrEnum):
    INSIGHT_CONFIRMED = "insight_confirmed"
    INSIGHT_DISMISSED = "insight_dismissed"
    PATTERN_DISMISSED = "pattern_dismissed"
    PATTERN_ENGAGED = "pattern_engaged"
    SESSION_COMPLETED = "session_completed"


class DiscoveryFieldKey(StrEnum):
    AHA_INSIGHT = "aha_insight"
    VISION = "vision"
    COMMUNICATION_STYLE = "communication_style"
    EMOTIONAL_BASELINE = "emotional_baseline"


class SituationField(StrEnum):
    LIFE_STAGE = "life_stage"
    OCCUPATION = "occupation"
    RELATIONSHIPS = "relationships"
    CHALLENGES = "challenges"
    FREEFORM = "freeform"
