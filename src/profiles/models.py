"""Profile models: the durable aggregate of what the coach knows about one user."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from shared_types import ContextSource, DiscoveryFieldKey, GoalStatus, SituationField


def new_id() -> str:
    return uuid.uuid4().hex[:16]


class ContextValue(BaseModel):
    id: str = Field(default_factory=new_id)
    content: str
    source: ContextSource = ContextSource.USER
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    added_at: datetime = Field(default_factory=datetime.now)


class ContextGoal(BaseModel):
    id: str = Field(default_factory=new_id)
    content: str
    domain: Optional[str] = None
    source: ContextSource = ContextSource.USER
    status: GoalStatus = GoalStatus.ACTIVE
    added_at: datetime = Field(default_factory=datetime.now)


class ContextSituation(BaseModel):
    life_stage: Optional[str] = None
    occupation: Optional[str] = None
    relationships: Optional[str] = None
    challenges: Optional[str] = None
    freeform: Optional[str] = None

    def get(self, field: SituationField) -> Optional[str]:
        return getattr(self, field.value)

    def set(self, field: SituationField, value: Optional[str]) -> None:
        setattr(self, field.value, value)

    def filled(self) -> dict[str, str]:
        """Non-blank fields keyed by name."""
        return {
            f.value: v
            for f in SituationField
            if (v := self.get(f)) is not None and v.strip()
        }

    @property
    def has_content(self) -> bool:
        return bool(self.filled())

    @property
    def summary(self) -> Optional[str]:
        return self.occupation or self.life_stage or self.relationships or self.challenges or self.freeform


class StyleDimensions(BaseModel):
    """Four-axis style spectrum, each 0.0-1.0 with 0.5 as balanced."""

    direct_vs_exploratory: float = Field(default=0.5, ge=0.0, le=1.0)
    brief_vs_detailed: float = Field(default=0.5, ge=0.0, le=1.0)
    action_vs_reflective: float = Field(default=0.5, ge=0.0, le=1.0)
    challenging_vs_supportive: float = Field(default=0.5, ge=0.0, le=1.0)
    playful_humor: bool = False
    concrete_examples: bool = False


class InferredPattern(BaseModel):
    id: str = Field(default_factory=new_id)
    pattern_text: str
    category: str = "pattern"
    confidence: float = Field(ge=0.0, le=1.0)
    source_count: int = 1
    domains: list[str] = Field(default_factory=list)
    last_observed: Optional[datetime] = None


class CoachingStyleInfo(BaseModel):
    inferred_style: Optional[str] = None
    confidence: Optional[float] = None
    last_inferred: Optional[datetime] = None


class ManualOverrides(BaseModel):
    style: Optional[str] = None
    set_at: Optional[datetime] = None


class DomainUsageStats(BaseModel):
    domains: dict[str, float] = Field(default_factory=dict)
    last_calculated: Optional[datetime] = None


class ProgressNote(BaseModel):
    id: str = Field(default_factory=new_id)
    goal: str
    progress_text: str
    last_updated: Optional[datetime] = None


class DismissedInsights(BaseModel):
    insight_ids: list[str] = Field(default_factory=list)
    last_dismissed: Optional[datetime] = None


class CoachingPreferences(BaseModel):
    """Derived coaching preferences. Inference writes here; users only set the override."""

    preferred_style: Optional[str] = None
    style_dimensions: Optional[StyleDimensions] = None
    domain_styles: dict[str, StyleDimensions] = Field(default_factory=dict)
    session_count: int = 0
    session_count_at_style_analysis: int = 0
    last_style_analysis_at: Optional[datetime] = None
    # Legacy single-string override, still read by older consumers
    manual_override: Optional[str] = None
    manual_overrides: Optional[ManualOverrides] = None
    inferred_patterns: list[InferredPattern] = Field(default_factory=list)
    coaching_style: CoachingStyleInfo = Field(default_factory=CoachingStyleInfo)
    domain_usage_stats: DomainUsageStats = Field(default_factory=DomainUsageStats)
    progress_notes: list[ProgressNote] = Field(default_factory=list)
    dismissed_insights: DismissedInsights = Field(default_factory=DismissedInsights)

    @property
    def manual_style(self) -> Optional[str]:
        if self.manual_overrides and self.manual_overrides.style:
            return self.manual_overrides.style
        return self.manual_override

    @property
    def effective_coaching_style(self) -> Optional[str]:
        """Manual override wins; otherwise whatever was last inferred."""
        return self.manual_style or self.coaching_style.inferred_style

    def set_manual_override(self, style: str, at: Optional[datetime] = None) -> None:
        # Both fields are always written together
        self.manual_overrides = ManualOverrides(style=style, set_at=at or datetime.now())
        self.manual_override = style

    def clear_manual_override(self) -> None:
        self.manual_overrides = None
        self.manual_override = None

    def is_dismissed(self, insight_id: str) -> bool:
        return insight_id in self.dismissed_insights.insight_ids

    def record_dismissal(self, insight_id: str, at: Optional[datetime] = None) -> None:
        if insight_id not in self.dismissed_insights.insight_ids:
            self.dismissed_insights.insight_ids.append(insight_id)
        self.dismissed_insights.last_dismissed = at or datetime.now()


class Profile(BaseModel):
    """One user's context profile, persisted as a single versioned document."""

    user_id: str
    version: int = 0
    values: list[ContextValue] = Field(default_factory=list)
    goals: list[ContextGoal] = Field(default_factory=list)
    situation: ContextSituation = Field(default_factory=ContextSituation)

    # Discovery session fields
    aha_insight: Optional[str] = None
    vision: Optional[str] = None
    communication_style: Optional[str] = None
    emotional_baseline: Optional[str] = None
    coaching_domains: list[str] = Field(default_factory=list)
    current_challenges: list[str] = Field(default_factory=list)
    key_themes: list[str] = Field(default_factory=list)
    strengths_identified: list[str] = Field(default_factory=list)
    discovery_completed_at: Optional[datetime] = None

    coaching_preferences: CoachingPreferences = Field(default_factory=CoachingPreferences)
    confirmed_insight_ids: list[str] = Field(default_factory=list)
    first_session_complete: bool = False
    prompt_dismissed_count: int = 0
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @classmethod
    def empty(cls, user_id: str) -> "Profile":
        return cls(user_id=user_id)

    # -- queries --

    @property
    def has_context(self) -> bool:
        return bool(self.values or self.goals or self.situation.has_content)

    @property
    def active_goals(self) -> list[ContextGoal]:
        return [g for g in self.goals if g.status == GoalStatus.ACTIVE]

    @property
    def has_discovery_data(self) -> bool:
        return self.discovery_completed_at is not None and any(
            [
                self.aha_insight,
                self.vision,
                self.communication_style,
                self.emotional_baseline,
                self.coaching_domains,
                self.key_themes,
                self.strengths_identified,
                self.current_challenges,
            ]
        )

    def find_value(self, value_id: str) -> Optional[ContextValue]:
        return next((v for v in self.values if v.id == value_id), None)

    def find_goal(self, goal_id: str) -> Optional[ContextGoal]:
        return next((g for g in self.goals if g.id == goal_id), None)

    def get_discovery_field(self, key: DiscoveryFieldKey) -> Optional[str]:
        return getattr(self, key.value)

    def known_texts(self) -> list[str]:
        """Every piece of free text already recorded, for dedup."""
        texts = [v.content for v in self.values]
        texts.extend(g.content for g in self.goals)
        texts.extend(self.situation.filled().values())
        texts.extend(t for k in DiscoveryFieldKey if (t := self.get_discovery_field(k)))
        texts.extend(p.pattern_text for p in self.coaching_preferences.inferred_patterns)
        return texts

    # -- mutation helpers --

    def touch(self) -> None:
        self.updated_at = datetime.now()

    def add_value(self, value: ContextValue) -> None:
        self.values.append(value)
        self.touch()

    def add_goal(self, goal: ContextGoal) -> None:
        self.goals.append(goal)
        self.touch()

    def remove_value(self, value_id: str) -> None:
        self.values = [v for v in self.values if v.id != value_id]
        self.touch()

    def remove_goal(self, goal_id: str) -> None:
        self.goals = [g for g in self.goals if g.id != goal_id]
        self.touch()

    def set_discovery_field(self, key: DiscoveryFieldKey, content: Optional[str]) -> None:
        setattr(self, key.value, content)
        self.touch()

    def summary(self) -> str:
        """One-paragraph profile summary for LLM context."""
        parts = []
        if self.values:
            parts.append("Values: " + ", ".join(v.content for v in self.values[:8]))
        if self.active_goals:
            parts.append("Goals: " + ", ".join(g.content for g in self.active_goals[:6]))
        situation = self.situation.filled()
        if situation:
            parts.append(
                "Situation: " + "; ".join(f"{k.replace('_', ' ')}: {v}" for k, v in situation.items())
            )
        if self.vision:
            parts.append(f"Vision: {self.vision[:200]}")
        if self.aha_insight:
            parts.append(f"Key insight: {self.aha_insight[:200]}")
        if self.communication_style:
            parts.append(f"Communication: {self.communication_style[:120]}")
        if self.emotional_baseline:
            parts.append(f"Emotional baseline: {self.emotional_baseline[:120]}")
        style = self.coaching_preferences.effective_coaching_style
        if style:
            parts.append(f"Coaching style: {style}")
        return " | ".join(parts)


class DiscoveryProfileData(BaseModel):
    """Output of the discovery session, applied to a profile in one write."""

    aha_insight: Optional[str] = None
    vision: Optional[str] = None
    communication_style: Optional[str] = None
    emotional_baseline: Optional[str] = None
    coaching_domains: list[str] = Field(default_factory=list)
    current_challenges: list[str] = Field(default_factory=list)
    key_themes: list[str] = Field(default_factory=list)
    strengths_identified: list[str] = Field(default_factory=list)

    def apply_to(self, profile: Profile, at: Optional[datetime] = None) -> None:
        profile.aha_insight = self.aha_insight
        profile.vision = self.vision
        profile.communication_style = self.communication_style
        profile.emotional_baseline = self.emotional_baseline
        profile.coaching_domains = list(self.coaching_domains)
        profile.current_challenges = list(self.current_challenges)
        profile.key_themes = list(self.key_themes)
        profile.strengths_identified = list(self.strengths_identified)
        profile.discovery_completed_at = at or datetime.now()
        profile.touch()
