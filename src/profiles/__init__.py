"""Durable per-user context profile: pydantic models + versioned SQLite store."""

from .models import (
    CoachingPreferences,
    CoachingStyleInfo,
    ContextGoal,
    ContextSituation,
    ContextValue,
    DiscoveryProfileData,
    DismissedInsights,
    DomainUsageStats,
    InferredPattern,
    ManualOverrides,
    Profile,
    ProgressNote,
    StyleDimensions,
)
from .store import (
    ProfileConflictError,
    ProfileNotFoundError,
    ProfileStore,
    ProfileStoreError,
    StorageUnavailableError,
)

__all__ = [
    "CoachingPreferences",
    "CoachingStyleInfo",
    "ContextGoal",
    "ContextSituation",
    "ContextValue",
    "DiscoveryProfileData",
    "DismissedInsights",
    "DomainUsageStats",
    "InferredPattern",
    "ManualOverrides",
    "Profile",
    "ProgressNote",
    "StyleDimensions",
    "ProfileStore",
    "ProfileStoreError",
    "ProfileNotFoundError",
    "ProfileConflictError",
    "StorageUnavailableError",
]
