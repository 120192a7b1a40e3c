"""Context: the optimistic facade over the profile store, and the engine that drives it."""

from .engine import ContextEngine
from .errors import ContextError, ContextErrorKind
from .repository import ContextRepository
from .state import EditorState
from .targets import DiscoveryTarget, EditTarget, GoalTarget, SituationTarget, ValueTarget

__all__ = [
    "ContextEngine",
    "ContextError",
    "ContextErrorKind",
    "ContextRepository",
    "DiscoveryTarget",
    "EditTarget",
    "EditorState",
    "GoalTarget",
    "SituationTarget",
    "ValueTarget",
]
