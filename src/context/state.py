"""Immutable editor state for the profile editing surface."""

from dataclasses import dataclass, replace

from profiles.models import Profile

from .errors import ContextError
from .targets import EditTarget


@dataclass(frozen=True)
class EditorState:
    user_id: str
    profile: Profile | None = None
    pending_delete: EditTarget | None = None
    is_saving: bool = False
    error: ContextError | None = None

    def evolve(self, **changes) -> "EditorState":
        return replace(self, **changes)

    @property
    def is_confirming_delete(self) -> bool:
        return self.pending_delete is not None
