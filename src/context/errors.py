"""Caller-facing error type for the context repository."""

from enum import StrEnum


class ContextErrorKind(StrEnum):
    NOT_FOUND = "not_found"
    FETCH_FAILED = "fetch_failed"
    SAVE_FAILED = "save_failed"
    INSIGHT_DISMISS_FAILED = "insight_dismiss_failed"
    STYLE_OVERRIDE_FAILED = "style_override_failed"
    VALIDATION_FAILED = "validation_failed"


_MESSAGES = {
    ContextErrorKind.NOT_FOUND: "I don't have your context yet. Let's set that up.",
    ContextErrorKind.FETCH_FAILED: "I couldn't load your context.",
    ContextErrorKind.SAVE_FAILED: "I couldn't save your context.",
    ContextErrorKind.INSIGHT_DISMISS_FAILED: "I couldn't remove that insight.",
    ContextErrorKind.STYLE_OVERRIDE_FAILED: "I couldn't save your style preference.",
    ContextErrorKind.VALIDATION_FAILED: "That doesn't look quite right.",
}


class ContextError(Exception):
    """Typed failure from a repository operation.

    ``message`` is safe to show a user as is. ``not_found`` is an expected
    state for new users, not an alarm.
    """

    def __init__(self, kind: ContextErrorKind, reason: str = ""):
        self.kind = ContextErrorKind(kind)
        self.reason = reason
        super().__init__(self.message)

    @property
    def message(self) -> str:
        base = _MESSAGES[self.kind]
        return f"{base} {self.reason}" if self.reason else base

    @property
    def is_alarm(self) -> bool:
        return self.kind != ContextErrorKind.NOT_FOUND

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ContextError):
            return NotImplemented
        return self.kind == other.kind and self.reason == other.reason

    def __hash__(self) -> int:
        return hash((self.kind, self.reason))

    def __repr__(self) -> str:
        return f"ContextError({self.kind.value!r}, {self.reason!r})"
