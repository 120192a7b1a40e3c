"""Edit targets: a closed set of addressable places in a profile."""

from dataclasses import dataclass

from profiles.models import Profile
from shared_types import DiscoveryFieldKey, SituationField


@dataclass(frozen=True)
class ValueTarget:
    id: str


@dataclass(frozen=True)
class GoalTarget:
    id: str


@dataclass(frozen=True)
class SituationTarget:
    field: SituationField = SituationField.FREEFORM


@dataclass(frozen=True)
class DiscoveryTarget:
    key: DiscoveryFieldKey


EditTarget = ValueTarget | GoalTarget | SituationTarget | DiscoveryTarget


def _unknown(target) -> TypeError:
    return TypeError(f"Unknown edit target: {target!r}")


def read_target(profile: Profile, target: EditTarget) -> str | None:
    """Current text at the target, or None if absent or empty."""
    if isinstance(target, ValueTarget):
        value = profile.find_value(target.id)
        return value.content if value else None
    if isinstance(target, GoalTarget):
        goal = profile.find_goal(target.id)
        return goal.content if goal else None
    if isinstance(target, SituationTarget):
        return profile.situation.get(target.field)
    if isinstance(target, DiscoveryTarget):
        return profile.get_discovery_field(target.key)
    raise _unknown(target)


def target_exists(profile: Profile, target: EditTarget) -> bool:
    if isinstance(target, (ValueTarget, GoalTarget)):
        return read_target(profile, target) is not None
    if isinstance(target, (SituationTarget, DiscoveryTarget)):
        return bool(read_target(profile, target))
    raise _unknown(target)


def write_target(profile: Profile, target: EditTarget, content: str | None) -> bool:
    """Set the text at the target. Returns False if nothing changed.

    Values and goals need non-empty content and must already exist; an empty
    situation or discovery field clears it. Raises ValueError or LookupError.
    """
    text = content.strip() if content else ""
    if isinstance(target, ValueTarget):
        value = profile.find_value(target.id)
        if value is None:
            raise LookupError(f"No value {target.id}")
        if not text:
            raise ValueError("A value can't be empty")
        if value.content == text:
            return False
        value.content = text
    elif isinstance(target, GoalTarget):
        goal = profile.find_goal(target.id)
        if goal is None:
            raise LookupError(f"No goal {target.id}")
        if not text:
            raise ValueError("A goal can't be empty")
        if goal.content == text:
            return False
        goal.content = text
    elif isinstance(target, SituationTarget):
        if profile.situation.get(target.field) == (text or None):
            return False
        profile.situation.set(target.field, text or None)
    elif isinstance(target, DiscoveryTarget):
        if profile.get_discovery_field(target.key) == (text or None):
            return False
        profile.set_discovery_field(target.key, text or None)
    else:
        raise _unknown(target)
    profile.touch()
    return True


def delete_target(profile: Profile, target: EditTarget) -> bool:
    """Remove the item or clear the field. Returns False if already absent."""
    if not target_exists(profile, target):
        return False
    if isinstance(target, ValueTarget):
        profile.remove_value(target.id)
    elif isinstance(target, GoalTarget):
        profile.remove_goal(target.id)
    else:
        write_target(profile, target, None)
    return True
