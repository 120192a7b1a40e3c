"""Tests for addressable edit targets."""

import pytest

from context.targets import (
    DiscoveryTarget,
    GoalTarget,
    SituationTarget,
    ValueTarget,
    delete_target,
    read_target,
    target_exists,
    write_target,
)
from profiles.models import ContextGoal, ContextValue, Profile
from shared_types import DiscoveryFieldKey, SituationField


@pytest.fixture
def profile():
    p = Profile.empty("u1")
    p.add_value(ContextValue(id="v1", content="honesty"))
    p.add_goal(ContextGoal(id="g1", content="run a marathon"))
    p.situation.occupation = "librarian"
    p.vision = "a calmer life"
    return p


class TestRead:
    def test_each_kind(self, profile):
        assert read_target(profile, ValueTarget("v1")) == "honesty"
        assert read_target(profile, GoalTarget("g1")) == "run a marathon"
        assert read_target(profile, SituationTarget(SituationField.OCCUPATION)) == "librarian"
        assert read_target(profile, DiscoveryTarget(DiscoveryFieldKey.VISION)) == "a calmer life"

    def test_missing(self, profile):
        assert read_target(profile, ValueTarget("nope")) is None
        assert target_exists(profile, GoalTarget("nope")) is False
        assert target_exists(profile, SituationTarget()) is False

    def test_unknown_target_type(self, profile):
        with pytest.raises(TypeError):
            read_target(profile, "v1")


class TestWrite:
    def test_value(self, profile):
        assert write_target(profile, ValueTarget("v1"), "  integrity ") is True
        assert profile.values[0].content == "integrity"

    def test_unchanged_returns_false(self, profile):
        assert write_target(profile, GoalTarget("g1"), "run a marathon") is False

    def test_empty_value_rejected(self, profile):
        with pytest.raises(ValueError):
            write_target(profile, ValueTarget("v1"), "   ")

    def test_missing_goal_rejected(self, profile):
        with pytest.raises(LookupError):
            write_target(profile, GoalTarget("nope"), "x")

    def test_empty_field_clears(self, profile):
        assert write_target(profile, SituationTarget(SituationField.OCCUPATION), "") is True
        assert profile.situation.occupation is None
        assert write_target(profile, DiscoveryTarget(DiscoveryFieldKey.VISION), None) is True
        assert profile.vision is None


class TestDelete:
    def test_removes_items(self, profile):
        assert delete_target(profile, ValueTarget("v1")) is True
        assert profile.values == []
        assert delete_target(profile, GoalTarget("g1")) is True
        assert profile.goals == []

    def test_clears_fields(self, profile):
        assert delete_target(profile, SituationTarget(SituationField.OCCUPATION)) is True
        assert profile.situation.occupation is None

    def test_already_absent(self, profile):
        assert delete_target(profile, ValueTarget("nope")) is False
        assert delete_target(profile, DiscoveryTarget(DiscoveryFieldKey.AHA_INSIGHT)) is False
