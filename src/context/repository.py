"""Context repository: the single read/write surface over a user's profile.

Every write goes through ``mutate``: apply to an in-memory copy, publish it
immediately, persist, then adopt the committed copy or restore the snapshot
taken before the apply. Writes for one user are serialized by a per-user
lock, so a queued call always starts from the state the previous call left.
"""

import asyncio
import sqlite3
from collections.abc import Callable
from datetime import datetime
from functools import partial

import structlog

from cli.retry import conflict_retrying
from insights.errors import InsightValidationError
from insights.models import ExtractedInsight
from insights.workflow import ConfirmationWorkflow
from observability import metrics
from profiles.models import (
    ContextGoal,
    ContextSituation,
    ContextValue,
    DiscoveryProfileData,
    Profile,
)
from profiles.store import (
    ProfileConflictError,
    ProfileNotFoundError,
    ProfileStore,
    ProfileStoreError,
)
from shared_types import ContextSource, DiscoveryFieldKey, GoalStatus, SignalType
from signals.sink import SignalSink

from .errors import ContextError, ContextErrorKind
from .state import EditorState
from .targets import DiscoveryTarget, EditTarget, delete_target, target_exists, write_target

logger = structlog.get_logger()

Mutation = Callable[[Profile], bool | None]
StateListener = Callable[[EditorState], None]

_INVALID = (InsightValidationError, ValueError, LookupError)


def _split_list(text: str) -> list[str]:
    return [item.strip() for item in text.split(",") if item.strip()]


class ContextRepository:
    def __init__(
        self,
        store: ProfileStore,
        workflow: ConfirmationWorkflow,
        signals: SignalSink | None = None,
        max_conflict_retries: int = 3,
    ):
        self.store = store
        self.workflow = workflow
        self.signals = signals
        self.max_conflict_retries = max_conflict_retries
        self._profiles: dict[str, Profile] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._states: dict[str, EditorState] = {}
        self._listeners: list[StateListener] = []

    # -- state and subscriptions --

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener`` with every new EditorState. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def state(self, user_id: str) -> EditorState:
        return self._states.get(user_id) or EditorState(user_id=user_id)

    def _publish(self, user_id: str, **changes) -> EditorState:
        new_state = self.state(user_id).evolve(**changes)
        self._states[user_id] = new_state
        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception as e:
                logger.warning("context.listener_failed", user_id=user_id, error=str(e))
        return new_state

    def _adopt(self, user_id: str, profile: Profile | None, **changes) -> None:
        if profile is None:
            self._profiles.pop(user_id, None)
        else:
            self._profiles[user_id] = profile
        self._publish(
            user_id,
            profile=profile.model_copy(deep=True) if profile is not None else None,
            **changes,
        )

    def _lock(self, user_id: str) -> asyncio.Lock:
        if user_id not in self._locks:
            self._locks[user_id] = asyncio.Lock()
        return self._locks[user_id]

    # -- reads --

    def get_profile(self, user_id: str) -> Profile | None:
        """Latest local snapshot, including in-flight optimistic changes. Never waits."""
        profile = self._profiles.get(user_id)
        return profile.model_copy(deep=True) if profile is not None else None

    def effective_coaching_style(self, user_id: str) -> str | None:
        profile = self._profiles.get(user_id)
        return profile.coaching_preferences.effective_coaching_style if profile else None

    async def load_profile(self, user_id: str) -> Profile | None:
        """Fetch the committed profile. None for users who have none yet.

        Falls back to the local copy when storage is unavailable.
        """
        async with self._lock(user_id):
            try:
                profile = await asyncio.to_thread(self.store.load, user_id)
            except ProfileNotFoundError:
                self._adopt(user_id, None)
                return None
            except (ProfileStoreError, sqlite3.Error) as e:
                if user_id in self._profiles:
                    logger.warning("context.serving_stale", user_id=user_id, error=str(e))
                    return self.get_profile(user_id)
                raise ContextError(ContextErrorKind.FETCH_FAILED, str(e)) from e
            self._adopt(user_id, profile)
            return profile.model_copy(deep=True)

    async def _current(self, user_id: str) -> Profile:
        if user_id in self._profiles:
            return self._profiles[user_id]
        try:
            profile = await asyncio.to_thread(self.store.load, user_id)
        except ProfileNotFoundError as e:
            raise ContextError(ContextErrorKind.NOT_FOUND) from e
        except (ProfileStoreError, sqlite3.Error) as e:
            raise ContextError(ContextErrorKind.FETCH_FAILED, str(e)) from e
        self._profiles[user_id] = profile
        return profile

    async def create_profile(self, user_id: str) -> Profile:
        async with self._lock(user_id):
            try:
                profile = await asyncio.to_thread(self.store.create, user_id)
            except (ProfileStoreError, sqlite3.Error) as e:
                raise ContextError(ContextErrorKind.SAVE_FAILED, str(e)) from e
            self._adopt(user_id, profile)
            return profile.model_copy(deep=True)

    async def delete_profile(self, user_id: str) -> bool:
        """Hard-delete the profile with its pending insights and signals."""
        async with self._lock(user_id):
            try:
                existed = await asyncio.to_thread(self.store.delete, user_id)
                await asyncio.to_thread(self.workflow.pending.delete_user, user_id)
                if self.signals is not None:
                    await asyncio.to_thread(self.signals.store.delete_user, user_id)
            except (ProfileStoreError, sqlite3.Error) as e:
                raise ContextError(ContextErrorKind.SAVE_FAILED, str(e)) from e
            self._adopt(user_id, None, pending_delete=None, error=None)
            logger.info("context.profile_deleted", user_id=user_id, existed=existed)
            return existed

    # -- the one write path --

    async def mutate(
        self,
        user_id: str,
        apply: Mutation,
        error_kind: ContextErrorKind = ContextErrorKind.SAVE_FAILED,
    ) -> Profile:
        """Apply optimistically, persist, and roll back in full on failure.

        ``apply`` edits the profile in place and may return False to signal
        that nothing changed (no write happens). It must be safe to run again
        on freshly loaded state, which happens after a version conflict.
        """
        async with self._lock(user_id):
            current = await self._current(user_id)
            snapshot = current.model_copy(deep=True)
            working = current.model_copy(deep=True)
            try:
                changed = apply(working)
            except _INVALID as e:
                raise ContextError(ContextErrorKind.VALIDATION_FAILED, str(e)) from e
            if changed is False:
                return snapshot

            self._adopt(user_id, working, is_saving=True, error=None)
            try:
                committed = await self._persist(user_id, working, apply)
            except (ProfileStoreError, sqlite3.Error, *_INVALID) as e:
                if isinstance(e, ProfileNotFoundError):
                    error = ContextError(ContextErrorKind.NOT_FOUND)
                elif isinstance(e, _INVALID):
                    error = ContextError(ContextErrorKind.VALIDATION_FAILED, str(e))
                else:
                    error = ContextError(error_kind, str(e))
                self._adopt(user_id, snapshot, is_saving=False, error=error)
                metrics.counter("context.rollbacks")
                logger.warning(
                    "context.rollback", user_id=user_id, kind=error.kind.value, error=str(e)
                )
                raise error from e
            except asyncio.CancelledError:
                # The save thread may still land; a stale base version surfaces as a conflict next time
                self._adopt(user_id, snapshot, is_saving=False)
                logger.info("context.mutation_cancelled", user_id=user_id)
                raise

            self._adopt(user_id, committed, is_saving=False)
            return committed.model_copy(deep=True)

    async def _persist(self, user_id: str, working: Profile, apply: Mutation) -> Profile:
        candidate = working
        async for attempt in conflict_retrying(self.max_conflict_retries, (ProfileConflictError,)):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    # Rebase on whatever the other writer committed
                    candidate = await asyncio.to_thread(self.store.load, user_id)
                    if apply(candidate) is False:
                        return candidate
                    self._profiles[user_id] = candidate
                return await asyncio.to_thread(self.store.save, candidate)

    # -- direct edits --

    async def update_field(self, user_id: str, target: EditTarget, content: str | None) -> Profile:
        return await self.mutate(user_id, lambda p: write_target(p, target, content))

    async def update_discovery_field(
        self, user_id: str, key: DiscoveryFieldKey, content: str | None
    ) -> Profile:
        return await self.update_field(user_id, DiscoveryTarget(key), content)

    async def update_situation(self, user_id: str, situation: ContextSituation) -> Profile:
        def apply(profile: Profile) -> bool:
            if profile.situation == situation:
                return False
            profile.situation = situation.model_copy(deep=True)
            profile.touch()
            return True

        return await self.mutate(user_id, apply)

    async def add_value(self, user_id: str, content: str) -> Profile:
        text = content.strip()
        if not text:
            raise ContextError(ContextErrorKind.VALIDATION_FAILED, "A value can't be empty.")
        value = ContextValue(content=text, source=ContextSource.USER)

        def apply(profile: Profile) -> bool:
            if profile.find_value(value.id) is not None:
                return False
            profile.add_value(value.model_copy())
            return True

        return await self.mutate(user_id, apply)

    async def add_goal(self, user_id: str, content: str, domain: str | None = None) -> Profile:
        text = content.strip()
        if not text:
            raise ContextError(ContextErrorKind.VALIDATION_FAILED, "A goal can't be empty.")
        goal = ContextGoal(content=text, domain=domain, source=ContextSource.USER)

        def apply(profile: Profile) -> bool:
            if profile.find_goal(goal.id) is not None:
                return False
            profile.add_goal(goal.model_copy())
            return True

        return await self.mutate(user_id, apply)

    async def delete_item(self, user_id: str, target: EditTarget) -> Profile:
        return await self.mutate(user_id, lambda p: delete_target(p, target))

    async def toggle_goal_status(self, user_id: str, goal_id: str) -> Profile:
        def apply(profile: Profile) -> None:
            goal = profile.find_goal(goal_id)
            if goal is None:
                raise LookupError(f"No goal {goal_id}")
            goal.status = GoalStatus.ACHIEVED if goal.status == GoalStatus.ACTIVE else GoalStatus.ACTIVE
            profile.touch()

        return await self.mutate(user_id, apply)

    async def add_initial_context(
        self, user_id: str, values: str = "", goals: str = "", situation: str = ""
    ) -> Profile:
        """Context-setup form: comma-separated values and goals, freeform situation."""
        new_values = [ContextValue(content=v) for v in _split_list(values)]
        new_goals = [ContextGoal(content=g) for g in _split_list(goals)]
        freeform = situation.strip()

        def apply(profile: Profile) -> bool:
            for value in new_values:
                if profile.find_value(value.id) is None:
                    profile.add_value(value.model_copy())
            for goal in new_goals:
                if profile.find_goal(goal.id) is None:
                    profile.add_goal(goal.model_copy())
            if freeform:
                profile.situation.freeform = freeform
            profile.touch()
            return bool(new_values or new_goals or freeform)

        return await self.mutate(user_id, apply)

    async def save_discovery_profile(self, user_id: str, data: DiscoveryProfileData) -> Profile:
        at = datetime.now()
        return await self.mutate(user_id, lambda p: data.apply_to(p, at))

    async def mark_first_session_complete(self, user_id: str) -> Profile:
        def apply(profile: Profile) -> bool:
            if profile.first_session_complete:
                return False
            profile.first_session_complete = True
            profile.touch()
            return True

        return await self.mutate(user_id, apply)

    async def increment_prompt_dismissed_count(self, user_id: str) -> Profile:
        def apply(profile: Profile) -> None:
            profile.prompt_dismissed_count += 1
            profile.touch()

        return await self.mutate(user_id, apply)

    # -- style override --

    async def set_style_override(self, user_id: str, style: str) -> Profile:
        text = style.strip()
        if not text:
            raise ContextError(ContextErrorKind.VALIDATION_FAILED, "Pick a style first.")
        at = datetime.now()

        def apply(profile: Profile) -> bool:
            prefs = profile.coaching_preferences
            if prefs.manual_style == text and prefs.manual_override == text:
                return False
            prefs.set_manual_override(text, at)
            profile.touch()
            return True

        return await self.mutate(user_id, apply, ContextErrorKind.STYLE_OVERRIDE_FAILED)

    async def clear_style_override(self, user_id: str) -> Profile:
        def apply(profile: Profile) -> bool:
            prefs = profile.coaching_preferences
            if prefs.manual_style is None and prefs.manual_overrides is None:
                return False
            prefs.clear_manual_override()
            profile.touch()
            return True

        return await self.mutate(user_id, apply, ContextErrorKind.STYLE_OVERRIDE_FAILED)

    # -- insights and patterns --

    async def list_pending_insights(self, user_id: str) -> list[ExtractedInsight]:
        try:
            return await self.workflow.list_pending(user_id)
        except sqlite3.Error as e:
            raise ContextError(ContextErrorKind.FETCH_FAILED, str(e)) from e

    async def confirm_insight(self, user_id: str, insight_id: str) -> Profile | None:
        commit = partial(self.mutate, user_id, error_kind=ContextErrorKind.SAVE_FAILED)
        try:
            return await self.workflow.confirm(user_id, insight_id, commit)
        except InsightValidationError as e:
            raise ContextError(ContextErrorKind.VALIDATION_FAILED, str(e)) from e
        except sqlite3.Error as e:
            raise ContextError(ContextErrorKind.FETCH_FAILED, str(e)) from e

    async def dismiss_insight(self, user_id: str, insight_id: str) -> Profile:
        commit = partial(self.mutate, user_id, error_kind=ContextErrorKind.INSIGHT_DISMISS_FAILED)
        try:
            return await self.workflow.dismiss(user_id, insight_id, commit)
        except sqlite3.Error as e:
            raise ContextError(ContextErrorKind.INSIGHT_DISMISS_FAILED, str(e)) from e

    async def dismiss_all_insights(self, user_id: str) -> int:
        try:
            return await self.workflow.dismiss_all(user_id)
        except sqlite3.Error as e:
            raise ContextError(ContextErrorKind.INSIGHT_DISMISS_FAILED, str(e)) from e

    async def dismiss_learned_pattern(self, user_id: str, pattern_id: str) -> Profile:
        """Remove an inferred pattern and keep it from being re-detected."""
        removed: list[str] = []

        def apply(profile: Profile) -> bool:
            prefs = profile.coaching_preferences
            match = next((p for p in prefs.inferred_patterns if p.id == pattern_id), None)
            if match is None and prefs.is_dismissed(pattern_id):
                return False
            if match is not None:
                prefs.inferred_patterns = [p for p in prefs.inferred_patterns if p.id != pattern_id]
                removed[:] = [match.pattern_text]
            prefs.record_dismissal(pattern_id)
            profile.touch()
            return True

        profile = await self.mutate(user_id, apply, ContextErrorKind.INSIGHT_DISMISS_FAILED)
        if self.signals is not None and removed:
            self.signals.emit(
                user_id,
                SignalType.PATTERN_DISMISSED,
                {"pattern_id": pattern_id, "theme": removed[0]},
            )
        return profile

    async def apply_derived(self, user_id: str, apply: Mutation) -> Profile:
        """Write path for background inference. Conflicts rebase and retry."""
        return await self.mutate(user_id, apply)

    # -- editor state transitions --

    def request_delete(self, user_id: str, target: EditTarget) -> EditorState:
        profile = self._profiles.get(user_id)
        if profile is None:
            return self._publish(user_id, error=ContextError(ContextErrorKind.NOT_FOUND))
        if not target_exists(profile, target):
            return self._publish(
                user_id,
                pending_delete=None,
                error=ContextError(ContextErrorKind.VALIDATION_FAILED, "That item is already gone."),
            )
        return self._publish(user_id, pending_delete=target, error=None)

    def cancel_delete(self, user_id: str) -> EditorState:
        return self._publish(user_id, pending_delete=None)

    async def confirm_delete(self, user_id: str) -> EditorState:
        target = self.state(user_id).pending_delete
        if target is None:
            return self.state(user_id)
        self._publish(user_id, pending_delete=None)
        try:
            await self.delete_item(user_id, target)
        except ContextError as e:
            # mutate already restored the profile; keep the error visible
            return self._publish(user_id, error=e)
        return self.state(user_id)

    def clear_error(self, user_id: str) -> EditorState:
        return self._publish(user_id, error=None)
