"""Milestone status transitions over an immutable campaign state."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field, replace

from campaign.models import (
    ACTIVE,
    COMPLETED,
    FAILED,
    OPEN_STATUSES,
    OVERDUE,
    PENDING,
    STATUSES,
    CampaignState,
    CheckResult,
    Milestone,
    now_iso,
)

from .evaluation import evaluate
from .progress import DEFAULT_RULES, CompletionRules, compute_progress

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DailyCheck:
    state: CampaignState
    results: list[CheckResult] = field(default_factory=list)


def active_milestones(state: CampaignState) -> list[Milestone]:
    """Pending and active milestones, earliest target day first."""
    return sorted(
        (m for m in state.milestones if m.status in OPEN_STATUSES),
        key=lambda m: m.target_day,
    )


def current_milestone(state: CampaignState, current_day: int) -> Milestone | None:
    for milestone in active_milestones(state):
        if milestone.target_day >= current_day:
            return milestone
    return None


def update_status(
    state: CampaignState,
    milestone_id: str,
    new_status: str,
    achieved_day: int | None = None,
) -> CampaignState:
    """Return a new state with one milestone's status replaced."""
    if new_status not in STATUSES:
        raise ValueError(f"Unknown milestone status: {new_status}")
    if state.milestone(milestone_id) is None:
        logger.warning("No milestone with id %s; status unchanged", milestone_id)
        return state

    stamp = now_iso()
    milestones = tuple(
        replace(
            m,
            status=new_status,
            achieved_day=achieved_day if achieved_day is not None else m.achieved_day,
            updated_at=stamp,
        )
        if m.id == milestone_id
        else m
        for m in state.milestones
    )
    logger.debug("Milestone %s -> %s", milestone_id, new_status)
    return replace(state, milestones=milestones, updated_at=stamp)


def activate_next_milestone(state: CampaignState) -> tuple[CampaignState, Milestone | None]:
    pending = sorted((m for m in state.milestones if m.status == PENDING), key=lambda m: m.target_day)
    if not pending:
        return state, None
    chosen = pending[0]
    new_state = update_status(state, chosen.id, ACTIVE)
    logger.info("Activated milestone %s (%s), target day %d", chosen.id, chosen.title, chosen.target_day)
    return new_state, new_state.milestone(chosen.id)


def reactivate(state: CampaignState, milestone_id: str) -> CampaignState:
    """Explicitly reopen a closed milestone. The only way a status moves backwards."""
    milestone = state.milestone(milestone_id)
    if milestone is None or milestone.status in OPEN_STATUSES:
        return state
    new_state = update_status(state, milestone_id, ACTIVE)
    return replace(
        new_state,
        milestones=tuple(
            replace(m, achieved_day=None) if m.id == milestone_id else m for m in new_state.milestones
        ),
    )


def perform_daily_check(
    state: CampaignState,
    current_day: int,
    rules: CompletionRules = DEFAULT_RULES,
    rng: random.Random | None = None,
) -> DailyCheck:
    """Evaluate every open milestone for ``current_day`` and apply transitions.

    Days at or before ``state.last_checked_day`` were already processed and
    yield no results.
    """
    if current_day <= state.last_checked_day:
        return DailyCheck(state=state, results=[])
    if state.last_checked_day and current_day > state.last_checked_day + 1:
        logger.warning(
            "Daily check jumped from day %d to %d; intermediate days were not evaluated",
            state.last_checked_day,
            current_day,
        )

    rng = rng or random.Random()
    results: list[CheckResult] = []
    for milestone in active_milestones(state):
        progress = compute_progress(milestone, state, rules, current_day=current_day)
        result = evaluate(milestone, progress, current_day, rng=rng)
        results.append(result)

        if result.was_completed and milestone.status != COMPLETED:
            state = update_status(state, milestone.id, COMPLETED, achieved_day=current_day)
        elif result.should_game_over:
            state = update_status(state, milestone.id, FAILED, achieved_day=current_day)
        elif result.was_overdue and milestone.status == ACTIVE:
            state = update_status(state, milestone.id, OVERDUE)

    logger.info("Day %d milestone check: %d evaluated", current_day, len(results))
    return DailyCheck(state=replace(state, last_checked_day=current_day), results=results)


class LifecycleController:
    """Holds the latest campaign state for callers that want a stateful handle."""

    def __init__(
        self,
        state: CampaignState,
        rules: CompletionRules = DEFAULT_RULES,
        rng: random.Random | None = None,
    ):
        self._state = state
        self._rules = rules
        self._rng = rng or random.Random()

    @property
    def state(self) -> CampaignState:
        return self._state

    @property
    def last_checked_day(self) -> int:
        return self._state.last_checked_day

    def replace_state(self, state: CampaignState) -> None:
        """Swap in a state with fresher campaign data (quests, inventory, ...)."""
        self._state = state

    def update_status(self, milestone_id: str, new_status: str, achieved_day: int | None = None) -> None:
        self._state = update_status(self._state, milestone_id, new_status, achieved_day)

    def activate_next_milestone(self) -> Milestone | None:
        self._state, milestone = activate_next_milestone(self._state)
        return milestone

    def reactivate(self, milestone_id: str) -> None:
        self._state = reactivate(self._state, milestone_id)

    def perform_daily_check(self, current_day: int) -> list[CheckResult]:
        check = perform_daily_check(self._state, current_day, self._rules, self._rng)
        self._state = check.state
        return check.results

    def advance_to(self, day: int) -> list[CheckResult]:
        """Check every day after the watermark up to ``day``, in order."""
        results: list[CheckResult] = []
        for next_day in range(self._state.last_checked_day + 1, day + 1):
            results.extend(self.perform_daily_check(next_day))
        return results

    def current_milestone(self, current_day: int) -> Milestone | None:
        return current_milestone(self._state, current_day)

    def active_milestones(self) -> list[Milestone]:
        return active_milestones(self._state)
