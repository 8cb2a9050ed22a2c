"""Completion, overdue and deadline decisions for a single milestone."""

from __future__ import annotations

import random

from campaign.models import CheckResult, GMAction, Milestone, MilestoneProgress

# Deadline milestones within this many days of their target get a warning.
DEADLINE_WARNING_DAYS = 2

ACHIEVED_ACTIONS = ("Review the next milestone", "Collect rewards", "Celebrate with the party")
GAMEOVER_ACTIONS = ("Check your save data", "Restart", "Reset the deadline")
OVERDUE_ACTIONS = ("Act toward the milestone", "Reconsider priorities", "Consult with the party")
DEADLINE_ACTIONS = ("Take urgent action", "Focus the whole party", "Pool your resources")


def _pick_hint(hints: tuple[str, ...], rng: random.Random) -> str | None:
    usable = [h for h in hints if h.strip()]
    if not usable:
        return None
    return rng.choice(usable)


def achieved_message(milestone: Milestone) -> str:
    return f'Milestone "{milestone.title}" achieved!'


def failure_message(milestone: Milestone) -> str:
    return f'The deadline for "{milestone.title}" passed without completion. Game over.'


def overdue_message(milestone: Milestone) -> str:
    return f'Milestone "{milestone.title}" is past its target day. Completing it soon is recommended.'


def deadline_message(milestone: Milestone, days_remaining: int) -> str:
    unit = "day" if days_remaining == 1 else "days"
    return f'Important: {days_remaining} {unit} remain until the deadline for milestone "{milestone.title}".'


def evaluate(
    milestone: Milestone,
    progress: MilestoneProgress,
    current_day: int,
    rng: random.Random | None = None,
) -> CheckResult:
    """Decide the milestone's outcome for ``current_day`` and the GM action to surface.

    Rules are checked in order and the first match wins: completion,
    deadline failure, plain overdue, deadline approaching.
    """
    rng = rng or random.Random()
    is_completed = progress.overall_progress >= 100
    is_overdue = current_day > milestone.target_day
    should_game_over = milestone.deadline and is_overdue and not is_completed
    days_remaining = milestone.target_day - current_day
    guidance = milestone.gm_guidance

    action: GMAction | None = None
    if is_completed:
        action = GMAction(
            type="announce",
            message=_pick_hint(guidance.on_time_hints, rng) or achieved_message(milestone),
            suggested_actions=ACHIEVED_ACTIONS,
        )
    elif should_game_over:
        action = GMAction(
            type="gameover",
            message=guidance.failure_message or failure_message(milestone),
            suggested_actions=GAMEOVER_ACTIONS,
        )
    elif is_overdue and not milestone.deadline:
        action = GMAction(
            type="announce",
            message=_pick_hint(guidance.delayed_hints, rng) or overdue_message(milestone),
            suggested_actions=OVERDUE_ACTIONS,
        )
    elif milestone.deadline and days_remaining <= DEADLINE_WARNING_DAYS:
        action = GMAction(
            type="announce",
            message=deadline_message(milestone, days_remaining),
            suggested_actions=DEADLINE_ACTIONS,
        )

    return CheckResult(
        milestone_id=milestone.id,
        was_completed=is_completed,
        was_overdue=is_overdue,
        should_game_over=should_game_over,
        gm_action=action,
    )
