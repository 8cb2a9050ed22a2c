"""Requirement evaluation and overall progress aggregation."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from campaign.models import (
    CampaignState,
    Milestone,
    MilestoneProgress,
    Requirement,
    RequirementProgress,
)

# Estimated completion is never pushed further out than this past the target.
ESTIMATE_SLACK_DAYS = 5


@dataclass(frozen=True)
class CompletionRules:
    """Which recorded values count as "done" for events and quests.

    Campaign data disagrees on whether a ``partial`` event outcome is a
    success, so the sets are configurable rather than hardcoded.
    """

    successful_event_outcomes: frozenset[str] = frozenset({"success"})
    done_quest_statuses: frozenset[str] = frozenset({"completed"})

    def event_succeeded(self, outcome: str | None) -> bool:
        return outcome is not None and outcome in self.successful_event_outcomes

    def quest_done(self, status: str | None) -> bool:
        return status is not None and status in self.done_quest_statuses

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any] | None) -> CompletionRules:
        section = (cfg or {}).get("completion", {}) or {}
        events = section.get("successful_event_outcomes")
        quests = section.get("done_quest_statuses")
        default = cls()
        return cls(
            successful_event_outcomes=(
                frozenset(str(v) for v in events) if events else default.successful_event_outcomes
            ),
            done_quest_statuses=(
                frozenset(str(v) for v in quests) if quests else default.done_quest_statuses
            ),
        )


DEFAULT_RULES = CompletionRules()


def _ratio(matched: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return matched / total * 100


def _not_specified(req_type: str, what: str) -> RequirementProgress:
    return RequirementProgress(type=req_type, completed=False, progress=0.0, details=f"No {what} specified")


def _check_events(req: Requirement, state: CampaignState, rules: CompletionRules) -> RequirementProgress:
    if not req.event_ids:
        return _not_specified(req.type, "events")
    matched = sum(1 for eid in req.event_ids if rules.event_succeeded(state.event_outcomes.get(eid)))
    total = len(req.event_ids)
    return RequirementProgress(
        type=req.type,
        completed=matched == total,
        progress=_ratio(matched, total),
        details=f"Events {matched}/{total} completed",
    )


def _check_quests(req: Requirement, state: CampaignState, rules: CompletionRules) -> RequirementProgress:
    if not req.quest_ids:
        return _not_specified(req.type, "quests")
    matched = sum(1 for qid in req.quest_ids if rules.quest_done(state.quest_statuses.get(qid)))
    total = len(req.quest_ids)
    return RequirementProgress(
        type=req.type,
        completed=matched == total,
        progress=_ratio(matched, total),
        details=f"Quests {matched}/{total} completed",
    )


def _check_items(req: Requirement, state: CampaignState, rules: CompletionRules) -> RequirementProgress:
    if not req.item_requirements:
        return _not_specified(req.type, "items")
    satisfied = 0
    parts: list[str] = []
    for item in req.item_requirements:
        have = int(state.party_inventory.get(item.item_id, 0) or 0)
        if have >= item.quantity:
            satisfied += 1
        name = state.item_names.get(item.item_id) or f"Unknown item ({item.item_id})"
        parts.append(f"{name}: {have}/{item.quantity}")
    total = len(req.item_requirements)
    return RequirementProgress(
        type=req.type,
        completed=satisfied == total,
        progress=_ratio(satisfied, total),
        details=f"Items {satisfied}/{total} ({', '.join(parts)})",
    )


def _check_enemies(req: Requirement, state: CampaignState, rules: CompletionRules) -> RequirementProgress:
    if not req.enemy_requirements:
        return _not_specified(req.type, "enemies")
    satisfied = 0
    parts: list[str] = []
    for enemy in req.enemy_requirements:
        defeated = int(state.defeated_enemies.get(enemy.enemy_id, 0) or 0)
        if defeated >= enemy.count:
            satisfied += 1
        name = state.enemy_names.get(enemy.enemy_id) or f"Unknown enemy ({enemy.enemy_id})"
        parts.append(f"{name}: {defeated}/{enemy.count}")
    total = len(req.enemy_requirements)
    return RequirementProgress(
        type=req.type,
        completed=satisfied == total,
        progress=_ratio(satisfied, total),
        details=f"Enemies {satisfied}/{total} ({', '.join(parts)})",
    )


_CHECKS: dict[str, Callable[[Requirement, CampaignState, CompletionRules], RequirementProgress]] = {
    "events": _check_events,
    "quests": _check_quests,
    "items": _check_items,
    "enemies": _check_enemies,
}


def check_requirement(
    requirement: Requirement,
    state: CampaignState,
    rules: CompletionRules = DEFAULT_RULES,
) -> RequirementProgress:
    """Evaluate one requirement. Unknown types report zero progress."""
    check = _CHECKS.get(requirement.type)
    if check is None:
        return RequirementProgress(
            type=requirement.type,
            completed=False,
            progress=0.0,
            details=f"Unknown requirement type: {requirement.type or '(none)'}",
        )
    return check(requirement, state, rules)


def required_count(milestone: Milestone) -> int:
    """Requirements needed in partial mode: first positive declaration, else all."""
    for req in milestone.requirements:
        if req.required_count and req.required_count > 0:
            return req.required_count
    return len(milestone.requirements)


def overall_progress(milestone: Milestone, completed: int) -> float:
    total = len(milestone.requirements)
    if total == 0:
        return 0.0
    if milestone.completion_mode == "partial":
        value = min(100.0, _ratio(completed, required_count(milestone)))
    else:
        value = _ratio(completed, total)
    return max(0.0, min(100.0, value))


def estimate_completion_day(milestone: Milestone, progress: float, current_day: int | None) -> int:
    """Linear extrapolation of the observed pace, capped a few days past target."""
    if current_day is None:
        return milestone.target_day
    if progress >= 100:
        return current_day
    if progress <= 0:
        return milestone.target_day
    elapsed = max(1, current_day)
    per_day = progress / elapsed
    remaining_days = math.ceil((100 - progress) / per_day)
    return min(current_day + remaining_days, milestone.target_day + ESTIMATE_SLACK_DAYS)


def compute_progress(
    milestone: Milestone,
    state: CampaignState,
    rules: CompletionRules = DEFAULT_RULES,
    current_day: int | None = None,
) -> MilestoneProgress:
    """Build the progress record for ``milestone`` against ``state``."""
    per_requirement = {
        index: check_requirement(req, state, rules) for index, req in enumerate(milestone.requirements)
    }
    completed = sum(1 for p in per_requirement.values() if p.completed)
    overall = overall_progress(milestone, completed)
    return MilestoneProgress(
        milestone_id=milestone.id,
        requirements=per_requirement,
        overall_progress=overall,
        estimated_completion_day=estimate_completion_day(milestone, overall, current_day),
    )
