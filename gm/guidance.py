"""Guidance scheduler - decides when the GM nudges the party toward a milestone.

Hard status transitions live in the milestone engine. This module only
decides whether a narrative nudge is worth asking for on a given day, and
asks for it without letting a slow or failing narrator hold anything up.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Sequence

from campaign.models import (
    CampaignState,
    ConversationTurn,
    Milestone,
    MilestoneProgress,
    NaturalGuidanceRequest,
    WarningRequest,
)
from milestones.progress import DEFAULT_RULES, CompletionRules, compute_progress

from .narrator import NarrativeGenerator

logger = logging.getLogger(__name__)

NORMAL = "normal"
URGENT = "urgent"
CRITICAL = "critical"
OVERDUE = "overdue"

SUBTLE = "subtle"
MODERATE = "moderate"
DIRECT = "direct"

# Without any urgency the GM still speaks up after this many quiet days.
SILENCE_LIMIT_DAYS = 3
HISTORY_TURNS = 5
DEFAULT_TIMEOUT_SECONDS = 20.0


def milestone_urgency(milestone: Milestone, current_day: int) -> str:
    days_remaining = milestone.target_day - current_day
    if days_remaining < 0:
        return OVERDUE
    if days_remaining <= 1 and milestone.deadline:
        return CRITICAL
    if days_remaining <= 2:
        return URGENT
    return NORMAL


def should_emit(urgency: str, days_since_last_guidance: int, forced: bool = False) -> bool:
    return (
        forced
        or urgency in {CRITICAL, OVERDUE}
        or (urgency == URGENT and days_since_last_guidance >= 1)
        or days_since_last_guidance >= SILENCE_LIMIT_DAYS
    )


def guidance_intensity(urgency: str, days_since_last_guidance: int) -> str:
    if urgency in {CRITICAL, OVERDUE}:
        return DIRECT
    if urgency == URGENT or days_since_last_guidance >= SILENCE_LIMIT_DAYS:
        return MODERATE
    return SUBTLE


def remaining_requirements(milestone: Milestone, progress: MilestoneProgress) -> list[str]:
    remaining = []
    for index, req in enumerate(milestone.requirements):
        req_progress = progress.requirements.get(index)
        if req_progress is not None and req_progress.completed:
            continue
        remaining.append(req.description or (req_progress.details if req_progress else req.type))
    return remaining


def describe_milestone(milestone: Milestone, progress: MilestoneProgress, current_day: int) -> str:
    """Context block handed to the narrator."""
    days_remaining = milestone.target_day - current_day
    urgent = days_remaining <= 2 and milestone.deadline

    lines = [
        "[Current milestone]",
        f"Title: {milestone.title}",
        f"Description: {milestone.description}",
        f"Target: day {milestone.target_day} ({days_remaining} days remaining)",
        f"Progress: {round(progress.overall_progress)}%",
        f"Priority: {milestone.priority}",
    ]
    if milestone.deadline:
        lines.append(f"Hard deadline: {'URGENT' if urgent else 'set'}")

    lines.append("")
    lines.append("[Requirements]")
    for index, req in enumerate(milestone.requirements):
        req_progress = progress.requirements.get(index)
        details = req_progress.details if req_progress else "not set"
        lines.append(f"- {req.description or req.type} ({details})")

    if urgent:
        lines.append("")
        lines.append("[Guidance] The deadline is close. Steer the players firmly toward this milestone.")
    elif days_remaining > 0:
        lines.append("")
        lines.append("[Guidance] Encourage progress toward this milestone naturally.")
    return "\n".join(lines)


def fallback_message(milestone: Milestone, urgency: str, current_day: int) -> str:
    """Canned nudge used when the narrator does not answer in time."""
    days_remaining = milestone.target_day - current_day
    if urgency == OVERDUE:
        return f'"{milestone.title}" is overdue. The party should make it their priority.'
    if urgency in {CRITICAL, URGENT}:
        return f'Time is running short for "{milestone.title}": {days_remaining} days remain.'
    return f'Rumours keep circling back to "{milestone.title}". Perhaps it is worth pursuing.'


@dataclass
class GuidanceDecision:
    """Whether to nudge today, and how hard."""

    emit: bool
    urgency: str
    intensity: str
    days_since_last_guidance: int
    reason: str = ""


@dataclass
class GuidanceRecord:
    day: int
    milestone_id: str
    urgency: str
    intensity: str
    message: str
    fallback: bool = False


@dataclass
class GuidanceScheduler:
    """Throttle narrative nudges by urgency and time since the last one."""

    narrator: NarrativeGenerator | None = None
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    rules: CompletionRules = DEFAULT_RULES
    last_guidance_day: int = 0
    history: list[GuidanceRecord] = field(default_factory=list)

    @classmethod
    def from_config(
        cls,
        narrator: NarrativeGenerator | None,
        config: dict | None = None,
        rules: CompletionRules = DEFAULT_RULES,
    ) -> GuidanceScheduler:
        cfg = (config or {}).get("guidance") or {}
        return cls(
            narrator=narrator,
            timeout=float(cfg.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)),
            rules=rules,
        )

    def decide(self, milestone: Milestone, current_day: int, forced: bool = False) -> GuidanceDecision:
        urgency = milestone_urgency(milestone, current_day)
        days_since = current_day - self.last_guidance_day
        emit = should_emit(urgency, days_since, forced)
        intensity = guidance_intensity(urgency, days_since)
        if forced:
            reason = "forced"
        elif urgency in {CRITICAL, OVERDUE}:
            reason = f"{urgency} milestone"
        elif emit:
            reason = f"{urgency}, {days_since} days since last guidance"
        else:
            reason = f"throttled ({days_since} days since last guidance)"
        decision = GuidanceDecision(
            emit=emit,
            urgency=urgency,
            intensity=intensity,
            days_since_last_guidance=days_since,
            reason=reason,
        )
        logger.debug("Guidance decision for %s on day %d: %s", milestone.id, current_day, decision)
        return decision

    async def request_guidance(
        self,
        milestone: Milestone,
        state: CampaignState,
        current_day: int,
        conversation_history: Sequence[ConversationTurn] = (),
        forced: bool = False,
    ) -> str | None:
        """Ask the narrator for a nudge if one is due. Never raises."""
        decision = self.decide(milestone, current_day, forced=forced)
        if not decision.emit:
            return None
        if self.narrator is None:
            logger.debug("Guidance due for %s but no narrator is configured", milestone.id)
            return None

        progress = compute_progress(milestone, state, self.rules, current_day=current_day)
        if decision.intensity == DIRECT or decision.urgency == OVERDUE:
            call = self.narrator.milestone_warning(
                WarningRequest(
                    milestone=milestone,
                    current_day=current_day,
                    progress=progress.overall_progress,
                    remaining_requirements=tuple(remaining_requirements(milestone, progress)),
                    campaign_title=state.title,
                    location=state.location,
                    characters=state.characters,
                )
            )
        else:
            call = self.narrator.natural_guidance(
                NaturalGuidanceRequest(
                    milestone_context=describe_milestone(milestone, progress, current_day),
                    urgency=decision.urgency,
                    intensity=decision.intensity,
                    conversation_history=tuple(conversation_history)[-HISTORY_TURNS:],
                    current_situation=f"Location: {state.location or 'unknown'}, day {current_day}",
                )
            )

        try:
            text = await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError:
            text = fallback_message(milestone, decision.urgency, current_day)
            logger.warning(
                "Guidance for %s timed out after %.1fs; using fallback message", milestone.id, self.timeout
            )
            self.history.append(
                GuidanceRecord(current_day, milestone.id, decision.urgency, decision.intensity, text, fallback=True)
            )
            return text
        except Exception as exc:
            logger.warning("Guidance request for %s failed: %s", milestone.id, exc)
            return None

        if not text:
            return None
        self.last_guidance_day = current_day
        self.history.append(GuidanceRecord(current_day, milestone.id, decision.urgency, decision.intensity, text))
        logger.info("Guidance (%s/%s) for %s delivered", decision.urgency, decision.intensity, milestone.id)
        return text
