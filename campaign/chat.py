"""Turn milestone check results into system chat entries."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field

from .models import CheckResult, now_iso

logger = logging.getLogger(__name__)

GM_SENDER = "AI Game Master"


@dataclass
class ChatMessage:
    content: str
    type: str = "system"  # "system" | "user" | "assistant"
    sender: str = GM_SENDER
    id: str = field(default_factory=lambda: f"milestone-{uuid.uuid4().hex[:12]}")
    timestamp: str = field(default_factory=now_iso)
    milestone_id: str = ""
    suggested_actions: tuple[str, ...] = ()


def format_check_results(results: list[CheckResult]) -> list[ChatMessage]:
    """One system message per result that carries a GM action."""
    messages: list[ChatMessage] = []
    for result in results:
        if result.gm_action is None or not result.gm_action.message:
            continue
        messages.append(
            ChatMessage(
                content=result.gm_action.message,
                id=f"milestone-{result.milestone_id}-{uuid.uuid4().hex[:8]}",
                milestone_id=result.milestone_id,
                suggested_actions=result.gm_action.suggested_actions,
            )
        )
    logger.debug("Formatted %d milestone chat messages from %d results", len(messages), len(results))
    return messages


def enhance_prompt(user_message: str, milestone_context: str, urgency: str) -> str:
    """Append milestone context to a player's chat prompt when it is pressing.

    Normal urgency is left to the natural guidance path.
    """
    if not milestone_context:
        return user_message
    if urgency in {"critical", "overdue"}:
        return f"{user_message}\n\n[Important milestone information]\n{milestone_context}"
    if urgency == "urgent":
        return f"{user_message}\n\n[Milestone information]\n{milestone_context}"
    return user_message
