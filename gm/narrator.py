"""Narrator - writes game-master milestone narration with Claude.

Implements the same three calls as the AI-agent proxy client so the
guidance scheduler can talk to either one.
"""

from __future__ import annotations

import logging
from typing import Protocol

try:
    import anthropic
except ImportError:  # pragma: no cover - depends on runtime environment
    anthropic = None

from campaign.models import AchievementRequest, NaturalGuidanceRequest, WarningRequest

logger = logging.getLogger(__name__)


class NarrativeGenerator(Protocol):
    async def natural_guidance(self, request: NaturalGuidanceRequest) -> str: ...

    async def milestone_warning(self, request: WarningRequest) -> str: ...

    async def milestone_achievement(self, request: AchievementRequest) -> str: ...


GM_SYSTEM = """\
You are the game master of a tabletop RPG campaign, speaking in the session chat.

Your style:
- Stay in the fiction. Speak to the party, not about game mechanics.
- Short. Two to four sentences unless asked for more.
- Steer, never command. Offer hooks, rumours, NPC remarks, omens.
- Never reveal hidden requirements verbatim; hint at them through the world.

Guidance intensity for this message: {intensity}
{intensity_guidance}
"""

INTENSITY_GUIDANCE = {
    "subtle": (
        "- Weave the hint into scenery or an NPC aside.\n"
        "- The players should barely notice they were nudged."
    ),
    "moderate": (
        "- Make the hook clear enough that an attentive party picks it up.\n"
        "- One concrete lead toward the goal."
    ),
    "direct": (
        "- Time is short. Say plainly what is at stake and what to do next.\n"
        "- Keep it in character, but leave no doubt."
    ),
}


class Narrator:
    """Generate milestone narration using Claude."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        temperature: float = 0.8,
    ):
        if anthropic is None:
            raise RuntimeError(
                "anthropic package is not installed. Install the project dependencies."
            )
        self._client = anthropic.AsyncAnthropic(api_key=api_key)
        self._model = model
        self._temperature = temperature

    def _system(self, intensity: str) -> str:
        return GM_SYSTEM.format(
            intensity=intensity,
            intensity_guidance=INTENSITY_GUIDANCE.get(intensity, INTENSITY_GUIDANCE["subtle"]),
        )

    async def _generate(
        self,
        user_prompt: str,
        intensity: str = "subtle",
        max_tokens: int = 300,
    ) -> str:
        """Call Claude and return the generated text."""
        msg = await self._client.messages.create(
            model=self._model,
            max_tokens=max_tokens,
            temperature=self._temperature,
            system=self._system(intensity),
            messages=[{"role": "user", "content": user_prompt}],
        )
        text = msg.content[0].text.strip()
        logger.debug("Generated (%d chars): %s", len(text), text[:80])
        return text

    async def natural_guidance(self, request: NaturalGuidanceRequest) -> str:
        """Nudge the party toward the current milestone during normal play."""
        transcript = "\n".join(
            f"{'Player' if t.role == 'user' else 'GM'}: {t.content[:500]}"
            for t in request.conversation_history
            if t.content
        )
        prompt = (
            "Write the game master's next chat message.\n"
            f"Current situation: {request.current_situation or 'unknown'}\n"
            f"Milestone urgency: {request.urgency}\n\n"
            f"{request.milestone_context}\n\n"
            f"Recent chat:\n{transcript or '(no messages yet)'}\n\n"
            "Just output the message text, nothing else."
        )
        return await self._generate(prompt, intensity=request.intensity)

    async def milestone_warning(self, request: WarningRequest) -> str:
        """Warn the party that a milestone is about to slip or already has."""
        days_left = request.milestone.target_day - request.current_day
        remaining = "\n".join(f"- {r}" for r in request.remaining_requirements) or "- (none listed)"
        prompt = (
            f"Warn the party about the milestone \"{request.milestone.title}\".\n"
            f"Description: {request.milestone.description}\n"
            f"Day {request.current_day}, target day {request.milestone.target_day} "
            f"({days_left} days left). Progress {round(request.progress)}%.\n"
            f"Hard deadline: {'yes' if request.milestone.deadline else 'no'}\n"
            f"Still outstanding:\n{remaining}\n"
            f"Location: {request.location or 'unknown'}\n"
            "Just output the message text, nothing else."
        )
        return await self._generate(prompt, intensity="direct", max_tokens=250)

    async def milestone_achievement(self, request: AchievementRequest) -> str:
        """Celebrate a completed milestone and point at the next one."""
        prompt = (
            f"The party just achieved \"{request.milestone.title}\" on day {request.current_day}.\n"
            f"Description: {request.milestone.description}\n"
        )
        if request.next_milestone is not None:
            prompt += (
                f"Foreshadow the next goal, \"{request.next_milestone.title}\" "
                f"(target day {request.next_milestone.target_day}), without spelling it out.\n"
            )
        prompt += "Just output the message text, nothing else."
        return await self._generate(prompt, intensity="moderate", max_tokens=250)
