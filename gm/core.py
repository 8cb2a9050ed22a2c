"""Core orchestrator - the daily tick of a game-master session.

Each tick: read the day -> check milestones -> apply transitions -> post
GM messages -> (in the background) ask the narrator for extra narration.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Callable, Coroutine, Sequence

from campaign.chat import ChatMessage, enhance_prompt, format_check_results
from campaign.models import AchievementRequest, CampaignState, CheckResult, ConversationTurn, Milestone
from milestones import CompletionRules, DayClock, LifecycleController, SessionClock, compute_progress

from .guidance import GuidanceScheduler, describe_milestone, milestone_urgency
from .memory import GuidanceHistoryDB
from .narrator import NarrativeGenerator

logger = logging.getLogger(__name__)


class GameMasterSession:
    """Drives milestone checks and guidance for one running campaign."""

    def __init__(
        self,
        state: CampaignState,
        config: dict | None = None,
        narrator: NarrativeGenerator | None = None,
        clock: DayClock | None = None,
        rng: random.Random | None = None,
        history_db: GuidanceHistoryDB | None = None,
        on_message: Callable[[ChatMessage], None] | None = None,
    ):
        self._cfg = config or {}
        rules = CompletionRules.from_config(self._cfg)
        self._controller = LifecycleController(state, rules=rules, rng=rng)
        self._scheduler = GuidanceScheduler.from_config(narrator, self._cfg, rules=rules)
        self._narrator = narrator
        self._clock = clock or SessionClock()
        self._db = history_db
        self._on_message = on_message
        self._rules = rules
        self._tasks: set[asyncio.Task] = set()
        self._background: list[ChatMessage] = []
        self._guidance_restored = False
        self.messages: list[ChatMessage] = []

    @property
    def state(self) -> CampaignState:
        return self._controller.state

    @property
    def controller(self) -> LifecycleController:
        return self._controller

    @property
    def scheduler(self) -> GuidanceScheduler:
        return self._scheduler

    @property
    def current_day(self) -> int:
        return self._clock.current_day()

    async def daily_tick(
        self,
        conversation_history: Sequence[ConversationTurn] = (),
        force_guidance: bool = False,
    ) -> list[ChatMessage]:
        """Check every unchecked day up to today. Narration is scheduled, not awaited."""
        day = self._clock.current_day()
        await self._restore_guidance_day()

        results: list[CheckResult] = []
        messages: list[ChatMessage] = []
        first_day = self._controller.last_checked_day + 1
        if first_day < day:
            logger.info("Catching up on days %d-%d before day %d", first_day, day - 1, day)
        for check_day in range(first_day, day + 1):
            day_results, day_messages = await self._check_day(check_day)
            results.extend(day_results)
            messages.extend(day_messages)
        if not results:
            logger.debug("Day %d already checked or nothing open", day)

        target = self._guidance_target(day)
        if target is not None:
            self._schedule(self._guidance(target, day, conversation_history, force_guidance))

        logger.info("=== Day %d === %d results, %d messages", day, len(results), len(messages))
        return messages

    async def drain(self) -> list[ChatMessage]:
        """Wait for outstanding narration; return what it posted since the last drain."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        posted, self._background = self._background, []
        return posted

    def status_summary(self) -> dict[str, Any]:
        day = self._clock.current_day()
        milestone = self._controller.current_milestone(day)
        if milestone is None:
            return {"has_milestone": False, "message": "There is no active milestone right now."}
        days_remaining = milestone.target_day - day
        return {
            "has_milestone": True,
            "milestone": milestone,
            "urgency": milestone_urgency(milestone, day),
            "days_remaining": days_remaining,
            "is_deadline": milestone.deadline,
            "message": f"Current milestone: {milestone.title} ({days_remaining} days remaining)",
        }

    def enhance_prompt(self, user_message: str) -> str:
        day = self._clock.current_day()
        milestone = self._controller.current_milestone(day)
        if milestone is None:
            return user_message
        progress = compute_progress(milestone, self.state, self._rules, current_day=day)
        return enhance_prompt(
            user_message,
            describe_milestone(milestone, progress, day),
            milestone_urgency(milestone, day),
        )

    # ── Internals ───────────────────────────────────────────────

    def _post(self, message: ChatMessage) -> None:
        self.messages.append(message)
        if self._on_message is not None:
            self._on_message(message)

    async def _check_day(self, day: int) -> tuple[list[CheckResult], list[ChatMessage]]:
        results = self._controller.perform_daily_check(day)
        messages = format_check_results(results)
        for message in messages:
            self._post(message)
        if self._db is not None and results:
            await self._db.log_check_results(day, results)

        for result in results:
            if result.should_game_over:
                logger.warning("Milestone %s failed its deadline on day %d", result.milestone_id, day)

        completed = [r for r in results if r.was_completed]
        if completed:
            next_milestone = self._controller.activate_next_milestone()
            for result in completed:
                self._schedule_achievement(result, next_milestone, day)
        return results, messages

    async def _restore_guidance_day(self) -> None:
        """Pick up the throttle from earlier runs sharing the history database."""
        if self._db is None or self._guidance_restored:
            return
        self._guidance_restored = True
        last_day = await self._db.get_last_guidance_day()
        if last_day > self._scheduler.last_guidance_day:
            self._scheduler.last_guidance_day = last_day
            logger.debug("Last delivered guidance was on day %d", last_day)

    def _schedule(self, coro: Coroutine[Any, Any, ChatMessage | None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _guidance_target(self, day: int) -> Milestone | None:
        """The current milestone, or the earliest open one that slipped past its day."""
        milestone = self._controller.current_milestone(day)
        if milestone is not None:
            return milestone
        open_milestones = self._controller.active_milestones()
        return open_milestones[0] if open_milestones else None

    async def _guidance(
        self,
        milestone: Milestone,
        day: int,
        conversation_history: Sequence[ConversationTurn],
        forced: bool,
    ) -> ChatMessage | None:
        text = await self._scheduler.request_guidance(
            milestone,
            self.state,
            day,
            conversation_history=conversation_history,
            forced=forced,
        )
        if not text:
            return None
        message = ChatMessage(content=text, milestone_id=milestone.id)
        self._post(message)
        self._background.append(message)
        if self._db is not None and self._scheduler.history:
            await self._db.log_guidance(self._scheduler.history[-1])
        return message

    def _schedule_achievement(self, result: CheckResult, next_milestone: Milestone | None, day: int) -> None:
        if self._narrator is None:
            return
        milestone = self.state.milestone(result.milestone_id)
        if milestone is None:
            return
        request = AchievementRequest(
            milestone=milestone,
            current_day=day,
            next_milestone=next_milestone,
            campaign_title=self.state.title,
            characters=self.state.characters,
        )
        self._schedule(self._achievement(request))

    async def _achievement(self, request: AchievementRequest) -> ChatMessage | None:
        try:
            text = await asyncio.wait_for(
                self._narrator.milestone_achievement(request), timeout=self._scheduler.timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Achievement narration for %s timed out", request.milestone.id)
            return None
        except Exception as exc:
            logger.warning("Achievement narration for %s failed: %s", request.milestone.id, exc)
            return None
        if not text:
            return None
        message = ChatMessage(content=text, milestone_id=request.milestone.id)
        self._post(message)
        self._background.append(message)
        return message
