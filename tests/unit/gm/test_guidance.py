"""Tests for guidance urgency, throttling and the narrator call."""

import asyncio

from campaign.models import CampaignState, ConversationTurn, Milestone, Requirement
from gm.guidance import (
    CRITICAL,
    DIRECT,
    MODERATE,
    NORMAL,
    OVERDUE,
    SUBTLE,
    URGENT,
    GuidanceScheduler,
    describe_milestone,
    fallback_message,
    guidance_intensity,
    milestone_urgency,
    remaining_requirements,
    should_emit,
)
from milestones.progress import compute_progress


class FakeNarrator:
    """Records which endpoint was used and answers instantly."""

    def __init__(self, reply: str = "The wind carries news from the keep."):
        self.reply = reply
        self.calls: list[tuple[str, object]] = []

    async def natural_guidance(self, request):
        self.calls.append(("natural", request))
        return self.reply

    async def milestone_warning(self, request):
        self.calls.append(("warning", request))
        return self.reply

    async def milestone_achievement(self, request):
        self.calls.append(("achievement", request))
        return self.reply


class SlowNarrator(FakeNarrator):
    async def natural_guidance(self, request):
        await asyncio.sleep(5)
        return "too late"

    milestone_warning = natural_guidance


class BrokenNarrator(FakeNarrator):
    async def natural_guidance(self, request):
        raise RuntimeError("model unavailable")

    milestone_warning = natural_guidance


def _milestone(target_day: int = 10, deadline: bool = False) -> Milestone:
    return Milestone(
        id="m1",
        title="Storm the keep",
        description="Take the keep before winter.",
        status="active",
        target_day=target_day,
        deadline=deadline,
        requirements=(
            Requirement(type="quests", description="Rally the militia", quest_ids=("q1",)),
            Requirement(type="quests", description="Forge the ram", quest_ids=("q2",)),
        ),
    )


STATE = CampaignState(title="Lost Crown", location="Harrowgate", quest_statuses={"q1": "completed"})


def test_urgency_levels():
    assert milestone_urgency(_milestone(10), 5) == NORMAL
    assert milestone_urgency(_milestone(10), 8) == URGENT
    assert milestone_urgency(_milestone(10), 9) == URGENT
    assert milestone_urgency(_milestone(10, deadline=True), 9) == CRITICAL
    assert milestone_urgency(_milestone(10, deadline=True), 10) == CRITICAL
    assert milestone_urgency(_milestone(10), 11) == OVERDUE


def test_should_emit_rules():
    assert should_emit(NORMAL, 1) is False
    assert should_emit(NORMAL, 3) is True
    assert should_emit(NORMAL, 0, forced=True) is True
    assert should_emit(URGENT, 0) is False
    assert should_emit(URGENT, 1) is True
    assert should_emit(CRITICAL, 0) is True
    assert should_emit(OVERDUE, 0) is True


def test_intensity_scales_with_urgency_and_silence():
    assert guidance_intensity(NORMAL, 1) == SUBTLE
    assert guidance_intensity(NORMAL, 3) == MODERATE
    assert guidance_intensity(URGENT, 1) == MODERATE
    assert guidance_intensity(CRITICAL, 0) == DIRECT
    assert guidance_intensity(OVERDUE, 0) == DIRECT


def test_remaining_requirements_and_description():
    milestone = _milestone(10)
    progress = compute_progress(milestone, STATE)
    assert remaining_requirements(milestone, progress) == ["Forge the ram"]

    text = describe_milestone(milestone, progress, 5)
    assert "Title: Storm the keep" in text
    assert "Progress: 50%" in text
    assert "- Forge the ram (Quests 0/1 completed)" in text


def test_fallback_messages():
    assert "overdue" in fallback_message(_milestone(3), OVERDUE, 5)
    assert "2 days remain" in fallback_message(_milestone(10), URGENT, 8)
    assert "Storm the keep" in fallback_message(_milestone(10), NORMAL, 1)


def test_throttled_when_recently_guided():
    narrator = FakeNarrator()
    scheduler = GuidanceScheduler(narrator=narrator)
    text = asyncio.run(scheduler.request_guidance(_milestone(10), STATE, 1))
    assert text is None
    assert narrator.calls == []


def test_normal_guidance_after_silence_uses_natural_endpoint():
    narrator = FakeNarrator()
    scheduler = GuidanceScheduler(narrator=narrator)
    history = tuple(ConversationTurn("user", f"msg {i}") for i in range(8))

    text = asyncio.run(scheduler.request_guidance(_milestone(10), STATE, 3, conversation_history=history))

    assert text == narrator.reply
    kind, request = narrator.calls[0]
    assert kind == "natural"
    assert request.intensity == MODERATE
    assert len(request.conversation_history) == 5
    assert request.conversation_history[-1].content == "msg 7"
    assert scheduler.last_guidance_day == 3
    assert scheduler.history[-1].fallback is False

    # the next day is quiet again
    assert asyncio.run(scheduler.request_guidance(_milestone(10), STATE, 4)) is None


def test_critical_guidance_uses_warning_endpoint():
    narrator = FakeNarrator()
    scheduler = GuidanceScheduler(narrator=narrator, last_guidance_day=9)
    text = asyncio.run(scheduler.request_guidance(_milestone(10, deadline=True), STATE, 9))
    assert text == narrator.reply
    kind, request = narrator.calls[0]
    assert kind == "warning"
    assert request.remaining_requirements == ("Forge the ram",)
    assert request.progress == 50


def test_timeout_returns_fallback_without_advancing_last_day():
    scheduler = GuidanceScheduler(narrator=SlowNarrator(), timeout=0.01)
    milestone = _milestone(3)
    text = asyncio.run(scheduler.request_guidance(milestone, STATE, 5))
    assert text == fallback_message(milestone, OVERDUE, 5)
    assert scheduler.last_guidance_day == 0
    assert scheduler.history[-1].fallback is True


def test_narrator_failure_returns_none():
    scheduler = GuidanceScheduler(narrator=BrokenNarrator())
    assert asyncio.run(scheduler.request_guidance(_milestone(10), STATE, 5, forced=True)) is None
    assert scheduler.last_guidance_day == 0
    assert scheduler.history == []


def test_no_narrator_means_no_guidance():
    scheduler = GuidanceScheduler()
    assert asyncio.run(scheduler.request_guidance(_milestone(3), STATE, 5)) is None


def test_from_config_reads_timeout():
    scheduler = GuidanceScheduler.from_config(None, {"guidance": {"timeout_seconds": 7}})
    assert scheduler.timeout == 7.0
    assert GuidanceScheduler.from_config(None, None).timeout == 20.0


def test_from_config_with_empty_guidance_section():
    assert GuidanceScheduler.from_config(None, {"guidance": None}).timeout == 20.0
