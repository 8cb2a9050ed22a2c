"""Tests for milestone status transitions and the daily check."""

import random

import pytest

from campaign.models import CampaignState, Milestone, Requirement
from milestones import (
    FixedClock,
    LifecycleController,
    SessionClock,
    activate_next_milestone,
    active_milestones,
    compute_progress,
    current_milestone,
    perform_daily_check,
    reactivate,
    update_status,
)


def _milestone(mid: str, target_day: int, status: str = "pending", deadline: bool = False, quests=None):
    return Milestone(
        id=mid,
        title=mid.upper(),
        status=status,
        target_day=target_day,
        deadline=deadline,
        requirements=tuple(Requirement(type="quests", quest_ids=(q,)) for q in (quests or (f"{mid}-q",))),
    )


def _state(*milestones: Milestone, **kwargs) -> CampaignState:
    return CampaignState(title="Lost Crown", milestones=milestones, **kwargs)


def test_active_milestones_sorted_by_target_day():
    state = _state(
        _milestone("late", 9),
        _milestone("done", 1, status="completed"),
        _milestone("early", 2, status="active"),
        _milestone("lost", 3, status="failed"),
    )
    assert [m.id for m in active_milestones(state)] == ["early", "late"]


def test_current_milestone_skips_slipped_targets():
    state = _state(_milestone("slipped", 2, status="active"), _milestone("next", 6))
    assert current_milestone(state, 4).id == "next"
    assert current_milestone(state, 2).id == "slipped"
    assert current_milestone(state, 7) is None


def test_update_status_returns_new_state():
    state = _state(_milestone("a", 3))
    updated = update_status(state, "a", "completed", achieved_day=3)
    assert state.milestone("a").status == "pending"
    assert updated.milestone("a").status == "completed"
    assert updated.milestone("a").achieved_day == 3
    assert updated.milestone("a").updated_at


def test_update_status_unknown_id_is_a_no_op():
    state = _state(_milestone("a", 3))
    assert update_status(state, "missing", "completed") is state


def test_update_status_rejects_unknown_status():
    with pytest.raises(ValueError):
        update_status(_state(_milestone("a", 3)), "a", "abandoned")


def test_activate_next_picks_earliest_pending():
    state = _state(_milestone("b", 8), _milestone("a", 4), _milestone("c", 2, status="completed"))
    new_state, chosen = activate_next_milestone(state)
    assert chosen.id == "a"
    assert chosen.status == "active"
    assert new_state.milestone("b").status == "pending"

    empty_state, none = activate_next_milestone(_state(_milestone("x", 1, status="completed")))
    assert none is None
    assert empty_state.milestone("x").status == "completed"


def test_activate_next_until_nothing_is_pending():
    controller = LifecycleController(_state(_milestone("later", 10), _milestone("sooner", 3)))
    assert controller.activate_next_milestone().id == "sooner"
    assert controller.activate_next_milestone().id == "later"
    assert controller.activate_next_milestone() is None
    assert [m.status for m in controller.state.milestones] == ["active", "active"]


def test_reactivate_reopens_closed_milestone():
    state = _state(_milestone("a", 3, status="completed"))
    state = update_status(state, "a", "completed", achieved_day=2)
    reopened = reactivate(state, "a")
    assert reopened.milestone("a").status == "active"
    assert reopened.milestone("a").achieved_day is None

    # open milestones are left alone
    already_open = _state(_milestone("b", 3, status="active"))
    assert reactivate(already_open, "b") is already_open


def test_daily_check_completes_and_records_achieved_day():
    state = _state(_milestone("a", 5, status="active"), quest_statuses={"a-q": "completed"})
    check = perform_daily_check(state, 4, rng=random.Random(1))
    assert [r.milestone_id for r in check.results] == ["a"]
    assert check.results[0].was_completed is True
    assert check.state.milestone("a").status == "completed"
    assert check.state.milestone("a").achieved_day == 4
    assert check.state.last_checked_day == 4


def test_daily_check_fails_deadline_milestone():
    state = _state(_milestone("a", 5, status="active", deadline=True, quests=("q1", "q2")),
                   quest_statuses={"q1": "completed"})
    assert compute_progress(state.milestone("a"), state, current_day=6).overall_progress == 50
    check = perform_daily_check(state, 6)
    assert check.results[0].should_game_over is True
    assert check.results[0].gm_action.type == "gameover"
    assert check.state.milestone("a").status == "failed"


def test_daily_check_marks_active_milestone_overdue():
    state = _state(_milestone("a", 3, status="active"), _milestone("b", 3))
    check = perform_daily_check(state, 4)
    assert check.state.milestone("a").status == "overdue"
    # pending milestones are evaluated but keep their status
    assert check.state.milestone("b").status == "pending"
    assert len(check.results) == 2


def test_daily_check_is_idempotent_per_day():
    state = _state(_milestone("a", 3, status="active"))
    first = perform_daily_check(state, 4)
    assert first.results

    second = perform_daily_check(first.state, 4)
    assert second.results == []
    assert second.state is first.state

    earlier = perform_daily_check(first.state, 2)
    assert earlier.results == []


def test_closed_milestones_are_never_reevaluated():
    state = _state(_milestone("a", 3, status="completed"), _milestone("b", 3, status="failed"))
    check = perform_daily_check(state, 10)
    assert check.results == []
    assert check.state.milestone("a").status == "completed"
    assert check.state.milestone("b").status == "failed"


def test_overdue_milestone_can_still_be_reactivated_and_completed():
    state = _state(_milestone("a", 3, status="active"))
    state = perform_daily_check(state, 4).state
    assert state.milestone("a").status == "overdue"

    state = reactivate(state, "a").with_quest_status("a-q", "completed")
    check = perform_daily_check(state, 5)
    assert check.results[0].was_completed is True
    assert check.state.milestone("a").status == "completed"


def test_controller_advance_to_checks_each_day_in_order():
    state = _state(_milestone("a", 2, status="active", deadline=True))
    controller = LifecycleController(state, rng=random.Random(3))
    results = controller.advance_to(3)
    # day 1 and day 2 warn, day 3 fails
    assert [r.should_game_over for r in results] == [False, False, True]
    assert controller.last_checked_day == 3
    assert controller.state.milestone("a").status == "failed"
    assert controller.advance_to(3) == []


def test_controller_wraps_transitions():
    controller = LifecycleController(_state(_milestone("a", 2), _milestone("b", 5)))
    assert controller.activate_next_milestone().id == "a"
    controller.update_status("a", "completed", achieved_day=2)
    assert [m.id for m in controller.active_milestones()] == ["b"]
    assert controller.current_milestone(3).id == "b"

    controller.reactivate("a")
    assert controller.state.milestone("a").status == "active"

    fresher = controller.state.with_quest_status("b-q", "completed")
    controller.replace_state(fresher)
    assert controller.state is fresher


def test_clocks():
    assert FixedClock(4).current_day() == 4
    clock = SessionClock(start_day=2)
    assert clock.advance() == 3
    assert clock.advance(2) == 5
    assert clock.current_day() == 5
    with pytest.raises(ValueError):
        clock.advance(-1)
