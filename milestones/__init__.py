"""Milestone progress evaluation and status lifecycle."""

from .clock import DayClock, FixedClock, SessionClock
from .evaluation import evaluate
from .lifecycle import (
    DailyCheck,
    LifecycleController,
    activate_next_milestone,
    active_milestones,
    current_milestone,
    perform_daily_check,
    reactivate,
    update_status,
)
from .progress import DEFAULT_RULES, CompletionRules, compute_progress

__all__ = [
    "DEFAULT_RULES",
    "CompletionRules",
    "DailyCheck",
    "DayClock",
    "FixedClock",
    "LifecycleController",
    "SessionClock",
    "activate_next_milestone",
    "active_milestones",
    "compute_progress",
    "current_milestone",
    "evaluate",
    "perform_daily_check",
    "reactivate",
    "update_status",
]
