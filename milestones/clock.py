"""Session day sources for the milestone engine."""

from __future__ import annotations

from typing import Protocol


class DayClock(Protocol):
    def current_day(self) -> int: ...


class FixedClock:
    """Always reports the same day."""

    def __init__(self, day: int = 1):
        self._day = day

    def current_day(self) -> int:
        return self._day


class SessionClock:
    """In-game day counter advanced by the session, one day at a time."""

    def __init__(self, start_day: int = 1):
        self._day = start_day

    def current_day(self) -> int:
        return self._day

    def advance(self, days: int = 1) -> int:
        if days < 0:
            raise ValueError("The session clock cannot move backwards")
        self._day += days
        return self._day
