from __future__ import annotations

from datetime import datetime
from enum import Enum


class StreakState(str, Enum):
    SAME_DAY = "same_day"
    CONSECUTIVE = "consecutive"
    BROKEN = "broken"


def calculate_streak_state(last: datetime, now: datetime) -> StreakState:
    """Classify a new check-in relative to the previous one by calendar day."""
    diff = (now.date() - last.date()).days
    if diff == 0:
        return StreakState.SAME_DAY
    if diff == 1:
        return StreakState.CONSECUTIVE
    return StreakState.BROKEN


def next_streak(
    current_streak: int,
    last_check_in: datetime | None,
    start_date: datetime | None,
    timestamp: datetime,
) -> tuple[int, datetime]:
    """Return (streak, start_date) after recording a check-in at timestamp.

    A broken streak restarts the program window, so start_date moves to the
    new check-in. The first check-in ever also anchors start_date.
    """
    current = max(int(current_streak or 0), 0)
    if last_check_in is None:
        if current > 0 or start_date is None:
            return 1, timestamp
        return 1, start_date

    state = calculate_streak_state(last_check_in, timestamp)
    if state is StreakState.SAME_DAY:
        return (current if current > 0 else 1), (start_date or timestamp)
    if state is StreakState.CONSECUTIVE:
        return current + 1, (start_date or timestamp)
    return 1, timestamp
