from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from services.streaks import StreakState, calculate_streak_state, next_streak  # noqa: E402


@pytest.mark.parametrize(
    "last, now, expected",
    [
        (datetime(2026, 3, 4, 8, 0), datetime(2026, 3, 4, 21, 0), StreakState.SAME_DAY),
        (datetime(2026, 3, 4, 23, 50), datetime(2026, 3, 5, 0, 10), StreakState.CONSECUTIVE),
        (datetime(2026, 2, 28, 9, 0), datetime(2026, 3, 1, 9, 0), StreakState.CONSECUTIVE),
        (datetime(2026, 3, 1, 9, 0), datetime(2026, 3, 3, 9, 0), StreakState.BROKEN),
    ],
)
def test_calculate_streak_state_by_calendar_day(last, now, expected):
    assert calculate_streak_state(last, now) is expected


def test_first_check_in_anchors_start_date():
    ts = datetime(2026, 3, 4, 9, 0)
    assert next_streak(0, None, None, ts) == (1, ts)


def test_first_check_in_keeps_existing_start_date():
    start = datetime(2026, 3, 1, 12, 0)
    ts = datetime(2026, 3, 4, 9, 0)
    assert next_streak(0, None, start, ts) == (1, start)


def test_same_day_keeps_streak():
    start = datetime(2026, 3, 1, 9, 0)
    assert next_streak(4, datetime(2026, 3, 4, 8, 0), start, datetime(2026, 3, 4, 20, 0)) == (4, start)


def test_consecutive_day_extends_streak():
    start = datetime(2026, 3, 1, 9, 0)
    assert next_streak(3, datetime(2026, 3, 3, 8, 0), start, datetime(2026, 3, 4, 8, 0)) == (4, start)


def test_broken_streak_restarts_program_window():
    ts = datetime(2026, 3, 10, 9, 0)
    assert next_streak(6, datetime(2026, 3, 7, 9, 0), datetime(2026, 3, 1), ts) == (1, ts)


def test_negative_streak_is_treated_as_zero():
    last = datetime(2026, 3, 4, 8, 0)
    ts = datetime(2026, 3, 4, 10, 0)
    assert next_streak(-3, last, None, ts) == (1, ts)
