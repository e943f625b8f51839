"""Monthly check-in calendar: per-day grouping, issue flags, and success rate.

Success rate is the mean daily completion over the counted days of the month,
where a day's completion is ``min(check-ins, scheduled) / scheduled``. Counted
days run from the later of the first of the month and the senior's program
start date, up to today (current month) or the last day of the month. Days
without check-ins count as zero.
"""

from __future__ import annotations

import asyncio
import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from services.senior_store import CheckInRecord, SeniorStore
from services.wellness import medication_taken, wellness_index
from utils.datetime_utils import as_date, days_between, last_day_of_month

ISSUE_MOODS = frozenset({"awful", "bad", "sad", "down", "very_sad"})
ISSUE_SLEEP = frozenset({"poor", "fair", "poorly"})


def _normalized(value: str | None) -> str | None:
    if value is None:
        return None
    return str(value).strip().lower()


def record_issues(record: CheckInRecord) -> list[str]:
    issues = []
    if _normalized(record.mood) in ISSUE_MOODS:
        issues.append("Low mood")
    if _normalized(record.sleep) in ISSUE_SLEEP:
        issues.append("Poor sleep")
    return issues


def record_has_issues(record: CheckInRecord) -> bool:
    return bool(record_issues(record))


def day_has_issues(records: list[CheckInRecord]) -> bool:
    return any(record_has_issues(r) for r in records)


def record_details(record: CheckInRecord) -> list[tuple[str, str]]:
    """Label/value pairs for the answers present on a check-in."""
    details = []
    for label, value in (
        ("mood", record.mood),
        ("sleep", record.sleep),
        ("energy", record.energy),
        ("medication", record.medication),
    ):
        if value is not None and str(value).strip():
            details.append((label, str(value)))
    return details


def group_by_day(
    records: list[CheckInRecord],
    year: int | None = None,
    month: int | None = None,
) -> dict[int, list[CheckInRecord]]:
    """Partition records by day of month, oldest first within a day.

    When year and month are given, records outside that month are dropped.
    """
    by_day: dict[int, list[CheckInRecord]] = defaultdict(list)
    for record in sorted(records, key=lambda r: r.timestamp):
        ts = record.timestamp
        if year is not None and month is not None and (ts.year, ts.month) != (year, month):
            continue
        by_day[ts.day].append(record)
    return dict(sorted(by_day.items()))


def effective_start(year: int, month: int, start_date: datetime | date | None) -> date:
    month_start = date(year, month, 1)
    start = as_date(start_date)
    if start is not None and start > month_start:
        return start
    return month_start


def month_end(year: int, month: int, today: date) -> date:
    month_start = date(year, month, 1)
    if (today.year, today.month) == (year, month):
        return today
    if month_start > today:
        # Nothing in a future month can be counted yet.
        return month_start - timedelta(days=1)
    return last_day_of_month(year, month)


def count_days(start: date, end: date) -> int:
    if start > end:
        return 0
    return days_between(start, end) + 1


def daily_completion(check_in_count: int, scheduled_count: int) -> float:
    if scheduled_count <= 0:
        return 1.0
    return min(check_in_count, scheduled_count) / scheduled_count


def scheduled_for_day(records: list[CheckInRecord]) -> int:
    """Scheduled check-ins for a day; the largest value recorded that day wins."""
    if not records:
        return 1
    return max(int(r.scheduled_count) for r in records)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def success_rate_percent(
    check_ins_by_day: dict[int, list[CheckInRecord]],
    start: date,
    end: date,
) -> int:
    total_days = count_days(start, end)
    if total_days == 0:
        return 0
    completed = 0.0
    for day in range(start.day, end.day + 1):
        records = check_ins_by_day.get(day)
        if not records:
            continue
        completed += daily_completion(len(records), scheduled_for_day(records))
    return max(0, min(100, round_half_up(100 * completed / total_days)))


@dataclass
class DaySummary:
    day: int
    check_ins: list[CheckInRecord]
    has_issues: bool
    issues: list[str]
    scheduled_count: int
    completion: float
    counted: bool
    wellness_index: float | None
    medication_taken: bool = False

    @property
    def check_in_count(self) -> int:
        return len(self.check_ins)


@dataclass
class MonthlyMetrics:
    year: int
    month: int
    effective_start: date
    month_end: date
    days_to_count: int
    total_check_ins: int
    success_rate_percent: int
    check_ins_by_day: dict[int, list[CheckInRecord]] = field(default_factory=dict)

    def _counts(self, day: int) -> bool:
        if self.days_to_count == 0:
            return False
        return self.effective_start.day <= day <= self.month_end.day

    def day(self, day: int) -> DaySummary | None:
        records = self.check_ins_by_day.get(day)
        if not records:
            return None
        issues: list[str] = []
        for record in records:
            for issue in record_issues(record):
                if issue not in issues:
                    issues.append(issue)
        scheduled = scheduled_for_day(records)
        return DaySummary(
            day=day,
            check_ins=list(records),
            has_issues=bool(issues),
            issues=issues,
            scheduled_count=scheduled,
            completion=daily_completion(len(records), scheduled),
            counted=self._counts(day),
            wellness_index=round(sum(wellness_index(r) for r in records) / len(records), 3),
            medication_taken=any(medication_taken(r.medication) for r in records),
        )

    def days(self) -> list[DaySummary]:
        summaries = []
        for d in self.check_ins_by_day:
            summary = self.day(d)
            if summary is not None:
                summaries.append(summary)
        return summaries

    @property
    def days_with_issues(self) -> list[int]:
        return [d for d, records in self.check_ins_by_day.items() if day_has_issues(records)]


def build_monthly_metrics(
    records: list[CheckInRecord],
    year: int,
    month: int,
    start_date: datetime | date | None,
    today: date,
) -> MonthlyMetrics:
    if not 1 <= int(month) <= 12:
        raise ValueError(f"Invalid month: {month}")
    by_day = group_by_day(records, year, month)
    start = effective_start(year, month, start_date)
    end = month_end(year, month, today)
    return MonthlyMetrics(
        year=year,
        month=month,
        effective_start=start,
        month_end=end,
        days_to_count=count_days(start, end),
        total_check_ins=sum(len(v) for v in by_day.values()),
        success_rate_percent=success_rate_percent(by_day, start, end),
        check_ins_by_day=by_day,
    )


async def load_monthly_metrics(
    store: SeniorStore,
    user_id: str,
    year: int,
    month: int,
    today: date,
) -> MonthlyMetrics:
    """Fetch a month of check-ins plus the senior's start date and aggregate them."""
    if not 1 <= int(month) <= 12:
        raise ValueError(f"Invalid month: {month}")
    records, state = await asyncio.gather(
        store.get_check_ins_for_month(user_id, year, month),
        store.get_senior_state(user_id),
    )
    start_date = state.start_date if state is not None else None
    return build_monthly_metrics(records, year, month, start_date, today)
