"""Senior document store: record types, the async store interface, and the SQL adapter.

The rest of the application only talks to ``SeniorStore``. Every method is a
coroutine so callers suspend at each store round-trip, whichever backend is
configured.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.models import CheckIn, SeniorState
from services.errors import TransportError
from services.streaks import next_streak
from utils.datetime_utils import month_bounds, parse_iso_datetime

logger = logging.getLogger(__name__)

BRAIN_GAMES_FIELD = "brainGamesEnabled"
HEALTH_QUIZ_FIELD = "healthQuizEnabled"
VACATION_MODE_FIELD = "vacationMode"

# Document field -> SeniorState column. Only these may be merged one at a time.
ATOMIC_FIELDS: dict[str, str] = {
    BRAIN_GAMES_FIELD: "brain_games_enabled",
    HEALTH_QUIZ_FIELD: "health_quiz_enabled",
    VACATION_MODE_FIELD: "vacation_mode",
}


def _optional_bool(value: Any) -> bool | None:
    if value is None:
        return None
    return value is True


def _string_list(value: Any) -> list[str]:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    if not isinstance(value, (list, tuple)):
        return []
    return [str(item) for item in value if item is not None]


@dataclass
class SeniorStateSnapshot:
    start_date: datetime | None = None
    brain_games_enabled: bool | None = None
    health_quiz_enabled: bool | None = None
    current_streak: int = 0
    last_check_in: datetime | None = None
    check_in_schedules: list[str] = field(default_factory=list)
    vacation_mode: bool = False

    def field_value(self, name: str) -> bool | None:
        column = ATOMIC_FIELDS.get(name)
        if column is None:
            raise ValueError(f"Unknown senior state field: {name}")
        return getattr(self, column)

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> SeniorStateSnapshot:
        streak = data.get("currentStreak")
        return cls(
            start_date=parse_iso_datetime(data.get("startDate")),
            brain_games_enabled=_optional_bool(data.get(BRAIN_GAMES_FIELD)),
            health_quiz_enabled=_optional_bool(data.get(HEALTH_QUIZ_FIELD)),
            current_streak=max(int(streak), 0) if isinstance(streak, (int, float)) else 0,
            last_check_in=parse_iso_datetime(data.get("lastCheckIn")),
            check_in_schedules=_string_list(data.get("checkInSchedules")),
            vacation_mode=data.get(VACATION_MODE_FIELD) is True,
        )

    @classmethod
    def from_row(cls, row: SeniorState) -> SeniorStateSnapshot:
        return cls(
            start_date=row.start_date,
            brain_games_enabled=row.brain_games_enabled,
            health_quiz_enabled=row.health_quiz_enabled,
            current_streak=int(row.current_streak or 0),
            last_check_in=row.last_check_in,
            check_in_schedules=_string_list(row.check_in_schedules),
            vacation_mode=bool(row.vacation_mode),
        )


@dataclass(frozen=True)
class CheckInRecord:
    timestamp: datetime
    mood: str | None = None
    sleep: str | None = None
    energy: str | None = None
    medication: str | None = None
    scheduled_count: int = 1
    scheduled_for: tuple[str, ...] = ()
    brain_exercise_completed: bool = False
    id: str | None = None

    @classmethod
    def from_document(cls, data: dict[str, Any], doc_id: str | None = None) -> CheckInRecord:
        timestamp = parse_iso_datetime(data.get("timestamp"))
        if timestamp is None:
            raise ValueError(f"Check-in {doc_id or data.get('id')!r} is missing required timestamp")
        scheduled_count = data.get("scheduledCount")
        return cls(
            id=doc_id or (str(data["id"]) if data.get("id") is not None else None),
            timestamp=timestamp,
            mood=data.get("mood"),
            sleep=data.get("sleep"),
            energy=data.get("energy"),
            medication=data.get("medication"),
            scheduled_count=int(scheduled_count) if isinstance(scheduled_count, (int, float)) else 1,
            scheduled_for=tuple(_string_list(data.get("scheduledFor"))),
            brain_exercise_completed=data.get("brainExerciseCompleted") is True,
        )

    @classmethod
    def from_row(cls, row: CheckIn) -> CheckInRecord:
        return cls(
            id=str(row.id),
            timestamp=row.timestamp,
            mood=row.mood,
            sleep=row.sleep,
            energy=row.energy,
            medication=row.medication,
            scheduled_count=int(row.scheduled_count if row.scheduled_count is not None else 1),
            scheduled_for=tuple(_string_list(row.scheduled_for)),
            brain_exercise_completed=bool(row.brain_exercise_completed),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "mood": self.mood,
            "sleep": self.sleep,
            "energy": self.energy,
            "medication": self.medication,
            "brainExerciseCompleted": self.brain_exercise_completed,
            "scheduledCount": self.scheduled_count,
            "scheduledFor": list(self.scheduled_for),
        }


class SeniorStore(ABC):
    """Abstract base class for senior document stores."""

    @abstractmethod
    async def get_senior_state(self, user_id: str) -> SeniorStateSnapshot | None:
        """Return the senior's state, or None when no document exists.

        Raises:
            TransportError on network, database, or permission failure.
        """
        ...

    @abstractmethod
    async def get_check_ins_for_month(self, user_id: str, year: int, month: int) -> list[CheckInRecord]:
        """Return the month's check-ins, newest first. Empty list when none."""
        ...

    @abstractmethod
    async def atomic_update_senior_field(self, user_id: str, field: str, value: bool) -> None:
        """Merge a single field into the senior's state without touching siblings.

        Raises:
            ValueError for fields outside ATOMIC_FIELDS.
            TransportError on failure.
        """
        ...

    @abstractmethod
    async def record_check_in(self, user_id: str, record: CheckInRecord) -> SeniorStateSnapshot:
        """Store a check-in and update streak bookkeeping in one transaction."""
        ...

    async def aclose(self) -> None:
        return None


def _require_atomic_field(field_name: str) -> str:
    column = ATOMIC_FIELDS.get(field_name)
    if column is None:
        raise ValueError(f"Field {field_name!r} cannot be updated atomically")
    return column


class SqlSeniorStore(SeniorStore):
    """SeniorStore backed by the application's SQLAlchemy models."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(self._in_session, fn, *args)
        except SQLAlchemyError as e:
            raise TransportError(f"Senior store query failed: {e}") from e

    def _in_session(self, fn, *args):
        db = self._session_factory()
        try:
            result = fn(db, *args)
            db.commit()
            return result
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def _user_key(user_id: str) -> int:
        try:
            return int(user_id)
        except (TypeError, ValueError):
            raise TransportError(f"Permission denied for user {user_id!r}") from None

    async def get_senior_state(self, user_id: str) -> SeniorStateSnapshot | None:
        key = self._user_key(user_id)

        def _query(db: Session):
            row = db.query(SeniorState).filter(SeniorState.user_id == key).first()
            return SeniorStateSnapshot.from_row(row) if row else None

        return await self._run(_query)

    async def get_check_ins_for_month(self, user_id: str, year: int, month: int) -> list[CheckInRecord]:
        key = self._user_key(user_id)
        start, end = month_bounds(year, month)

        def _query(db: Session):
            rows = (
                db.query(CheckIn)
                .filter(
                    CheckIn.user_id == key,
                    CheckIn.timestamp >= start,
                    CheckIn.timestamp < end,
                )
                .order_by(CheckIn.timestamp.desc(), CheckIn.id.desc())
                .all()
            )
            return [CheckInRecord.from_row(row) for row in rows]

        return await self._run(_query)

    async def atomic_update_senior_field(self, user_id: str, field: str, value: bool) -> None:
        key = self._user_key(user_id)
        column = _require_atomic_field(field)

        def _merge(db: Session):
            row = db.query(SeniorState).filter(SeniorState.user_id == key).first()
            if row is None:
                row = SeniorState(user_id=key)
                db.add(row)
            setattr(row, column, bool(value))

        await self._run(_merge)
        logger.debug("Merged %s=%s for user %s", field, value, user_id)

    async def record_check_in(self, user_id: str, record: CheckInRecord) -> SeniorStateSnapshot:
        key = self._user_key(user_id)

        def _record(db: Session):
            row = db.query(SeniorState).filter(SeniorState.user_id == key).first()
            if row is None:
                row = SeniorState(user_id=key, current_streak=0)
                db.add(row)
            streak, start_date = next_streak(
                row.current_streak or 0,
                row.last_check_in,
                row.start_date,
                record.timestamp,
            )
            db.add(
                CheckIn(
                    user_id=key,
                    timestamp=record.timestamp,
                    mood=record.mood,
                    sleep=record.sleep,
                    energy=record.energy,
                    medication=record.medication,
                    brain_exercise_completed=record.brain_exercise_completed,
                    scheduled_count=record.scheduled_count,
                    scheduled_for=json.dumps(list(record.scheduled_for)),
                )
            )
            row.last_check_in = record.timestamp
            row.current_streak = streak
            row.start_date = start_date
            db.flush()
            return SeniorStateSnapshot.from_row(row)

        return await self._run(_record)
