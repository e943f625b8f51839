from __future__ import annotations

import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db.database import Base  # noqa: E402
from db.models import CheckIn, SeniorState, User  # noqa: E402
from services.errors import TransportError  # noqa: E402
from services.senior_store import (  # noqa: E402
    BRAIN_GAMES_FIELD,
    HEALTH_QUIZ_FIELD,
    CheckInRecord,
    SeniorStateSnapshot,
    SqlSeniorStore,
)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


def _add_user(factory, username: str = "margaret", **state) -> str:
    db = factory()
    try:
        user = User(
            username=username,
            username_normalized=username,
            password_hash="x",
            display_name=username.title(),
        )
        db.add(user)
        db.flush()
        if state:
            db.add(SeniorState(user_id=user.id, **state))
        db.commit()
        return str(user.id)
    finally:
        db.close()


def _add_check_in(factory, user_id: str, timestamp: datetime, **fields) -> None:
    db = factory()
    try:
        db.add(CheckIn(user_id=int(user_id), timestamp=timestamp, **fields))
        db.commit()
    finally:
        db.close()


def test_missing_senior_state_returns_none(session_factory):
    user_id = _add_user(session_factory)
    store = SqlSeniorStore(session_factory)
    assert asyncio.run(store.get_senior_state(user_id)) is None


def test_unwritten_toggle_columns_read_as_none(session_factory):
    user_id = _add_user(
        session_factory,
        current_streak=3,
        check_in_schedules=json.dumps(["9:00 AM", "6:00 PM"]),
    )
    state = asyncio.run(SqlSeniorStore(session_factory).get_senior_state(user_id))
    assert state.brain_games_enabled is None
    assert state.health_quiz_enabled is None
    assert state.current_streak == 3
    assert state.check_in_schedules == ["9:00 AM", "6:00 PM"]


def test_atomic_update_leaves_sibling_fields_alone(session_factory):
    start = datetime(2026, 3, 1, 9, 0)
    user_id = _add_user(
        session_factory,
        health_quiz_enabled=False,
        current_streak=5,
        start_date=start,
    )
    store = SqlSeniorStore(session_factory)

    async def scenario():
        await store.atomic_update_senior_field(user_id, BRAIN_GAMES_FIELD, True)
        return await store.get_senior_state(user_id)

    state = asyncio.run(scenario())
    assert state.brain_games_enabled is True
    assert state.health_quiz_enabled is False
    assert state.current_streak == 5
    assert state.start_date == start


def test_atomic_update_creates_missing_state(session_factory):
    user_id = _add_user(session_factory)
    store = SqlSeniorStore(session_factory)

    async def scenario():
        await store.atomic_update_senior_field(user_id, HEALTH_QUIZ_FIELD, False)
        return await store.get_senior_state(user_id)

    state = asyncio.run(scenario())
    assert state.health_quiz_enabled is False
    assert state.brain_games_enabled is None


def test_atomic_update_rejects_unknown_field(session_factory):
    user_id = _add_user(session_factory)
    store = SqlSeniorStore(session_factory)
    with pytest.raises(ValueError):
        asyncio.run(store.atomic_update_senior_field(user_id, "currentStreak", True))


def test_non_numeric_user_id_is_a_transport_error(session_factory):
    store = SqlSeniorStore(session_factory)
    with pytest.raises(TransportError):
        asyncio.run(store.get_senior_state("not-a-user"))


def test_month_query_is_half_open_and_newest_first(session_factory):
    user_id = _add_user(session_factory)
    other_id = _add_user(session_factory, username="walter")
    _add_check_in(session_factory, user_id, datetime(2025, 11, 30, 23, 59))
    _add_check_in(session_factory, user_id, datetime(2025, 12, 1, 0, 0), mood="happy")
    _add_check_in(session_factory, user_id, datetime(2025, 12, 31, 22, 0), mood="sad", scheduled_count=2)
    _add_check_in(session_factory, user_id, datetime(2026, 1, 1, 0, 0))
    _add_check_in(session_factory, other_id, datetime(2025, 12, 15, 9, 0))

    records = asyncio.run(SqlSeniorStore(session_factory).get_check_ins_for_month(user_id, 2025, 12))

    assert [r.timestamp for r in records] == [
        datetime(2025, 12, 31, 22, 0),
        datetime(2025, 12, 1, 0, 0),
    ]
    assert records[0].scheduled_count == 2
    assert records[0].mood == "sad"
    assert records[1].id is not None


def test_empty_month_returns_empty_list(session_factory):
    user_id = _add_user(session_factory)
    assert asyncio.run(SqlSeniorStore(session_factory).get_check_ins_for_month(user_id, 2026, 2)) == []


def test_record_check_in_tracks_streak_and_start_date(session_factory):
    user_id = _add_user(session_factory)
    store = SqlSeniorStore(session_factory)

    async def scenario():
        first = await store.record_check_in(
            user_id,
            CheckInRecord(timestamp=datetime(2026, 3, 4, 9, 0), mood="happy", scheduled_for=("9:00 AM",)),
        )
        second = await store.record_check_in(user_id, CheckInRecord(timestamp=datetime(2026, 3, 5, 9, 0)))
        broken = await store.record_check_in(user_id, CheckInRecord(timestamp=datetime(2026, 3, 9, 9, 0)))
        records = await store.get_check_ins_for_month(user_id, 2026, 3)
        return first, second, broken, records

    first, second, broken, records = asyncio.run(scenario())
    assert (first.current_streak, first.start_date) == (1, datetime(2026, 3, 4, 9, 0))
    assert (second.current_streak, second.start_date) == (2, datetime(2026, 3, 4, 9, 0))
    assert (broken.current_streak, broken.start_date) == (1, datetime(2026, 3, 9, 9, 0))
    assert broken.last_check_in == datetime(2026, 3, 9, 9, 0)
    assert len(records) == 3
    assert records[-1].scheduled_for == ("9:00 AM",)


def test_snapshot_field_value_by_document_name():
    state = SeniorStateSnapshot(brain_games_enabled=False)
    assert state.field_value(BRAIN_GAMES_FIELD) is False
    assert state.field_value(HEALTH_QUIZ_FIELD) is None
    with pytest.raises(ValueError):
        state.field_value("startDate")


def test_check_in_document_accepts_numeric_scheduled_count():
    record = CheckInRecord.from_document(
        {"timestamp": "2026-03-05T09:00:00", "scheduledCount": 2.0, "scheduledFor": ["9:00 AM", None]},
        doc_id="doc-1",
    )
    assert record.scheduled_count == 2
    assert record.scheduled_for == ("9:00 AM",)
    assert record.id == "doc-1"
    assert CheckInRecord.from_document({"timestamp": "2026-03-05T09:00:00", "scheduledCount": "2"}).scheduled_count == 1
