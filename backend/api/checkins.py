import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from api.deps import get_senior_store, store_unavailable
from auth.utils import require_senior
from config import settings
from db.models import User
from services.errors import TransportError
from services.senior_store import CheckInRecord, SeniorStore
from utils.datetime_utils import local_now

router = APIRouter(prefix="/checkins", tags=["checkins"])
logger = logging.getLogger(__name__)


class CheckInRequest(BaseModel):
    mood: Optional[str] = None
    sleep: Optional[str] = None
    energy: Optional[str] = None
    medication: Optional[str] = None
    brain_exercise_completed: bool = False
    scheduled_for: list[str] = Field(default_factory=list)


class CheckInResponse(BaseModel):
    status: str
    timestamp: str
    scheduled_count: int
    current_streak: int
    start_date: Optional[str] = None


@router.post("", response_model=CheckInResponse, status_code=status.HTTP_201_CREATED)
async def record_check_in(
    req: CheckInRequest,
    user: User = Depends(require_senior),
    store: SeniorStore = Depends(get_senior_store),
):
    user_id = str(user.id)
    try:
        state = await store.get_senior_state(user_id)
        schedules = (state.check_in_schedules if state else None) or settings.DEFAULT_CHECK_IN_SCHEDULES
        record = CheckInRecord(
            timestamp=local_now(settings.DEVICE_TIMEZONE),
            mood=req.mood,
            sleep=req.sleep,
            energy=req.energy,
            medication=req.medication,
            brain_exercise_completed=req.brain_exercise_completed,
            scheduled_count=max(len(schedules), 1),
            scheduled_for=tuple(req.scheduled_for),
        )
        updated = await store.record_check_in(user_id, record)
    except TransportError as e:
        logger.warning("Check-in for user %s failed: %s", user.id, e)
        raise store_unavailable(e)

    return CheckInResponse(
        status="recorded",
        timestamp=record.timestamp.isoformat(),
        scheduled_count=record.scheduled_count,
        current_streak=updated.current_streak,
        start_date=updated.start_date.isoformat() if updated.start_date else None,
    )
