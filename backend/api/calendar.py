from fastapi import APIRouter, Depends, HTTPException, Path

from api.deps import get_senior_store, store_unavailable
from auth.utils import get_current_user
from config import settings
from db.models import User
from services.calendar_service import DaySummary, MonthlyMetrics, load_monthly_metrics, record_details
from services.errors import TransportError
from services.senior_store import CheckInRecord, SeniorStore
from utils.datetime_utils import today_for_tz

router = APIRouter(prefix="/calendar", tags=["calendar"])


def _serialize_check_in(record: CheckInRecord) -> dict:
    return {
        "id": record.id,
        "timestamp": record.timestamp.isoformat(),
        "mood": record.mood,
        "sleep": record.sleep,
        "energy": record.energy,
        "medication": record.medication,
        "brain_exercise_completed": record.brain_exercise_completed,
        "scheduled_count": record.scheduled_count,
        "scheduled_for": list(record.scheduled_for),
        "details": [{"label": label, "value": value} for label, value in record_details(record)],
    }


def _serialize_day(summary: DaySummary, include_check_ins: bool = False) -> dict:
    payload = {
        "day": summary.day,
        "check_in_count": summary.check_in_count,
        "scheduled_count": summary.scheduled_count,
        "completion": round(summary.completion, 3),
        "counted": summary.counted,
        "has_issues": summary.has_issues,
        "issues": summary.issues,
        "wellness_index": summary.wellness_index,
        "medication_taken": summary.medication_taken,
    }
    if include_check_ins:
        payload["check_ins"] = [_serialize_check_in(r) for r in summary.check_ins]
    return payload


def _serialize_month(metrics: MonthlyMetrics) -> dict:
    return {
        "year": metrics.year,
        "month": metrics.month,
        "total_check_ins": metrics.total_check_ins,
        "success_rate_percent": metrics.success_rate_percent,
        "effective_start": metrics.effective_start.isoformat(),
        "month_end": metrics.month_end.isoformat(),
        "days_to_count": metrics.days_to_count,
        "days_with_issues": metrics.days_with_issues,
        "days": [_serialize_day(s) for s in metrics.days()],
    }


async def _month_metrics(store: SeniorStore, user: User, year: int, month: int) -> MonthlyMetrics:
    try:
        return await load_monthly_metrics(
            store,
            str(user.id),
            year,
            month,
            today=today_for_tz(settings.DEVICE_TIMEZONE),
        )
    except TransportError as e:
        raise store_unavailable(e)


@router.get("/{year}/{month}")
async def get_month(
    year: int = Path(ge=1970, le=9999),
    month: int = Path(ge=1, le=12),
    user: User = Depends(get_current_user),
    store: SeniorStore = Depends(get_senior_store),
):
    """Check-ins grouped by day plus the month's success rate."""
    metrics = await _month_metrics(store, user, year, month)
    return _serialize_month(metrics)


@router.get("/{year}/{month}/days/{day}")
async def get_day(
    year: int = Path(ge=1970, le=9999),
    month: int = Path(ge=1, le=12),
    day: int = Path(ge=1, le=31),
    user: User = Depends(get_current_user),
    store: SeniorStore = Depends(get_senior_store),
):
    metrics = await _month_metrics(store, user, year, month)
    summary = metrics.day(day)
    if summary is None:
        raise HTTPException(status_code=404, detail="No check-ins on this day")
    return _serialize_day(summary, include_check_ins=True)
