import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from api.deps import get_feature_toggles, get_senior_store, store_unavailable
from auth.utils import get_current_user, require_senior
from db.models import User
from services.errors import TransportError
from services.feature_flags import FeatureToggles
from services.senior_store import VACATION_MODE_FIELD, SeniorStore
from services.toggle_setting import ToggleSetting

router = APIRouter(prefix="/settings", tags=["settings"])
logger = logging.getLogger(__name__)


class FeatureToggleResponse(BaseModel):
    name: str
    enabled: bool
    loading: bool
    state: str
    policy: str


class FeatureTogglesResponse(BaseModel):
    brain_games: FeatureToggleResponse
    health_quiz: FeatureToggleResponse


class FeatureToggleUpdate(BaseModel):
    enabled: bool


class FeatureToggleUpdateResponse(BaseModel):
    name: str
    enabled: bool
    applied: bool


def _toggle_response(toggle: ToggleSetting) -> FeatureToggleResponse:
    return FeatureToggleResponse(
        name=toggle.name,
        enabled=toggle.current_value,
        loading=toggle.is_loading,
        state=toggle.loading_state.value,
        policy=toggle.spec.policy.value,
    )


@router.get("/features", response_model=FeatureTogglesResponse)
def get_features(
    user: User = Depends(get_current_user),
    toggles: FeatureToggles = Depends(get_feature_toggles),
):
    _ = user
    return FeatureTogglesResponse(
        brain_games=_toggle_response(toggles.brain_games),
        health_quiz=_toggle_response(toggles.health_quiz),
    )


@router.put("/features/{name}", response_model=FeatureToggleUpdateResponse)
async def update_feature(
    name: str,
    req: FeatureToggleUpdate,
    user: User = Depends(get_current_user),
    toggles: FeatureToggles = Depends(get_feature_toggles),
):
    toggle = toggles.get(name)
    if toggle is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown feature: {name}")
    applied = await toggle.set_value(req.enabled)
    if not applied:
        logger.warning("Feature %s update to %s failed for user %s", toggle.name, req.enabled, user.id)
    return FeatureToggleUpdateResponse(name=toggle.name, enabled=toggle.current_value, applied=applied)


class VacationModeResponse(BaseModel):
    vacation_mode: bool


class VacationModeUpdate(BaseModel):
    enabled: bool


@router.get("/vacation", response_model=VacationModeResponse)
async def get_vacation_mode(
    user: User = Depends(get_current_user),
    store: SeniorStore = Depends(get_senior_store),
):
    try:
        state = await store.get_senior_state(str(user.id))
    except TransportError as e:
        raise store_unavailable(e)
    return VacationModeResponse(vacation_mode=bool(state is not None and state.vacation_mode))


@router.put("/vacation", response_model=VacationModeResponse)
async def update_vacation_mode(
    req: VacationModeUpdate,
    user: User = Depends(require_senior),
    store: SeniorStore = Depends(get_senior_store),
):
    try:
        await store.atomic_update_senior_field(str(user.id), VACATION_MODE_FIELD, req.enabled)
    except TransportError as e:
        logger.warning("Vacation mode update for user %s failed: %s", user.id, e)
        raise store_unavailable(e)
    logger.info("Vacation mode for user %s set to %s", user.id, req.enabled)
    return VacationModeResponse(vacation_mode=req.enabled)
