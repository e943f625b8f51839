from fastapi import HTTPException, Request, status

from services.errors import TransportError
from services.feature_flags import FeatureToggles
from services.identity import IdentityHub
from services.senior_store import SeniorStore


def get_identity_hub(request: Request) -> IdentityHub:
    return request.app.state.identity


def get_senior_store(request: Request) -> SeniorStore:
    return request.app.state.senior_store


def get_feature_toggles(request: Request) -> FeatureToggles:
    return request.app.state.feature_toggles


def store_unavailable(exc: TransportError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Senior store unavailable: {exc}",
    )
