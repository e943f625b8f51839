import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from api.deps import get_feature_toggles, get_identity_hub
from auth.models import LoginRequest, RegisterRequest, TokenResponse, UserResponse
from auth.utils import (
    create_token,
    get_current_user,
    hash_password,
    normalize_username,
    session_cookie_name,
    verify_password,
)
from config import settings
from db.database import get_db
from db.models import User
from services.feature_flags import FeatureToggles
from services.identity import IdentityHub

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def _set_session_cookie(response: Response, token: str, *, max_age_seconds: int) -> None:
    samesite = (settings.AUTH_COOKIE_SAMESITE or "lax").strip().lower()
    if samesite not in {"strict", "lax", "none"}:
        samesite = "lax"
    response.set_cookie(
        key=session_cookie_name(),
        value=token,
        httponly=bool(settings.AUTH_COOKIE_HTTPONLY),
        secure=bool(settings.AUTH_COOKIE_SECURE),
        samesite=samesite,  # type: ignore[arg-type]
        domain=settings.AUTH_COOKIE_DOMAIN,
        path=settings.AUTH_COOKIE_PATH or "/",
        max_age=max(int(max_age_seconds), 1),
    )


def _clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=session_cookie_name(),
        domain=settings.AUTH_COOKIE_DOMAIN,
        path=settings.AUTH_COOKIE_PATH or "/",
    )


async def _activate(user: User, response: Response, identity: IdentityHub, toggles: FeatureToggles) -> TokenResponse:
    token = create_token(user.id, role=user.role, token_version=user.token_version)
    _set_session_cookie(response, token, max_age_seconds=max(int(settings.JWT_EXPIRY_HOURS), 1) * 3600)
    identity.sign_in(str(user.id))
    # Respond once the feature toggles have picked up the new identity.
    await toggles.settle()
    return TokenResponse(access_token=token)


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    req: RegisterRequest,
    response: Response,
    db: Session = Depends(get_db),
    identity: IdentityHub = Depends(get_identity_hub),
    toggles: FeatureToggles = Depends(get_feature_toggles),
):
    normalized_username = normalize_username(req.username)
    if len(normalized_username) < 3:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username must be at least 3 characters")

    if db.query(User).filter(User.username_normalized == normalized_username).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already taken")

    user = User(
        username=" ".join(req.username.strip().split()),
        username_normalized=normalized_username,
        password_hash=hash_password(req.password),
        display_name=req.display_name,
        role=req.role,
        token_version=0,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered %s user %s", user.role, user.id)
    return await _activate(user, response, identity, toggles)


@router.post("/login", response_model=TokenResponse)
async def login(
    req: LoginRequest,
    response: Response,
    db: Session = Depends(get_db),
    identity: IdentityHub = Depends(get_identity_hub),
    toggles: FeatureToggles = Depends(get_feature_toggles),
):
    normalized_username = normalize_username(req.username)
    user = db.query(User).filter(User.username_normalized == normalized_username).first()
    if not user or not verify_password(req.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return await _activate(user, response, identity, toggles)


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return user


@router.post("/logout")
async def logout(
    response: Response,
    user: User = Depends(get_current_user),
    identity: IdentityHub = Depends(get_identity_hub),
    toggles: FeatureToggles = Depends(get_feature_toggles),
):
    _clear_session_cookie(response)
    identity.sign_out()
    await toggles.settle()
    logger.info("User %s signed out", user.id)
    return {"status": "ok"}
