from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from api.deps import get_identity_hub
from config import settings
from db.database import get_db
from db.models import User
from services.identity import IdentityHub

security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def session_cookie_name() -> str:
    return (settings.AUTH_COOKIE_NAME or "").strip() or "checkin_session"


def normalize_username(username: str) -> str:
    return " ".join((username or "").strip().split()).lower()


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode(), hashed.encode())


def create_token(user_id: int, role: str = "senior", token_version: int = 0) -> str:
    issued_at = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "tv": int(token_version or 0),
        "iat": issued_at,
        "exp": issued_at + timedelta(hours=settings.JWT_EXPIRY_HOURS),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token expired")
    except jwt.InvalidTokenError:
        raise _unauthorized("Invalid token")


def _request_token(request: Request, credentials: HTTPAuthorizationCredentials | None) -> str | None:
    """Bearer header first, then the session cookie."""
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(session_cookie_name()) or None


def _load_session_user(db: Session, payload: dict) -> User:
    try:
        user_id = int(payload.get("sub", 0))
    except (TypeError, ValueError):
        raise _unauthorized("Invalid token")
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise _unauthorized("User not found")
    if int(payload.get("tv", 0)) != int(user.token_version or 0):
        raise _unauthorized("Session invalidated. Please sign in again.")
    return user


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
    identity: IdentityHub = Depends(get_identity_hub),
) -> User:
    """Resolve the signed-in senior or family member for this request.

    Besides a valid token, the user must be the identity the device is
    currently following.
    """
    token = _request_token(request, credentials)
    if not token:
        raise _unauthorized("Not authenticated")
    user = _load_session_user(db, decode_token(token))
    if identity.current_user_id() != str(user.id):
        raise _unauthorized("Session is not active on this device")
    request.state.user_id = user.id
    return user


def require_senior(user: User = Depends(get_current_user)) -> User:
    if (user.role or "").lower() != "senior":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only seniors can record check-ins")
    return user
