import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from fastapi import Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import Settings
from .errors import ApiError, ErrorCode

ALGORITHM = "HS256"

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: str


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(settings: Settings, user_id: str, email: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "email": email,
        "iat": now,
        "exp": now + timedelta(seconds=settings.access_token_expires_seconds),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)


def create_refresh_token(settings: Settings, user_id: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "iat": now,
        "exp": now + timedelta(seconds=settings.refresh_token_expires_seconds),
        # two refresh tokens minted in the same second must still differ
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, settings.jwt_refresh_secret, algorithm=ALGORITHM)


def decode_access_token(settings: Settings, token: str) -> dict | None:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[ALGORITHM])
    except jwt.PyJWTError:
        return None


def decode_refresh_token(settings: Settings, token: str) -> dict | None:
    try:
        return jwt.decode(token, settings.jwt_refresh_secret, algorithms=[ALGORITHM])
    except jwt.PyJWTError:
        return None


def refresh_token_expiry(settings: Settings) -> datetime:
    return datetime.utcnow() + timedelta(seconds=settings.refresh_token_expires_seconds)


def _user_from_credentials(request: Request, credentials: HTTPAuthorizationCredentials | None) -> CurrentUser | None:
    if credentials is None or credentials.scheme.lower() != "bearer":
        return None
    payload = decode_access_token(request.app.state.settings, credentials.credentials)
    if not payload or "sub" not in payload:
        return None
    return CurrentUser(id=payload["sub"], email=payload.get("email", ""))


def require_user(request: Request, credentials: HTTPAuthorizationCredentials | None = Security(_bearer)) -> CurrentUser:
    if credentials is None:
        raise ApiError(ErrorCode.UNAUTHORIZED, "No token provided")
    user = _user_from_credentials(request, credentials)
    if user is None:
        raise ApiError(ErrorCode.UNAUTHORIZED, "Invalid or expired token")
    return user


def optional_user(request: Request, credentials: HTTPAuthorizationCredentials | None = Security(_bearer)) -> CurrentUser | None:
    return _user_from_credentials(request, credentials)
