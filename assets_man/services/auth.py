import logging
from datetime import datetime

from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.errors import ServiceError
from ..core.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    hash_password,
    refresh_token_expiry,
    verify_password,
)
from ..models.user import AuthSession, User


class AuthService:
    def __init__(self, db: Session, settings: Settings, logger: logging.Logger | None = None):
        self.db = db
        self.settings = settings
        self.logger = logger or logging.getLogger("assets_man.auth")

    def _issue(self, user: User, user_agent: str | None, ip_address: str | None) -> dict:
        refresh_token = create_refresh_token(self.settings, user.id)
        self.db.add(
            AuthSession(
                user_id=user.id,
                refresh_token=refresh_token,
                user_agent=user_agent,
                ip_address=ip_address,
                expires_at=refresh_token_expiry(self.settings),
            )
        )
        self.db.commit()
        return {
            "user": user,
            "access_token": create_access_token(self.settings, user.id, user.email),
            "expires_in": self.settings.access_token_expires_seconds,
            "refresh_token": refresh_token,
        }

    def register(self, email: str, password: str, name: str | None = None, user_agent: str | None = None, ip_address: str | None = None) -> dict:
        if self.db.query(User.id).filter(User.email == email).first() is not None:
            raise ServiceError("EMAIL_EXISTS")
        user = User(email=email, name=name, password_hash=hash_password(password, self.settings.bcrypt_rounds))
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        self.logger.info("User registered", extra={"user_id": user.id})
        return self._issue(user, user_agent, ip_address)

    def login(self, email: str, password: str, user_agent: str | None = None, ip_address: str | None = None) -> dict:
        user = self.db.query(User).filter(User.email == email).one_or_none()
        if user is None or not user.password_hash or not verify_password(password, user.password_hash):
            raise ServiceError("INVALID_CREDENTIALS")
        return self._issue(user, user_agent, ip_address)

    def refresh(self, refresh_token: str | None, user_agent: str | None = None, ip_address: str | None = None) -> dict:
        if not refresh_token:
            raise ServiceError("MISSING_TOKEN")
        payload = decode_refresh_token(self.settings, refresh_token)
        if not payload:
            raise ServiceError("INVALID_TOKEN")
        session = self.db.query(AuthSession).filter(AuthSession.refresh_token == refresh_token).one_or_none()
        if session is None or session.user_id != payload.get("sub"):
            raise ServiceError("INVALID_TOKEN")
        if session.expires_at < datetime.utcnow():
            self.db.delete(session)
            self.db.commit()
            raise ServiceError("TOKEN_EXPIRED")
        user = self.db.get(User, session.user_id)
        if user is None:
            raise ServiceError("USER_NOT_FOUND")
        self.db.delete(session)
        return self._issue(user, user_agent, ip_address)

    def logout(self, refresh_token: str | None) -> None:
        if not refresh_token:
            return
        self.db.query(AuthSession).filter(AuthSession.refresh_token == refresh_token).delete(synchronize_session=False)
        self.db.commit()

    def me(self, user_id: str) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise ServiceError("USER_NOT_FOUND")
        return user
