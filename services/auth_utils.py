"""
Session verification.

Callers authenticate with an HS256 JWT carrying {userId, email, name},
sent either as `Authorization: Bearer <token>` or in the session cookie.
Issuing tokens (login, registration) happens elsewhere.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import HTTPException, Request

from models.user_models import AuthUser
from services.exceptions import ConfigurationError
from services.logger_singleton import LoggerSingleton

logger = LoggerSingleton.get_logger(__name__)

ALGORITHM = "HS256"
SESSION_LIFETIME = timedelta(days=7)


class SessionVerifier:
    def __init__(self, secret: Optional[str]):
        self.secret = secret

    def _require_secret(self) -> str:
        if not self.secret:
            raise ConfigurationError("JWT_SECRET environment variable not configured")
        return self.secret

    def create_token(self, user: AuthUser, expires_in: timedelta = SESSION_LIFETIME) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "userId": user.userId,
            "email": user.email,
            "name": user.name,
            "iat": now,
            "exp": now + expires_in,
        }
        return jwt.encode(payload, self._require_secret(), algorithm=ALGORITHM)

    def verify_token(self, token: Optional[str]) -> Optional[AuthUser]:
        """Return the caller for a valid token, None for a missing, expired or forged one"""
        secret = self._require_secret()
        if not token:
            return None
        try:
            payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
        except jwt.PyJWTError as e:
            logger.debug(f"Rejected session token: {e}")
            return None

        user_id = payload.get("userId")
        if not user_id:
            return None
        return AuthUser(
            userId=str(user_id),
            email=str(payload.get("email") or ""),
            name=str(payload.get("name") or ""),
        )


def extract_token(request: Request, cookie_name: str = "session") -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[len("Bearer "):].strip()
        if token:
            return token
    return request.cookies.get(cookie_name)


async def get_current_user(request: Request) -> AuthUser:
    """FastAPI dependency: resolve the caller or fail with 401"""
    verifier: SessionVerifier = request.app.state.session_verifier
    cookie_name = getattr(request.app.state, "session_cookie", "session")
    user = verifier.verify_token(extract_token(request, cookie_name))
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user
