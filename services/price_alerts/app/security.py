"""Bearer token verification for the price alerts API.

Accounts and sessions live in the identity provider; this service only checks
the HS256 access token it issued and uses its ``sub`` claim as the user id.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .config import PriceAlertSettings

bearer = HTTPBearer(auto_error=False)


@dataclass(slots=True, frozen=True)
class CurrentUser:
    id: str
    email: str | None = None
    user_name: str | None = None


def create_access_token(
    subject: str,
    settings: PriceAlertSettings,
    *,
    expires_minutes: int = 15,
    **claims: object,
) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        **claims,
        "sub": str(subject),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=expires_minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str, settings: PriceAlertSettings) -> CurrentUser:
    payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    subject = payload.get("sub")
    if subject is None or not str(subject).strip():
        raise JWTError("Token has no subject")
    return CurrentUser(
        id=str(subject),
        email=payload.get("email"),
        user_name=payload.get("username") or payload.get("name"),
    )


def _settings(request: Request) -> PriceAlertSettings:
    return request.app.state.settings


def get_optional_user(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> CurrentUser | None:
    if not creds:
        return None
    try:
        return verify_token(creds.credentials, _settings(request))
    except JWTError:
        return None


def get_current_user(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> CurrentUser:
    if not creds:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return verify_token(creds.credentials, _settings(request))
    except JWTError as error:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from error


__all__ = [
    "CurrentUser",
    "create_access_token",
    "get_current_user",
    "get_optional_user",
    "verify_token",
]
