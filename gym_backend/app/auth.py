"""Session token handling and tenant resolution for API routes."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt

from ..app_context import get_config
from .membership import StaffRole

logger = logging.getLogger("gym_backend.auth")

DEFAULT_TOKEN_TTL = timedelta(days=7)


@dataclass(frozen=True)
class StaffContext:
    """Authenticated caller together with the gym (tenant) it acts for."""

    user_id: str
    gym_id: str
    role: StaffRole

    @property
    def is_admin(self) -> bool:
        return self.role == StaffRole.ADMIN


def create_access_token(
    *,
    subject: str,
    gym_id: str,
    role: StaffRole = StaffRole.STAFF,
    expires_delta: Optional[timedelta] = None,
) -> str:
    config = get_config()
    expire = datetime.now(timezone.utc) + (expires_delta or DEFAULT_TOKEN_TTL)
    payload = {"sub": subject, "gymId": gym_id, "role": role.value, "exp": expire}
    return jwt.encode(payload, config.jwt_secret_key, algorithm=config.jwt_algorithm)


def resolve_staff_from_session_token(session_token: str) -> Optional[StaffContext]:
    config = get_config()
    try:
        payload = jwt.decode(session_token, config.jwt_secret_key, algorithms=[config.jwt_algorithm])
    except JWTError:
        return None

    subject = payload.get("sub")
    gym_id = payload.get("gymId")
    if not subject or not gym_id:
        return None
    try:
        role = StaffRole(str(payload.get("role") or StaffRole.STAFF.value).lower())
    except ValueError:
        logger.warning("Rejected session token with unknown role %r", payload.get("role"))
        return None
    return StaffContext(user_id=str(subject), gym_id=str(gym_id), role=role)


def read_session_cookie(request: Request) -> Optional[str]:
    return request.cookies.get(get_config().session_cookie_name)


def get_current_staff(session_token: Optional[str] = Depends(read_session_cookie)) -> StaffContext:
    if not session_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail={"message": "Not authenticated"})

    staff = resolve_staff_from_session_token(session_token)
    if staff is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail={"message": "Not authenticated"})
    return staff


def require_admin(staff: StaffContext = Depends(get_current_staff)) -> StaffContext:
    if not staff.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"message": "Admin role required"},
        )
    return staff


__all__ = [
    "StaffContext",
    "create_access_token",
    "get_current_staff",
    "read_session_cookie",
    "require_admin",
    "resolve_staff_from_session_token",
]
