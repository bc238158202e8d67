"""Resolve the signed-in console user from the authenticating proxy."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurrentUser:
    email: str


def get_current_user(request: Request, settings: Settings = Depends(get_settings)) -> Optional[CurrentUser]:
    raw = request.headers.get(settings.auth_user_header)
    if raw is None or not raw.strip():
        return None
    return CurrentUser(email=raw.strip())


def require_user(
    user: Optional[CurrentUser] = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
) -> Optional[CurrentUser]:
    """Reject anonymous requests unless authentication is switched off."""
    if user is None and settings.auth_required:
        logger.info("auth:rejected reason=missing-identity header=%s", settings.auth_user_header)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Sign in required.")
    return user


def user_identity(user: Optional[CurrentUser]) -> Optional[str]:
    return user.email if user is not None else None


__all__ = ["CurrentUser", "get_current_user", "require_user", "user_identity"]
