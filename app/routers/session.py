import logging
from typing import Optional

from fastapi import APIRouter, Depends

from app.config import Settings, get_settings
from app.schemas import SessionRead, SignOutResponse
from app.services.auth import CurrentUser, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/session", tags=["Session"])


@router.get("", response_model=SessionRead)
def read_session(
    user: Optional[CurrentUser] = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
) -> SessionRead:
    return SessionRead(
        authenticated=user is not None,
        email=user.email if user else None,
        auth_required=settings.auth_required,
        sign_out_url=settings.auth_sign_out_url,
    )


@router.post("/sign-out", response_model=SignOutResponse)
def sign_out(
    user: Optional[CurrentUser] = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
) -> SignOutResponse:
    logger.info("auth:sign-out user=%s", user.email if user else "-")
    return SignOutResponse(sign_out_url=settings.auth_sign_out_url)
