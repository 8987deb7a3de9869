import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from vibeshit.auth.identity import SessionTokens, clear_session_cookies, set_session_cookies
from vibeshit.auth.token import get_current_user
from vibeshit.core.config import Settings
from vibeshit.dependencies import get_app_settings
from vibeshit.models.user import User
from vibeshit.schemas.user_schema import AuthorOut, author_out

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


class SessionIn(BaseModel):
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[float] = None


class SessionUpdate(BaseModel):
    session: Optional[SessionIn] = None


@router.post("/session")
def store_session(payload: SessionUpdate, response: Response, settings: Settings = Depends(get_app_settings)):
    """Mirror the client's provider session into HttpOnly cookies, or clear them."""
    if payload.session is None:
        logger.debug("Clearing session cookies")
        clear_session_cookies(response, settings)
        return {"ok": True}

    session = payload.session
    set_session_cookies(
        response,
        SessionTokens(
            access_token=session.access_token or "",
            refresh_token=session.refresh_token,
            expires_at=int(session.expires_at) if session.expires_at else None,
        ),
        settings,
    )
    return {"ok": True}


@router.delete("/session")
def delete_session(response: Response, settings: Settings = Depends(get_app_settings)):
    clear_session_cookies(response, settings)
    return {"ok": True}


@router.get("/me", response_model=AuthorOut)
def me(current_user: User = Depends(get_current_user)):
    return author_out(current_user)
