# auth/identity.py
"""
Request identity resolution.

The caller is identified by a short-lived access token (``Authorization:
Bearer`` header or the access cookie). When that token is missing or no longer
valid but the long-lived refresh cookie is present, the identity provider is
asked for a new token pair; the renewed pair is written back to the client as
cookies on whatever response the request produces.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
from fastapi import Request, Response
from fastapi.security.utils import get_authorization_scheme_param
from jose import JWTError, jwt

from vibeshit.core.config import Settings
from vibeshit.core.exceptions import internal_error_response

logger = logging.getLogger(__name__)


@dataclass
class SessionTokens:
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None  # epoch seconds


@dataclass
class Identity:
    user_id: Optional[str] = None
    claims: dict[str, Any] = field(default_factory=dict)
    refreshed_session: Optional[SessionTokens] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


ANONYMOUS = Identity()


class IdentityResolver:
    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport

    def verify(self, token: str) -> Optional[dict[str, Any]]:
        try:
            claims = jwt.decode(
                token,
                self.settings.JWT_SECRET,
                algorithms=[self.settings.JWT_ALG],
                audience=self.settings.JWT_AUDIENCE,
                options={"verify_aud": self.settings.JWT_AUDIENCE is not None},
            )
        except JWTError as e:
            logger.debug(f"Access token rejected: {e}")
            return None
        if not claims.get("sub"):
            logger.debug("Access token has no subject")
            return None
        return claims

    async def refresh(self, refresh_token: str) -> Optional[SessionTokens]:
        url = f"{self.settings.AUTH_URL.rstrip('/')}/auth/v1/token"
        headers = {"Authorization": f"Bearer {self.settings.AUTH_API_KEY}"}
        if self.settings.AUTH_API_KEY:
            headers["apikey"] = self.settings.AUTH_API_KEY

        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.settings.AUTH_TIMEOUT_SECONDS) as client:
                res = await client.post(
                    url,
                    params={"grant_type": "refresh_token"},
                    data={"refresh_token": refresh_token},
                    headers=headers,
                )
        except httpx.HTTPError as e:
            logger.warning(f"Token refresh request failed: {e}")
            return None

        if res.status_code >= 400:
            logger.info(f"Token refresh rejected with status {res.status_code}")
            return None

        try:
            data = res.json()
        except ValueError:
            logger.warning("Token refresh returned a non-JSON body")
            return None

        access_token = data.get("access_token")
        if not access_token:
            return None

        expires_at = data.get("expires_at")
        if expires_at is None and data.get("expires_in") is not None:
            expires_at = int(time.time()) + int(data["expires_in"])

        return SessionTokens(
            access_token=access_token,
            refresh_token=data.get("refresh_token"),
            expires_at=int(expires_at) if expires_at is not None else None,
        )

    async def resolve(self, request: Request) -> Identity:
        scheme, token = get_authorization_scheme_param(request.headers.get("authorization"))
        token = token.strip() if scheme.lower() == "bearer" else None
        if not token:
            token = request.cookies.get(self.settings.ACCESS_COOKIE_NAME)

        if token:
            claims = self.verify(token)
            if claims:
                return Identity(user_id=str(claims["sub"]), claims=claims)

        refresh_token = request.cookies.get(self.settings.REFRESH_COOKIE_NAME)
        if not refresh_token:
            return ANONYMOUS

        session = await self.refresh(refresh_token)
        if session is None:
            return ANONYMOUS

        claims = self.verify(session.access_token)
        if not claims:
            logger.warning("Refreshed access token failed verification")
            return ANONYMOUS

        logger.debug(f"Refreshed session for user {claims['sub']}")
        return Identity(user_id=str(claims["sub"]), claims=claims, refreshed_session=session)


# === Cookies ===

def _cookie_kwargs(settings: Settings) -> dict[str, Any]:
    return {
        "httponly": True,
        "secure": settings.SESSION_COOKIE_SECURE,
        "samesite": settings.SESSION_COOKIE_SAMESITE,
        "domain": settings.SESSION_COOKIE_DOMAIN,
        "path": "/",
    }


def set_session_cookies(response: Response, session: SessionTokens, settings: Settings) -> None:
    access_max_age = None
    if session.expires_at:
        access_max_age = max(int(session.expires_at - time.time()), 0)

    response.set_cookie(
        key=settings.ACCESS_COOKIE_NAME,
        value=session.access_token or "",
        max_age=access_max_age,
        **_cookie_kwargs(settings),
    )
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=session.refresh_token or "",
        max_age=settings.REFRESH_COOKIE_MAX_AGE,
        **_cookie_kwargs(settings),
    )


def clear_session_cookies(response: Response, settings: Settings) -> None:
    for name in (settings.ACCESS_COOKIE_NAME, settings.REFRESH_COOKIE_NAME):
        response.set_cookie(key=name, value="", max_age=0, **_cookie_kwargs(settings))


async def identity_middleware(request: Request, call_next):
    resolver: IdentityResolver = request.app.state.identity
    identity = await resolver.resolve(request)
    request.state.identity = identity

    try:
        response = await call_next(request)
    except Exception as e:
        # Unhandled errors still carry renewed cookies back to the client
        logger.exception(f"Unexpected error on {request.method} {request.url.path}: {e}")
        response = internal_error_response()

    if identity.refreshed_session is not None:
        # Endpoints that manage the session themselves keep their cookies
        already_set = any(
            header.startswith(f"{resolver.settings.ACCESS_COOKIE_NAME}=")
            for header in response.headers.getlist("set-cookie")
        )
        if not already_set:
            set_session_cookies(response, identity.refreshed_session, resolver.settings)
    return response
