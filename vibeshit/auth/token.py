# auth/token.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Optional

from fastapi import Depends, Request
from jose import jwt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from vibeshit.auth.identity import ANONYMOUS, Identity
from vibeshit.core.config import Settings
from vibeshit.core.exceptions import Unauthorized
from vibeshit.database import get_db
from vibeshit.models.user import User

logger = logging.getLogger(__name__)


def create_access_token(
    settings: Settings,
    subject: str,
    claims: Optional[dict[str, Any]] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Mint an access token the same way the identity provider does (local/dev use)."""
    to_encode = dict(claims or {})
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=1))
    to_encode.update({"sub": subject, "exp": expire})
    if settings.JWT_AUDIENCE:
        to_encode.setdefault("aud", settings.JWT_AUDIENCE)
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def _profile_from_claims(user_id: str, claims: dict[str, Any]) -> tuple[str, Optional[str]]:
    metadata = claims.get("user_metadata") or {}
    username = (
        metadata.get("user_name")
        or metadata.get("preferred_username")
        or metadata.get("name")
        or (claims.get("email") or "").split("@")[0]
        or f"user-{user_id[:8]}"
    )
    return username, metadata.get("avatar_url")


def sync_user(db: Session, identity: Identity) -> User:
    """Create the user on first sight; afterwards only username/avatar follow the provider."""
    username, avatar_url = _profile_from_claims(identity.user_id, identity.claims)

    user = db.get(User, identity.user_id)
    if user is None:
        user = User(id=identity.user_id, username=username, avatar_url=avatar_url)
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            # Another request created it first
            db.rollback()
            user = db.get(User, identity.user_id)
        else:
            logger.info(f"Created user {identity.user_id} ({username})")
            return user

    changed = False
    if username and user.username != username:
        user.username = username
        changed = True
    if avatar_url is not None and user.avatar_url != avatar_url:
        user.avatar_url = avatar_url
        changed = True
    if changed:
        db.commit()
    return user


def get_identity(request: Request) -> Identity:
    return getattr(request.state, "identity", ANONYMOUS)


def get_current_user(
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> User:
    if not identity.is_authenticated:
        raise Unauthorized()
    return sync_user(db, identity)


def get_optional_user(
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> Optional[User]:
    if not identity.is_authenticated:
        return None
    return sync_user(db, identity)
