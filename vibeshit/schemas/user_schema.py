# schemas/user_schema.py
from typing import Optional

from vibeshit.schemas.base import CamelModel


class AuthorOut(CamelModel):
    id: str
    username: str
    avatar_url: Optional[str] = None


def author_out(user) -> Optional[AuthorOut]:
    return AuthorOut.model_validate(user) if user is not None else None
