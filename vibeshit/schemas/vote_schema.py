# schemas/vote_schema.py
from typing import Optional

from vibeshit.schemas.base import CamelModel


class VoteIn(CamelModel):
    action: Optional[str] = None


class VoteOut(CamelModel):
    success: bool = True
    votes_count: int
    has_voted: bool
