# schemas/comment_schema.py
from typing import List, Optional

from vibeshit.schemas.base import CamelModel, UtcDatetime
from vibeshit.schemas.user_schema import AuthorOut


class CommentCreate(CamelModel):
    content: Optional[str] = None
    parent_id: Optional[int] = None


class ReplyOut(CamelModel):
    id: int
    content: str
    created_at: UtcDatetime
    is_author: bool
    author: Optional[AuthorOut] = None


class CommentOut(ReplyOut):
    is_pinned: bool
    replies: List[ReplyOut] = []


class CommentListOut(CamelModel):
    comments: List[CommentOut]
    total: int


class CommentCreatedOut(CamelModel):
    success: bool = True
    comment: CommentOut
