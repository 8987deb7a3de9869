# services/comments.py
import logging
from collections import defaultdict
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from vibeshit.core.exceptions import NotFound, ValidationError
from vibeshit.models.comment import MAX_COMMENT_LENGTH, Comment
from vibeshit.models.project import Project
from vibeshit.schemas.comment_schema import CommentListOut, CommentOut, ReplyOut
from vibeshit.schemas.user_schema import author_out

logger = logging.getLogger(__name__)


def author_has_top_level_comment(db: Session, project_id: int, author_id: str) -> bool:
    return db.scalar(
        select(Comment.id)
        .where(
            Comment.project_id == project_id,
            Comment.user_id == author_id,
            Comment.parent_id.is_(None),
        )
        .limit(1)
    ) is not None


def validate_content(content: Optional[str]) -> str:
    if content is None or not content.strip():
        raise ValidationError("Comment content cannot be empty")
    if len(content) > MAX_COMMENT_LENGTH:
        raise ValidationError(f"Comment content must be at most {MAX_COMMENT_LENGTH} characters")
    return content.strip()


def _reply_out(comment: Comment, project_author_id: str) -> ReplyOut:
    return ReplyOut(
        id=comment.id,
        content=comment.content,
        created_at=comment.created_at,
        is_author=comment.user_id == project_author_id,
        author=author_out(comment.author),
    )


def _comment_out(comment: Comment, project_author_id: str, replies: list[Comment] = ()) -> CommentOut:
    return CommentOut(
        id=comment.id,
        content=comment.content,
        created_at=comment.created_at,
        is_pinned=comment.is_pinned,
        is_author=comment.user_id == project_author_id,
        author=author_out(comment.author),
        replies=[_reply_out(r, project_author_id) for r in replies],
    )


class CommentStore:
    def __init__(self, db: Session):
        self.db = db

    def _get_project(self, project_id: int) -> Project:
        project = self.db.get(Project, project_id)
        if project is None:
            raise NotFound("Project not found")
        return project

    def list_for_project(self, project_id: int) -> CommentListOut:
        project = self._get_project(project_id)

        top_level = self.db.scalars(
            select(Comment)
            .where(Comment.project_id == project_id, Comment.parent_id.is_(None))
            .order_by(Comment.is_pinned.desc(), Comment.created_at.asc(), Comment.id.asc())
        ).all()
        replies = self.db.scalars(
            select(Comment)
            .where(Comment.project_id == project_id, Comment.parent_id.is_not(None))
            .order_by(Comment.created_at.asc(), Comment.id.asc())
        ).all()

        by_parent: dict[int, list[Comment]] = defaultdict(list)
        for reply in replies:
            by_parent[reply.parent_id].append(reply)

        comments = [_comment_out(c, project.author_id, by_parent.get(c.id, [])) for c in top_level]
        return CommentListOut(comments=comments, total=len(comments))

    def create(self, project_id: int, user_id: str, content: Optional[str], parent_id: Optional[int] = None) -> CommentOut:
        text = validate_content(content)
        project = self._get_project(project_id)
        project_author_id = project.author_id

        if parent_id is not None:
            parent = self.db.get(Comment, parent_id)
            if parent is None or parent.project_id != project_id:
                raise NotFound("Parent comment not found")
            # Threads are one level deep
            if parent.parent_id is not None:
                parent_id = parent.parent_id

        pin = (
            user_id == project_author_id
            and parent_id is None
            and not author_has_top_level_comment(self.db, project_id, project_author_id)
        )

        comment = self._insert(project_id, user_id, text, parent_id, pin)
        if pin and not comment.is_pinned:
            logger.info(f"Pin on project {project_id} lost to a concurrent comment")
        elif comment.is_pinned:
            logger.info(f"Pinned author comment {comment.id} on project {project_id}")
        return _comment_out(comment, project_author_id)

    def _insert(self, project_id: int, user_id: str, content: str, parent_id: Optional[int], pin: bool) -> Comment:
        comment = Comment(
            project_id=project_id,
            user_id=user_id,
            parent_id=parent_id,
            content=content,
            is_pinned=pin,
        )
        self.db.add(comment)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if not pin:
                raise
            # The partial unique index allows one pinned comment per project
            return self._insert(project_id, user_id, content, parent_id, pin=False)
        self.db.refresh(comment)
        return comment
