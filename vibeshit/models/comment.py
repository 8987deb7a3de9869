# models/comment.py
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, false, true
from sqlalchemy.orm import relationship

from vibeshit.database import Base

MAX_COMMENT_LENGTH = 1000


class Comment(Base):
    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    parent_id = Column(Integer, ForeignKey("comments.id", ondelete="CASCADE"), nullable=True, index=True)
    content = Column(Text, nullable=False)
    is_pinned = Column(Boolean, nullable=False, default=False, server_default=false())
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    project = relationship("Project", back_populates="comments")
    author = relationship("User", lazy="joined")

    # At most one pinned comment per project
    __table_args__ = (
        Index(
            "uq_comments_project_pinned",
            "project_id",
            unique=True,
            postgresql_where=(is_pinned == true()),
            sqlite_where=(is_pinned == true()),
        ),
    )
