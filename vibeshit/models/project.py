# models/project.py
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import relationship

from vibeshit.database import Base

# Ordered list of strings: native ARRAY on Postgres, JSON elsewhere
StringList = JSON().with_variant(postgresql.ARRAY(String), "postgresql")


class FailureType(str, Enum):
    abandoned = "abandoned"
    overengineered = "overengineered"
    ai_disaster = "ai-disaster"
    ui_nightmare = "ui-nightmare"
    performance = "performance"
    security = "security"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    author_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(100), nullable=False)
    tagline = Column(String(60), nullable=False)
    url = Column(String(2048), nullable=True)
    confession = Column(Text, nullable=False)

    image_url = Column(String(1024), nullable=True)   # legacy single image
    logo_url = Column(String(1024), nullable=True)    # storage path, signed on read
    gallery_urls = Column(StringList, nullable=False, default=list)
    tags = Column(StringList, nullable=False, default=list)
    failure_type = Column(String(32), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    author = relationship("User", back_populates="projects")
    votes = relationship("Vote", back_populates="project", cascade="all, delete", passive_deletes=True)
    comments = relationship("Comment", back_populates="project", cascade="all, delete", passive_deletes=True)
