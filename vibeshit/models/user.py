# models/user.py
from sqlalchemy import Column, DateTime, String, func
from sqlalchemy.orm import relationship

from vibeshit.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)                   # identity provider subject
    username = Column(String(255), nullable=False)
    avatar_url = Column(String(1024), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    projects = relationship("Project", back_populates="author")
