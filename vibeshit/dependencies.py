# dependencies.py
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from vibeshit.core.config import Settings
from vibeshit.database import get_db
from vibeshit.services.comments import CommentStore
from vibeshit.services.projects import ProjectStore
from vibeshit.services.votes import VoteLedger
from vibeshit.utils.s3 import S3Storage


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request) -> S3Storage:
    return request.app.state.storage


def get_project_store(db: Session = Depends(get_db), storage: S3Storage = Depends(get_storage)) -> ProjectStore:
    return ProjectStore(db, storage)


def get_vote_ledger(db: Session = Depends(get_db)) -> VoteLedger:
    return VoteLedger(db)


def get_comment_store(db: Session = Depends(get_db)) -> CommentStore:
    return CommentStore(db)
