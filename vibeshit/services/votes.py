# services/votes.py
import logging

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from vibeshit.core.exceptions import AlreadyVoted, InvalidAction, InvalidSelfVote, NoExistingVote, NotFound
from vibeshit.models.project import Project
from vibeshit.models.vote import Vote

logger = logging.getLogger(__name__)

VOTE_ACTIONS = ("upvote", "remove")


def count_votes(db: Session, project_id: int) -> int:
    return db.scalar(select(func.count(Vote.id)).where(Vote.project_id == project_id)) or 0


def has_voted(db: Session, user_id: str, project_id: int) -> bool:
    return db.scalar(
        select(Vote.id).where(Vote.user_id == user_id, Vote.project_id == project_id).limit(1)
    ) is not None


class VoteLedger:
    def __init__(self, db: Session):
        self.db = db

    def apply(self, user_id: str, project_id: int, action: str) -> dict:
        """
        Upvote or withdraw a vote and return the recomputed tally.

        The count is always re-read from the ledger rather than kept as a
        counter on the project.
        """
        if action not in VOTE_ACTIONS:
            raise InvalidAction(action)

        author_id = self.db.scalar(select(Project.author_id).where(Project.id == project_id))
        if author_id is None:
            raise NotFound("Project not found")
        if author_id == user_id:
            raise InvalidSelfVote()

        if action == "upvote":
            self._upvote(user_id, project_id)
        else:
            self._remove(user_id, project_id)

        votes_count = count_votes(self.db, project_id)
        logger.info(f"User {user_id} {action} project {project_id} -> {votes_count} votes")
        return {"votes_count": votes_count, "has_voted": action == "upvote"}

    def _upvote(self, user_id: str, project_id: int) -> None:
        if has_voted(self.db, user_id, project_id):
            raise AlreadyVoted()

        self.db.add(Vote(user_id=user_id, project_id=project_id))
        try:
            self.db.commit()
        except IntegrityError:
            # A concurrent upvote for the same pair won the unique constraint
            self.db.rollback()
            raise AlreadyVoted()

    def _remove(self, user_id: str, project_id: int) -> None:
        result = self.db.execute(
            delete(Vote).where(Vote.user_id == user_id, Vote.project_id == project_id)
        )
        if result.rowcount == 0:
            self.db.rollback()
            raise NoExistingVote()
        self.db.commit()
