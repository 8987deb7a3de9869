from typing import Optional

from fastapi import APIRouter, Depends, Query

from vibeshit.auth.token import get_current_user, get_optional_user
from vibeshit.dependencies import get_comment_store, get_project_store, get_vote_ledger
from vibeshit.models.user import User
from vibeshit.schemas.comment_schema import CommentCreate, CommentCreatedOut, CommentListOut
from vibeshit.schemas.project_schema import ProjectCreate, ProjectCreatedOut, ProjectDetailOut, ProjectListOut
from vibeshit.schemas.vote_schema import VoteIn, VoteOut
from vibeshit.services.comments import CommentStore
from vibeshit.services.projects import DEFAULT_LIMIT, ProjectStore
from vibeshit.services.votes import VoteLedger

router = APIRouter(prefix="/api/projects", tags=["Projects"])


@router.get("", response_model=ProjectListOut)
def list_projects(
    limit: int = Query(DEFAULT_LIMIT),
    offset: int = Query(0),
    sort: str = Query("votes"),
    date: Optional[str] = Query(None, description="YYYY-MM-DD, UTC day"),
    store: ProjectStore = Depends(get_project_store),
):
    return store.list_projects(limit=limit, offset=offset, sort=sort, date=date)


@router.post("", response_model=ProjectCreatedOut)
@router.post("/submit", response_model=ProjectCreatedOut, include_in_schema=False)
def create_project(
    payload: ProjectCreate,
    user: User = Depends(get_current_user),
    store: ProjectStore = Depends(get_project_store),
):
    project = store.create(user.id, payload)
    return ProjectCreatedOut(project=project)


@router.get("/{project_id}", response_model=ProjectDetailOut)
def get_project(
    project_id: int,
    viewer: Optional[User] = Depends(get_optional_user),
    store: ProjectStore = Depends(get_project_store),
):
    project = store.get(project_id, viewer_id=viewer.id if viewer else None)
    return ProjectDetailOut(project=project)


@router.post("/{project_id}/vote", response_model=VoteOut)
def vote_project(
    project_id: int,
    payload: VoteIn,
    user: User = Depends(get_current_user),
    ledger: VoteLedger = Depends(get_vote_ledger),
):
    result = ledger.apply(user.id, project_id, payload.action)
    return VoteOut(**result)


@router.get("/{project_id}/comments", response_model=CommentListOut)
def list_comments(project_id: int, comments: CommentStore = Depends(get_comment_store)):
    return comments.list_for_project(project_id)


@router.post("/{project_id}/comments", response_model=CommentCreatedOut)
def create_comment(
    project_id: int,
    payload: CommentCreate,
    user: User = Depends(get_current_user),
    comments: CommentStore = Depends(get_comment_store),
):
    comment = comments.create(project_id, user.id, payload.content, payload.parent_id)
    return CommentCreatedOut(comment=comment)
