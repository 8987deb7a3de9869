from typing import Any, List, Optional

from vibeshit.schemas.base import CamelModel, UtcDatetime
from vibeshit.schemas.user_schema import AuthorOut


class ProjectCreate(CamelModel):
    # Shapes only; lengths and required fields are checked by the service so
    # that every problem is reported at once
    title: Optional[str] = None
    tagline: Optional[str] = None
    url: Optional[str] = None
    confession: Optional[str] = None
    image_url: Optional[str] = None
    logo_url: Optional[str] = None
    gallery_urls: Optional[List[Any]] = None
    tags: Optional[List[Any]] = None
    failure_type: Optional[str] = None


class ProjectListItem(CamelModel):
    id: int
    title: str
    tagline: str
    url: Optional[str] = None
    image_url: Optional[str] = None
    logo_url: Optional[str] = None
    gallery_urls: List[str] = []
    tags: List[str] = []
    failure_type: Optional[str] = None
    created_at: UtcDatetime
    votes_count: int = 0
    comments_count: int = 0
    author: Optional[AuthorOut] = None


class ProjectOut(ProjectListItem):
    confession: str
    has_voted: bool = False


class ProjectListOut(CamelModel):
    projects: List[ProjectListItem]
    total: int
    has_more: bool


class ProjectDetailOut(CamelModel):
    project: ProjectOut


class ProjectCreatedOut(CamelModel):
    success: bool = True
    project: ProjectOut
