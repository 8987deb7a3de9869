# services/projects.py
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import urlparse

from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload

from vibeshit.core.exceptions import NotFound, ValidationError
from vibeshit.models.comment import Comment
from vibeshit.models.project import FailureType, Project
from vibeshit.models.vote import Vote
from vibeshit.schemas.project_schema import ProjectCreate, ProjectListItem, ProjectListOut, ProjectOut
from vibeshit.schemas.user_schema import author_out
from vibeshit.services.votes import has_voted
from vibeshit.utils.s3 import S3Storage

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20
MAX_LIMIT = 50
SORT_OPTIONS = ("votes", "recent")

MAX_TITLE_LENGTH = 100
MAX_TAGLINE_LENGTH = 60
MAX_CONFESSION_LENGTH = 2000
MAX_TAGS = 5
MAX_GALLERY_IMAGES = 5


def as_string_list(value: Any) -> list[str]:
    """Parse-or-empty: legacy rows store lists as JSON text."""
    if value is None:
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    if not isinstance(value, (list, tuple)):
        return []
    return [v for v in value if isinstance(v, str) and v]


def _clean_strings(values: Optional[list[Any]], limit: int) -> list[str]:
    if not values:
        return []
    return [v.strip() for v in values if isinstance(v, str) and v.strip()][:limit]


def _is_valid_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def parse_day(date: str) -> tuple[datetime, datetime]:
    """[date 00:00, date+1 00:00) in UTC."""
    try:
        start = datetime.strptime(date, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    except ValueError:
        raise ValidationError("date must be formatted as YYYY-MM-DD")
    return start, start + timedelta(days=1)


def _votes_count():
    return (
        select(func.count(Vote.id))
        .where(Vote.project_id == Project.id)
        .correlate(Project)
        .scalar_subquery()
    )


def _comments_count():
    return (
        select(func.count(Comment.id))
        .where(Comment.project_id == Project.id)
        .correlate(Project)
        .scalar_subquery()
    )


class ProjectStore:
    def __init__(self, db: Session, storage: S3Storage):
        self.db = db
        self.storage = storage

    # ---------- Reads ----------

    def _signed_map(self, projects: list[Project]) -> dict[str, Optional[str]]:
        paths: list[str] = []
        for project in projects:
            if project.logo_url:
                paths.append(project.logo_url)
            paths.extend(as_string_list(project.gallery_urls))
        keys = [p for p in dict.fromkeys(paths) if not p.startswith(("http://", "https://"))]
        return self.storage.signed_urls(keys) if keys else {}

    def _fields(self, project: Project, votes_count: int, comments_count: int, signed: dict) -> dict:
        logo = project.logo_url
        return {
            "id": project.id,
            "title": project.title,
            "tagline": project.tagline,
            "url": project.url,
            "image_url": project.image_url,
            # Fall back to the stored path when signing failed
            "logo_url": (signed.get(logo) or logo) if logo else None,
            "gallery_urls": [signed.get(g) or g for g in as_string_list(project.gallery_urls)],
            "tags": as_string_list(project.tags),
            "failure_type": project.failure_type,
            "created_at": project.created_at,
            "votes_count": votes_count or 0,
            "comments_count": comments_count or 0,
            "author": author_out(project.author),
        }

    def get(self, project_id: int, viewer_id: Optional[str] = None) -> ProjectOut:
        row = self.db.execute(
            select(Project, _votes_count(), _comments_count())
            .options(joinedload(Project.author))
            .where(Project.id == project_id)
        ).first()
        if row is None:
            raise NotFound("Project not found")

        project, votes_count, comments_count = row
        voted = has_voted(self.db, viewer_id, project_id) if viewer_id else False
        return ProjectOut(
            **self._fields(project, votes_count, comments_count, self._signed_map([project])),
            confession=project.confession,
            has_voted=voted,
        )

    def list_projects(
        self,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
        sort: str = "votes",
        date: Optional[str] = None,
    ) -> ProjectListOut:
        limit = max(1, min(limit, MAX_LIMIT))
        offset = max(0, offset)
        if sort not in SORT_OPTIONS:
            sort = "votes"

        filters = []
        if date:
            start, end = parse_day(date)
            filters += [Project.created_at >= start, Project.created_at < end]

        total = self.db.scalar(select(func.count(Project.id)).where(*filters)) or 0

        votes_count = _votes_count()
        stmt = (
            select(Project, votes_count, _comments_count())
            .options(joinedload(Project.author))
            .where(*filters)
        )
        if sort == "recent":
            stmt = stmt.order_by(Project.created_at.desc(), Project.id.desc())
        else:
            # Ranked across the whole filtered set, not just the page
            stmt = stmt.order_by(votes_count.desc(), Project.created_at.desc(), Project.id.desc())

        rows = self.db.execute(stmt.limit(limit).offset(offset)).all()
        signed = self._signed_map([row[0] for row in rows])
        items = [ProjectListItem(**self._fields(p, v, c, signed)) for p, v, c in rows]

        return ProjectListOut(projects=items, total=total, has_more=offset + limit < total)

    # ---------- Writes ----------

    def create(self, author_id: str, payload: ProjectCreate) -> ProjectOut:
        errors = []
        title = (payload.title or "").strip()
        tagline = (payload.tagline or "").strip()
        confession = (payload.confession or "").strip()
        url = (payload.url or "").strip() or None
        failure_type = (payload.failure_type or "").strip() or None

        if not title or len(title) > MAX_TITLE_LENGTH:
            errors.append(f"Title is required and must be at most {MAX_TITLE_LENGTH} characters")
        if not tagline or len(tagline) > MAX_TAGLINE_LENGTH:
            errors.append(f"Tagline is required and must be at most {MAX_TAGLINE_LENGTH} characters")
        if not confession or len(confession) > MAX_CONFESSION_LENGTH:
            errors.append(f"Confession is required and must be at most {MAX_CONFESSION_LENGTH} characters")
        if url and not _is_valid_url(url):
            errors.append("URL is not valid")
        if failure_type and failure_type not in {t.value for t in FailureType}:
            errors.append(f"Unknown failure type: {failure_type}")
        if errors:
            raise ValidationError.from_messages(errors)

        project = Project(
            author_id=author_id,
            title=title,
            tagline=tagline,
            url=url,
            confession=confession,
            image_url=(payload.image_url or "").strip() or None,
            logo_url=(payload.logo_url or "").strip() or None,
            gallery_urls=_clean_strings(payload.gallery_urls, MAX_GALLERY_IMAGES),
            tags=_clean_strings(payload.tags, MAX_TAGS),
            failure_type=failure_type,
        )
        self.db.add(project)
        self.db.commit()
        logger.info(f"User {author_id} created project {project.id}")

        return self.get(project.id, viewer_id=author_id)
