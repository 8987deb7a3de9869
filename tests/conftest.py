# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# Every test gets a fresh app wired to:
# - an in-memory SQLite database (tables created by the lifespan hook)
# - a real boto3 S3 client with dummy credentials (presigning is offline)
# - an httpx.MockTransport standing in for the identity provider
# =============================================================================

import os

# Settings read the environment at construction time
os.environ.setdefault("ENV", "test")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

import boto3
import httpx
import pytest
from fastapi.testclient import TestClient

from vibeshit.auth.identity import IdentityResolver
from vibeshit.auth.token import create_access_token
from vibeshit.core.config import build_settings
from vibeshit.main import create_app
from vibeshit.models.project import Project
from vibeshit.models.user import User
from vibeshit.utils.s3 import S3Storage

TEST_BUCKET = "test-bucket"


class AuthProvider:
    """Programmable fake for the provider's token endpoint."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.response = httpx.Response(400, json={"error": "invalid_grant"})
        self.error: Exception | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def settings():
    return build_settings(
        DATABASE_URL="sqlite://",
        JWT_SECRET="test-secret-key-1234",
        AUTH_URL="https://auth.test",
        AUTH_API_KEY="anon-key",
        S3_BUCKET_NAME=TEST_BUCKET,
        AWS_REGION="us-east-1",
        SIGNED_URL_EXPIRES_SECONDS=3600,
        MAX_UPLOAD_SIZE_MB=1,
    )


@pytest.fixture
def storage(settings):
    client = boto3.client(
        "s3",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
        region_name=settings.AWS_REGION,
    )
    return S3Storage(client, TEST_BUCKET, settings.SIGNED_URL_EXPIRES_SECONDS)


@pytest.fixture
def auth_provider():
    return AuthProvider()


@pytest.fixture
def app(settings, storage, auth_provider):
    resolver = IdentityResolver(settings, transport=httpx.MockTransport(auth_provider.handler))
    return create_app(settings, storage_client=storage, resolver=resolver)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db(app, client):
    # `client` first so the lifespan hook has created the tables
    session = app.state.session_factory()
    yield session
    session.close()


@pytest.fixture
def token_for(settings):
    def _token_for(user_id: str, username: str | None = None, **claims) -> str:
        metadata = {"user_name": username or user_id}
        return create_access_token(settings, user_id, {"user_metadata": metadata, **claims})

    return _token_for


@pytest.fixture
def auth_headers(token_for):
    def _auth_headers(user_id: str, username: str | None = None) -> dict:
        return {"Authorization": f"Bearer {token_for(user_id, username)}"}

    return _auth_headers


@pytest.fixture
def make_user(db):
    def _make_user(user_id: str, username: str | None = None) -> User:
        user = db.get(User, user_id)
        if user is None:
            user = User(id=user_id, username=username or user_id)
            db.add(user)
            db.commit()
        return user

    return _make_user


@pytest.fixture
def make_project(db, make_user):
    def _make_project(author_id: str = "u1", **fields) -> Project:
        make_user(author_id)
        values = {
            "title": "Todo app with 47 microservices",
            "tagline": "It almost worked",
            "confession": "I put Kafka between the checkbox and the database.",
        }
        values.update(fields)
        project = Project(author_id=author_id, **values)
        db.add(project)
        db.commit()
        return project

    return _make_project
