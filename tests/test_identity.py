# =============================================================================
# tests/test_identity.py - Identity Resolution, Session Cookies and Users
# =============================================================================

import time
from datetime import timedelta
from urllib.parse import parse_qs

import httpx

from vibeshit.auth.token import create_access_token
from vibeshit.models.user import User


def cookie_names(response) -> list[str]:
    return [header.split("=", 1)[0] for header in response.headers.get_list("set-cookie")]


class TestAccessToken:
    def test_bearer_header(self, client, auth_headers):
        res = client.get("/api/auth/me", headers=auth_headers("u1", "alice"))
        assert res.status_code == 200
        assert res.json() == {"id": "u1", "username": "alice", "avatarUrl": None}

    def test_access_cookie(self, client, token_for):
        client.cookies.set("sb-access-token", token_for("u1", "alice"))
        res = client.get("/api/auth/me")
        assert res.status_code == 200
        assert res.json()["id"] == "u1"

    def test_anonymous(self, client):
        res = client.get("/api/auth/me")
        assert res.status_code == 401
        assert res.json() == {"success": False, "error": "Not authenticated", "code": "UNAUTHORIZED"}

    def test_bad_signature(self, client, settings):
        forged = create_access_token(settings.model_copy(update={"JWT_SECRET": "other-secret"}), "u1")
        res = client.get("/api/auth/me", headers={"Authorization": f"Bearer {forged}"})
        assert res.status_code == 401

    def test_expired_token(self, client, settings):
        expired = create_access_token(settings, "u1", expires_delta=timedelta(minutes=-5))
        res = client.get("/api/auth/me", headers={"Authorization": f"Bearer {expired}"})
        assert res.status_code == 401

    def test_anonymous_reads_are_public(self, client, make_project):
        project = make_project("u1")
        assert client.get("/api/projects").status_code == 200
        assert client.get(f"/api/projects/{project.id}").status_code == 200
        assert client.get(f"/api/projects/{project.id}/comments").status_code == 200


class TestRefresh:
    def test_refresh_cookie_renews_session(self, client, auth_provider, token_for):
        auth_provider.response = httpx.Response(
            200,
            json={
                "access_token": token_for("u7", "renewed"),
                "refresh_token": "r2",
                "expires_at": int(time.time()) + 3600,
            },
        )
        client.cookies.set("sb-refresh-token", "r1")

        res = client.get("/api/auth/me")
        assert res.status_code == 200
        assert res.json()["username"] == "renewed"

        names = cookie_names(res)
        assert "sb-access-token" in names
        assert "sb-refresh-token" in names
        refresh_header = next(h for h in res.headers.get_list("set-cookie") if h.startswith("sb-refresh-token="))
        assert refresh_header.startswith("sb-refresh-token=r2")
        assert "HttpOnly" in refresh_header
        assert "Max-Age=2592000" in refresh_header

        assert len(auth_provider.requests) == 1
        sent = auth_provider.requests[0]
        assert sent.method == "POST"
        assert sent.url.path == "/auth/v1/token"
        assert sent.url.params["grant_type"] == "refresh_token"
        assert parse_qs(sent.content.decode())["refresh_token"] == ["r1"]
        assert sent.headers["authorization"] == "Bearer anon-key"

    def test_expires_in_is_accepted(self, client, auth_provider, token_for):
        auth_provider.response = httpx.Response(
            200, json={"access_token": token_for("u7"), "refresh_token": "r2", "expires_in": 3600}
        )
        client.cookies.set("sb-refresh-token", "r1")
        assert client.get("/api/auth/me").status_code == 200

    def test_expired_access_cookie_triggers_refresh(self, client, settings, auth_provider, token_for):
        auth_provider.response = httpx.Response(
            200, json={"access_token": token_for("u7"), "refresh_token": "r2", "expires_in": 3600}
        )
        client.cookies.set("sb-access-token", create_access_token(settings, "u7", expires_delta=timedelta(minutes=-1)))
        client.cookies.set("sb-refresh-token", "r1")

        res = client.get("/api/auth/me")
        assert res.status_code == 200
        assert len(auth_provider.requests) == 1

    def test_rejected_refresh_is_anonymous(self, client, auth_provider):
        client.cookies.set("sb-refresh-token", "stale")

        res = client.get("/api/auth/me")
        assert res.status_code == 401
        assert len(auth_provider.requests) == 1
        assert "sb-access-token" not in cookie_names(res)

    def test_unverifiable_refreshed_token(self, client, auth_provider):
        auth_provider.response = httpx.Response(200, json={"access_token": "garbage", "refresh_token": "r2"})
        client.cookies.set("sb-refresh-token", "r1")
        assert client.get("/api/auth/me").status_code == 401

    def test_provider_unreachable(self, client, auth_provider):
        auth_provider.error = httpx.ConnectError("connection refused")
        client.cookies.set("sb-refresh-token", "r1")
        assert client.get("/api/auth/me").status_code == 401

    def test_valid_access_token_skips_refresh(self, client, auth_provider, auth_headers):
        client.cookies.set("sb-refresh-token", "r1")
        assert client.get("/api/auth/me", headers=auth_headers("u1")).status_code == 200
        assert auth_provider.requests == []

    def test_refreshed_identity_can_write(self, client, auth_provider, token_for, make_project):
        project = make_project("u1")
        auth_provider.response = httpx.Response(
            200, json={"access_token": token_for("u9"), "refresh_token": "r2", "expires_in": 3600}
        )
        client.cookies.set("sb-refresh-token", "r1")

        res = client.post(f"/api/projects/{project.id}/vote", json={"action": "upvote"})
        assert res.status_code == 200
        assert "sb-access-token" in cookie_names(res)


class TestSessionEndpoint:
    def test_store_session(self, client):
        res = client.post(
            "/api/auth/session",
            json={"session": {"access_token": "a1", "refresh_token": "r1", "expires_at": time.time() + 600}},
        )
        assert res.status_code == 200
        assert res.json() == {"ok": True}

        headers = res.headers.get_list("set-cookie")
        access = next(h for h in headers if h.startswith("sb-access-token="))
        assert access.startswith("sb-access-token=a1")
        assert "HttpOnly" in access
        assert any(h.startswith("sb-refresh-token=r1") for h in headers)

    def test_null_session_clears_cookies(self, client):
        res = client.post("/api/auth/session", json={"session": None})
        assert res.status_code == 200
        headers = res.headers.get_list("set-cookie")
        assert len(headers) == 2
        assert all("Max-Age=0" in h for h in headers)

    def test_delete_session(self, client):
        res = client.delete("/api/auth/session")
        assert res.status_code == 200
        assert set(cookie_names(res)) == {"sb-access-token", "sb-refresh-token"}


class TestUserSync:
    def test_first_request_creates_user(self, client, db, token_for):
        token = token_for("new-id", "fresh", email="fresh@example.com")
        client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

        db.expire_all()
        assert db.get(User, "new-id").username == "fresh"

    def test_username_follows_provider(self, client, db, make_user, auth_headers):
        make_user("u1", "old-name")
        res = client.get("/api/auth/me", headers=auth_headers("u1", "new-name"))
        assert res.json()["username"] == "new-name"

        db.expire_all()
        assert db.get(User, "u1").username == "new-name"

    def test_username_fallbacks(self, client, settings):
        by_email = create_access_token(settings, "abcdef123456", {"email": "bob@example.com"})
        anonymous = create_access_token(settings, "abcdef123456-2")

        assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {by_email}"}).json()["username"] == "bob"
        assert (
            client.get("/api/auth/me", headers={"Authorization": f"Bearer {anonymous}"}).json()["username"]
            == "user-abcdef12"
        )

    def test_avatar_from_metadata(self, client, settings):
        token = create_access_token(
            settings, "u5", {"user_metadata": {"user_name": "eve", "avatar_url": "https://img.example/eve.png"}}
        )
        body = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"}).json()
        assert body["avatarUrl"] == "https://img.example/eve.png"


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "healthy"


class TestAuthorizationHeader:
    def test_scheme_is_case_insensitive(self, client, token_for):
        res = client.get("/api/auth/me", headers={"Authorization": f"bearer {token_for('u1')}"})
        assert res.status_code == 200

    def test_other_schemes_fall_back_to_cookie(self, client, token_for):
        client.cookies.set("sb-access-token", token_for("u2", "cookie-user"))
        res = client.get("/api/auth/me", headers={"Authorization": f"Token {token_for('u1')}"})
        assert res.json()["id"] == "u2"

    def test_empty_bearer_is_anonymous(self, client):
        assert client.get("/api/auth/me", headers={"Authorization": "Bearer "}).status_code == 401


def test_unexpected_error_keeps_renewed_cookies(app, auth_provider, token_for, make_project, monkeypatch):
    from fastapi.testclient import TestClient

    from vibeshit.services.projects import ProjectStore

    project = make_project("u1")
    auth_provider.response = httpx.Response(
        200, json={"access_token": token_for("u7"), "refresh_token": "new-refresh", "expires_in": 3600}
    )

    def explode(self, *args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(ProjectStore, "get", explode)

    # Tables already exist; no second lifespan run
    c = TestClient(app, raise_server_exceptions=False)
    c.cookies.set("sb-refresh-token", "r1")
    res = c.get(f"/api/projects/{project.id}")

    assert res.status_code == 500
    assert res.json() == {"success": False, "error": "Internal server error"}
    assert "boom" not in res.text
    headers = res.headers.get_list("set-cookie")
    assert any(h.startswith("sb-refresh-token=new-refresh") for h in headers)
    assert "sb-access-token" in cookie_names(res)
