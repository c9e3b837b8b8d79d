from __future__ import annotations

import os
import tempfile
import uuid
from datetime import datetime, timedelta
from pathlib import Path

_TMP = Path(tempfile.mkdtemp(prefix="smartmark-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP / 'test.db'}"
os.environ["LOG_FILE"] = str(_TMP / "test.log")
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["OAUTH_CLIENT_ID"] = "test-client"
os.environ["OAUTH_CLIENT_SECRET"] = "test-client-secret"
os.environ["REALTIME_RECONNECT_DELAY"] = "0"

import pytest  # noqa: E402

from smartmark.client.data_access import validate_bookmark_input  # noqa: E402
from smartmark.errors import NotFoundError, PersistenceError  # noqa: E402
from smartmark.realtime import ChangeHub  # noqa: E402
from smartmark.schemas import BookmarkRecord, ChangeEvent, OAuthProfile  # noqa: E402

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)


def make_record(
    bookmark_id: str,
    ts: int,
    title: str | None = None,
    url: str | None = None,
    user_id: str = "owner-1",
) -> BookmarkRecord:
    return BookmarkRecord(
        id=bookmark_id,
        user_id=user_id,
        title=title or f"Bookmark {bookmark_id}",
        url=url or f"https://example.com/{bookmark_id}",
        created_at=BASE_TIME + timedelta(seconds=ts),
    )


class FakeRemote:
    """In-memory stand-in for the bookmarks REST API that publishes to a hub like the server."""

    def __init__(self, owner_id: str = "owner-1", hub: ChangeHub | None = None):
        self.owner_id = owner_id
        self.hub = hub
        self.rows: dict[str, BookmarkRecord] = {}
        self.create_calls = 0
        self.delete_calls = 0
        self.list_calls = 0
        self.fail_writes = False
        self._clock = 0

    async def list_mine(self) -> list[BookmarkRecord]:
        self.list_calls += 1
        return sorted(self.rows.values(), key=lambda r: r.created_at, reverse=True)

    async def create(self, title: str, url: str) -> BookmarkRecord:
        title, url = validate_bookmark_input(title, url)
        self.create_calls += 1
        if self.fail_writes:
            raise PersistenceError("create bookmark failed")
        self._clock += 1
        record = BookmarkRecord(
            id=str(uuid.uuid4()),
            user_id=self.owner_id,
            title=title,
            url=url,
            created_at=BASE_TIME + timedelta(seconds=self._clock),
        )
        self.rows[record.id] = record
        if self.hub is not None:
            self.hub.publish(self.owner_id, ChangeEvent.inserted(record))
        return record

    async def delete_by_id(self, bookmark_id: str) -> None:
        self.delete_calls += 1
        if self.fail_writes:
            raise PersistenceError("delete bookmark failed")
        if self.rows.pop(bookmark_id, None) is None:
            raise NotFoundError(bookmark_id)
        if self.hub is not None:
            self.hub.publish(self.owner_id, ChangeEvent.deleted(bookmark_id))


@pytest.fixture
def hub() -> ChangeHub:
    return ChangeHub(queue_size=16)


@pytest.fixture
def remote(hub: ChangeHub) -> FakeRemote:
    return FakeRemote(hub=hub)


@pytest.fixture
def app():
    from smartmark.main import app as fastapi_app

    return fastapi_app


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def login(client, monkeypatch: pytest.MonkeyPatch):
    """Sign in through the OAuth callback with a stubbed provider; returns the access token."""
    from smartmark.utils import oauth

    def _login(subject: str | None = None, name: str = "Test User") -> str:
        subject = subject or uuid.uuid4().hex

        async def fake_exchange(code: str) -> OAuthProfile:
            return OAuthProfile(
                subject=subject,
                email=f"{subject}@example.com",
                full_name=name,
                avatar_url=None,
            )

        monkeypatch.setattr(oauth, "exchange_code", fake_exchange)
        state = client.get("/api/auth/oauth/authorize").json()["state"]
        response = client.get("/api/auth/oauth/callback", params={"code": "abc", "state": state})
        assert response.status_code == 200, response.text
        return response.json()["access_token"]

    return _login


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
