from urllib.parse import parse_qs, urlparse

import pytest
from starlette.websockets import WebSocketDisconnect

from conftest import auth_headers


def test_health(client) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_authorize_returns_provider_url_with_state(client) -> None:
    body = client.get("/api/auth/oauth/authorize").json()
    query = parse_qs(urlparse(body["authorization_url"]).query)
    assert query["client_id"] == ["test-client"]
    assert query["state"] == [body["state"]]
    assert query["response_type"] == ["code"]


def test_callback_rejects_unknown_state(client) -> None:
    response = client.get("/api/auth/oauth/callback", params={"code": "abc", "state": "forged"})
    assert response.status_code == 400


def test_state_is_single_use(client, login) -> None:
    login("single-use")
    state = client.get("/api/auth/oauth/authorize").json()["state"]
    assert client.get("/api/auth/oauth/callback", params={"code": "c", "state": state}).status_code == 200
    assert client.get("/api/auth/oauth/callback", params={"code": "c", "state": state}).status_code == 400


def test_signing_in_twice_reuses_the_account(client, login) -> None:
    first = client.get("/api/users/me", headers=auth_headers(login("same-subject", name="Ada"))).json()
    second = client.get("/api/users/me", headers=auth_headers(login("same-subject", name="Ada L."))).json()
    assert first["id"] == second["id"]
    assert second["display_name"] == "Ada L."


def test_refresh_issues_new_tokens(client, login) -> None:
    login("refresher")
    state = client.get("/api/auth/oauth/authorize").json()["state"]
    tokens = client.get("/api/auth/oauth/callback", params={"code": "c", "state": state}).json()

    response = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 200
    assert client.get("/api/users/me", headers=auth_headers(response.json()["access_token"])).status_code == 200

    # an access token is not a refresh token
    response = client.post("/api/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert response.status_code == 401


def test_bookmarks_require_authentication(client) -> None:
    assert client.get("/api/bookmarks").status_code == 401
    assert client.get("/api/bookmarks", headers=auth_headers("garbage")).status_code == 401


def test_create_normalizes_and_lists_newest_first(client, login) -> None:
    headers = auth_headers(login())
    first = client.post("/api/bookmarks", json={"title": " First ", "url": "example.com"}, headers=headers)
    assert first.status_code == 201
    assert first.json()["url"] == "https://example.com"
    assert first.json()["title"] == "First"

    second = client.post("/api/bookmarks", json={"title": "Second", "url": "http://example.org"}, headers=headers)
    assert second.status_code == 201

    listed = client.get("/api/bookmarks", headers=headers).json()
    assert [b["title"] for b in listed] == ["Second", "First"]


@pytest.mark.parametrize(
    "payload",
    [
        {"title": "XSS", "url": "javascript:alert(1)"},
        {"title": "   ", "url": "example.com"},
        {"title": "Empty", "url": ""},
    ],
)
def test_create_rejects_invalid_input(client, login, payload) -> None:
    headers = auth_headers(login())
    response = client.post("/api/bookmarks", json=payload, headers=headers)
    assert response.status_code == 422
    assert client.get("/api/bookmarks", headers=headers).json() == []


def test_foreign_delete_looks_like_missing(client, login) -> None:
    alice = auth_headers(login("alice"))
    bob = auth_headers(login("bob"))
    bookmark_id = client.post("/api/bookmarks", json={"title": "Mine", "url": "a.example"}, headers=alice).json()["id"]

    foreign = client.delete(f"/api/bookmarks/{bookmark_id}", headers=bob)
    missing = client.delete("/api/bookmarks/does-not-exist", headers=bob)
    assert foreign.status_code == missing.status_code == 404
    assert foreign.json() == missing.json()

    assert client.get("/api/bookmarks", headers=bob).json() == []
    assert [b["id"] for b in client.get("/api/bookmarks", headers=alice).json()] == [bookmark_id]

    assert client.delete(f"/api/bookmarks/{bookmark_id}", headers=alice).status_code == 204
    assert client.delete(f"/api/bookmarks/{bookmark_id}", headers=alice).status_code == 404


def test_realtime_feed_streams_owner_changes(client, login) -> None:
    token = login()
    other = auth_headers(login())
    headers = auth_headers(token)

    with client.websocket_connect(f"/api/realtime?token={token}") as ws:
        client.post("/api/bookmarks", json={"title": "Not mine", "url": "b.example"}, headers=other)
        created = client.post("/api/bookmarks", json={"title": "Live", "url": "live.example"}, headers=headers).json()
        inserted = ws.receive_json()
        assert inserted["type"] == "insert"
        assert inserted["record"]["id"] == created["id"]
        assert inserted["record"]["url"] == "https://live.example"

        client.delete(f"/api/bookmarks/{created['id']}", headers=headers)
        assert ws.receive_json() == {"type": "delete", "id": created["id"]}


def test_realtime_feed_honours_event_filter(client, login) -> None:
    token = login()
    headers = auth_headers(token)

    with client.websocket_connect(f"/api/realtime?token={token}&events=delete") as ws:
        created = client.post("/api/bookmarks", json={"title": "x", "url": "x.example"}, headers=headers).json()
        client.delete(f"/api/bookmarks/{created['id']}", headers=headers)
        assert ws.receive_json() == {"type": "delete", "id": created["id"]}


def test_realtime_feed_rejects_bad_token(client) -> None:
    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect("/api/realtime?token=nope"):
            pass
    assert excinfo.value.code == 4401
