import asyncio
import uuid

import httpx
import pytest

from smartmark.client.broadcast import BroadcastBus
from smartmark.client.data_access import RemoteBookmarkAPI
from smartmark.client.push import HubPushFeed
from smartmark.client.session import DashboardSession
from smartmark.database import AsyncSessionLocal, init_db
from smartmark.errors import NotFoundError, PersistenceError, SignInRequired, ValidationError
from smartmark.models import User
from smartmark.realtime import ChangeHub
from smartmark.utils.security import create_access_token


async def _drain() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


async def _create_user() -> str:
    await init_db()
    async with AsyncSessionLocal() as db:
        user = User(provider="google", provider_subject=uuid.uuid4().hex, email="e2e@example.com")
        db.add(user)
        await db.commit()
        return create_access_token(user.id)


@pytest.fixture
def service(app, monkeypatch: pytest.MonkeyPatch) -> ChangeHub:
    hub = ChangeHub()
    monkeypatch.setattr(app.state, "change_hub", hub)
    return hub


def _client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


def test_remote_api_maps_service_errors(app, service) -> None:
    async def scenario():
        token = await _create_user()
        async with _client(app) as http:
            api = RemoteBookmarkAPI(http, token)
            record = await api.create("Docs", "docs.python.org")
            assert record.url == "https://docs.python.org"
            assert [r.id for r in await api.list_mine()] == [record.id]

            with pytest.raises(ValidationError):
                await api.create("Bad", "javascript:alert(1)")

            await api.delete_by_id(record.id)
            with pytest.raises(NotFoundError):
                await api.delete_by_id(record.id)

            with pytest.raises(SignInRequired):
                await RemoteBookmarkAPI(http, "expired").list_mine()

    asyncio.run(scenario())


def test_sessions_stay_in_sync_against_the_service(app, service) -> None:
    async def scenario():
        token = await _create_user()
        async with _client(app) as http:
            browser = BroadcastBus()
            tab_1 = DashboardSession(RemoteBookmarkAPI(http, token), await RemoteBookmarkAPI(http, token).get_current_user(),
                                     bus=browser, push_feed=HubPushFeed(service))
            tab_2 = DashboardSession(RemoteBookmarkAPI(http, token), tab_1.user,
                                     bus=browser, push_feed=HubPushFeed(service))
            other_device = DashboardSession(RemoteBookmarkAPI(http, token), tab_1.user,
                                            push_feed=HubPushFeed(service))
            async with tab_1, tab_2, other_device:
                note = await tab_1.add_bookmark("Example", "example.com")
                assert note.type == "success"
                await _drain()
                ids = [s.store.ids() for s in (tab_1, tab_2, other_device)]
                assert ids[0] == ids[1] == ids[2]
                assert len(ids[0]) == 1

                note = await other_device.delete_bookmark(ids[0][0])
                assert note.message == "Bookmark deleted"
                await _drain()
                return [s.store.ids() for s in (tab_1, tab_2, other_device)]

    assert asyncio.run(scenario()) == [[], [], []]
    assert service.subscriber_count() == 0


@pytest.mark.parametrize(
    "body, content_type",
    [
        ("<html><body>Bad gateway</body></html>", "text/html"),
        ('{"unexpected": "shape"}', "application/json"),
        ('[{"id": "only-an-id"}]', "application/json"),
    ],
)
def test_malformed_success_responses_become_persistence_errors(body: str, content_type: str) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        status = 201 if request.method == "POST" else 200
        return httpx.Response(status, text=body, headers={"content-type": content_type})

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://proxy") as http:
            api = RemoteBookmarkAPI(http, "token")
            for call in (api.list_mine(), api.get_current_user(), api.create("Docs", "docs.python.org")):
                with pytest.raises(PersistenceError):
                    await call

    asyncio.run(scenario())
