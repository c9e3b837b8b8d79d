import asyncio

import pytest

from conftest import make_record
from smartmark.realtime import ChangeHub
from smartmark.schemas import ChangeEvent


def test_events_are_scoped_to_owner() -> None:
    async def scenario():
        hub = ChangeHub(queue_size=8)
        async with hub.subscribe("owner-1") as mine, hub.subscribe("owner-2") as theirs:
            assert hub.publish("owner-1", ChangeEvent.deleted("a")) == 1
            event = await asyncio.wait_for(mine.get(), timeout=1)
            assert theirs._queue.empty()
            return event

    event = asyncio.run(scenario())
    assert event.type == "delete"
    assert event.id == "a"


def test_subscription_filters_event_types() -> None:
    async def scenario():
        hub = ChangeHub(queue_size=8)
        async with hub.subscribe("owner-1", {"delete"}) as sub:
            assert hub.publish("owner-1", ChangeEvent.inserted(make_record("a", 1))) == 0
            assert hub.publish("owner-1", ChangeEvent.deleted("a")) == 1
            return await asyncio.wait_for(sub.get(), timeout=1)

    assert asyncio.run(scenario()).type == "delete"


def test_leaving_context_unregisters() -> None:
    async def scenario():
        hub = ChangeHub(queue_size=8)
        with pytest.raises(ValueError):
            async with hub.subscribe("owner-1"):
                assert hub.subscriber_count("owner-1") == 1
                raise ValueError("boom")
        assert hub.subscriber_count() == 0
        assert hub.publish("owner-1", ChangeEvent.deleted("a")) == 0

    asyncio.run(scenario())


def test_full_queue_drops_without_blocking_writer() -> None:
    async def scenario():
        hub = ChangeHub(queue_size=2)
        async with hub.subscribe("owner-1") as sub:
            delivered = [hub.publish("owner-1", ChangeEvent.deleted(str(i))) for i in range(4)]
            first = await sub.get()
            return delivered, first

    delivered, first = asyncio.run(scenario())
    assert delivered == [1, 1, 0, 0]
    assert first.id == "0"


def test_close_ends_iteration() -> None:
    async def scenario():
        hub = ChangeHub(queue_size=8)
        seen = []
        async with hub.subscribe("owner-1") as sub:
            hub.publish("owner-1", ChangeEvent.deleted("a"))
            hub.close()
            async for event in sub:
                seen.append(event.id)
        assert hub.closed
        with pytest.raises(RuntimeError):
            async with hub.subscribe("owner-1"):
                pass
        return seen

    assert asyncio.run(scenario()) == ["a"]
