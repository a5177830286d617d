import asyncio

import pytest

from orgcal.core.live.broadcaster import LiveBroadcaster


async def test_broadcast_reaches_everyone_but_the_excluded_user():
    hub = LiveBroadcaster()
    mine = hub.register(1)
    other_tab = hub.register(1)
    theirs = hub.register(2)
    assert hub.session_count() == 3
    assert hub.session_count(1) == 2

    assert hub.broadcast("event_created", {"id": 7}, exclude_user=1) == 1
    message = theirs.queue.get_nowait()
    assert message["type"] == "event_created"
    assert message["payload"] == {"id": 7}
    assert "at" in message
    assert mine.queue.empty() and other_tab.queue.empty()


async def test_full_session_is_evicted():
    hub = LiveBroadcaster(queue_size=1)
    slow = hub.register(1)
    fast = hub.register(2)

    assert hub.broadcast("event_updated") == 2
    fast.queue.get_nowait()
    assert hub.broadcast("event_updated") == 1

    assert slow.closed
    assert hub.session_count(1) == 0
    assert hub.session_count(2) == 1


async def test_unregister_is_idempotent():
    hub = LiveBroadcaster()
    session = hub.register(5)
    hub.unregister(session)
    hub.unregister(session)
    assert hub.session_count() == 0
    with pytest.raises(ConnectionError):
        session.push({"type": "x"})


async def test_broadcast_from_another_thread():
    hub = LiveBroadcaster()
    session = hub.register(3)
    delivered = await asyncio.to_thread(hub.broadcast, "notification_created", {"userIds": [3]})
    assert delivered == 1
    message = await asyncio.wait_for(session.queue.get(), timeout=1)
    assert message["payload"] == {"userIds": [3]}


async def test_full_session_is_evicted_when_broadcasting_from_threads():
    hub = LiveBroadcaster(queue_size=1)
    slow = hub.register(1)

    await asyncio.to_thread(hub.broadcast, "event_updated")
    await asyncio.to_thread(hub.broadcast, "event_updated")
    await asyncio.sleep(0)
    assert slow.closed

    await asyncio.to_thread(hub.broadcast, "event_updated")
    assert hub.session_count(1) == 0
    assert slow.queue.qsize() == 1
