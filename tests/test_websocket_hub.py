from __future__ import annotations

import asyncio

import pytest
from statemachine.exceptions import TransitionNotAllowed

from roulette import engine
from roulette.fsm import SubscriberLifecycle
from roulette.state_store import StateStore
from roulette.websocket_hub import SessionHub


class FakeWebSocket:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.accepted = False
        self.sent: list[dict] = []

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, payload: dict) -> None:
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(payload)


def _hub(store: StateStore, catalog, heartbeat_seconds: float = 3600) -> SessionHub:
    return SessionHub(store=store, catalog=lambda: catalog, heartbeat_seconds=heartbeat_seconds)


def test_lifecycle_transitions() -> None:
    lc = SubscriberLifecycle()
    assert not lc.is_active and not lc.is_closed

    lc.activate()
    assert lc.is_active

    lc.close()
    assert lc.is_closed
    with pytest.raises(TransitionNotAllowed):
        lc.activate()

    early = SubscriberLifecycle()
    early.close()
    assert early.is_closed


@pytest.mark.asyncio
async def test_connect_sends_snapshot_then_membership_update(store: StateStore, catalog) -> None:
    hub = _hub(store, catalog)
    engine.register_participant(store=store, name="Alice", device_id="d1")

    first = FakeWebSocket()
    await hub.connect(first, device_id="d1")

    assert first.accepted
    assert [m["type"] for m in first.sent] == ["sync", "sync"]
    assert first.sent[0]["connected_devices"] == [
        {"device_id": "d1", "participant_name": "Alice", "has_submitted": False}
    ]

    second = FakeWebSocket()
    await hub.connect(second, device_id="")

    # The first subscriber hears about the newcomer; anonymous devices aren't listed.
    assert len(first.sent) == 3
    assert [d["device_id"] for d in first.sent[-1]["connected_devices"]] == ["d1"]
    assert hub.subscriber_count == 2


@pytest.mark.asyncio
async def test_broken_subscriber_does_not_block_the_rest(store: StateStore, catalog) -> None:
    hub = _hub(store, catalog)
    good = FakeWebSocket()
    flaky = FakeWebSocket()
    await hub.connect(good, device_id="d1")
    await hub.connect(flaky, device_id="d2")

    flaky.fail = True
    engine.set_lock(store=store, locked=True)
    before = len(good.sent)
    delivered = await hub.publish()

    assert delivered == 1
    assert hub.subscriber_count == 1
    assert hub.device_ids() == ["d1"]

    # The lock view still listed d2; a corrected view follows it.
    lock_view, corrected = good.sent[before:]
    assert [d["device_id"] for d in lock_view["connected_devices"]] == ["d1", "d2"]
    assert corrected["type"] == "sync"
    assert corrected["is_locked"] is True
    assert [d["device_id"] for d in corrected["connected_devices"]] == ["d1"]


@pytest.mark.asyncio
async def test_failed_reset_push_is_followed_by_a_sync(store: StateStore, catalog) -> None:
    hub = _hub(store, catalog)
    good = FakeWebSocket()
    flaky = FakeWebSocket()
    await hub.connect(good, device_id="d1")
    await hub.connect(flaky, device_id="d2")

    flaky.fail = True
    engine.reset_session(store=store)
    await hub.publish(reset=True)

    assert [m["type"] for m in good.sent[-2:]] == ["reset", "sync"]
    assert [d["device_id"] for d in good.sent[-1]["connected_devices"]] == ["d1"]


@pytest.mark.asyncio
async def test_failed_initial_snapshot_closes_subscriber(store: StateStore, catalog) -> None:
    hub = _hub(store, catalog)
    dead = FakeWebSocket(fail=True)

    sub = await hub.connect(dead, device_id="d1")

    assert sub.lifecycle.is_closed
    assert hub.subscriber_count == 0


@pytest.mark.asyncio
async def test_reset_is_a_distinct_event(store: StateStore, catalog) -> None:
    hub = _hub(store, catalog)
    ws = FakeWebSocket()
    await hub.connect(ws)
    engine.register_participant(store=store, name="Alice", device_id="d1")

    engine.reset_session(store=store)
    await hub.publish(reset=True)

    last = ws.sent[-1]
    assert last["type"] == "reset"
    assert last["reset"] is True
    assert last["leaderboard"] == []
    assert last["queue_items"] == []


@pytest.mark.asyncio
async def test_disconnect_is_idempotent(store: StateStore, catalog) -> None:
    hub = _hub(store, catalog)
    sub = await hub.connect(FakeWebSocket(), device_id="d1")

    assert await hub.disconnect(sub) is True
    assert await hub.disconnect(sub) is False
    assert sub.lifecycle.is_closed
    assert await hub.publish() == 0


@pytest.mark.asyncio
async def test_subscribers_never_see_older_revisions(store: StateStore, catalog) -> None:
    hub = _hub(store, catalog)
    sockets = [FakeWebSocket() for _ in range(3)]
    for ws in sockets:
        await hub.connect(ws)

    tasks = []
    for i in range(10):
        engine.set_lock(store=store, locked=i % 2 == 0)
        tasks.append(asyncio.create_task(hub.publish()))
    await asyncio.gather(*tasks)

    for ws in sockets:
        revisions = [m["revision"] for m in ws.sent]
        assert revisions == sorted(revisions)
        assert revisions[-1] == store.revision


@pytest.mark.asyncio
async def test_heartbeat_pings_and_drops_dead_connections(store: StateStore, catalog) -> None:
    hub = _hub(store, catalog, heartbeat_seconds=0.01)
    survivor = FakeWebSocket()
    await hub.connect(survivor, device_id="d2")
    ws = FakeWebSocket()
    sub = await hub.connect(ws, device_id="d1")

    task = asyncio.create_task(hub.heartbeat(sub))
    await asyncio.sleep(0.05)
    assert any(m["type"] == "ping" for m in ws.sent)

    ws.fail = True
    await asyncio.wait_for(task, timeout=1)

    assert sub.lifecycle.is_closed
    assert hub.subscriber_count == 1
    assert survivor.sent[-1]["type"] == "sync"
    assert [d["device_id"] for d in survivor.sent[-1]["connected_devices"]] == ["d2"]


@pytest.mark.asyncio
async def test_heartbeat_task_cancels_promptly(store: StateStore, catalog) -> None:
    hub = _hub(store, catalog, heartbeat_seconds=3600)
    sub = await hub.connect(FakeWebSocket(), device_id="d1")

    task = asyncio.create_task(hub.heartbeat(sub))
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    await hub.disconnect(sub)
    assert hub.subscriber_count == 0
