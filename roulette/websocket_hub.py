from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from fastapi import WebSocket

from roulette.api.models import SessionView
from roulette.catalog.registry import Catalog
from roulette.core.events import SessionEvent
from roulette.fsm import SubscriberLifecycle
from roulette.state_store import StateStore
from roulette.views import build_session_view

logger = logging.getLogger(__name__)


@dataclass(eq=False, slots=True)
class Subscriber:
    websocket: WebSocket
    # Self-asserted; empty for anonymous viewers.
    device_id: str = ""
    lifecycle: SubscriberLifecycle = field(default_factory=SubscriberLifecycle)


class SessionHub:
    """In-process WebSocket fan-out of full session views.

    Contract:
      - `connect(websocket, device_id=...)` registers a subscriber, sends it an
        immediate snapshot, then pushes to everyone (the device list changed).
      - `publish()` pushes one complete view to every active subscriber.
      - `disconnect(subscriber)` is idempotent.

    Views are built while holding the publish lock, so a subscriber never
    receives an older view after a newer one. A failed send only drops the
    subscriber it was addressed to; the survivors then get a fresh view
    without it.

    Single-process only; there is one session per process.
    """

    def __init__(
        self,
        *,
        store: StateStore,
        catalog: Callable[[], Catalog],
        heartbeat_seconds: float = 20.0,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._heartbeat_seconds = heartbeat_seconds
        self._subscribers: list[Subscriber] = []
        self._lock = asyncio.Lock()
        self._publish_lock = asyncio.Lock()

    @property
    def subscriber_count(self) -> int:
        return sum(1 for s in self._subscribers if s.lifecycle.is_active)

    def device_ids(self) -> list[str]:
        return [s.device_id for s in self._subscribers if s.lifecycle.is_active and s.device_id]

    def current_view(self, *, caller_device_id: str = "") -> SessionView:
        state, revision = self._store.versioned_snapshot()
        return build_session_view(
            state,
            catalog=self._catalog(),
            revision=revision,
            device_ids=self.device_ids(),
            caller_device_id=caller_device_id,
        )

    async def connect(self, websocket: WebSocket, *, device_id: str = "") -> Subscriber:
        await websocket.accept()
        sub = Subscriber(websocket=websocket, device_id=device_id)

        async with self._publish_lock:
            async with self._lock:
                self._subscribers.append(sub)
            sub.lifecycle.activate()
            event = SessionEvent.now(type="sync", view=self.current_view())
            try:
                await websocket.send_json(event.to_payload())
            except Exception:
                logger.info("Initial snapshot to subscriber failed (device_id=%r)", device_id)
                await self.disconnect(sub)
                return sub

        logger.info("Subscriber connected (device_id=%r, active=%d)", device_id, self.subscriber_count)
        await self.publish()
        return sub

    async def disconnect(self, sub: Subscriber) -> bool:
        async with self._lock:
            removed = sub in self._subscribers
            if removed:
                self._subscribers.remove(sub)
        if not sub.lifecycle.is_closed:
            sub.lifecycle.close()
        if removed:
            logger.info("Subscriber disconnected (device_id=%r, active=%d)", sub.device_id, self.subscriber_count)
        return removed

    async def publish(self, *, reset: bool = False) -> int:
        """Push the current view to every active subscriber.

        Returns the number of subscribers that received the final view.
        """

        async with self._publish_lock:
            event_type = "reset" if reset else "sync"
            while True:
                async with self._lock:
                    targets = [s for s in self._subscribers if s.lifecycle.is_active]

                if not targets:
                    return 0

                event = SessionEvent.now(type=event_type, view=self.current_view())
                payload = event.to_payload()

                results = await asyncio.gather(
                    *(s.websocket.send_json(payload) for s in targets),
                    return_exceptions=True,
                )

                dead = [s for s, res in zip(targets, results) if isinstance(res, BaseException)]
                if not dead:
                    return len(targets)

                for s in dead:
                    logger.debug("Dropping subscriber after failed push (device_id=%r)", s.device_id)
                    await self.disconnect(s)
                # The device list just changed; survivors get a corrected view.
                event_type = "sync"

    async def heartbeat(self, sub: Subscriber) -> None:
        """Ping `sub` until it closes; a failed ping counts as a disconnect."""

        while sub.lifecycle.is_active:
            await asyncio.sleep(self._heartbeat_seconds)
            async with self._publish_lock:
                if not sub.lifecycle.is_active:
                    return
                try:
                    await sub.websocket.send_json(SessionEvent.now(type="ping").to_payload())
                except Exception:
                    logger.info("Heartbeat failed; dropping subscriber (device_id=%r)", sub.device_id)
                    dropped = await self.disconnect(sub)
                else:
                    continue
            # Outside the publish lock: tell the others this device left.
            if dropped:
                await self.publish()
            return

    async def close_all(self) -> None:
        async with self._lock:
            subs = list(self._subscribers)
            self._subscribers.clear()
        for sub in subs:
            if not sub.lifecycle.is_closed:
                sub.lifecycle.close()
