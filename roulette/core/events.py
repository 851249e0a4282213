from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

from roulette.api.models import SessionView

EventType = Literal[
    "sync",
    "reset",
    "ping",
]


@dataclass(frozen=True, slots=True)
class SessionEvent:
    """Envelope for everything pushed to subscribers.

    `sync` and `reset` carry a full session view; `reset` additionally tells
    clients to drop any local state (stored user, pending input) first.
    """

    type: EventType
    view: SessionView | None
    ts: datetime

    @staticmethod
    def now(*, type: EventType, view: SessionView | None = None) -> "SessionEvent":
        return SessionEvent(type=type, view=view, ts=datetime.now(timezone.utc))

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type, "ts": self.ts.isoformat()}
        if self.view is not None:
            payload.update(self.view.model_dump(mode="json"))
        if self.type == "reset":
            payload["reset"] = True
        return payload
