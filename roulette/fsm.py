from __future__ import annotations

from statemachine import State, StateMachine


class SubscriberLifecycle(StateMachine):
    """Per-connection lifecycle: connecting -> active -> closed.

    Only active subscribers receive pushes. `close` is allowed before
    activation too (the initial snapshot may fail to send).
    """

    connecting = State("Connecting", initial=True)
    active = State("Active")
    closed = State("Closed", final=True)

    activate = connecting.to(active)
    close = connecting.to(closed) | active.to(closed)

    @property
    def is_active(self) -> bool:
        return self.current_state.id == "active"

    @property
    def is_closed(self) -> bool:
        return self.current_state.id == "closed"
