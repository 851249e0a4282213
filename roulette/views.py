from __future__ import annotations

from collections.abc import Iterable

from roulette.api.models import CategoryStats, ConnectedDevice, Participant, SessionState, SessionView
from roulette.catalog.registry import UNKNOWN_CATEGORY, Catalog

# Submissions per device per round. Enforced structurally by SessionState.submitted_by.
DEVICE_LIMIT = 1

UNKNOWN_PARTICIPANT = "unknown"


def leaderboard(state: SessionState) -> list[Participant]:
    # sorted() is stable, so ties keep creation order.
    return sorted(state.participants.values(), key=lambda p: p.total_profit, reverse=True)


def category_stats(state: SessionState, *, catalog: Catalog) -> list[CategoryStats]:
    stats: dict[str, CategoryStats] = {c: CategoryStats(category=c) for c in catalog.categories()}
    stats.setdefault(UNKNOWN_CATEGORY, CategoryStats(category=UNKNOWN_CATEGORY))

    for record in state.history:
        category = record.category or catalog.category_for(record.item_name)
        s = stats.setdefault(category, CategoryStats(category=category))
        s.rounds_played += 1
        s.total_profit += record.delta
        s.biggest_win = max(s.biggest_win, record.delta)
        s.biggest_loss = min(s.biggest_loss, record.delta)

    played = [s for s in stats.values() if s.rounds_played > 0]
    return sorted(played, key=lambda s: s.total_profit, reverse=True)


def connected_devices(state: SessionState, *, device_ids: Iterable[str]) -> list[ConnectedDevice]:
    out: list[ConnectedDevice] = []
    seen: set[str] = set()
    for device_id in device_ids:
        if not device_id or device_id in seen:
            continue
        seen.add(device_id)
        pid = state.device_index.get(device_id)
        participant = state.participants.get(pid) if pid else None
        out.append(
            ConnectedDevice(
                device_id=device_id,
                participant_name=participant.name if participant else UNKNOWN_PARTICIPANT,
                has_submitted=device_id in state.submitted_by,
            )
        )
    return out


def build_session_view(
    state: SessionState,
    *,
    catalog: Catalog,
    revision: int,
    device_ids: Iterable[str] = (),
    caller_device_id: str = "",
) -> SessionView:
    return SessionView(
        revision=revision,
        queue_items=list(state.queue_items),
        is_locked=state.is_locked,
        leaderboard=leaderboard(state),
        category_stats=category_stats(state, catalog=catalog),
        connected_devices=connected_devices(state, device_ids=device_ids),
        submitted_device_ids=list(state.submitted_by.keys()),
        device_limit=DEVICE_LIMIT,
        has_submitted=bool(caller_device_id) and caller_device_id in state.submitted_by,
    )
