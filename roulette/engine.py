from __future__ import annotations

import logging
import math
import random
from datetime import UTC, datetime
from uuid import uuid4

from roulette.api.models import Participant, QueueItem, RoundResult, SessionState
from roulette.catalog.registry import Catalog
from roulette.errors import Conflict, InvalidInput, NotFound
from roulette.reward import DEFAULT_POLICY, BonusCheck, BonusPolicy, check_eligibility, draw_reward_amount
from roulette.state_store import StateStore
from roulette.validators import SubmissionContext, pipeline_for_source

logger = logging.getLogger(__name__)


OPERATOR_DEVICE_PREFIX = "operator:"


def _now() -> datetime:
    return datetime.now(tz=UTC)


def _clean(value: str | None) -> str:
    return value.strip() if isinstance(value, str) else ""


def find_participant_by_device(*, state: SessionState, device_id: str) -> Participant | None:
    pid = state.device_index.get(device_id)
    if pid is None:
        return None
    return state.participants.get(pid)


def bind_device(*, state: SessionState, participant: Participant, device_id: str) -> None:
    """Attach a device to a participant, keeping the device index in sync."""

    if device_id in state.device_index:
        return
    if device_id not in participant.device_ids:
        participant.device_ids.append(device_id)
    state.device_index[device_id] = participant.id


def register_participant(*, store: StateStore, name: str, device_id: str) -> Participant:
    name = _clean(name)
    device_id = _clean(device_id)
    if not name:
        raise InvalidInput("Name is required.")
    if not device_id:
        raise InvalidInput("device_id is required.")

    def _apply(state: SessionState) -> Participant:
        participant = find_participant_by_device(state=state, device_id=device_id)
        if participant is None:
            participant = Participant(id=str(uuid4()), name=name)
            state.participants[participant.id] = participant
            bind_device(state=state, participant=participant, device_id=device_id)
        else:
            participant.name = name
        return participant.model_copy(deep=True)

    return store.commit(_apply)


def create_participant(*, store: StateStore, name: str) -> Participant:
    name = _clean(name)
    if not name:
        raise InvalidInput("Name is required.")

    def _apply(state: SessionState) -> Participant:
        key = name.casefold()
        if any(p.name.casefold() == key for p in state.participants.values()):
            raise Conflict("A participant with that name already exists.", code="duplicate-name")
        participant = Participant(id=str(uuid4()), name=name)
        state.participants[participant.id] = participant
        return participant.model_copy(deep=True)

    return store.commit(_apply)


def _append_item(*, state: SessionState, catalog: Catalog, ctx: SubmissionContext) -> QueueItem:
    item = QueueItem(
        id=str(uuid4()),
        name=ctx.name,
        category=catalog.category_for(ctx.name),
        created_at=_now(),
        participant_id=ctx.participant_id,
        device_id=ctx.device_id,
    )
    state.queue_items.append(item)
    return item


def enqueue_item(
    *,
    store: StateStore,
    catalog: Catalog,
    name: str,
    device_id: str,
    participant_id: str,
) -> QueueItem:
    ctx = SubmissionContext(
        name=_clean(name),
        participant_id=_clean(participant_id),
        device_id=_clean(device_id),
        source="player",
    )

    def _apply(state: SessionState) -> QueueItem:
        pipeline_for_source(ctx.source).validate(ctx=ctx, state=state)
        # Operator-created participants pick up their device on first submission.
        bind_device(state=state, participant=state.participants[ctx.participant_id], device_id=ctx.device_id)
        item = _append_item(state=state, catalog=catalog, ctx=ctx)
        state.submitted_by[ctx.device_id] = item.id
        return item.model_copy()

    return store.commit(_apply)


def enqueue_item_for_participant(
    *,
    store: StateStore,
    catalog: Catalog,
    participant_id: str,
    name: str,
) -> QueueItem:
    pid = _clean(participant_id)
    ctx = SubmissionContext(
        name=_clean(name),
        participant_id=pid,
        device_id=f"{OPERATOR_DEVICE_PREFIX}{pid}",
        source="operator",
    )

    def _apply(state: SessionState) -> QueueItem:
        pipeline_for_source(ctx.source).validate(ctx=ctx, state=state)
        return _append_item(state=state, catalog=catalog, ctx=ctx).model_copy()

    return store.commit(_apply)


def remove_item(*, store: StateStore, item_id: str) -> None:
    # Operator action; allowed while the wheel is locked.
    item_id = _clean(item_id)

    def _apply(state: SessionState) -> None:
        idx = next((i for i, item in enumerate(state.queue_items) if item.id == item_id), None)
        if idx is None:
            raise NotFound("Game not found.", code="item-not-found")
        del state.queue_items[idx]
        state.submitted_by = {d: i for d, i in state.submitted_by.items() if i != item_id}

    store.commit(_apply)


def clear_queue(*, store: StateStore) -> None:
    def _apply(state: SessionState) -> None:
        state.queue_items = []
        state.submitted_by = {}

    store.commit(_apply)


def set_lock(*, store: StateStore, locked: bool) -> tuple[bool, int]:
    if not isinstance(locked, bool):
        raise InvalidInput("locked flag is required.")

    def _apply(state: SessionState) -> tuple[bool, int]:
        if locked and not state.is_locked:
            state.spin_counter += 1
        state.is_locked = locked
        return state.is_locked, state.spin_counter

    return store.commit(_apply)


def record_result(*, store: StateStore, item_id: str, before: float, after: float) -> RoundResult:
    item_id = _clean(item_id)
    if not item_id:
        raise InvalidInput("item_id is required.")
    if (
        isinstance(before, bool)
        or isinstance(after, bool)
        or not isinstance(before, (int, float))
        or not isinstance(after, (int, float))
        or not math.isfinite(before)
        or not math.isfinite(after)
    ):
        raise InvalidInput("before and after must be numbers.")

    def _apply(state: SessionState) -> RoundResult:
        item = next((i for i in state.queue_items if i.id == item_id), None)
        if item is None:
            raise NotFound("Game not found.", code="item-not-found")
        participant = state.participants.get(item.participant_id)
        if participant is None:
            raise NotFound("Participant not found for game.", code="participant-not-found")

        delta = float(after) - float(before)
        record = RoundResult(
            id=str(uuid4()),
            item_id=item.id,
            item_name=item.name,
            category=item.category,
            participant_id=participant.id,
            participant_name=participant.name,
            before=float(before),
            after=float(after),
            delta=delta,
            created_at=_now(),
        )
        participant.total_profit += delta
        participant.rounds.append(record)
        state.history.append(record)

        # One winner per round: the whole queue goes.
        state.queue_items = []
        state.submitted_by = {}
        return record.model_copy()

    return store.commit(_apply)


def reset_session(*, store: StateStore) -> None:
    store.reset()
    logger.info("Session reset to defaults")


def check_bonus(
    *,
    store: StateStore,
    policy: BonusPolicy = DEFAULT_POLICY,
    rng: random.Random | None = None,
) -> BonusCheck:
    state = store.snapshot()
    return check_eligibility(
        spin_counter=state.spin_counter,
        last_bonus_at=state.last_bonus_at,
        policy=policy,
        rng=rng,
    )


def draw_bonus(
    *,
    store: StateStore,
    policy: BonusPolicy = DEFAULT_POLICY,
    rng: random.Random | None = None,
) -> int:
    amount = draw_reward_amount(policy=policy, rng=rng)

    def _apply(state: SessionState) -> None:
        state.last_bonus_at = state.spin_counter

    store.commit(_apply)
    return amount
