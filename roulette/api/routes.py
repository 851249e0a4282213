from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Response, WebSocket, WebSocketDisconnect, status

from roulette import engine
from roulette.api.deps import get_bonus_policy, get_catalog_dep, get_device_id, get_hub, get_store
from roulette.api.models import (
    BonusCheckResponse,
    BonusDrawResponse,
    CatalogReloadResponse,
    CreateParticipantRequest,
    EnqueueRequest,
    HistoryResponse,
    LeaderboardResponse,
    OperatorEnqueueRequest,
    ParticipantResponse,
    QueueItemResponse,
    RecordResultRequest,
    RecordResultResponse,
    RegisterParticipantRequest,
    ResetResponse,
    SessionView,
    SpinRequest,
    SpinResponse,
)
from roulette.catalog.registry import Catalog
from roulette.catalog.singleton import reload_catalog
from roulette.errors import SessionError
from roulette.reward import BonusPolicy
from roulette.state_store import StateStore
from roulette.views import leaderboard
from roulette.websocket_hub import SessionHub

logger = logging.getLogger(__name__)

router = APIRouter()


def _http_error(e: SessionError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.as_detail())


@router.websocket("/ws/session")
async def session_updates_ws(
    websocket: WebSocket,
    hub: SessionHub = Depends(get_hub),
    device_id: str = Depends(get_device_id),
) -> None:
    sub = await hub.connect(websocket, device_id=device_id)
    if not sub.lifecycle.is_active:
        return

    heartbeat = asyncio.create_task(hub.heartbeat(sub))
    try:
        # Keep the socket open; anything the client sends is ignored.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        heartbeat.cancel()
        if await hub.disconnect(sub):
            await hub.publish()


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/session", response_model=SessionView)
async def get_session_route(
    hub: SessionHub = Depends(get_hub),
    device_id: str = Depends(get_device_id),
) -> SessionView:
    return hub.current_view(caller_device_id=device_id)


@router.post("/participants", response_model=ParticipantResponse)
async def register_participant_route(
    payload: RegisterParticipantRequest,
    store: StateStore = Depends(get_store),
    hub: SessionHub = Depends(get_hub),
) -> ParticipantResponse:
    try:
        participant = engine.register_participant(store=store, name=payload.name, device_id=payload.device_id)
    except SessionError as e:
        raise _http_error(e) from e

    await hub.publish()
    return ParticipantResponse(participant=participant, leaderboard=leaderboard(store.snapshot()))


@router.get("/participants", response_model=LeaderboardResponse)
async def list_participants_route(store: StateStore = Depends(get_store)) -> LeaderboardResponse:
    return LeaderboardResponse(leaderboard=leaderboard(store.snapshot()))


@router.post("/admin/participants", response_model=ParticipantResponse, status_code=status.HTTP_201_CREATED)
async def create_participant_route(
    payload: CreateParticipantRequest,
    store: StateStore = Depends(get_store),
    hub: SessionHub = Depends(get_hub),
) -> ParticipantResponse:
    try:
        participant = engine.create_participant(store=store, name=payload.name)
    except SessionError as e:
        raise _http_error(e) from e

    await hub.publish()
    return ParticipantResponse(participant=participant, leaderboard=leaderboard(store.snapshot()))


@router.post("/admin/queue", response_model=QueueItemResponse, status_code=status.HTTP_201_CREATED)
async def operator_enqueue_route(
    payload: OperatorEnqueueRequest,
    store: StateStore = Depends(get_store),
    hub: SessionHub = Depends(get_hub),
    catalog: Catalog = Depends(get_catalog_dep),
) -> QueueItemResponse:
    try:
        item = engine.enqueue_item_for_participant(
            store=store,
            catalog=catalog,
            participant_id=payload.participant_id,
            name=payload.name,
        )
    except SessionError as e:
        raise _http_error(e) from e

    await hub.publish()
    return QueueItemResponse(item=item)


@router.post("/queue", response_model=QueueItemResponse, status_code=status.HTTP_201_CREATED)
async def enqueue_route(
    payload: EnqueueRequest,
    store: StateStore = Depends(get_store),
    hub: SessionHub = Depends(get_hub),
    catalog: Catalog = Depends(get_catalog_dep),
) -> QueueItemResponse:
    try:
        item = engine.enqueue_item(
            store=store,
            catalog=catalog,
            name=payload.name,
            device_id=payload.device_id,
            participant_id=payload.participant_id,
        )
    except SessionError as e:
        raise _http_error(e) from e

    await hub.publish()
    return QueueItemResponse(item=item)


@router.post("/queue/clear", status_code=status.HTTP_204_NO_CONTENT)
async def clear_queue_route(
    store: StateStore = Depends(get_store),
    hub: SessionHub = Depends(get_hub),
) -> Response:
    engine.clear_queue(store=store)
    await hub.publish()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/queue/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_item_route(
    item_id: str,
    store: StateStore = Depends(get_store),
    hub: SessionHub = Depends(get_hub),
) -> Response:
    try:
        engine.remove_item(store=store, item_id=item_id)
    except SessionError as e:
        raise _http_error(e) from e

    await hub.publish()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/spin", response_model=SpinResponse)
async def spin_route(
    payload: SpinRequest,
    store: StateStore = Depends(get_store),
    hub: SessionHub = Depends(get_hub),
) -> SpinResponse:
    is_locked, spin_counter = engine.set_lock(store=store, locked=payload.locked)
    await hub.publish()
    return SpinResponse(is_locked=is_locked, spin_counter=spin_counter)


@router.get("/bonus/check", response_model=BonusCheckResponse)
async def bonus_check_route(
    store: StateStore = Depends(get_store),
    policy: BonusPolicy = Depends(get_bonus_policy),
) -> BonusCheckResponse:
    check = engine.check_bonus(store=store, policy=policy)
    return BonusCheckResponse(
        eligible=check.eligible,
        spins_since_last_bonus=check.spins_since_last_bonus,
        total_spins=check.total_spins,
    )


@router.post("/bonus/spin", response_model=BonusDrawResponse)
async def bonus_spin_route(
    store: StateStore = Depends(get_store),
    hub: SessionHub = Depends(get_hub),
    policy: BonusPolicy = Depends(get_bonus_policy),
) -> BonusDrawResponse:
    amount = engine.draw_bonus(store=store, policy=policy)
    await hub.publish()
    return BonusDrawResponse(amount=amount)


@router.post("/results", response_model=RecordResultResponse)
async def record_result_route(
    payload: RecordResultRequest,
    store: StateStore = Depends(get_store),
    hub: SessionHub = Depends(get_hub),
) -> RecordResultResponse:
    try:
        result = engine.record_result(store=store, item_id=payload.item_id, before=payload.before, after=payload.after)
    except SessionError as e:
        raise _http_error(e) from e

    await hub.publish()
    return RecordResultResponse(result=result, leaderboard=leaderboard(store.snapshot()))


@router.get("/history", response_model=HistoryResponse)
async def history_route(store: StateStore = Depends(get_store)) -> HistoryResponse:
    return HistoryResponse(history=store.snapshot().history)


@router.post("/reset", response_model=ResetResponse)
async def reset_route(
    store: StateStore = Depends(get_store),
    hub: SessionHub = Depends(get_hub),
) -> ResetResponse:
    engine.reset_session(store=store)
    await hub.publish(reset=True)
    return ResetResponse(success=True, message="Session has been reset")


@router.post("/admin/catalog/reload", response_model=CatalogReloadResponse)
async def reload_catalog_route(hub: SessionHub = Depends(get_hub)) -> CatalogReloadResponse:
    """Pick up catalog CSVs rewritten by the offline refresh job.

    Categories already stored on queue items and results are not recomputed.
    """

    catalog = reload_catalog()
    # Category stats consider every catalog category, so the view may change.
    await hub.publish()
    return CatalogReloadResponse(categories=len(catalog.providers), items=len(catalog))
