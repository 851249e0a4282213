from __future__ import annotations

from fastapi.requests import HTTPConnection

from roulette.catalog.registry import Catalog
from roulette.catalog.singleton import get_catalog
from roulette.reward import BonusPolicy
from roulette.state_store import StateStore
from roulette.websocket_hub import SessionHub


def get_store(conn: HTTPConnection) -> StateStore:
    return conn.app.state.store


def get_hub(conn: HTTPConnection) -> SessionHub:
    return conn.app.state.hub


def get_bonus_policy(conn: HTTPConnection) -> BonusPolicy:
    return conn.app.state.bonus_policy


def get_catalog_dep() -> Catalog:
    return get_catalog()


def get_device_id(conn: HTTPConnection) -> str:
    """Caller's device identity: `x-device-id` header, else `device_id` query param."""

    header_id = conn.headers.get("x-device-id", "").strip()
    query_id = conn.query_params.get("device_id", "").strip()
    return header_id or query_id
