from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from roulette.api.routes import router
from roulette.catalog.singleton import get_catalog
from roulette.catalog.startup import init_catalog_for_app
from roulette.reward import BonusPolicy
from roulette.settings import load_env_file, settings_from_env
from roulette.state_store import StateStore, writer_from_settings
from roulette.websocket_hub import SessionHub

load_env_file()

# Configure logging
logging.basicConfig(level=settings_from_env().log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = settings_from_env()
    catalog = init_catalog_for_app()

    # Fresh store and hub per app lifespan; nothing session-related lives at module level.
    store = StateStore(writer=writer_from_settings(settings))
    store.load(catalog=catalog)
    hub = SessionHub(store=store, catalog=get_catalog, heartbeat_seconds=settings.heartbeat_seconds)

    app.state.settings = settings
    app.state.store = store
    app.state.hub = hub
    app.state.bonus_policy = BonusPolicy(min_spins=settings.bonus_min_spins, max_spins=settings.bonus_max_spins)

    logger.info("Session service ready (backend=%s, revision=%d)", settings.state_backend, store.revision)
    try:
        yield
    finally:
        await hub.close_all()


app = FastAPI(title="slot-roulette", version="0.1.0", lifespan=lifespan)
app.include_router(router)


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "slot-roulette", "version": "0.1.0"}
