from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


@dataclass(frozen=True, slots=True)
class Settings:
    # "file" or "redis"
    state_backend: str
    state_path: Path
    redis_url: str
    state_key: str
    heartbeat_seconds: float
    bonus_min_spins: int
    bonus_max_spins: int
    log_level: str


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from e


def load_env_file(path: Path | None = None) -> None:
    """Load a local `.env` (if any) without overriding the real environment."""

    if path is None:
        path = Path(__file__).resolve().parents[1] / ".env"
    if path.exists():
        load_dotenv(dotenv_path=path, override=False)


def settings_from_env() -> Settings:
    backend = os.environ.get("ROULETTE_STATE_BACKEND", "file").strip().lower() or "file"
    if backend not in {"file", "redis"}:
        raise RuntimeError(f"ROULETTE_STATE_BACKEND must be 'file' or 'redis', got {backend!r}")

    return Settings(
        state_backend=backend,
        state_path=Path(os.environ.get("ROULETTE_STATE_PATH", "data/state.json")),
        redis_url=os.environ.get("REDIS_URL", "redis://localhost:6379/0"),
        state_key=os.environ.get("ROULETTE_STATE_KEY", "roulette:session"),
        heartbeat_seconds=_env_float("ROULETTE_HEARTBEAT_SECONDS", 20.0),
        bonus_min_spins=_env_int("ROULETTE_BONUS_MIN_SPINS", 5),
        bonus_max_spins=_env_int("ROULETTE_BONUS_MAX_SPINS", 20),
        log_level=os.environ.get("ROULETTE_LOG_LEVEL", "INFO").upper(),
    )
