from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Protocol, TypeVar

import redis
from pydantic import ValidationError

from roulette.api.models import SessionState
from roulette.catalog.registry import Catalog
from roulette.errors import PersistenceFailure
from roulette.infra.redis_client import create_redis
from roulette.legacy import is_legacy_document, upgrade_legacy_document
from roulette.settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SnapshotWriter(Protocol):
    """Durable home of the single session document."""

    def read(self) -> str | None: ...

    def write(self, raw: str) -> None: ...


class FileSnapshotWriter:
    """One JSON file, replaced atomically on every write."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def read(self) -> str | None:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def write(self, raw: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(raw)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp, self.path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceFailure(f"Failed to write {self.path}: {e}") from e


class RedisSnapshotWriter:
    """One Redis key holding the JSON document."""

    def __init__(self, r: redis.Redis, *, key: str = "roulette:session") -> None:
        self.r = r
        self.key = key

    def read(self) -> str | None:
        raw = self.r.get(self.key)
        return raw or None

    def write(self, raw: str) -> None:
        try:
            self.r.set(self.key, raw)
        except redis.RedisError as e:
            raise PersistenceFailure(f"Failed to write redis key {self.key}: {e}") from e


def backfill_categories(*, state: SessionState, catalog: Catalog) -> bool:
    """Resolve a category for every record that predates category tracking.

    Returns True if anything changed.
    """

    changed = False
    for item in state.queue_items:
        if not item.category:
            item.category = catalog.category_for(item.name)
            changed = True
    for record in state.history:
        if not record.category:
            record.category = catalog.category_for(record.item_name)
            changed = True
    for participant in state.participants.values():
        for record in participant.rounds:
            if not record.category:
                record.category = catalog.category_for(record.item_name)
                changed = True
    return changed


def rebuild_device_index(state: SessionState) -> None:
    index: dict[str, str] = {}
    for participant in state.participants.values():
        for device_id in participant.device_ids:
            # First participant to claim a device keeps it.
            index.setdefault(device_id, participant.id)
    state.device_index = index


class StateStore:
    """Owner of the authoritative session state.

    Contract:
      - `commit(mutator)` runs validate-then-apply on a private copy under a
        single writer lock, then publishes the copy and persists it.
      - `snapshot()` returns a deep copy; a published state object is never
        mutated again, so readers don't need the lock.

    A failed durable write doesn't undo the commit: it is logged, and the next
    commit writes the then-current state again.
    """

    def __init__(self, *, writer: SnapshotWriter) -> None:
        self._writer = writer
        self._lock = threading.Lock()
        # (state, revision), replaced as a unit.
        self._published: tuple[SessionState, int] = (SessionState(), 0)
        self._dirty = False

    @property
    def revision(self) -> int:
        return self._published[1]

    @property
    def dirty(self) -> bool:
        """True while the last durable write failed."""
        return self._dirty

    def load(self, *, catalog: Catalog) -> SessionState:
        with self._lock:
            state, needs_write = self._read_initial_state()
            if backfill_categories(state=state, catalog=catalog):
                logger.info("Backfilled categories on records loaded from storage")
                needs_write = True
            rebuild_device_index(state)
            self._publish(state)
            if needs_write:
                self._persist()
            return state.model_copy(deep=True)

    def _read_initial_state(self) -> tuple[SessionState, bool]:
        try:
            raw = self._writer.read()
        except (OSError, UnicodeDecodeError, redis.RedisError):
            logger.exception("Failed to read session state from storage. Using defaults.")
            return SessionState(), False

        if raw is None:
            logger.info("No stored session state found; starting with defaults")
            return SessionState(), True

        try:
            doc = json.loads(raw)
            if not isinstance(doc, dict):
                raise ValueError("session document is not an object")
            if is_legacy_document(doc):
                logger.info("Upgrading legacy session document")
                return SessionState.model_validate(upgrade_legacy_document(doc)), True
            return SessionState.model_validate(doc), False
        except (ValueError, TypeError, ValidationError):
            logger.exception("Stored session state is corrupt. Using defaults.")
            return SessionState(), False

    def snapshot(self) -> SessionState:
        return self._published[0].model_copy(deep=True)

    def versioned_snapshot(self) -> tuple[SessionState, int]:
        state, revision = self._published
        return state.model_copy(deep=True), revision

    def commit(self, mutator: Callable[[SessionState], T]) -> T:
        with self._lock:
            working = self._published[0].model_copy(deep=True)
            # Anything raised here leaves the published state untouched.
            result = mutator(working)
            self._publish(working)
            self._persist()
            return result

    def reset(self) -> None:
        with self._lock:
            self._publish(SessionState())
            self._persist()

    def _publish(self, state: SessionState) -> None:
        self._published = (state, self._published[1] + 1)

    def _persist(self) -> None:
        try:
            self._writer.write(self._published[0].model_dump_json(indent=2))
        except PersistenceFailure:
            self._dirty = True
            logger.exception("Session state kept in memory only; will retry on next commit")
            return
        if self._dirty:
            logger.info("Session state persisted again after an earlier failure")
        self._dirty = False


def writer_from_settings(settings: Settings) -> SnapshotWriter:
    if settings.state_backend == "redis":
        return RedisSnapshotWriter(create_redis(settings.redis_url), key=settings.state_key)
    return FileSnapshotWriter(settings.state_path)
