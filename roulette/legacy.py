from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4


def is_legacy_document(doc: dict[str, Any]) -> bool:
    """Documents written by the first server generation use camelCase keys
    (`games`, `users`, `submissionsByDevice`, `spinCount`)."""

    if "queue_items" in doc or "participants" in doc:
        return False
    return any(k in doc for k in ("games", "users", "submissionsByDevice", "spinCount"))


def _str(value: Any, default: str = "") -> str:
    return value.strip() if isinstance(value, str) else default


def _num(value: Any) -> float:
    try:
        out = float(value)
    except (TypeError, ValueError):
        return 0.0
    return out if math.isfinite(out) else 0.0


def _ts(value: Any) -> str:
    return value if isinstance(value, str) and value else datetime.now(tz=UTC).isoformat()


def _round(record: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": _str(record.get("id")) or str(uuid4()),
        "item_id": _str(record.get("gameId")),
        "item_name": _str(record.get("gameName")),
        # Missing categories are backfilled from the catalog after validation.
        "category": _str(record.get("provider")) or None,
        "participant_id": _str(record.get("userId")),
        "participant_name": _str(record.get("userName")),
        "before": _num(record.get("before")),
        "after": _num(record.get("after")),
        "delta": _num(record.get("delta")),
        "created_at": _ts(record.get("createdAt")),
    }


def _dicts(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]


def upgrade_legacy_document(doc: dict[str, Any]) -> dict[str, Any]:
    """Translate a legacy document into the current SessionState layout."""

    queue_items = []
    for game in _dicts(doc.get("games")):
        queue_items.append(
            {
                "id": _str(game.get("id")) or str(uuid4()),
                "name": _str(game.get("name"), "Unknown game"),
                "category": _str(game.get("provider")) or None,
                "created_at": _ts(game.get("createdAt")),
                "participant_id": _str(game.get("userId")),
                "device_id": _str(game.get("deviceId")),
            }
        )

    participants: dict[str, dict[str, Any]] = {}
    for user in _dicts(doc.get("users")):
        pid = _str(user.get("id")) or str(uuid4())
        raw_devices = user.get("deviceIds")
        if not isinstance(raw_devices, list):
            raw_devices = []
        device_ids = [d.strip() for d in raw_devices if isinstance(d, str) and d.strip()]
        participants[pid] = {
            "id": pid,
            "name": _str(user.get("name")) or "Player",
            "total_profit": _num(user.get("totalProfit")),
            "device_ids": device_ids,
            "rounds": [_round(r) for r in _dicts(user.get("rounds"))],
        }

    submissions = doc.get("submissionsByDevice")
    submitted_by = {
        str(k): str(v) for k, v in (submissions.items() if isinstance(submissions, dict) else []) if k and v
    }

    spin_count = doc.get("spinCount")
    last_bonus = doc.get("lastBonusAt")

    return {
        "queue_items": queue_items,
        "is_locked": doc.get("isLocked") is True,
        "submitted_by": submitted_by,
        "participants": participants,
        "history": [_round(r) for r in _dicts(doc.get("history"))],
        "spin_counter": spin_count if isinstance(spin_count, int) else 0,
        "last_bonus_at": last_bonus if isinstance(last_bonus, int) else 0,
    }
