from __future__ import annotations

import json
from pathlib import Path

from fastapi.testclient import TestClient


def _register(client: TestClient, name: str, device_id: str) -> dict:
    resp = client.post("/participants", json={"name": name, "device_id": device_id})
    assert resp.status_code == 200
    return resp.json()["participant"]


def test_round_trip_through_the_api(client: TestClient) -> None:
    alice = _register(client, "Alice", "d1")

    resp = client.post("/queue", json={"name": "Golden Ticket", "device_id": "d1", "participant_id": alice["id"]})
    assert resp.status_code == 201
    item = resp.json()["item"]
    assert item["category"] == "Unknown"

    # Same device again: rate limited, with its own status and reason code.
    resp2 = client.post("/queue", json={"name": "Starburst", "device_id": "d1", "participant_id": alice["id"]})
    assert resp2.status_code == 429
    assert resp2.json()["detail"]["code"] == "device-limit-reached"

    view = client.get("/session", headers={"x-device-id": "d1"}).json()
    assert [i["id"] for i in view["queue_items"]] == [item["id"]]
    assert view["has_submitted"] is True
    assert view["submitted_device_ids"] == ["d1"]
    assert client.get("/session", params={"device_id": "d2"}).json()["has_submitted"] is False

    spin = client.post("/spin", json={"locked": True})
    assert spin.json() == {"is_locked": True, "spin_counter": 1}

    result = client.post("/results", json={"item_id": item["id"], "before": 500, "after": 350})
    assert result.status_code == 200
    body = result.json()
    assert body["result"]["delta"] == -150
    assert body["leaderboard"][0]["total_profit"] == -150

    view = client.get("/session").json()
    assert view["queue_items"] == []
    assert view["submitted_device_ids"] == []
    assert view["category_stats"] == [
        {"category": "Unknown", "rounds_played": 1, "total_profit": -150.0, "biggest_win": 0.0, "biggest_loss": -150.0}
    ]

    history = client.get("/history").json()["history"]
    assert len(history) == 1 and history[0]["item_name"] == "Golden Ticket"


def test_operator_endpoints(client: TestClient) -> None:
    resp = client.post("/admin/participants", json={"name": "Bob"})
    assert resp.status_code == 201
    bob = resp.json()["participant"]
    assert bob["device_ids"] == []

    dup = client.post("/admin/participants", json={"name": "bob"})
    assert dup.status_code == 409
    assert dup.json()["detail"] == {"error": "A participant with that name already exists.", "code": "duplicate-name"}

    queued = client.post("/admin/queue", json={"participant_id": bob["id"], "name": "Sweet Bonanza"})
    assert queued.status_code == 201
    assert queued.json()["item"]["device_id"] == f"operator:{bob['id']}"
    assert queued.json()["item"]["category"] == "Pragmatic Play"

    again = client.post("/admin/queue", json={"participant_id": bob["id"], "name": "Starburst"})
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "participant-already-queued"

    missing = client.post("/admin/queue", json={"participant_id": "ghost", "name": "Starburst"})
    assert missing.status_code == 404

    board = client.get("/participants").json()["leaderboard"]
    assert [p["name"] for p in board] == ["Bob"]


def test_remove_and_clear(client: TestClient) -> None:
    alice = _register(client, "Alice", "d1")
    bob = _register(client, "Bob", "d2")
    item = client.post("/queue", json={"name": "Starburst", "device_id": "d1", "participant_id": alice["id"]}).json()["item"]
    client.post("/queue", json={"name": "Chaos Crew", "device_id": "d2", "participant_id": bob["id"]})

    assert client.delete(f"/queue/{item['id']}").status_code == 204
    assert client.delete(f"/queue/{item['id']}").status_code == 404

    view = client.get("/session").json()
    assert [i["name"] for i in view["queue_items"]] == ["Chaos Crew"]
    assert view["submitted_device_ids"] == ["d2"]

    assert client.post("/queue/clear").status_code == 204
    view = client.get("/session").json()
    assert view["queue_items"] == [] and view["submitted_device_ids"] == []


def test_invalid_input_is_rejected(client: TestClient) -> None:
    assert client.post("/participants", json={"name": "", "device_id": "d1"}).status_code == 422
    assert client.post("/participants", json={"name": "Alice"}).status_code == 422
    assert client.post("/spin", json={"locked": "yes"}).status_code == 422
    assert client.post("/spin", json={}).status_code == 422
    assert client.post("/results", json={"item_id": "x", "before": "a lot", "after": 1}).status_code == 422

    resp = client.post("/results", json={"item_id": "nope", "before": 1, "after": 2})
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "item-not-found"


def test_bonus_endpoints(client: TestClient) -> None:
    check = client.get("/bonus/check").json()
    assert check == {"eligible": False, "spins_since_last_bonus": 0, "total_spins": 0}

    for _ in range(20):
        client.post("/spin", json={"locked": True})
        client.post("/spin", json={"locked": False})

    check = client.get("/bonus/check").json()
    assert check == {"eligible": True, "spins_since_last_bonus": 20, "total_spins": 20}

    amount = client.post("/bonus/spin").json()["amount"]
    assert amount in {200, 400, 600, 800}

    check = client.get("/bonus/check").json()
    assert (check["eligible"], check["spins_since_last_bonus"]) == (False, 0)


def test_reset_returns_defaults(client: TestClient) -> None:
    alice = _register(client, "Alice", "d1")
    client.post("/queue", json={"name": "Starburst", "device_id": "d1", "participant_id": alice["id"]})
    client.post("/spin", json={"locked": True})

    resp = client.post("/reset")
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    view = client.get("/session").json()
    assert view["queue_items"] == []
    assert view["leaderboard"] == []
    assert view["is_locked"] is False
    assert client.get("/history").json()["history"] == []
    assert client.get("/bonus/check").json()["total_spins"] == 0


def test_state_survives_restart(client: TestClient, tmp_path: Path) -> None:
    from roulette.main import app

    _register(client, "Alice", "d1")

    on_disk = json.loads((tmp_path / "state.json").read_text(encoding="utf-8"))
    assert [p["name"] for p in on_disk["participants"].values()] == ["Alice"]

    with TestClient(app) as restarted:
        board = restarted.get("/participants").json()["leaderboard"]
        assert [p["name"] for p in board] == ["Alice"]


def test_catalog_reload_and_health(client: TestClient) -> None:
    resp = client.post("/admin/catalog/reload")
    assert resp.status_code == 200
    assert resp.json() == {"categories": 3, "items": 6}

    assert client.get("/healthcheck").json() == {"status": "ok"}
    assert client.get("/info").json()["name"] == "slot-roulette"
