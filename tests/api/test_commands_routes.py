"""Tests for the /api/v1/commands routes."""

from fastapi.testclient import TestClient

USER_HEADERS = {"X-User-Id": "user-1"}

MUG_PLAN = {
    "actions": [{
        "type": "update_price",
        "description": "Raise the mug by 5%",
        "parameters": {"product_ids": ["1"], "direction": "increase", "value": 5},
    }],
    "confidence_score": 0.92,
}
STORE_WIDE_CUT = {
    "actions": [{
        "type": "update_price",
        "parameters": {"scope": "all", "direction": "decrease", "value": 25},
    }],
    "confidence_score": 0.9,
}
CLARIFY = {
    "actions": [],
    "confidence_score": 0.7,
    "clarification_needed": {"reason": "Ambiguous", "questions": ["Which products?"]},
}


def _interpret(client: TestClient, llm, reply: dict, **body) -> dict:
    llm.replies.append(reply)
    resp = client.post(
        "/api/v1/commands/interpret",
        json={"command_text": "raise the mug 5%", **body},
        headers=USER_HEADERS,
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


def test_interpret_returns_plan_and_risk(client, llm):
    data = _interpret(client, llm, MUG_PLAN)

    assert data["status"] == "interpreted"
    assert data["interpretation"]["risk_level"] == "LOW"
    assert data["interpretation"]["actions"][0]["type"] == "update_price"
    assert data["preview"] is None


def test_interpret_with_preview(client, llm, catalog):
    data = _interpret(client, llm, MUG_PLAN, request_preview=True)

    assert data["preview"]["preview_mode"] is True
    assert data["preview"]["status"] == "completed"
    assert catalog.writes == []


def test_interpret_requires_user_header(client):
    resp = client.post("/api/v1/commands/interpret", json={"command_text": "x"})
    assert resp.status_code == 401
    assert resp.json()["success"] is False


def test_blank_command_is_a_validation_error(client):
    resp = client.post(
        "/api/v1/commands/interpret", json={"command_text": "   "}, headers=USER_HEADERS
    )
    assert resp.status_code == 422
    body = resp.json()
    assert body["error_code"] == "E-2001"
    assert body["details"]["errors"]


def test_uninterpretable_command(client, llm):
    llm.replies.append("I am not sure what you mean")
    resp = client.post(
        "/api/v1/commands/interpret",
        json={"command_text": "do the thing with the stuff"},
        headers=USER_HEADERS,
    )
    assert resp.status_code == 422
    body = resp.json()
    assert body["error_code"] == "E-1001"
    assert body["remediation"]


def test_execute_low_risk_command(client, llm, catalog):
    command_id = _interpret(client, llm, MUG_PLAN)["command_id"]

    resp = client.post(
        "/api/v1/commands/execute", json={"command_id": command_id}, headers=USER_HEADERS
    )

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "completed"
    assert data["summary"]["succeeded"] == 1
    assert catalog.products["1"]["variants"][0]["price"] == 10.5


def test_high_risk_needs_confirmation(client, llm, catalog):
    data = _interpret(client, llm, STORE_WIDE_CUT)
    assert data["interpretation"]["risk_level"] == "HIGH"

    resp = client.post(
        "/api/v1/commands/execute", json={"command_id": data["command_id"]}, headers=USER_HEADERS
    )
    assert resp.status_code == 400
    assert resp.json()["error_code"] == "E-2002"
    assert catalog.writes == []

    resp = client.post(
        "/api/v1/commands/execute",
        json={"command_id": data["command_id"], "confirmed": True},
        headers=USER_HEADERS,
    )
    assert resp.status_code == 200
    assert catalog.products["2"]["variants"][0]["price"] == 15.0


def test_execute_direct_action_list(client, catalog):
    resp = client.post(
        "/api/v1/commands/execute",
        json={"actions": [{
            "type": "update_inventory",
            "parameters": {"product_ids": ["2"], "mode": "set", "available": 12},
        }]},
        headers=USER_HEADERS,
    )
    assert resp.status_code == 200
    assert catalog.products["2"]["variants"][0]["inventory_quantity"] == 12


def test_execute_rejects_unknown_action_type(client):
    resp = client.post(
        "/api/v1/commands/execute",
        json={"actions": [{"type": "teleport_products", "parameters": {}}]},
        headers=USER_HEADERS,
    )
    assert resp.status_code == 422
    assert resp.json()["error_code"] == "E-2001"


def test_clarify_then_execute(client, llm, catalog):
    data = _interpret(client, llm, CLARIFY)
    assert data["status"] == "awaiting_clarification"

    resp = client.post(
        "/api/v1/commands/execute", json={"command_id": data["command_id"]}, headers=USER_HEADERS
    )
    assert resp.status_code == 409
    assert resp.json()["error_code"] == "E-1003"

    llm.replies.append(MUG_PLAN)
    resp = client.post(
        f"/api/v1/commands/{data['command_id']}/clarify",
        json={"answer": "Only the blue mug"},
        headers=USER_HEADERS,
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "interpreted"
    assert "Only the blue mug" in llm.calls[-1][1][0]["content"]


def test_undo_restores_prices(client, llm, catalog):
    command_id = _interpret(client, llm, MUG_PLAN)["command_id"]
    client.post("/api/v1/commands/execute", json={"command_id": command_id}, headers=USER_HEADERS)

    resp = client.post(f"/api/v1/commands/{command_id}/undo", headers=USER_HEADERS)

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["undo_of_command_id"] == command_id
    assert data["status"] == "completed"
    assert catalog.products["1"]["variants"][0]["price"] == 10.0

    again = client.post(f"/api/v1/commands/{command_id}/undo", headers=USER_HEADERS)
    assert again.status_code == 409
    assert again.json()["error_code"] == "E-2006"


def test_get_command_is_owner_scoped(client, llm):
    command_id = _interpret(client, llm, MUG_PLAN)["command_id"]

    mine = client.get(f"/api/v1/commands/{command_id}", headers=USER_HEADERS)
    theirs = client.get(f"/api/v1/commands/{command_id}", headers={"X-User-Id": "user-2"})

    assert mine.status_code == 200
    assert mine.json()["data"]["text"] == "raise the mug 5%"
    assert theirs.status_code == 404


def test_history_lists_and_filters(client, llm):
    _interpret(client, llm, MUG_PLAN)
    _interpret(client, llm, CLARIFY)

    resp = client.get("/api/v1/commands/history?limit=10", headers=USER_HEADERS)

    data = resp.json()["data"]
    assert data["count"] == 2
    assert {c["status"] for c in data["commands"]} == {"interpreted", "awaiting_clarification"}

    filtered = client.get(
        "/api/v1/commands/history?status=awaiting_clarification", headers=USER_HEADERS
    )
    assert filtered.json()["data"]["count"] == 1
