"""Tests for the chat endpoints."""

from invoice_chat.api.deps import get_rate_limiter
from invoice_chat.services.rate_limit import RateLimiter


def test_send_message_read_turn(client, invoices):
    response = client.post("/api/chat/messages", json={"message": "show overdue invoices"})
    assert response.status_code == 200
    data = response.json()
    assert data["intent"]["kind"] == "search"
    assert data["intent"]["source"] == "deterministic"
    assert "INV-102" in data["assistant_message"]["content"]
    assert data["proposal"] is None
    assert data["error"] is None


def test_propose_confirm_flow(client, invoices):
    turn = client.post("/api/chat/messages", json={"message": "mark invoice INV-100 as paid"}).json()
    assert turn["proposal"]["from"] == "approved"
    assert turn["proposal"]["to"] == "paid"

    response = client.post("/api/chat/confirm", json={
        "conversation_id": turn["conversation_id"],
        "message_id": turn["assistant_message"]["id"],
    })
    assert response.status_code == 200
    data = response.json()
    assert data["outcome"] == "success"
    assert data["record"]["status"] == "paid"
    assert data["audit_entry_id"] is not None

    history = client.get("/api/invoices/INV-100/audit").json()
    assert [e["after"] for e in history["entries"]] == [{"status": "paid"}]


def test_invalid_transition_reply(client, invoices):
    data = client.post("/api/chat/messages", json={"message": "mark INV-101 as paid"}).json()
    assert data["error"]["code"] == "invalid_transition"
    assert data["error"]["allowed"] == ["in_review", "overdue"]
    assert data["proposal"] is None


def test_confirm_without_proposal_is_stale(client, invoices):
    cid = client.post("/api/chat/messages", json={"message": "show pending invoices"}).json()["conversation_id"]
    data = client.post("/api/chat/confirm", json={"conversation_id": cid, "message_id": 1}).json()
    assert data["outcome"] == "stale"
    assert data["error"]["code"] == "stale_proposal"
    assert data["record"] is None


def test_cancel(client, invoices):
    turn = client.post("/api/chat/messages", json={"message": "approve INV-104"}).json()
    cid = turn["conversation_id"]

    assert client.post("/api/chat/cancel", json={"conversation_id": cid}).json()["cancelled"] is True
    assert client.post("/api/chat/cancel", json={"conversation_id": cid}).json()["cancelled"] is False
    assert client.get(f"/api/conversations/{cid}").json()["pending_proposal"] is None


def test_empty_message_is_422(client):
    response = client.post("/api/chat/messages", json={"message": "  "})
    assert response.status_code == 422
    assert response.json()["field"] == "message"


def test_overlong_message_is_422(client):
    response = client.post("/api/chat/messages", json={"message": "x" * 4001})
    assert response.status_code == 422


def test_rate_limit(client, invoices):
    from invoice_chat.main import app

    limiter = RateLimiter(2)
    app.dependency_overrides[get_rate_limiter] = lambda: limiter

    for _ in range(2):
        assert client.post("/api/chat/messages", json={"message": "show invoices"}).status_code == 200
    response = client.post("/api/chat/messages", json={"message": "show invoices"})
    assert response.status_code == 429
    assert response.json()["code"] == "rate_limited"

    # Limits are per identity
    response = client.post("/api/chat/messages", json={"message": "show invoices"}, headers={"X-User-Id": "user-2"})
    assert response.status_code == 200


def test_audit_history_unknown_invoice(client, invoices):
    response = client.get("/api/invoices/INV-404/audit")
    assert response.status_code == 404
    assert response.json()["code"] == "record_not_found"
