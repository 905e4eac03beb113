"""Integration tests — full HTTP cycle per refund scenario."""
from app.repository.store import store


def _post(client, headers, **body):
    payload = {"paymentId": "PAY-1001", "orderId": "ORD-1001"}
    payload.update(body)
    return client.post("/refunds", json=payload, headers=headers)


def test_full_refund(client, auth_headers):
    resp = _post(client, auth_headers, reason="customer request")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["allItemsRefunded"] is True
    assert body["orderStatus"] == "CANCELLED"
    refund = body["refund"]
    assert refund["status"] == "approved"
    assert refund["amount"] == 100.0
    assert refund["paymentId"] == "PAY-1001"
    assert refund["processedBy"] == "ops@example.com"
    assert refund["externalRefundId"]


def test_partial_refund_by_items(client, auth_headers):
    resp = _post(client, auth_headers, amount=30, items=["ORD-1001-A"])
    assert resp.status_code == 200
    body = resp.json()
    assert body["allItemsRefunded"] is False
    assert body["orderStatus"] == "PARTIAL_REFUND"


def test_hybrid_full_refund(client, auth_headers):
    resp = _post(client, auth_headers, paymentId="PAY-HYB-0001", orderId="HYB-0001")
    assert resp.status_code == 200
    assert resp.json()["refund"]["orderId"] == "HYB-0001-STOCK"
    assert resp.json()["orderStatus"] == "CANCELLED"


def test_over_refund_returns_available_amount(client, auth_headers):
    _post(client, auth_headers, amount=80)
    resp = _post(client, auth_headers, amount=50)
    assert resp.status_code == 400
    body = resp.json()
    assert body["availableAmount"] == 20.0
    assert "20.00" in body["error"]


def test_unknown_order_returns_404(client, auth_headers):
    resp = _post(client, auth_headers, orderId="ORD-0000")
    assert resp.status_code == 404
    assert "error" in resp.json()


def test_unknown_item_returns_400(client, auth_headers):
    resp = _post(client, auth_headers, amount=10, items=["ORD-2001-A"])
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_ITEM_IDS"


def test_gateway_error_mirrors_status_and_details(client, auth_headers, provider):
    provider.failure = (401, {"message": "invalid access token", "status": 401})
    resp = _post(client, auth_headers, amount=10)
    assert resp.status_code == 401
    body = resp.json()
    assert body["error"] == "Payment gateway credentials are invalid"
    assert body["details"] == {"message": "invalid access token", "status": 401}
    assert body["refundId"].startswith("RF-")


def test_gateway_timeout_returns_504(client, auth_headers, provider):
    import httpx

    provider.error = httpx.ReadTimeout("timed out")
    resp = _post(client, auth_headers, amount=10)
    assert resp.status_code == 504
    assert "may still have been applied" in resp.json()["error"]


def test_idempotency_header_replays(client, auth_headers, provider):
    headers = {**auth_headers, "Idempotency-Key": "ui-click-42"}
    r1 = _post(client, headers, amount=10)
    r2 = _post(client, headers, amount=10)
    assert r1.status_code == r2.status_code == 200
    assert r2.headers.get("Idempotent-Replayed") == "true"
    assert r1.json()["refund"]["id"] == r2.json()["refund"]["id"]
    assert len(provider.calls) == 1


def test_list_refunds_with_totals(client, auth_headers, provider):
    _post(client, auth_headers, amount=10)
    provider.failure = (403, {"message": "forbidden"})
    _post(client, auth_headers, amount=20)

    resp = client.get("/refunds?status=rejected", headers=auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert len(body["refunds"]) == 1
    assert body["refunds"][0]["status"] == "rejected"
    assert body["pagination"] == {"page": 1, "limit": 20, "total": 1, "pages": 1}
    assert body["totals"]["approved"] == {"count": 1, "amount": 10.0}
    assert body["totals"]["rejected"] == {"count": 1, "amount": 20.0}


def test_list_refunds_search(client, auth_headers):
    _post(client, auth_headers, amount=10)
    _post(client, auth_headers, paymentId="PAY-1002", orderId="ORD-1002", amount=10)
    resp = client.get("/refunds?search=PAY-1002", headers=auth_headers)
    assert [r["paymentId"] for r in resp.json()["refunds"]] == ["PAY-1002"]


def test_get_refund_by_id_includes_items(client, auth_headers):
    refund_id = _post(client, auth_headers).json()["refund"]["id"]
    resp = client.get(f"/refunds/{refund_id}", headers=auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["refund"]["id"] == refund_id
    assert {i["orderItemId"] for i in body["items"]} == {"ORD-1001-A", "ORD-1001-B"}
    assert body["itemsTotal"] == 100.0


def test_refund_not_found(client, auth_headers):
    resp = client.get("/refunds/RF-NONEXISTENT", headers=auth_headers)
    assert resp.status_code == 404
    assert resp.json()["error"] == "Refund RF-NONEXISTENT not found"


def test_retry_rejected_refund(client, auth_headers, provider):
    provider.failure = (403, {"code": "PA_UNAUTHORIZED_RESULT_FROM_POLICIES"})
    refund_id = _post(client, auth_headers, amount=25).json()["refundId"]

    provider.failure = None
    resp = client.post(f"/refunds/{refund_id}/retry", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["refund"]["retryOf"] == refund_id
    assert resp.json()["refund"]["amount"] == 25.0


def test_retry_approved_refund_is_refused(client, auth_headers):
    refund_id = _post(client, auth_headers, amount=25).json()["refund"]["id"]
    resp = client.post(f"/refunds/{refund_id}/retry", headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["code"] == "REFUND_NOT_RETRYABLE"


def test_refund_summary_for_hybrid_group(client, auth_headers):
    _post(client, auth_headers, paymentId="PAY-HYB-0002", orderId="HYB-0002", amount=25, items=["HYB-0002-DROP-A"])
    resp = client.get("/orders/HYB-0002/refund-summary", headers=auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["paymentId"] == "PAY-HYB-0002"
    assert body["priorCommitted"] == 25.0
    assert body["availableAmount"] == 75.0
    refunded = {i["id"]: i["refundedAt"] is not None for i in body["items"]}
    assert refunded == {"HYB-0002-STOCK-A": False, "HYB-0002-DROP-A": True, "HYB-0002-DROP-B": False}


def test_refund_summary_unknown_order(client, auth_headers):
    resp = client.get("/orders/HYB-9999/refund-summary", headers=auth_headers)
    assert resp.status_code == 404


def test_order_state_visible_after_refund(client, auth_headers):
    _post(client, auth_headers, paymentId="PAY-1003", orderId="ORD-1003", amount=30, items=["ORD-1003-A"])
    assert store.get_order("ORD-1003").payment_status.value == "partially_refunded"
