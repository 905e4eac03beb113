"""Unit tests for app/services/ledger_service.py."""
from decimal import Decimal

import pytest

from app.models.refund import RefundStatus
from app.repository.store import StoreError, store
from app.services import ledger_service


def _record(amount: str, status: RefundStatus, payment_id: str = "PAY-1001", **kwargs):
    defaults = dict(
        order_id="ORD-1001",
        payment_id=payment_id,
        amount=Decimal(amount),
        reason="customer request",
        status=status,
        operator="op1",
        gateway="MERCADOPAGO",
    )
    defaults.update(kwargs)
    return ledger_service.record(**defaults)


def test_prior_committed_counts_approved_and_pending_only():
    _record("10.00", RefundStatus.APPROVED)
    _record("5.50", RefundStatus.PENDING)
    _record("40.00", RefundStatus.REJECTED)
    assert ledger_service.prior_committed("PAY-1001") == Decimal("15.50")


def test_prior_committed_is_scoped_to_payment():
    _record("10.00", RefundStatus.APPROVED, payment_id="PAY-1002")
    assert ledger_service.prior_committed("PAY-1001") == Decimal("0")


def test_record_appends_never_overwrites():
    first = _record("10.00", RefundStatus.REJECTED)
    second = _record("10.00", RefundStatus.APPROVED)
    assert first.id != second.id
    assert ledger_service.get_refund(first.id).status == RefundStatus.REJECTED
    assert len(store.get_refunds_by_payment("PAY-1001")) == 2


def test_ledger_has_no_update_or_delete():
    assert not hasattr(store, "update_refund")
    assert not hasattr(store, "delete_refund")
    assert not hasattr(store, "delete_refund_items")


def test_duplicate_refund_id_is_refused():
    refund = _record("10.00", RefundStatus.APPROVED)
    with pytest.raises(StoreError):
        store.insert_refund(refund)


def test_attach_items_stamps_refunded_at():
    refund = _record("30.00", RefundStatus.APPROVED)
    attached = ledger_service.attach_items(refund.id, [("ORD-1001-A", Decimal("30.00"))])
    assert [ri.order_item_id for ri in attached] == ["ORD-1001-A"]
    assert store.get_item("ORD-1001-A").refunded_at is not None
    assert store.get_item("ORD-1001-B").refunded_at is None
    assert ledger_service.get_refund_items(refund.id) == attached


def test_attach_items_keeps_first_refunded_at():
    first = _record("30.00", RefundStatus.APPROVED)
    ledger_service.attach_items(first.id, [("ORD-1001-A", Decimal("30.00"))])
    stamped = store.get_item("ORD-1001-A").refunded_at
    second = _record("70.00", RefundStatus.APPROVED)
    ledger_service.attach_items(second.id, [("ORD-1001-A", Decimal("30.00")), ("ORD-1001-B", Decimal("70.00"))])
    assert store.get_item("ORD-1001-A").refunded_at == stamped


def test_attach_items_unknown_item_writes_nothing():
    refund = _record("30.00", RefundStatus.APPROVED)
    with pytest.raises(StoreError):
        ledger_service.attach_items(refund.id, [("ORD-1001-A", Decimal("30.00")), ("NOPE", Decimal("1.00"))])
    assert store.get_item("ORD-1001-A").refunded_at is None
    assert ledger_service.get_refund_items(refund.id) == []


def test_find_by_idempotency_key_ignores_rejected_rows():
    _record("10.00", RefundStatus.REJECTED, idempotency_key="key-1")
    assert ledger_service.find_by_idempotency_key("key-1") is None
    approved = _record("10.00", RefundStatus.APPROVED, idempotency_key="key-1")
    assert ledger_service.find_by_idempotency_key("key-1").id == approved.id


def test_list_refunds_filters_and_totals():
    _record("10.00", RefundStatus.APPROVED)
    _record("20.00", RefundStatus.REJECTED, reason="Partial refund - ERROR: denied")
    _record("5.00", RefundStatus.PENDING, payment_id="PAY-1002", order_id="ORD-1002")

    result = ledger_service.list_refunds(status="rejected")
    assert [r.amount for r in result["refunds"]] == [Decimal("20.00")]
    assert result["pagination"]["total"] == 1

    totals = result["totals"]
    assert totals["approved"] == {"count": 1, "amount": Decimal("10.00")}
    assert totals["rejected"] == {"count": 1, "amount": Decimal("20.00")}
    assert totals["pending"] == {"count": 1, "amount": Decimal("5.00")}
    assert totals["total"]["amount"] == Decimal("35.00")


def test_list_refunds_search_and_pagination():
    for _ in range(5):
        _record("1.00", RefundStatus.APPROVED)
    _record("1.00", RefundStatus.APPROVED, payment_id="PAY-1002", order_id="ORD-1002")

    assert ledger_service.list_refunds(search="ord-1002")["pagination"]["total"] == 1

    page = ledger_service.list_refunds(status="all", page=2, limit=4)
    assert len(page["refunds"]) == 2
    assert page["pagination"] == {"page": 2, "limit": 4, "total": 6, "pages": 2}
