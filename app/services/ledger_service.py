"""
Refund ledger — append-only record of every refund attempt.

Approved, pending and rejected attempts all produce a permanent row. The ledger
is the source of truth for how much of a payment has been refunded.
"""
import math
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from app.models.refund import COMMITTED_STATUSES, Refund, RefundItem, RefundStatus
from app.repository.store import store


def prior_committed(payment_id: str) -> Decimal:
    """Sum of approved and pending refund amounts for a payment."""
    return store.sum_refunds(payment_id, COMMITTED_STATUSES)


def record(
    order_id: str,
    payment_id: str,
    amount: Decimal,
    reason: str,
    status: RefundStatus,
    operator: str,
    gateway: str,
    external_refund_id: Optional[str] = None,
    idempotency_key: Optional[str] = None,
    is_full_refund: bool = False,
    requested_item_ids: Optional[list[str]] = None,
    gateway_error: Optional[str] = None,
    gateway_detail: Optional[dict[str, Any]] = None,
    retry_of: Optional[str] = None,
) -> Refund:
    """
    Append a new refund row.

    Args:
        order_id: Primary order id (first sub-order for hybrid groups).
        payment_id: External payment id at the provider.
        amount: Amount confirmed (approved) or attempted (rejected).
        reason: Operator reason; for rejected rows already carries the error text.
        status: Ledger status of the attempt.
        operator: Identity of whoever triggered the refund.
        gateway: Provider name.
        external_refund_id: Provider refund id, when the provider returned one.
        idempotency_key: Key sent to the provider for this attempt.
        is_full_refund: Whether the provider was asked to refund everything.
        requested_item_ids: Item scope requested by the caller, if any.
        gateway_error: Gateway error code for rejected rows.
        gateway_detail: Raw provider payload for rejected rows.
        retry_of: Id of the rejected row this attempt retries.

    Returns:
        The inserted Refund.

    Raises:
        StoreError: If the row could not be written.
    """
    refund = Refund(
        id=f"RF-{uuid.uuid4().hex[:12].upper()}",
        order_id=order_id,
        payment_id=payment_id,
        external_refund_id=external_refund_id,
        amount=amount,
        reason=reason,
        status=status,
        gateway=gateway,
        processed_by=operator,
        created_at=datetime.now(timezone.utc),
        idempotency_key=idempotency_key,
        is_full_refund=is_full_refund,
        requested_item_ids=requested_item_ids,
        gateway_error=gateway_error,
        gateway_detail=gateway_detail,
        retry_of=retry_of,
    )
    store.insert_refund(refund)
    return refund


def attach_items(refund_id: str, item_amounts: list[tuple[str, Decimal]]) -> list[RefundItem]:
    """
    Link order items to an approved refund and stamp their ``refunded_at``.

    Both writes happen in a single store step. An item that already carries a
    ``refunded_at`` keeps its original timestamp.

    Raises:
        StoreError: If the refund or an item is unknown, or the write fails.
    """
    refund_items = [
        RefundItem(
            id=f"RI-{uuid.uuid4().hex[:12].upper()}",
            refund_id=refund_id,
            order_item_id=item_id,
            amount=amount,
        )
        for item_id, amount in item_amounts
    ]
    if refund_items:
        store.insert_refund_items(refund_items, refunded_at=datetime.now(timezone.utc))
    return refund_items


def find_by_idempotency_key(key: str) -> Optional[Refund]:
    return store.find_refund_by_idempotency_key(key)


def find_committed_retry(rejected: Refund) -> Optional[Refund]:
    """
    Return a committed row that already settles ``rejected``, if any.

    That is an approved or pending row in the same retry chain (rows linked by
    ``retry_of`` back to a common first attempt), or one that carries the same
    idempotency key.
    """
    rows = {r.id: r for r in store.get_refunds_by_payment(rejected.payment_id)}

    def chain_root(refund: Refund) -> str:
        seen = set()
        while refund.retry_of in rows and refund.id not in seen:
            seen.add(refund.id)
            refund = rows[refund.retry_of]
        return refund.id

    root = chain_root(rejected)
    for refund in rows.values():
        if refund.status not in COMMITTED_STATUSES:
            continue
        if rejected.idempotency_key and refund.idempotency_key == rejected.idempotency_key:
            return refund
        if refund.retry_of and chain_root(refund) == root:
            return refund
    return None


def get_refund(refund_id: str) -> Optional[Refund]:
    """Retrieve a single refund by ID."""
    return store.get_refund(refund_id)


def get_refund_items(refund_id: str) -> list[RefundItem]:
    return store.get_refund_items(refund_id)


def list_refunds(
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> dict[str, Any]:
    """
    Page through the ledger, newest first, with totals grouped by status.

    Args:
        status: Ledger status to filter on; ``None`` or ``"all"`` disables the filter.
        search: Substring matched against order id, payment id, external refund id and reason.
        page: 1-based page number.
        limit: Page size.

    Returns:
        ``{"refunds": [...], "pagination": {...}, "totals": {...}}``. Totals
        cover the whole ledger, independent of the filters.
    """
    rows = store.list_refunds()

    filtered = rows
    if status and status.lower() != "all":
        filtered = [r for r in filtered if r.status.value == status.lower()]
    if search:
        needle = search.lower()
        filtered = [r for r in filtered if _matches(r, needle)]
    filtered.sort(key=lambda r: r.created_at, reverse=True)

    start = (page - 1) * limit
    return {
        "refunds": filtered[start:start + limit],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": len(filtered),
            "pages": math.ceil(len(filtered) / limit) if limit else 0,
        },
        "totals": _totals(rows, total_count=len(filtered)),
    }


def _matches(refund: Refund, needle: str) -> bool:
    haystack = (refund.order_id, refund.payment_id, refund.external_refund_id or "", refund.reason)
    return any(needle in field.lower() for field in haystack)


def _totals(rows: list[Refund], total_count: int) -> dict[str, dict[str, Any]]:
    totals = {s.value: {"count": 0, "amount": Decimal("0")} for s in RefundStatus}
    grand = Decimal("0")
    for refund in rows:
        bucket = totals[refund.status.value]
        bucket["count"] += 1
        bucket["amount"] += refund.amount
        grand += refund.amount
    totals["total"] = {"count": total_count, "amount": grand}
    return totals
