"""
In-memory data store with thread-safe operations.

No business logic — only data access primitives. Refund and RefundItem rows
are append-only: there is no update or delete for them.
"""
import threading
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Iterator, Optional

from app.models.order import Order, OrderItem
from app.models.refund import Refund, RefundItem, RefundStatus


class StoreError(Exception):
    """Raised when a write cannot be made durable."""


class InMemoryStore:
    """Thread-safe in-memory store for orders, items, refunds and refund items."""

    def __init__(self):
        self._lock = threading.Lock()
        self._orders: dict[str, Order] = {}
        self._items: dict[str, OrderItem] = {}
        # order_id -> list of item ids
        self._items_by_order: dict[str, list[str]] = {}
        # parent_order_id -> list of sub-order ids, in insertion order
        self._orders_by_parent: dict[str, list[str]] = {}
        self._refunds: dict[str, Refund] = {}
        # payment_id -> list of refund ids
        self._refunds_by_payment: dict[str, list[str]] = {}
        self._refund_items: dict[str, list[RefundItem]] = {}
        # payment_id -> lock serializing refund attempts for that payment
        self._payment_locks: dict[str, threading.Lock] = {}

    # ── Orders ──────────────────────────────────────────────────────────────

    def get_order(self, order_id: str) -> Optional[Order]:
        with self._lock:
            return self._orders.get(order_id)

    def get_orders_by_parent(self, parent_order_id: str) -> list[Order]:
        with self._lock:
            ids = self._orders_by_parent.get(parent_order_id, [])
            return [self._orders[oid] for oid in ids]

    def list_orders(self) -> list[Order]:
        with self._lock:
            return list(self._orders.values())

    def save_order(self, order: Order) -> None:
        with self._lock:
            is_new = order.id not in self._orders
            self._orders[order.id] = order
            if is_new and order.parent_order_id:
                self._orders_by_parent.setdefault(order.parent_order_id, []).append(order.id)

    def update_orders(self, order_ids: Iterable[str], **fields) -> list[Order]:
        """Apply the same field changes to every listed order under one lock."""
        order_ids = list(order_ids)
        with self._lock:
            missing = [oid for oid in order_ids if oid not in self._orders]
            if missing:
                raise StoreError(f"Cannot update unknown orders: {missing}")
            updated = []
            for oid in order_ids:
                order = self._orders[oid].model_copy(update=fields)
                self._orders[oid] = order
                updated.append(order)
            return updated

    # ── Order items ─────────────────────────────────────────────────────────

    def get_item(self, item_id: str) -> Optional[OrderItem]:
        with self._lock:
            return self._items.get(item_id)

    def get_items_by_order(self, order_id: str) -> list[OrderItem]:
        with self._lock:
            return [self._items[iid] for iid in self._items_by_order.get(order_id, [])]

    def save_item(self, item: OrderItem) -> None:
        with self._lock:
            if item.id not in self._items:
                self._items_by_order.setdefault(item.order_id, []).append(item.id)
            self._items[item.id] = item

    # ── Refunds ─────────────────────────────────────────────────────────────

    def get_refund(self, refund_id: str) -> Optional[Refund]:
        with self._lock:
            return self._refunds.get(refund_id)

    def list_refunds(self) -> list[Refund]:
        with self._lock:
            return list(self._refunds.values())

    def get_refunds_by_payment(self, payment_id: str) -> list[Refund]:
        with self._lock:
            return [self._refunds[rid] for rid in self._refunds_by_payment.get(payment_id, [])]

    def find_refund_by_idempotency_key(self, key: str) -> Optional[Refund]:
        """Return the latest approved or pending refund carrying ``key``, if any."""
        with self._lock:
            for refund in reversed(list(self._refunds.values())):
                if refund.idempotency_key == key and refund.status != RefundStatus.REJECTED:
                    return refund
            return None

    def insert_refund(self, refund: Refund) -> None:
        """Append a refund row. An existing id is never overwritten."""
        with self._lock:
            if refund.id in self._refunds:
                raise StoreError(f"Refund {refund.id} already exists")
            self._refunds[refund.id] = refund
            self._refunds_by_payment.setdefault(refund.payment_id, []).append(refund.id)

    def sum_refunds(self, payment_id: str, statuses: Iterable[RefundStatus]) -> Decimal:
        wanted = set(statuses)
        with self._lock:
            return sum(
                (
                    self._refunds[rid].amount
                    for rid in self._refunds_by_payment.get(payment_id, [])
                    if self._refunds[rid].status in wanted
                ),
                Decimal("0"),
            )

    # ── Refund items ────────────────────────────────────────────────────────

    def get_refund_items(self, refund_id: str) -> list[RefundItem]:
        with self._lock:
            return list(self._refund_items.get(refund_id, []))

    def insert_refund_items(self, refund_items: list[RefundItem], refunded_at: datetime) -> None:
        """Insert refund items and stamp their order items, as one step."""
        with self._lock:
            if any(ri.refund_id not in self._refunds for ri in refund_items):
                raise StoreError("Refund items reference an unknown refund")
            missing = [ri.order_item_id for ri in refund_items if ri.order_item_id not in self._items]
            if missing:
                raise StoreError(f"Refund items reference unknown order items: {missing}")
            for ri in refund_items:
                self._refund_items.setdefault(ri.refund_id, []).append(ri)
                item = self._items[ri.order_item_id]
                if item.refunded_at is None:
                    self._items[item.id] = item.model_copy(update={"refunded_at": refunded_at})

    # ── Locking ─────────────────────────────────────────────────────────────

    @contextmanager
    def payment_lock(self, payment_id: str) -> Iterator[None]:
        """Serialize refund attempts for one payment id; other ids are unaffected."""
        with self._lock:
            lock = self._payment_locks.setdefault(payment_id, threading.Lock())
        with lock:
            yield


# Global singleton, initialized at startup and populated by seed_data
store = InMemoryStore()
