"""
Seed data generator for the refund reconciliation service.

Generates single orders and hybrid checkouts covering the refund scenarios.
Run via: python seed_data.py (standalone) or imported by app startup.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from app.models.order import Order, OrderItem, OrderStatus, PaymentStatus
from app.repository.store import store

_EPOCH = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)


def load_seed_data() -> None:
    """Populate the in-memory store with test orders and items."""
    orders, items = _build_orders()
    for order in orders:
        store.save_order(order)
    for item in items:
        store.save_item(item)


def _build_orders() -> tuple[list[Order], list[OrderItem]]:
    orders: list[Order] = []
    items: list[OrderItem] = []

    # ── Single orders, 100.00 each: item A 30.00 + item B 70.00 (ORD-1001..030) ──

    for i in range(1, 31):
        order_id = f"ORD-{1000 + i}"
        orders.append(Order(
            id=order_id,
            total=Decimal("100.00"),
            payment_status=PaymentStatus.APPROVED,
            status=OrderStatus.PROCESSING if i % 2 else OrderStatus.SHIPPED,
            payment_id=f"PAY-{1000 + i}",
            created_at=_EPOCH + timedelta(minutes=i),
        ))
        items.append(OrderItem(
            id=f"{order_id}-A", order_id=order_id, name=f"Sneaker {i}",
            unit_price=Decimal("15.00"), quantity=2,
        ))
        items.append(OrderItem(
            id=f"{order_id}-B", order_id=order_id, name=f"Jacket {i}",
            unit_price=Decimal("70.00"), quantity=1,
        ))

    # ── Multi-item orders with odd cents (ORD-2001..005) ───────────────────

    for i in range(1, 6):
        order_id = f"ORD-{2000 + i}"
        lines = [
            (f"{order_id}-A", "T-shirt", Decimal("19.90"), 3),
            (f"{order_id}-B", "Cap", Decimal("24.95"), 1),
            (f"{order_id}-C", "Socks", Decimal("9.99"), 2),
        ]
        total = sum((price * qty for _, _, price, qty in lines), Decimal("0"))
        orders.append(Order(
            id=order_id,
            total=total,
            payment_status=PaymentStatus.APPROVED,
            status=OrderStatus.DELIVERED,
            payment_id=f"PAY-{2000 + i}",
            created_at=_EPOCH + timedelta(hours=1, minutes=i),
        ))
        for item_id, name, price, qty in lines:
            items.append(OrderItem(id=item_id, order_id=order_id, name=name, unit_price=price, quantity=qty))

    # ── Hybrid checkouts: stocked 60.00 + drop-shipped 40.00 (HYB-0001..010) ──

    for i in range(1, 11):
        group_id = f"HYB-{i:04d}"
        payment_id = f"PAY-HYB-{i:04d}"
        stock_id = f"{group_id}-STOCK"
        drop_id = f"{group_id}-DROP"
        orders.append(Order(
            id=stock_id,
            total=Decimal("60.00"),
            payment_status=PaymentStatus.APPROVED,
            status=OrderStatus.PROCESSING,
            parent_order_id=group_id,
            payment_id=payment_id,
            created_at=_EPOCH + timedelta(hours=2, minutes=i),
        ))
        orders.append(Order(
            id=drop_id,
            total=Decimal("40.00"),
            payment_status=PaymentStatus.APPROVED,
            status=OrderStatus.PENDING,
            parent_order_id=group_id,
            payment_id=payment_id,
            created_at=_EPOCH + timedelta(hours=2, minutes=i, seconds=1),
        ))
        items.append(OrderItem(
            id=f"{stock_id}-A", order_id=stock_id, name="Blender", unit_price=Decimal("60.00"), quantity=1,
        ))
        items.append(OrderItem(
            id=f"{drop_id}-A", order_id=drop_id, name="Phone case", unit_price=Decimal("25.00"), quantity=1,
        ))
        items.append(OrderItem(
            id=f"{drop_id}-B", order_id=drop_id, name="Screen protector", unit_price=Decimal("7.50"), quantity=2,
        ))

    # ── Order without line items ───────────────────────────────────────────

    orders.append(Order(
        id="ORD-EMPTY-001",
        total=Decimal("50.00"),
        payment_status=PaymentStatus.APPROVED,
        status=OrderStatus.PROCESSING,
        payment_id="PAY-EMPTY-001",
        created_at=_EPOCH + timedelta(hours=3),
    ))

    return orders, items


if __name__ == "__main__":
    load_seed_data()
    print(f"Seeded {len(store.list_orders())} orders")
