"""
Order aggregate resolution.

Turns an order reference into an OrderGroup: either one order, or every
sub-order of a hybrid checkout. Read-only.
"""
from decimal import Decimal

from app.config import HYBRID_ORDER_PREFIX
from app.errors import OrderNotFound
from app.models.order import Order, OrderGroup
from app.repository.store import store


def is_hybrid_ref(order_ref: str) -> bool:
    """Hybrid group ids carry a distinguished prefix."""
    return order_ref.startswith(HYBRID_ORDER_PREFIX)


def resolve(order_ref: str) -> OrderGroup:
    """
    Load every order behind ``order_ref`` with its items.

    A prefixed reference is always a hybrid group. An unprefixed reference
    that matches no order but is the parent of stored orders is treated as a
    hybrid group as well.

    Raises:
        OrderNotFound: If no order (or no sub-order) exists for the reference.
    """
    if is_hybrid_ref(order_ref):
        return _resolve_hybrid(order_ref)

    order = store.get_order(order_ref)
    if order is None:
        if store.get_orders_by_parent(order_ref):
            return _resolve_hybrid(order_ref)
        raise OrderNotFound(f"Order {order_ref} not found", details={"order_id": order_ref})

    return _build_group(order_ref, [order], is_hybrid=False)


def _resolve_hybrid(order_ref: str) -> OrderGroup:
    sub_orders = store.get_orders_by_parent(order_ref)
    if not sub_orders:
        raise OrderNotFound(f"Hybrid order {order_ref} not found", details={"order_id": order_ref})
    return _build_group(order_ref, sub_orders, is_hybrid=True)


def _build_group(order_ref: str, orders: list[Order], is_hybrid: bool) -> OrderGroup:
    return OrderGroup(
        order_ref=order_ref,
        primary_order_id=orders[0].id,
        is_hybrid=is_hybrid,
        orders=orders,
        items_by_order={o.id: store.get_items_by_order(o.id) for o in orders},
        aggregate_total=sum((o.total for o in orders), Decimal("0")),
    )
