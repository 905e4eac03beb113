"""
Business rule validation for refund requests.

All validations execute in order, before any call to the payment gateway.
Validators never write — no side effects.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from app.errors import ExceedsAvailable, InvalidItemIds, ItemAlreadyRefunded
from app.models.order import OrderGroup


@dataclass(frozen=True)
class RefundPlan:
    """What the engine will ask the gateway for, derived from a validated request."""

    refund_amount: Decimal
    is_full_refund: bool
    available_amount: Decimal


def validate_refund_request(
    group: OrderGroup,
    requested_amount: Optional[Decimal],
    item_ids: Optional[list[str]],
    prior_committed: Decimal,
) -> RefundPlan:
    """
    Run all business rule validations in order.

    Args:
        group: The resolved order group being refunded.
        requested_amount: Explicit amount, or None for "everything".
        item_ids: Items the refund covers, if the caller scoped it.
        prior_committed: Approved plus pending amounts already on the ledger.

    Returns:
        The RefundPlan the engine should execute.

    Raises:
        ValidationError: On the first failing rule.
    """
    if item_ids:
        _validate_item_ids(item_ids, group)
        _validate_items_not_refunded(item_ids, group)
    return _validate_refundable_balance(group, requested_amount, prior_committed)


def _validate_item_ids(item_ids: list[str], group: OrderGroup) -> None:
    """Rule 1: All requested item IDs must belong to the order group."""
    group_item_ids = {item.id for item in group.items}
    unknown_ids = [iid for iid in item_ids if iid not in group_item_ids]
    if unknown_ids:
        raise InvalidItemIds(
            f"The following item IDs were not found in order {group.order_ref}: {unknown_ids}",
            details={
                "unknown_item_ids": unknown_ids,
                "valid_item_ids": sorted(group_item_ids),
            },
        )


def _validate_items_not_refunded(item_ids: list[str], group: OrderGroup) -> None:
    """Rule 2: An item is refunded at most once."""
    refunded = [iid for iid in item_ids if group.find_item(iid).refunded_at is not None]
    if refunded:
        raise ItemAlreadyRefunded(
            f"The following items were already refunded: {refunded}",
            details={"refunded_item_ids": refunded},
        )


def _validate_refundable_balance(
    group: OrderGroup,
    requested_amount: Optional[Decimal],
    prior_committed: Decimal,
) -> RefundPlan:
    """Rule 3: Committed refunds plus this one must not exceed the aggregate total."""
    total = group.aggregate_total
    available = total - prior_committed
    refund_amount = requested_amount if requested_amount is not None else total

    if prior_committed + refund_amount > total:
        available = max(available, Decimal("0"))
        raise ExceedsAvailable(
            f"Maximum amount available for refund: {available:.2f}",
            available_amount=available,
            details={
                "order_total": str(total),
                "already_committed": str(prior_committed),
                "requested": str(refund_amount),
            },
        )

    is_full = requested_amount is None or prior_committed + refund_amount >= total
    return RefundPlan(refund_amount=refund_amount, is_full_refund=is_full, available_amount=available)
