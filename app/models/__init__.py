from .common import CamelModel, Money, quantize
from .order import Order, OrderItem, OrderGroup, OrderStatus, PaymentStatus
from .refund import (
    RefundRequest,
    Refund,
    RefundItem,
    RefundStatus,
    RefundOutcome,
    RefundSummary,
    COMMITTED_STATUSES,
)

__all__ = [
    "CamelModel", "Money", "quantize",
    "Order", "OrderItem", "OrderGroup", "OrderStatus", "PaymentStatus",
    "RefundRequest", "Refund", "RefundItem", "RefundStatus", "RefundOutcome", "RefundSummary",
    "COMMITTED_STATUSES",
]
