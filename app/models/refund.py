from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import Field

from app.models.common import CamelModel, Money
from app.models.order import OrderGroup, OrderItem


class RefundStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


COMMITTED_STATUSES = frozenset({RefundStatus.APPROVED, RefundStatus.PENDING})


class RefundRequest(CamelModel):
    model_config = {"extra": "forbid"}

    payment_id: str = Field(..., min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_-]+$")
    order_id: str = Field(..., min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_-]+$")
    amount: Optional[Decimal] = Field(None, gt=Decimal("0"), le=Decimal("1000000.00"))
    reason: Optional[str] = Field(None, max_length=500)
    items: Optional[list[str]] = Field(None, max_length=100)


class Refund(CamelModel):
    """One ledger row per refund attempt. Rows are never updated."""

    id: str
    order_id: str
    payment_id: str
    external_refund_id: Optional[str] = None
    amount: Money
    reason: str
    status: RefundStatus
    gateway: str
    processed_by: str
    created_at: datetime
    idempotency_key: Optional[str] = None
    is_full_refund: bool = False
    requested_item_ids: Optional[list[str]] = None
    gateway_error: Optional[str] = None
    gateway_detail: Optional[dict[str, Any]] = None
    retry_of: Optional[str] = None


class RefundItem(CamelModel):
    id: str
    refund_id: str
    order_item_id: str
    amount: Money


class RefundOutcome(CamelModel):
    refund: Refund
    all_items_refunded: bool
    order_status: Literal["CANCELLED", "PARTIAL_REFUND"]
    replayed: bool = False


class RefundSummary(CamelModel):
    """What the admin UI needs to offer a refund on one checkout."""

    group: OrderGroup
    items: list[OrderItem]
    payment_id: Optional[str]
    prior_committed: Money
    available_amount: Money
