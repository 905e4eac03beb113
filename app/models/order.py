from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import Field, computed_field

from app.models.common import CamelModel, Money


class PaymentStatus(str, Enum):
    UNSET = "unset"
    APPROVED = "approved"
    PARTIALLY_REFUNDED = "partially_refunded"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class Order(CamelModel):
    id: str = Field(..., min_length=1, max_length=50)
    total: Money = Field(..., ge=Decimal("0"), le=Decimal("1000000.00"))
    payment_status: PaymentStatus = PaymentStatus.UNSET
    status: OrderStatus = OrderStatus.PENDING
    parent_order_id: Optional[str] = None
    payment_id: Optional[str] = None
    cancel_reason: Optional[str] = None
    created_at: datetime


class OrderItem(CamelModel):
    id: str = Field(..., min_length=1, max_length=50)
    order_id: str
    name: str = Field(..., min_length=1, max_length=200)
    unit_price: Money = Field(..., ge=Decimal("0"), le=Decimal("1000000.00"))
    quantity: int = Field(..., ge=1, le=10000)
    refunded_at: Optional[datetime] = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class OrderGroup(CamelModel):
    """
    Read model over one checkout: a single order, or every sub-order of a hybrid group.

    Sub-orders live in ``orders`` (creation order); ``items_by_order`` indexes
    their items by sub-order id. Never persisted.
    """

    order_ref: str
    primary_order_id: str
    is_hybrid: bool
    orders: list[Order]
    items_by_order: dict[str, list[OrderItem]]
    aggregate_total: Money

    @computed_field
    @property
    def sub_order_ids(self) -> list[str]:
        return [o.id for o in self.orders]

    @property
    def items(self) -> list[OrderItem]:
        return [item for o in self.orders for item in self.items_by_order.get(o.id, [])]

    def find_item(self, item_id: str) -> Optional[OrderItem]:
        return next((i for i in self.items if i.id == item_id), None)
