"""Order endpoints — GET /orders/{order_ref}/refund-summary"""
from decimal import Decimal
from typing import Optional
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from app.errors import RefundError
from app.models.refund import RefundSummary
from app.routes._responses import error_response
from app.security.auth import require_api_key
from app.services import ledger_service, order_resolver

router = APIRouter(prefix="/orders", tags=["orders"], dependencies=[Depends(require_api_key)])


@router.get("/{order_ref}/refund-summary")
def refund_summary(
    order_ref: str,
    payment_id: Optional[str] = Query(None, alias="paymentId", max_length=64),
):
    """Everything the admin UI needs to offer a refund on an order or hybrid group."""
    try:
        group = order_resolver.resolve(order_ref)
    except RefundError as exc:
        return error_response(exc)

    payment_id = payment_id or next((o.payment_id for o in group.orders if o.payment_id), None)
    prior = ledger_service.prior_committed(payment_id) if payment_id else Decimal("0")
    summary = RefundSummary(
        group=group,
        items=group.items,
        payment_id=payment_id,
        prior_committed=prior,
        available_amount=group.aggregate_total - prior,
    )
    return JSONResponse(content=summary.model_dump(mode="json", by_alias=True))
