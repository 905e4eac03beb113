"""Refund endpoints — POST /refunds, GET /refunds, GET /refunds/{id}, POST /refunds/{id}/retry

Write endpoints are plain ``def`` so the blocking gateway call runs in the
worker threadpool, not on the event loop.
"""
from decimal import Decimal
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from fastapi.responses import JSONResponse
from app.dependencies import get_engine
from app.errors import RefundError
from app.models.refund import RefundRequest
from app.routes._responses import error_response, outcome_body
from app.security.auth import get_operator, require_api_key
from app.services import ledger_service
from app.services.reconciliation_service import ReconciliationEngine

router = APIRouter(prefix="/refunds", tags=["refunds"], dependencies=[Depends(require_api_key)])


@router.post("")
def create_refund(
    body: RefundRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=100),
    operator: str = Depends(get_operator),
    engine: ReconciliationEngine = Depends(get_engine),
) -> JSONResponse:
    """Refund a payment on an order or hybrid group, fully or partially.

    Send an Idempotency-Key header to safely retry without double-processing.
    Replayed responses include the Idempotent-Replayed: true header.
    """
    try:
        outcome = engine.process_refund(
            order_ref=body.order_id,
            payment_id=body.payment_id,
            amount=body.amount,
            reason=body.reason,
            item_ids=body.items,
            operator=operator,
            idempotency_key=idempotency_key,
        )
    except RefundError as exc:
        return error_response(exc)

    headers = {"Idempotent-Replayed": "true"} if outcome.replayed else {}
    return JSONResponse(content=outcome_body(outcome), status_code=status.HTTP_200_OK, headers=headers)


@router.get("")
def list_refunds_endpoint(
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> dict:
    """Paginated ledger listing with totals grouped by status, for reconciliation review."""
    result = ledger_service.list_refunds(status=status_filter, search=search, page=page, limit=limit)
    return {
        "refunds": [r.model_dump(mode="json", by_alias=True) for r in result["refunds"]],
        "pagination": result["pagination"],
        "totals": {
            key: {"count": bucket["count"], "amount": float(bucket["amount"])}
            for key, bucket in result["totals"].items()
        },
    }


@router.get("/{refund_id}")
def get_refund_by_id(refund_id: str) -> dict:
    """Retrieve a single ledger row with the items it covers."""
    refund = ledger_service.get_refund(refund_id)
    if refund is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": f"Refund {refund_id} not found"},
        )
    items = ledger_service.get_refund_items(refund_id)
    return {
        "refund": refund.model_dump(mode="json", by_alias=True),
        "items": [i.model_dump(mode="json", by_alias=True) for i in items],
        "itemsTotal": float(sum((i.amount for i in items), Decimal("0"))),
    }


@router.post("/{refund_id}/retry")
def retry_refund(
    refund_id: str,
    operator: str = Depends(get_operator),
    engine: ReconciliationEngine = Depends(get_engine),
) -> JSONResponse:
    """Re-attempt a rejected refund. The rejected row stays in the ledger."""
    try:
        outcome = engine.retry_refund(refund_id, operator=operator)
    except RefundError as exc:
        return error_response(exc)
    return JSONResponse(content=outcome_body(outcome), status_code=status.HTTP_200_OK)
