"""Shared response helpers for the refund HTTP boundary."""
from fastapi.responses import JSONResponse

from app.errors import ExceedsAvailable, GatewayRefundFailed, RefundError
from app.models.refund import RefundOutcome


def outcome_body(outcome: RefundOutcome) -> dict:
    return {
        "success": True,
        "refund": outcome.refund.model_dump(mode="json", by_alias=True),
        "allItemsRefunded": outcome.all_items_refunded,
        "orderStatus": outcome.order_status,
    }


def error_response(exc: RefundError) -> JSONResponse:
    """Translate a domain error into ``{"error": ..., ...}`` with its HTTP status."""
    body = {"error": exc.message, "code": exc.code}
    if isinstance(exc, ExceedsAvailable):
        body["availableAmount"] = float(exc.available_amount)
    elif isinstance(exc, GatewayRefundFailed):
        body["code"] = exc.gateway_code
        body["refundId"] = exc.refund_id
        body["details"] = exc.details
    elif exc.details:
        body["details"] = exc.details
    return JSONResponse(status_code=exc.http_status, content=body)
