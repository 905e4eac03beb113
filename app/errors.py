"""
Domain errors raised by the refund core.

Every error carries a stable code, a user-safe message, the HTTP status the
boundary should answer with, and optional details. Routes translate them into
``{"error": message, ...}`` bodies.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any


class RefundError(Exception):
    """Base class for errors the refund core reports to its callers."""

    code = "REFUND_ERROR"
    http_status = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None, http_status: int | None = None):
        self.message = message
        self.details = details or {}
        if http_status is not None:
            self.http_status = http_status
        super().__init__(message)


class ValidationError(RefundError):
    """Raised before any external call when a request cannot be honored."""

    code = "VALIDATION_ERROR"


class OrderNotFound(ValidationError):
    code = "ORDER_NOT_FOUND"
    http_status = 404


class ExceedsAvailable(ValidationError):
    code = "REFUND_AMOUNT_EXCEEDED"

    def __init__(self, message: str, available_amount: Decimal, details: dict[str, Any] | None = None):
        self.available_amount = available_amount
        super().__init__(message, details)


class InvalidItemIds(ValidationError):
    code = "INVALID_ITEM_IDS"


class ItemAlreadyRefunded(ValidationError):
    code = "ITEM_ALREADY_REFUNDED"
    http_status = 409


class RefundNotFound(RefundError):
    code = "REFUND_NOT_FOUND"
    http_status = 404


class RefundNotRetryable(RefundError):
    code = "REFUND_NOT_RETRYABLE"


class GatewayRefundFailed(RefundError):
    """The provider refused or could not confirm the refund; a rejected ledger row exists."""

    code = "GATEWAY_ERROR"

    def __init__(self, message: str, refund_id: str, gateway_code: str, raw: Any, http_status: int):
        self.refund_id = refund_id
        self.gateway_code = gateway_code
        self.raw = raw
        super().__init__(message, details=raw if isinstance(raw, dict) else {"raw": raw}, http_status=http_status)


class LedgerWriteFailed(RefundError):
    """The provider moved money but the ledger could not record it after every retry."""

    code = "LEDGER_WRITE_FAILED"
    http_status = 500
