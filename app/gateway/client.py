"""
Gateway refund client.

Thin adapter over the payment provider's refund endpoint. Issues exactly one
HTTP call per invocation, forwards the caller's idempotency key, and turns
provider failures into a small typed taxonomy.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

import httpx

from app.config import GatewayConfig
from app.models.common import quantize

logger = logging.getLogger(__name__)

_POLICY_DENIED_CODE = "PA_UNAUTHORIZED_RESULT_FROM_POLICIES"


class GatewayError(Exception):
    """Base for provider failures. ``raw`` keeps the provider payload for audit."""

    code = "UNKNOWN"
    default_message = "The payment gateway could not process the refund"

    def __init__(self, message: Optional[str] = None, http_status: int = 502, raw: Any = None):
        self.message = message or self.default_message
        self.http_status = http_status
        self.raw = raw if raw is not None else {}
        super().__init__(self.message)


class AlreadyRefunded(GatewayError):
    code = "ALREADY_REFUNDED"
    default_message = "This payment has already been refunded"


class InsufficientGatewayBalance(GatewayError):
    code = "INSUFFICIENT_GATEWAY_BALANCE"
    default_message = "Insufficient balance at the payment gateway to process the refund"


class PaymentNotFound(GatewayError):
    code = "PAYMENT_NOT_FOUND"
    default_message = "Payment not found at the payment gateway"


class InvalidCredentials(GatewayError):
    code = "INVALID_CREDENTIALS"
    default_message = "Payment gateway credentials are invalid"


class PermissionDenied(GatewayError):
    code = "PERMISSION_DENIED"
    default_message = "Access denied: check the payment gateway credentials"


class UnknownGatewayError(GatewayError):
    code = "UNKNOWN"


@dataclass(frozen=True)
class GatewayRefund:
    external_refund_id: str
    amount: Optional[Decimal]
    status: str
    raw: dict[str, Any] = field(default_factory=dict)


class GatewayRefundClient:
    """
    Refund adapter for a Mercado Pago style provider.

    Configuration is injected at construction. Call ``reload`` with a new
    GatewayConfig to rotate credentials; calls already in flight finish with
    the old values.
    """

    def __init__(self, config: GatewayConfig, transport: Optional[httpx.BaseTransport] = None):
        self._config_lock = threading.Lock()
        self._config = config
        self._transport = transport

    @property
    def provider(self) -> str:
        return self._config.provider

    def reload(self, config: GatewayConfig) -> None:
        with self._config_lock:
            self._config = config
        logger.info("Gateway configuration reloaded", extra={"provider": config.provider})

    def refund(
        self,
        external_payment_id: str,
        amount: Optional[Decimal],
        idempotency_key: str,
    ) -> GatewayRefund:
        """
        Ask the provider to refund a payment.

        Args:
            external_payment_id: Payment id at the provider.
            amount: Amount to refund, or None to refund everything (sent as ``{}``).
            idempotency_key: Sent as ``X-Idempotency-Key``; the caller must reuse it
                for any retry of the same logical attempt.

        Returns:
            The provider-confirmed refund.

        Raises:
            GatewayError: A subclass identifying the failure. Timeouts and
                transport errors raise UnknownGatewayError.
        """
        with self._config_lock:
            config = self._config

        url = f"{config.base_url.rstrip('/')}/v1/payments/{external_payment_id}/refunds"
        headers = {
            "Authorization": f"Bearer {config.access_token}",
            "Content-Type": "application/json",
            "X-Idempotency-Key": idempotency_key,
        }
        body: dict[str, Any] = {} if amount is None else {"amount": float(quantize(amount))}

        logger.info(
            "Sending refund to gateway",
            extra={
                "provider": config.provider,
                "payment_id": external_payment_id,
                "amount": body.get("amount"),
                "idempotency_key": idempotency_key,
            },
        )

        try:
            with httpx.Client(timeout=float(config.timeout_seconds), transport=self._transport) as client:
                response = client.post(url, json=body, headers=headers)
        except httpx.TimeoutException as exc:
            logger.error("Gateway refund timed out", extra={"payment_id": external_payment_id})
            raise UnknownGatewayError(
                "The payment gateway did not answer in time; the refund may still have been applied",
                http_status=504,
                raw={"error": "timeout", "detail": str(exc)},
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Gateway transport error", extra={"payment_id": external_payment_id})
            raise UnknownGatewayError(
                "Could not reach the payment gateway",
                http_status=502,
                raw={"error": "transport", "detail": str(exc)},
            ) from exc

        payload = _json_or_text(response)

        if response.is_success:
            if not isinstance(payload, dict) or payload.get("id") is None:
                raise UnknownGatewayError(
                    "The payment gateway returned an unreadable confirmation",
                    http_status=502,
                    raw={"status_code": response.status_code, "body": payload},
                )
            confirmed = payload.get("amount")
            result = GatewayRefund(
                external_refund_id=str(payload["id"]),
                amount=Decimal(str(confirmed)) if confirmed is not None else None,
                status=str(payload.get("status") or "approved"),
                raw=payload,
            )
            logger.info(
                "Gateway refund accepted",
                extra={"payment_id": external_payment_id, "external_refund_id": result.external_refund_id},
            )
            return result

        error = map_gateway_error(response.status_code, payload)
        logger.warning(
            "Gateway refund refused",
            extra={
                "payment_id": external_payment_id,
                "status_code": response.status_code,
                "gateway_code": error.code,
            },
        )
        raise error


def map_gateway_error(status_code: int, payload: Any) -> GatewayError:
    """Map a provider error response to the taxonomy, keeping the payload."""
    data = payload if isinstance(payload, dict) else {"body": payload}
    provider_message = _provider_message(data)
    lowered = provider_message.lower()

    if status_code == 400:
        if "already refunded" in lowered:
            return AlreadyRefunded(http_status=400, raw=data)
        if "insufficient" in lowered:
            return InsufficientGatewayBalance(http_status=400, raw=data)
        return UnknownGatewayError(provider_message or None, http_status=400, raw=data)
    if status_code == 404:
        return PaymentNotFound(http_status=404, raw=data)
    if status_code == 401:
        return InvalidCredentials(http_status=401, raw=data)
    if status_code == 403:
        if data.get("code") == _POLICY_DENIED_CODE:
            return PermissionDenied(
                "Refund not permitted: the gateway access token lacks refund permission "
                "or belongs to a different environment than the payment",
                http_status=403,
                raw=data,
            )
        return PermissionDenied(http_status=403, raw=data)
    return UnknownGatewayError(provider_message or None, http_status=502, raw=data)


def _provider_message(data: dict[str, Any]) -> str:
    if data.get("message"):
        return str(data["message"])
    if data.get("error"):
        return str(data["error"])
    cause = data.get("cause")
    if isinstance(cause, list) and cause:
        return ", ".join(str(c.get("description") or c.get("code")) for c in cause if isinstance(c, dict))
    return ""


def _json_or_text(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
