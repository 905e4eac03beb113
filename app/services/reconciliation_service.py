"""
Reconciliation engine — orchestrates validation, the gateway call, the ledger
write and the order/item state update for one refund request.

Flow: resolve → lock payment → validate → gateway → record → attach items → update orders
"""
import logging
import time
import uuid
from decimal import Decimal
from typing import Any, Callable, Optional, TypeVar

from app.errors import GatewayRefundFailed, LedgerWriteFailed, RefundNotFound, RefundNotRetryable
from app.gateway.client import GatewayError, GatewayRefundClient, UnknownGatewayError
from app.models.common import quantize
from app.models.order import OrderGroup, OrderStatus, PaymentStatus
from app.models.refund import Refund, RefundOutcome, RefundStatus
from app.repository.store import StoreError, store
from app.services import ledger_service, order_resolver
from app.validators.refund_validator import RefundPlan, validate_refund_request

logger = logging.getLogger(__name__)

T = TypeVar("T")


def log_unreconciled(context: dict[str, Any]) -> None:
    """Default operator alert: the provider and the ledger disagree."""
    logger.critical("Refund requires manual reconciliation", extra={"reconciliation": context})


class ReconciliationEngine:
    """
    Sole writer of refunds, refund items and order refund state.

    Requests for the same payment id are serialized by the store's payment
    lock from the ledger read to the order update. Requests for different
    payment ids run in parallel.
    """

    def __init__(
        self,
        gateway: GatewayRefundClient,
        ledger_write_attempts: int = 3,
        ledger_write_backoff_seconds: float = 0.2,
        on_unreconciled: Callable[[dict[str, Any]], None] = log_unreconciled,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.gateway = gateway
        self._attempts = max(1, ledger_write_attempts)
        self._backoff = ledger_write_backoff_seconds
        self._on_unreconciled = on_unreconciled
        self._sleep = sleep

    def process_refund(
        self,
        order_ref: str,
        payment_id: str,
        amount: Optional[Decimal],
        reason: Optional[str],
        item_ids: Optional[list[str]],
        operator: str,
        idempotency_key: Optional[str] = None,
    ) -> RefundOutcome:
        """
        Refund ``amount`` (or everything when None) of a payment on an order or hybrid group.

        Args:
            order_ref: Order id or hybrid group id.
            payment_id: External payment id at the provider.
            amount: Explicit amount; None requests a full refund.
            reason: Operator reason; defaulted from the refund kind when empty.
            item_ids: Items the refund covers, if scoped.
            operator: Who triggered the refund.
            idempotency_key: Caller key. A committed ledger row with the same key
                is returned as-is; otherwise one is generated for this request.

        Returns:
            The RefundOutcome.

        Raises:
            ValidationError: Before any gateway call (OrderNotFound, ExceedsAvailable, ...).
            GatewayRefundFailed: The provider refused; a rejected row was recorded.
            LedgerWriteFailed: The provider accepted but the ledger write kept failing.
        """
        with store.payment_lock(payment_id):
            if idempotency_key:
                existing = ledger_service.find_by_idempotency_key(idempotency_key)
                if existing is not None:
                    logger.info(
                        "Idempotent replay of refund",
                        extra={"refund_id": existing.id, "idempotency_key": idempotency_key},
                    )
                    return self._replay(existing)

            group = order_resolver.resolve(order_ref)
            prior = ledger_service.prior_committed(payment_id)
            plan = validate_refund_request(group, amount, item_ids, prior)
            key = idempotency_key or self._new_idempotency_key(payment_id)
            return self._execute(
                group=group,
                payment_id=payment_id,
                plan=plan,
                reason=reason or ("Full refund" if plan.is_full_refund else "Partial refund"),
                item_ids=item_ids,
                operator=operator,
                idempotency_key=key,
            )

    def retry_refund(self, refund_id: str, operator: str) -> RefundOutcome:
        """
        Re-attempt a rejected ledger row as a new attempt.

        The rejected row is left untouched. When the rejection was ambiguous
        (timeout or unknown provider error) its idempotency key is reused so the
        provider answers with whatever it did the first time. A rejected row is
        retried until one attempt in its retry chain is committed, never after.

        Raises:
            RefundNotFound: Unknown refund id.
            RefundNotRetryable: The row is not rejected, or a retry of it already went through.
        """
        original = ledger_service.get_refund(refund_id)
        if original is None:
            raise RefundNotFound(f"Refund {refund_id} not found")

        with store.payment_lock(original.payment_id):
            if original.status != RefundStatus.REJECTED:
                raise RefundNotRetryable(
                    f"Refund {refund_id} is {original.status.value}; only rejected refunds can be retried",
                    details={"status": original.status.value},
                )
            superseding = ledger_service.find_committed_retry(original)
            if superseding is not None:
                raise RefundNotRetryable(
                    f"Refund {refund_id} was already retried successfully by {superseding.id}",
                    details={"status": original.status.value, "retried_by": superseding.id},
                )

            group = order_resolver.resolve(self._order_ref_for(original))
            prior = ledger_service.prior_committed(original.payment_id)
            plan = validate_refund_request(group, original.amount, original.requested_item_ids, prior)
            if original.gateway_error == UnknownGatewayError.code and original.idempotency_key:
                key = original.idempotency_key
            else:
                key = self._new_idempotency_key(original.payment_id)
            logger.info("Retrying rejected refund", extra={"refund_id": refund_id, "idempotency_key": key})
            return self._execute(
                group=group,
                payment_id=original.payment_id,
                plan=plan,
                reason=original.reason.split(" - ERROR: ")[0],
                item_ids=original.requested_item_ids,
                operator=operator,
                idempotency_key=key,
                retry_of=original.id,
            )

    # ── Internals ───────────────────────────────────────────────────────────

    def _execute(
        self,
        group: OrderGroup,
        payment_id: str,
        plan: RefundPlan,
        reason: str,
        item_ids: Optional[list[str]],
        operator: str,
        idempotency_key: str,
        retry_of: Optional[str] = None,
    ) -> RefundOutcome:
        common = dict(
            order_id=group.primary_order_id,
            payment_id=payment_id,
            operator=operator,
            gateway=self.gateway.provider,
            idempotency_key=idempotency_key,
            is_full_refund=plan.is_full_refund,
            requested_item_ids=item_ids or None,
            retry_of=retry_of,
        )
        context = {"payment_id": payment_id, "order_ref": group.order_ref, "idempotency_key": idempotency_key}

        try:
            confirmation = self.gateway.refund(
                payment_id,
                None if plan.is_full_refund else plan.refund_amount,
                idempotency_key,
            )
        except GatewayError as exc:
            rejected = self._durably(
                lambda: ledger_service.record(
                    amount=plan.refund_amount,
                    reason=f"{reason} - ERROR: {exc.message}",
                    status=RefundStatus.REJECTED,
                    gateway_error=exc.code,
                    gateway_detail=exc.raw if isinstance(exc.raw, dict) else {"raw": exc.raw},
                    **common,
                ),
                {**context, "stage": "record_rejected", "gateway_error": exc.code},
            )
            logger.warning(
                "Refund rejected by gateway",
                extra={"refund_id": rejected.id, "gateway_code": exc.code, "payment_id": payment_id},
            )
            raise GatewayRefundFailed(
                exc.message,
                refund_id=rejected.id,
                gateway_code=exc.code,
                raw=exc.raw,
                http_status=exc.http_status,
            ) from exc

        context["external_refund_id"] = confirmation.external_refund_id
        confirmed_amount = confirmation.amount if confirmation.amount is not None else plan.refund_amount

        refund = self._durably(
            lambda: ledger_service.record(
                amount=confirmed_amount,
                reason=reason,
                status=RefundStatus.APPROVED,
                external_refund_id=confirmation.external_refund_id,
                **common,
            ),
            {**context, "stage": "record_approved", "amount": str(confirmed_amount)},
        )
        context["refund_id"] = refund.id

        coverage = self._items_to_cover(group, item_ids, plan.is_full_refund)
        all_refunded = self._settle(group.order_ref, refund, coverage, context)

        logger.info(
            "Refund reconciled",
            extra={
                "refund_id": refund.id,
                "payment_id": payment_id,
                "amount": str(confirmed_amount),
                "all_items_refunded": all_refunded,
                "sub_orders": group.sub_order_ids,
            },
        )
        return RefundOutcome(
            refund=refund,
            all_items_refunded=all_refunded,
            order_status="CANCELLED" if all_refunded else "PARTIAL_REFUND",
        )

    def _durably(self, write: Callable[[], T], context: dict[str, Any]) -> T:
        """Run a ledger/state write, retrying on StoreError until the attempt budget runs out."""
        for attempt in range(1, self._attempts + 1):
            try:
                return write()
            except StoreError as exc:
                logger.warning(
                    "Ledger write failed",
                    extra={"attempt": attempt, "max_attempts": self._attempts, "error": str(exc), **context},
                )
                if attempt < self._attempts:
                    self._sleep(self._backoff * attempt)

        self._on_unreconciled(context)
        if context.get("stage") == "record_rejected":
            message = (
                "The payment gateway refused the refund and the rejection could not be recorded; "
                "an operator must record it manually"
            )
        else:
            message = (
                "The refund reached the payment gateway but could not be recorded; "
                "an operator must reconcile it manually"
            )
        raise LedgerWriteFailed(message, details=context)

    def _settle(
        self,
        order_ref: str,
        refund: Refund,
        coverage: list[tuple[str, Decimal]],
        context: dict[str, Any],
    ) -> bool:
        """
        Link covered items to an approved refund and move every sub-order to the matching state.

        Safe to run again for the same refund: sub-orders already in the target
        state are left alone. Returns whether every item of the group is refunded.
        """
        if coverage:
            self._durably(
                lambda: ledger_service.attach_items(refund.id, coverage),
                {**context, "stage": "attach_items"},
            )

        group = order_resolver.resolve(order_ref)
        all_refunded = self._all_items_refunded(group)
        if all_refunded:
            settled = {PaymentStatus.REFUNDED}
            transition = {
                "payment_status": PaymentStatus.REFUNDED,
                "status": OrderStatus.CANCELLED,
                "cancel_reason": refund.reason,
            }
        else:
            settled = {PaymentStatus.PARTIALLY_REFUNDED, PaymentStatus.REFUNDED}
            transition = {"payment_status": PaymentStatus.PARTIALLY_REFUNDED}

        if any(o.payment_status not in settled for o in group.orders):
            self._durably(
                lambda: store.update_orders(group.sub_order_ids, **transition),
                {**context, "stage": "update_orders"},
            )
        return all_refunded

    def _replay(self, existing: Refund) -> RefundOutcome:
        """Answer a repeated request from its ledger row, finishing any item or order update it left undone."""
        order_ref = self._order_ref_for(existing)
        if existing.status == RefundStatus.APPROVED:
            group = order_resolver.resolve(order_ref)
            linked = {ri.order_item_id for ri in ledger_service.get_refund_items(existing.id)}
            coverage = [
                (item_id, amount)
                for item_id, amount in self._items_to_cover(group, existing.requested_item_ids, existing.is_full_refund)
                if item_id not in linked
            ]
            context = {
                "payment_id": existing.payment_id,
                "order_ref": order_ref,
                "idempotency_key": existing.idempotency_key,
                "external_refund_id": existing.external_refund_id,
                "refund_id": existing.id,
            }
            all_refunded = self._settle(order_ref, existing, coverage, context)
        else:
            all_refunded = self._all_items_refunded(order_resolver.resolve(order_ref))
        return RefundOutcome(
            refund=existing,
            all_items_refunded=all_refunded,
            order_status="CANCELLED" if all_refunded else "PARTIAL_REFUND",
            replayed=True,
        )

    @staticmethod
    def _items_to_cover(
        group: OrderGroup,
        item_ids: Optional[list[str]],
        is_full_refund: bool,
    ) -> list[tuple[str, Decimal]]:
        if item_ids:
            chosen = [group.find_item(iid) for iid in dict.fromkeys(item_ids)]
        elif is_full_refund:
            chosen = [item for item in group.items if item.refunded_at is None]
        else:
            return []
        return [(item.id, quantize(item.line_total)) for item in chosen if item is not None]

    @staticmethod
    def _all_items_refunded(group: OrderGroup) -> bool:
        items = group.items
        return bool(items) and all(item.refunded_at is not None for item in items)

    @staticmethod
    def _order_ref_for(refund: Refund) -> str:
        order = store.get_order(refund.order_id)
        if order is None:
            return refund.order_id
        return order.parent_order_id or order.id

    @staticmethod
    def _new_idempotency_key(payment_id: str) -> str:
        return f"refund-{payment_id}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"
