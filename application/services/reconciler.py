"""
Per-event reconciliation of provider notifications against stored orders and
payments.

Every handler receives the typed event and the unit of work it runs in, and
returns a HandlerResult. Handlers validate everything they need before the
first write; a mismatch between what the provider reports and what is stored
raises ReconciliationMismatch so the caller can roll back without asking for
a redelivery.
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from application.dtos.payments import Money
from application.dtos.webhooks import (
    HandlerResult,
    InvoiceChanged,
    InvoicePaymentMade,
    PaymentCreated,
    PaymentUpdated,
    RefundCreated,
    RefundUpdated,
)
from application.ports.currency import CurrencyConverter
from application.ports.fulfillment import FulfillmentTrigger
from application.ports.payment_gateway import GatewayClient, GatewayConfig
from application.services.fulfillment import OrderFulfillmentService
from core.logging_config import get_logger
from domain.common.exceptions import DuplicatePaymentReference, MalformedPayload, ReconciliationMismatch
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Payment
from domain.webhook.status import InvoiceState, PaymentState, RefundState


logger = get_logger(__name__)

FulfillmentFactory = Callable[[AbstractUnitOfWork], FulfillmentTrigger]

_ACCEPTED_PAYMENT_STATES = (PaymentState.APPROVED, PaymentState.COMPLETED)
_SETTLED_PAYMENT_STATES = (PaymentState.COMPLETED, PaymentState.CAPTURED)


def _default_fulfillment(uow: AbstractUnitOfWork) -> FulfillmentTrigger:
    return OrderFulfillmentService(uow.orders)


class PaymentReconciler:
    def __init__(
        self,
        *,
        config: GatewayConfig,
        client: GatewayClient,
        currency: CurrencyConverter,
        fulfillment_factory: Optional[FulfillmentFactory] = None,
    ) -> None:
        self.config = config
        self.client = client
        self.currency = currency
        self.fulfillment_factory = fulfillment_factory or _default_fulfillment

    # Helpers
    def _amount(self, money: Money) -> Decimal:
        return self.currency.from_minor_units(money.currency, money.amount)

    async def _insert(self, uow: AbstractUnitOfWork, payment: Payment) -> tuple[Payment, bool]:
        """Save a new payment; returns (payment, created).

        Losing a race on the reference id yields the winner's row.
        """
        try:
            return await uow.payments.save(payment), True
        except DuplicatePaymentReference:
            existing = await uow.payments.get_by_reference(payment.reference_id)
            if existing is None:
                raise
            logger.info("webhook_payment_reference_raced", reference_id=payment.reference_id)
            return existing, False

    # Invoice money received
    async def invoice_payment_made(self, event: InvoicePaymentMade, uow: AbstractUnitOfWork) -> HandlerResult:
        invoice = event.invoice
        order_id = invoice.invoice_number
        if not order_id:
            return HandlerResult(acknowledged=True, note="invoice has no invoice number")

        order = await uow.orders.get_by_id(order_id)
        if order is None:
            logger.info("webhook_order_not_found", order_id=order_id)
            return HandlerResult(acknowledged=True, order_id=order_id, note="order not found")
        if not invoice.payment_requests:
            return HandlerResult(acknowledged=True, order_id=order_id, note="invoice has no payment request")

        request = invoice.payment_requests[0]
        reference_id = request.uid
        completed = request.total_completed_amount_money
        reported = self._amount(completed) if completed is not None else Decimal("0")
        balance_due = order.balance_due

        if event.status is InvoiceState.PAID and reported >= balance_due:
            amount = balance_due
        elif event.status is InvoiceState.PARTIALLY_PAID:
            # total_completed_amount_money is cumulative across partial payments
            amount = min(reported, balance_due)
        else:
            amount = Decimal("0")

        if amount <= 0:
            return HandlerResult(acknowledged=True, order_id=order_id, reference_id=reference_id, note="nothing paid")
        if await uow.payments.get_by_reference(reference_id) is not None:
            return HandlerResult(
                acknowledged=True, order_id=order_id, reference_id=reference_id, note="payment already recorded"
            )

        payment = Payment(
            id=None,
            reference_id=reference_id,
            order_id=order_id,
            gateway=self.config.name,
            amount=amount,
            currency=completed.currency if completed is not None else order.currency,
            status=invoice.status or "",
            method=self.config.display_name(),
            comment=f"Webhook {event.event_id}",
            txn_date=event.envelope.created_at,
        )
        _, created = await self._insert(uow, payment)
        if not created:
            return HandlerResult(
                acknowledged=True, order_id=order_id, reference_id=reference_id, note="payment already recorded"
            )
        logger.info("webhook_invoice_payment_recorded", order_id=order_id, reference_id=reference_id, amount=str(amount))
        return HandlerResult(acknowledged=True, order_id=order_id, reference_id=reference_id)

    # Card/wallet payment created
    async def payment_created(self, event: PaymentCreated, uow: AbstractUnitOfWork) -> HandlerResult:
        provider_payment = event.payment
        money = provider_payment.amount_money
        reference_id = provider_payment.id
        if money is None or money.amount <= 0 or event.status not in _ACCEPTED_PAYMENT_STATES:
            return HandlerResult(acknowledged=True, reference_id=reference_id, note="payment not actionable")
        if not reference_id:
            raise MalformedPayload("Payment has no id", event_type=event.envelope.type, field="data.object.payment.id")
        if not provider_payment.order_id:
            raise MalformedPayload(
                "Payment has no order id", event_type=event.envelope.type, field="data.object.payment.order_id"
            )

        gateway_order = await self.client.lookup_order(provider_payment.order_id)
        order_id = gateway_order.reference_id
        if not order_id:
            logger.info("webhook_gateway_order_unreferenced", provider_order_id=provider_payment.order_id)
            return HandlerResult(acknowledged=True, reference_id=reference_id, note="gateway order has no reference")

        order = await uow.orders.get_by_id(order_id)
        if order is None:
            logger.info("webhook_order_not_found", order_id=order_id)
            return HandlerResult(acknowledged=True, order_id=order_id, reference_id=reference_id, note="order not found")

        payment = await uow.payments.get_by_reference(reference_id)
        created = False
        if payment is None:
            raw_status = provider_payment.status or ""
            is_complete = raw_status.upper() == self.config.complete_status().upper()
            payment, created = await self._insert(
                uow,
                Payment(
                    id=None,
                    reference_id=reference_id,
                    order_id=order_id,
                    gateway=self.config.name,
                    amount=self._amount(money),
                    currency=money.currency,
                    is_complete=is_complete,
                    status=raw_status,
                    method=self.config.display_name(),
                    comment=f"Webhook {event.event_id}",
                    txn_date=provider_payment.created_at,
                    completed_at=(provider_payment.created_at or datetime.now(timezone.utc)) if is_complete else None,
                ),
            )

        if not (created and payment.is_complete):
            # Approved payments wait for payment.updated before fulfillment.
            return HandlerResult(acknowledged=True, order_id=order_id, reference_id=reference_id)

        ok = await self.fulfillment_factory(uow).handle_purchase(order_id)
        return HandlerResult(acknowledged=ok, order_id=order_id, reference_id=reference_id, verified=True)

    # Payment settled (or captured) later
    async def payment_updated(self, event: PaymentUpdated, uow: AbstractUnitOfWork) -> HandlerResult:
        provider_payment = event.payment
        reference_id = provider_payment.id
        if event.status not in _SETTLED_PAYMENT_STATES:
            return HandlerResult(acknowledged=True, reference_id=reference_id, note="payment not settled")

        txn_date = provider_payment.updated_at or provider_payment.created_at or datetime.now(timezone.utc)
        stored = await uow.payments.get_by_reference(reference_id)
        if stored is None:
            raise ReconciliationMismatch("Payment not found", reference_id=reference_id)
        if stored.is_complete:
            return HandlerResult(
                acknowledged=True, order_id=stored.order_id, reference_id=reference_id, note="already complete"
            )

        total = provider_payment.reported_total
        if total is None:
            raise ReconciliationMismatch("Payment reports no total", reference_id=reference_id)
        if total.currency != stored.currency:
            raise ReconciliationMismatch(
                "Currency mismatch",
                reference_id=reference_id,
                details={"reported": total.currency, "stored": stored.currency},
            )
        stored_minor = self.currency.to_minor_units(total.currency, stored.amount)
        if total.amount != stored_minor:
            raise ReconciliationMismatch(
                "Amount mismatch",
                reference_id=reference_id,
                details={"reported": total.amount, "stored": stored_minor},
            )

        stored.mark_complete(status=provider_payment.status, at=txn_date)
        if not await uow.payments.mark_complete(stored):
            return HandlerResult(
                acknowledged=True, order_id=stored.order_id, reference_id=reference_id, note="completed concurrently"
            )

        await self.fulfillment_factory(uow).handle_purchase(stored.order_id)
        return HandlerResult(acknowledged=True, order_id=stored.order_id, reference_id=reference_id, verified=True)

    # Invoice lifecycle
    async def invoice_changed(self, event: InvoiceChanged, uow: AbstractUnitOfWork) -> HandlerResult:
        invoice = event.invoice
        order_id = invoice.invoice_number
        if not order_id:
            return HandlerResult(acknowledged=True, note="invoice has no invoice number")

        order = await uow.orders.get_by_id(order_id)
        if order is None:
            logger.info("webhook_order_not_found", order_id=order_id)
            return HandlerResult(acknowledged=True, order_id=order_id, note="order not found")

        reference_id = invoice.id or event.event_id
        method = f"{self.config.display_name()} Invoice"
        payment = await uow.payments.get_by_reference(reference_id)
        if payment is None:
            payment, created = await self._insert(
                uow,
                Payment(
                    id=None,
                    reference_id=reference_id,
                    order_id=order.order_id,
                    gateway=self.config.name,
                    amount=Decimal("0"),
                    currency=order.currency,
                    status=invoice.status or "",
                    method=method,
                    comment=invoice.id or "",
                    txn_date=event.envelope.created_at,
                ),
            )
            if not created:
                payment.apply_provider_status(invoice.status or "", method=method, comment=invoice.id or "")
                await uow.payments.save(payment)
        else:
            payment.apply_provider_status(invoice.status or "", method=method, comment=invoice.id or "")
            await uow.payments.save(payment)

        logger.info("webhook_invoice_recorded", order_id=order_id, reference_id=reference_id, status=event.status.value)
        await self.fulfillment_factory(uow).handle_purchase(order.order_id)
        return HandlerResult(acknowledged=True, order_id=order_id, reference_id=reference_id)

    # Refunds
    async def refund_created(self, event: RefundCreated, uow: AbstractUnitOfWork) -> HandlerResult:
        refund = event.refund
        logger.info("webhook_refund_created", refund_id=refund.id, reference_id=refund.payment_id)
        return HandlerResult(acknowledged=True, reference_id=refund.payment_id)

    async def refund_updated(self, event: RefundUpdated, uow: AbstractUnitOfWork) -> HandlerResult:
        refund = event.refund
        if event.status is not RefundState.COMPLETED:
            return HandlerResult(acknowledged=True, reference_id=refund.payment_id, note="refund not completed")

        original = await uow.payments.get_by_reference(refund.payment_id)
        if original is None or not original.is_complete:
            return HandlerResult(
                acknowledged=True, reference_id=refund.payment_id, note="no completed payment to refund"
            )
        order = await uow.orders.get_by_id(original.order_id)
        if order is None:
            logger.info("webhook_order_not_found", order_id=original.order_id)
            return HandlerResult(
                acknowledged=True, order_id=original.order_id, reference_id=refund.payment_id, note="order not found"
            )
        if await uow.payments.get_by_reference(refund.id) is not None:
            return HandlerResult(
                acknowledged=True, order_id=order.order_id, reference_id=refund.id, note="refund already recorded"
            )

        amount = self._amount(refund.amount_money)
        full_refund = amount >= order.total_chargeable

        # Record first: only the delivery that stores the refund acts on it.
        _, created = await self._insert(
            uow,
            Payment(
                id=None,
                reference_id=refund.id,
                order_id=order.order_id,
                gateway=self.config.name,
                amount=-amount,
                currency=refund.amount_money.currency,
                is_complete=True,
                status=refund.status or "",
                method="refund",
                comment=f"Refund of {refund.payment_id}",
                txn_date=event.envelope.created_at,
                completed_at=event.envelope.created_at,
            ),
        )
        if not created:
            return HandlerResult(
                acknowledged=True, order_id=order.order_id, reference_id=refund.id, note="refund already recorded"
            )

        if full_refund:
            await self.fulfillment_factory(uow).handle_full_refund(order.order_id)
        await uow.orders.log(order.order_id, f"Refunded {amount} {refund.amount_money.currency}")
        logger.info(
            "webhook_refund_recorded",
            order_id=order.order_id,
            reference_id=refund.id,
            amount=str(amount),
            full_refund=full_refund,
        )
        return HandlerResult(acknowledged=True, order_id=order.order_id, reference_id=refund.id)
