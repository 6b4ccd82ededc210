"""
Dispatch of typed notification events to their reconciliation handlers.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping

from application.dtos.webhooks import (
    EVENT_VARIANTS,
    HandlerResult,
    InvoiceChanged,
    InvoicePaymentMade,
    PaymentCreated,
    PaymentUpdated,
    RefundCreated,
    RefundUpdated,
    UnhandledEvent,
    WebhookEventVariant,
)
from application.services.reconciler import PaymentReconciler
from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork


logger = get_logger(__name__)

Handler = Callable[[Any, AbstractUnitOfWork], Awaitable[HandlerResult]]


async def acknowledge_unhandled(event: UnhandledEvent, uow: AbstractUnitOfWork) -> HandlerResult:
    """Unknown event types need no action but must still be acknowledged."""
    logger.info("webhook_event_unhandled", event_type=event.envelope.type)
    return HandlerResult(acknowledged=True, note="unhandled event type")


class EventRouter:
    """Variant -> handler table.

    Construction fails when any event variant has no handler, so adding a
    variant without wiring it up is caught at startup.
    """

    def __init__(self, handlers: Mapping[type, Handler]) -> None:
        missing = [variant.__name__ for variant in EVENT_VARIANTS if variant not in handlers]
        if missing:
            raise ValueError(f"No webhook handler registered for: {', '.join(missing)}")
        self._handlers = dict(handlers)

    @classmethod
    def for_reconciler(cls, reconciler: PaymentReconciler) -> "EventRouter":
        return cls(
            {
                InvoicePaymentMade: reconciler.invoice_payment_made,
                PaymentCreated: reconciler.payment_created,
                PaymentUpdated: reconciler.payment_updated,
                InvoiceChanged: reconciler.invoice_changed,
                RefundCreated: reconciler.refund_created,
                RefundUpdated: reconciler.refund_updated,
                UnhandledEvent: acknowledge_unhandled,
            }
        )

    async def route(self, event: WebhookEventVariant, uow: AbstractUnitOfWork) -> HandlerResult:
        handler = self._handlers[type(event)]
        return await handler(event, uow)
