"""
Typed notification events.

Each supported event type maps to exactly one variant class carrying a
parsed provider object and its mapped state. `parse_event` validates the
payload before anything is mutated; anything it cannot parse is reported as
MalformedPayload so the provider redelivers.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from pydantic import ValidationError

from application.dtos.payments import ProviderInvoice, ProviderPayment, ProviderRefund
from domain.common.exceptions import MalformedPayload
from domain.webhook.envelope import NotificationEnvelope
from domain.webhook.status import InvoiceState, PaymentState, RefundState, map_status


@dataclass(frozen=True)
class _Event:
    envelope: NotificationEnvelope

    @property
    def event_id(self) -> str:
        return self.envelope.id


@dataclass(frozen=True)
class InvoicePaymentMade(_Event):
    invoice: ProviderInvoice
    status: InvoiceState


@dataclass(frozen=True)
class PaymentCreated(_Event):
    payment: ProviderPayment
    status: PaymentState


@dataclass(frozen=True)
class PaymentUpdated(_Event):
    payment: ProviderPayment
    status: PaymentState


@dataclass(frozen=True)
class InvoiceChanged(_Event):
    invoice: ProviderInvoice
    status: InvoiceState


@dataclass(frozen=True)
class RefundCreated(_Event):
    refund: ProviderRefund


@dataclass(frozen=True)
class RefundUpdated(_Event):
    refund: ProviderRefund
    status: RefundState


@dataclass(frozen=True)
class UnhandledEvent(_Event):
    pass


WebhookEventVariant = Union[
    InvoicePaymentMade,
    PaymentCreated,
    PaymentUpdated,
    InvoiceChanged,
    RefundCreated,
    RefundUpdated,
    UnhandledEvent,
]

# Every variant the router must be able to handle.
EVENT_VARIANTS: tuple[type, ...] = WebhookEventVariant.__args__  # type: ignore[attr-defined]

# event type -> (variant, key under data.object, provider model, state enum)
EVENT_TYPES: dict[str, tuple[type, str, type, Optional[type]]] = {
    "invoice.payment_made": (InvoicePaymentMade, "invoice", ProviderInvoice, InvoiceState),
    "payment": (PaymentCreated, "payment", ProviderPayment, PaymentState),
    "payment.created": (PaymentCreated, "payment", ProviderPayment, PaymentState),
    "payment.updated": (PaymentUpdated, "payment", ProviderPayment, PaymentState),
    "invoice.created": (InvoiceChanged, "invoice", ProviderInvoice, InvoiceState),
    "invoice.updated": (InvoiceChanged, "invoice", ProviderInvoice, InvoiceState),
    "invoice.published": (InvoiceChanged, "invoice", ProviderInvoice, InvoiceState),
    "refund.created": (RefundCreated, "refund", ProviderRefund, None),
    "refund.updated": (RefundUpdated, "refund", ProviderRefund, RefundState),
}


def parse_event(envelope: NotificationEnvelope) -> WebhookEventVariant:
    entry = EVENT_TYPES.get(envelope.type)
    if entry is None:
        return UnhandledEvent(envelope=envelope)

    variant, key, model, state_enum = entry
    raw = envelope.raw_object.get(key)
    if not isinstance(raw, dict) or not raw:
        raise MalformedPayload(
            f"Notification {envelope.id} has no '{key}' object",
            event_type=envelope.type,
            field=f"data.object.{key}",
        )
    try:
        obj = model.model_validate(raw)
    except ValidationError as exc:
        raise MalformedPayload(
            f"Notification {envelope.id} carries an invalid '{key}' object: {exc.error_count()} error(s)",
            event_type=envelope.type,
            field=f"data.object.{key}",
        ) from exc

    if variant is PaymentUpdated and not obj.id:
        raise MalformedPayload(
            f"Notification {envelope.id} payment has no id",
            event_type=envelope.type,
            field="data.object.payment.id",
        )

    fields = {"envelope": envelope, key: obj}
    if state_enum is not None:
        fields["status"] = map_status(envelope.gateway, state_enum, obj.status)
    return variant(**fields)


@dataclass
class HandlerResult:
    """What a reconciliation handler decided for one notification."""

    acknowledged: bool
    order_id: Optional[str] = None
    reference_id: Optional[str] = None
    verified: bool = False
    note: str = ""
