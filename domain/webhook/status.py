"""
Provider-reported states as enums, mapped from raw strings through
shared.codes.payment_codes.PROVIDER_STATUS_TO_INTERNAL.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional, Type, TypeVar

from domain.common.exceptions import UnrecognizedStatus
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL


class PaymentState(str, Enum):
    APPROVED = "approved"
    PENDING = "pending"
    COMPLETED = "completed"
    CAPTURED = "captured"
    CANCELED = "canceled"
    FAILED = "failed"


class InvoiceState(str, Enum):
    DRAFT = "draft"
    UNPAID = "unpaid"
    SCHEDULED = "scheduled"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    PARTIALLY_REFUNDED = "partially_refunded"
    REFUNDED = "refunded"
    CANCELED = "canceled"
    FAILED = "failed"
    PAYMENT_PENDING = "payment_pending"


class RefundState(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"
    FAILED = "failed"


E = TypeVar("E", bound=Enum)

_KIND_BY_ENUM: dict[type, str] = {
    PaymentState: "payment",
    InvoiceState: "invoice",
    RefundState: "refund",
}


def map_status(gateway: str, enum_cls: Type[E], raw: Optional[str]) -> E:
    """Translate a provider status string into `enum_cls`.

    Raises UnrecognizedStatus for anything not in the mapping table.
    """
    kind = _KIND_BY_ENUM[enum_cls]
    table = PROVIDER_STATUS_TO_INTERNAL.get(gateway, {}).get(kind, {})
    internal = table.get((raw or "").upper())
    if internal is None:
        raise UnrecognizedStatus(kind, raw, gateway=gateway)
    return enum_cls(internal)
