"""
Webhook/payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class WebhookCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Inbound notification errors (6xxxx)
    DECODE_ERROR = 60000
    VERIFICATION_FAILED = 60001
    MALFORMED_PAYLOAD = 60002
    UNRECOGNIZED_STATUS = 60003
    RECONCILIATION_MISMATCH = 60004
    NOT_ACKNOWLEDGED = 60005

    # Collaborator errors (61xxx)
    COLLABORATOR_FAILURE = 61000
    GATEWAY_LOOKUP_FAILED = 61001
    DUPLICATE_PAYMENT_REFERENCE = 61002
    IDEMPOTENCY_STORE_FAILED = 61003


# Provider status string -> internal state value, per object kind.
# Values must match the enums in domain.webhook.status.
PROVIDER_STATUS_TO_INTERNAL = {
    "square": {
        "payment": {
            "APPROVED": "approved",
            "PENDING": "pending",
            "COMPLETED": "completed",
            "CAPTURED": "captured",
            "CANCELED": "canceled",
            "FAILED": "failed",
        },
        "invoice": {
            "DRAFT": "draft",
            "UNPAID": "unpaid",
            "SCHEDULED": "scheduled",
            "PARTIALLY_PAID": "partially_paid",
            "PAID": "paid",
            "PARTIALLY_REFUNDED": "partially_refunded",
            "REFUNDED": "refunded",
            "CANCELED": "canceled",
            "FAILED": "failed",
            "PAYMENT_PENDING": "payment_pending",
        },
        "refund": {
            "PENDING": "pending",
            "COMPLETED": "completed",
            "REJECTED": "rejected",
            "FAILED": "failed",
        },
    },
}
