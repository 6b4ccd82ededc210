"""Domain-level business exceptions shared by domain and infrastructure.

The core layer only maps these to HTTP responses; the domain never imports
from core.
"""
from __future__ import annotations

from typing import Optional

from shared.codes import BusinessCode
from shared.codes.payment_codes import WebhookCode


class BusinessException(Exception):
    """Base class for business errors"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(self, message: str, *, field: str | None = None, details: dict | None = None):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class DecodeError(BusinessException):
    """Inbound body could not be turned into a notification envelope."""

    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(
            code=WebhookCode.DECODE_ERROR,
            message=message,
            error_type="DecodeError",
            details=details,
        )


class VerificationFailure(BusinessException):
    def __init__(self, message: str = "Webhook signature mismatch", *, event_id: Optional[str] = None):
        super().__init__(
            code=WebhookCode.VERIFICATION_FAILED,
            message=message,
            error_type="VerificationFailure",
            details={"event_id": event_id} if event_id else None,
        )


class MalformedPayload(BusinessException):
    """The nested object an event type requires is missing or unusable."""

    def __init__(
        self,
        message: str,
        *,
        event_type: Optional[str] = None,
        field: Optional[str] = None,
        code: int = WebhookCode.MALFORMED_PAYLOAD,
        error_type: str = "MalformedPayload",
    ):
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details={"event_type": event_type} if event_type else None,
            field=field,
        )


class UnrecognizedStatus(MalformedPayload):
    def __init__(self, kind: str, status: Optional[str], *, gateway: str):
        super().__init__(
            f"Unrecognized {gateway} {kind} status: {status!r}",
            field="status",
            code=WebhookCode.UNRECOGNIZED_STATUS,
            error_type="UnrecognizedStatus",
        )
        self.kind = kind
        self.status = status


class ReconciliationMismatch(BusinessException):
    """Reported amounts/status do not line up with the stored payment."""

    def __init__(self, message: str, *, reference_id: Optional[str] = None, details: Optional[dict] = None):
        full_details = {"reference_id": reference_id}
        if details:
            full_details.update(details)
        super().__init__(
            code=WebhookCode.RECONCILIATION_MISMATCH,
            message=message,
            error_type="ReconciliationMismatch",
            details=full_details,
        )
        self.reference_id = reference_id


class CollaboratorFailure(BusinessException):
    """A persistence or lookup collaborator failed; the event must be redelivered."""

    def __init__(
        self,
        message: str,
        *,
        collaborator: str,
        code: int = WebhookCode.COLLABORATOR_FAILURE,
        error_type: str = "CollaboratorFailure",
        details: Optional[dict] = None,
    ):
        full_details = {"collaborator": collaborator}
        if details:
            full_details.update(details)
        super().__init__(code=code, message=message, error_type=error_type, details=full_details)
        self.collaborator = collaborator


class DuplicatePaymentReference(CollaboratorFailure):
    """Raised by a payment store when another writer already saved this reference id."""

    def __init__(self, reference_id: str):
        super().__init__(
            f"Payment reference {reference_id} already recorded",
            collaborator="payments",
            code=WebhookCode.DUPLICATE_PAYMENT_REFERENCE,
            error_type="DuplicatePaymentReference",
            details={"reference_id": reference_id},
        )
        self.reference_id = reference_id
