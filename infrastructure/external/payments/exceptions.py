"""
Exceptions for gateway clients mapped to unified BusinessException variants.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import CollaboratorFailure
from shared.codes.payment_codes import WebhookCode


class GatewayLookupError(CollaboratorFailure):
    """The provider could not be asked (transport error) or refused to answer."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        status_code: Optional[int] = None,
        provider_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        full_details = {"provider": provider, "status_code": status_code, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            message,
            collaborator="gateway",
            code=WebhookCode.GATEWAY_LOOKUP_FAILED,
            error_type="GatewayLookupError",
            details=full_details,
        )
        self.provider = provider
        self.status_code = status_code
