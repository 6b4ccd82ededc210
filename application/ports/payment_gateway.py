"""
Payment gateway ports (application/ports) exposing replaceable protocols.

Application code depends on these Protocols; infrastructure provides the
adapters and the composition root injects them.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from application.dtos.payments import GatewayOrder


@runtime_checkable
class GatewayConfig(Protocol):
    """Per-gateway settings the webhook core needs."""

    name: str

    def secret_key(self) -> bytes: ...

    def complete_status(self) -> str: ...

    def display_name(self) -> str: ...

    def notification_url(self) -> str: ...

    def signature_header(self) -> str: ...


@runtime_checkable
class GatewayClient(Protocol):
    """The single outbound lookup the webhook core performs."""

    provider: str

    async def lookup_order(self, provider_order_id: str) -> GatewayOrder: ...
