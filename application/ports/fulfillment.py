"""
Fulfillment trigger port: what happens to an order once money moves.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class FulfillmentTrigger(Protocol):

    async def handle_purchase(self, order_id: str) -> bool: ...

    async def handle_full_refund(self, order_id: str) -> bool: ...
