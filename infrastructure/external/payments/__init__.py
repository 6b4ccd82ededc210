"""
Factory for gateway clients.
"""
from __future__ import annotations

from application.ports.payment_gateway import GatewayClient

SUPPORTED_GATEWAYS = ("square",)


def get_gateway_client(gateway: str) -> GatewayClient:
    name = gateway.lower()
    if name == "square":
        from .square_client import SquareClient
        return SquareClient()
    raise ValueError(f"Unsupported payment gateway: {name}")
