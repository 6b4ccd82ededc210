"""
Settings-backed implementation of application.ports.payment_gateway.GatewayConfig.
"""
from __future__ import annotations

from typing import Optional

from application.ports.payment_gateway import GatewayConfig
from core.config import settings
from core.settings import SquareSettings, gateway_settings


class SquareGatewayConfig(GatewayConfig):
    name = "square"

    def __init__(self, square: Optional[SquareSettings] = None, site_url: Optional[str] = None) -> None:
        self._square = square or gateway_settings.square
        self._site_url = (site_url if site_url is not None else settings.SITE_URL).rstrip("/")

    def secret_key(self) -> bytes:
        return (self._square.webhook_signature_key or "").encode("utf-8")

    def complete_status(self) -> str:
        return self._square.complete_status

    def display_name(self) -> str:
        return self._square.display_name

    def notification_url(self) -> str:
        # Square signs the exact URL registered for the subscription
        return f"{self._site_url}{self._square.webhook_path}"

    def signature_header(self) -> str:
        return self._square.signature_header


def get_gateway_config(gateway: str) -> GatewayConfig:
    if gateway.lower() == "square":
        return SquareGatewayConfig()
    raise ValueError(f"Unsupported payment gateway: {gateway}")
