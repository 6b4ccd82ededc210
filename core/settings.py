"""
Gateway-related settings using pydantic-settings v2 with nested env keys,
e.g. ``SQUARE__WEBHOOK_SIGNATURE_KEY`` or ``WEBHOOK__DEDUP_TTL_SECONDS``.

This module is isolated so core.config.Settings stays gateway-agnostic.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class GatewayTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 3.0
    write: float = 3.0
    total: float = 5.0


class GatewayRetry(BaseModel):
    # Transport retries for the order lookup; webhook processing itself never retries.
    max: int = 0
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    dedup_ttl_seconds: int = 7 * 24 * 3600
    test_query_param: str = "testhook"


class SquareSettings(BaseModel):
    access_token: Optional[str] = None
    base_url: str = "https://connect.squareup.com"
    api_version: str = "2024-01-18"
    webhook_signature_key: Optional[str] = None
    webhook_path: str = "/api/v1/webhooks/square"
    signature_header: str = "X-Square-Signature"
    # Payment status that means money has been captured
    complete_status: str = "COMPLETED"
    display_name: str = "Square"
    timeouts: GatewayTimeouts = Field(default_factory=GatewayTimeouts)
    retry: GatewayRetry = Field(default_factory=GatewayRetry)


class GatewaySettings(BaseSettings):
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    square: SquareSettings = Field(default_factory=SquareSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


gateway_settings = GatewaySettings()
