"""
Payment provider payload DTOs (Pydantic v2) used at application boundaries.

These mirror the provider objects found under ``data.object`` of a
notification. Unknown fields are ignored; amounts stay in minor units until a
CurrencyConverter turns them into Decimals.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _ProviderModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class Money(_ProviderModel):
    amount: int
    currency: str

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        u = (v or "").upper()
        if len(u) != 3 or not u.isalpha():
            raise ValueError("currency must be ISO-4217 alpha-3")
        return u


class ProviderPayment(_ProviderModel):
    id: Optional[str] = None
    status: Optional[str] = None
    order_id: Optional[str] = None
    amount_money: Optional[Money] = None
    total_money: Optional[Money] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def reported_total(self) -> Optional[Money]:
        """Total charged; older payloads only carry amount_money"""
        return self.total_money or self.amount_money


class PaymentRequest(_ProviderModel):
    uid: str
    total_completed_amount_money: Optional[Money] = None
    computed_amount_money: Optional[Money] = None


class ProviderInvoice(_ProviderModel):
    id: Optional[str] = None
    invoice_number: Optional[str] = None
    status: Optional[str] = None
    order_id: Optional[str] = None
    payment_requests: list[PaymentRequest] = Field(default_factory=list)


class ProviderRefund(_ProviderModel):
    id: str
    payment_id: str
    status: Optional[str] = None
    amount_money: Money


class GatewayOrder(_ProviderModel):
    """Provider-side order as returned by the gateway lookup."""

    id: str
    reference_id: Optional[str] = None
    state: Optional[str] = None
