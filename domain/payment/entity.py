"""
Payment entity - money received (or refunded) against an order
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from domain.common.exceptions import DomainValidationException


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalise a timestamp to UTC (naive values are assumed UTC)"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Payment:
    """
    Payment record keyed by the provider reference id.

    Business rules:
    1. reference_id is unique across all payments
    2. amount is a Decimal; zero for invoice placeholders, negative for refunds
    3. is_complete moves from False to True at most once and never back
    """

    id: Optional[int]
    reference_id: str
    order_id: str
    gateway: str
    amount: Decimal
    currency: str  # ISO-4217
    is_complete: bool = False
    status: str = ""  # provider-reported status string
    method: str = ""
    comment: str = ""
    txn_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.reference_id:
            raise DomainValidationException("Payment reference id is required", field="reference_id")
        if not isinstance(self.amount, Decimal):
            raise DomainValidationException(
                f"Payment amount must be a Decimal, got {type(self.amount).__name__}",
                field="amount",
            )
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"Invalid currency code: {self.currency}", field="currency")
        self.currency = self.currency.upper()
        self.txn_date = _ensure_utc(self.txn_date)
        self.created_at = _ensure_utc(self.created_at)
        self.completed_at = _ensure_utc(self.completed_at)

    @property
    def is_new(self) -> bool:
        return self.id is None

    def mark_complete(self, status: Optional[str] = None, at: Optional[datetime] = None) -> bool:
        """Flip to complete. Returns False when it already was."""
        if status:
            self.status = status
        if self.is_complete:
            return False
        self.is_complete = True
        self.completed_at = _ensure_utc(at) or datetime.now(timezone.utc)
        return True

    def apply_provider_status(self, status: str, *, method: Optional[str] = None, comment: Optional[str] = None) -> None:
        """Refresh descriptive fields without touching completion."""
        self.status = status
        if method is not None:
            self.method = method
        if comment is not None:
            self.comment = comment
