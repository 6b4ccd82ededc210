"""
Currency conversion port.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Protocol, runtime_checkable


@runtime_checkable
class CurrencyConverter(Protocol):
    """Converts between provider minor units and Decimal amounts."""

    def from_minor_units(self, currency: str, amount: int) -> Decimal: ...

    def to_minor_units(self, currency: str, amount: Decimal) -> int: ...
