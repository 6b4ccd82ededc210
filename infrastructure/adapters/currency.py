"""
ISO-4217 aware conversion between provider minor units and Decimal amounts.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from application.ports.currency import CurrencyConverter

DEFAULT_EXPONENT = 2

# Currencies whose minor unit is not 1/100
CURRENCY_EXPONENTS: dict[str, int] = {
    "BIF": 0, "CLP": 0, "DJF": 0, "GNF": 0, "ISK": 0, "JPY": 0, "KMF": 0, "KRW": 0,
    "PYG": 0, "RWF": 0, "UGX": 0, "VND": 0, "VUV": 0, "XAF": 0, "XOF": 0, "XPF": 0,
    "BHD": 3, "IQD": 3, "JOD": 3, "KWD": 3, "LYD": 3, "OMR": 3, "TND": 3,
}


def exponent_for(currency: str) -> int:
    return CURRENCY_EXPONENTS.get(currency.upper(), DEFAULT_EXPONENT)


class IsoCurrencyConverter(CurrencyConverter):
    def from_minor_units(self, currency: str, amount: int) -> Decimal:
        exponent = exponent_for(currency)
        return Decimal(int(amount)).scaleb(-exponent).quantize(Decimal(1).scaleb(-exponent))

    def to_minor_units(self, currency: str, amount: Decimal) -> int:
        exponent = exponent_for(currency)
        scaled = Decimal(amount).scaleb(exponent)
        return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))
