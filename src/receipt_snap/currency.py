"""Static exchange rates and money formatting for display.

Rates never feed the authoritative per-currency report totals; they only
back optional converted figures shown to a reader.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping, Optional

# 1 USD = rate units of the currency.
RATES_VS_USD: dict[str, Decimal] = {
    "USD": Decimal("1.0"),
    "EUR": Decimal("0.92"),
    "GBP": Decimal("0.79"),
    "JPY": Decimal("149.50"),
    "CAD": Decimal("1.36"),
    "AUD": Decimal("1.53"),
    "CHF": Decimal("0.88"),
    "CNY": Decimal("7.24"),
    "INR": Decimal("83.12"),
    "MXN": Decimal("17.15"),
    "BRL": Decimal("4.97"),
    "KRW": Decimal("1320.0"),
    "SGD": Decimal("1.34"),
    "HKD": Decimal("7.82"),
    "NOK": Decimal("10.65"),
    "SEK": Decimal("10.42"),
    "DKK": Decimal("6.88"),
    "NZD": Decimal("1.63"),
    "ZAR": Decimal("18.65"),
    "RUB": Decimal("92.50"),
    "TRY": Decimal("28.90"),
    "THB": Decimal("35.50"),
    "RSD": Decimal("108.50"),
}

CURRENCY_SYMBOLS: dict[str, str] = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CNY": "¥",
    "INR": "₹",
    "KRW": "₩",
    "RUB": "₽",
    "THB": "฿",
    "TRY": "₺",
    "CAD": "C$",
    "AUD": "A$",
    "NZD": "NZ$",
    "HKD": "HK$",
    "SGD": "S$",
    "MXN": "MX$",
    "BRL": "R$",
    "ZAR": "R",
    "CHF": "CHF ",
    "RSD": "RSD ",
}

CENT = Decimal("0.01")


@dataclass
class RateTable:
    rates: dict[str, Decimal] = field(default_factory=lambda: dict(RATES_VS_USD))

    @classmethod
    def with_overrides(cls, overrides: Optional[Mapping[str, Decimal]] = None) -> "RateTable":
        rates = dict(RATES_VS_USD)
        rates.update({code.upper(): Decimal(rate) for code, rate in (overrides or {}).items()})
        return cls(rates=rates)

    @property
    def supported_currencies(self) -> list[str]:
        return list(self.rates)

    def rate(self, code: str) -> Optional[Decimal]:
        return self.rates.get(code.upper())

    def convert(self, amount: Decimal, from_code: str, to_code: str) -> Decimal:
        if from_code.upper() == to_code.upper():
            return amount
        from_rate = self.rate(from_code)
        to_rate = self.rate(to_code)
        if from_rate is None or to_rate is None:
            # Unknown currency: pass the amount through unconverted.
            return amount
        return amount / from_rate * to_rate

    def convert_totals(self, totals: Mapping[str, Decimal], target: str) -> Decimal:
        converted = sum((self.convert(amount, code, target) for code, amount in totals.items()), Decimal("0"))
        return converted.quantize(CENT)


def currency_symbol(code: str) -> str:
    code = code.upper()
    return CURRENCY_SYMBOLS.get(code, f"{code} ")


def format_amount(amount: Optional[Decimal], currency: Optional[str]) -> str:
    if amount is None:
        return "-"
    return f"{currency_symbol(currency or 'USD')}{amount.quantize(CENT):,.2f}"


def format_total(totals: Mapping[str, Decimal], report_currency: str) -> str:
    """Short total for list views; several currencies show the first with a '+'."""
    if not totals:
        return format_amount(Decimal("0"), report_currency)
    code, amount = next(iter(totals.items()))
    formatted = format_amount(amount, code)
    return formatted if len(totals) == 1 else f"{formatted} +"


def format_breakdown(totals: Mapping[str, Decimal]) -> str:
    if not totals:
        return "No amounts"
    return " + ".join(format_amount(amount, code) for code, amount in totals.items())
