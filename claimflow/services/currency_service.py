"""Currency conversion helpers backed by a fixed rate table."""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Dict

from claimflow.errors import ValidationError

# Units of each currency per one USD.
USD_RATES: Dict[str, Decimal] = {
    "USD": Decimal("1"),
    "INR": Decimal("83"),
    "EUR": Decimal("0.92"),
    "GBP": Decimal("0.79"),
    "AUD": Decimal("1.52"),
    "CAD": Decimal("1.35"),
}

SUPPORTED_CURRENCIES = frozenset(USD_RATES)


def normalize_currency(code: str) -> str:
    normalized = (code or "").strip().upper()
    if normalized not in SUPPORTED_CURRENCIES:
        raise ValidationError(f"Unsupported currency '{code}'.")
    return normalized


def convert_currency(amount: Decimal | float, source_currency: str, target_currency: str) -> Decimal:
    """Convert an amount between two supported currencies, rounded to cents."""
    source = normalize_currency(source_currency)
    target = normalize_currency(target_currency)
    amount = Decimal(str(amount))
    if source == target:
        return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    converted = amount * USD_RATES[target] / USD_RATES[source]
    return converted.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
