from __future__ import annotations

from decimal import Decimal

import pytest

from claimflow.errors import ValidationError
from claimflow.services.currency_service import (
    SUPPORTED_CURRENCIES,
    convert_currency,
    normalize_currency,
)


@pytest.mark.parametrize("code", sorted(SUPPORTED_CURRENCIES))
def test_every_supported_currency_normalizes(code) -> None:
    assert normalize_currency(f" {code.lower()} ") == code


@pytest.mark.parametrize("code", ["XYZ", "", None, "US D"])
def test_unsupported_currency_is_rejected(code) -> None:
    with pytest.raises(ValidationError):
        normalize_currency(code)


def test_conversion_goes_through_usd_and_rounds_to_cents() -> None:
    assert convert_currency(Decimal("830"), "INR", "USD") == Decimal("10.00")
    assert convert_currency(Decimal("100"), "EUR", "GBP") == Decimal("85.87")
    assert convert_currency("12.345", "USD", "USD") == Decimal("12.35")
