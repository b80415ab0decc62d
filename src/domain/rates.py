from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal

from .quotes import USD, UnknownCurrencyError

RateTable = Mapping[str, Decimal]


def cross_rate(from_currency: str, to_currency: str, table: RateTable | None) -> Decimal:
    """Rate of one unit of ``from_currency`` in ``to_currency``.

    ``table`` holds USD-relative rates (units of each currency per one USD),
    so every pair is crossed through USD. A code whose rate is missing, not
    finite or not positive cannot be priced and raises ``UnknownCurrencyError``.
    """
    rates = table or {}
    for currency in (from_currency, to_currency):
        rate = rates.get(currency)
        if rate is None:
            raise UnknownCurrencyError(currency)
        if not rate.is_finite() or rate <= 0:
            raise UnknownCurrencyError(currency, f"Currency {currency} has unusable rate {rate}")

    if from_currency == to_currency:
        return Decimal("1")
    if from_currency == USD:
        return rates[to_currency]
    if to_currency == USD:
        return Decimal("1") / rates[from_currency]
    return rates[to_currency] / rates[from_currency]


def normalize_usd_rates(rates: RateTable) -> dict[str, Decimal]:
    table = {code.upper(): rate for code, rate in rates.items()}
    table[USD] = Decimal("1")
    return table


__all__ = ["RateTable", "cross_rate", "normalize_usd_rates"]
