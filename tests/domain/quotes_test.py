from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError

from domain.quotes import Quote, QuoteRequest, QuoteStatus
from tests.helpers.time_utils import DEFAULT_TIME_GEN


def test_request_gets_fresh_string_id() -> None:
    now = DEFAULT_TIME_GEN()
    first = QuoteRequest(from_currency="EUR", to_currency="MXN", created_at=now, updated_at=now)
    second = QuoteRequest(from_currency="EUR", to_currency="MXN", created_at=now, updated_at=now)

    assert isinstance(first.id, str)
    assert first.id != second.id
    assert first.status == QuoteStatus.PENDING
    assert first.pair == ("EUR", "MXN")


@pytest.mark.parametrize("rate", [Decimal("0"), Decimal("-0.5")])
def test_quote_rejects_non_positive_rate(rate: Decimal) -> None:
    now = DEFAULT_TIME_GEN()

    with pytest.raises(ValidationError):
        Quote(from_currency="EUR", to_currency="MXN", rate=rate, created_at=now, updated_at=now)


def test_quote_gets_fresh_string_id() -> None:
    now = DEFAULT_TIME_GEN()

    quote = Quote(from_currency="EUR", to_currency="MXN", rate=Decimal("21.7"), created_at=now, updated_at=now)

    assert isinstance(quote.id, str)
    assert len(quote.id) == 36
