from __future__ import annotations

from decimal import Decimal

import pytest

from domain.quotes import NotFoundError, QuoteStatus
from services.quote_service import InvalidCurrencyPairError, QuoteService, RequestNotCompletedError
from services.quote_store import InMemoryQuoteStore


@pytest.fixture()
def service(memory_store: InMemoryQuoteStore) -> QuoteService:
    return QuoteService(memory_store, ["USD", "EUR", "MXN"])


def test_request_refresh_normalizes_codes(service: QuoteService) -> None:
    request = service.request_refresh(" eur ", "mxn")

    assert (request.from_currency, request.to_currency) == ("EUR", "MXN")
    assert request.status == QuoteStatus.PENDING


def test_request_refresh_is_idempotent_while_pending(service: QuoteService) -> None:
    first = service.request_refresh("EUR", "MXN")
    second = service.request_refresh("eur", "MXN")

    assert second.id == first.id


@pytest.mark.parametrize(
    ("from_currency", "to_currency", "message"),
    [
        ("", "MXN", "From currency is required"),
        ("EUR", "  ", "To currency is required"),
        ("EUR", "eur", "From and To currencies must be different"),
        ("GBP", "EUR", "Currency 'GBP' is not supported"),
        ("EUR", "JPY", "Currency 'JPY' is not supported"),
    ],
)
def test_request_refresh_rejects_invalid_pairs(
    service: QuoteService, memory_store: InMemoryQuoteStore, from_currency: str, to_currency: str, message: str
) -> None:
    with pytest.raises(InvalidCurrencyPairError, match=message):
        service.request_refresh(from_currency, to_currency)

    assert memory_store.list_pending() == []


def test_quote_for_request_requires_completion(service: QuoteService, memory_store: InMemoryQuoteStore) -> None:
    request = service.request_refresh("EUR", "MXN")

    with pytest.raises(RequestNotCompletedError) as excinfo:
        service.quote_for_request(request.id)
    assert excinfo.value.request.status == QuoteStatus.PENDING

    memory_store.transition_status(request.id, QuoteStatus.FAILED)
    with pytest.raises(RequestNotCompletedError):
        service.quote_for_request(request.id)


def test_quote_for_completed_request_returns_pair_quote(
    service: QuoteService, memory_store: InMemoryQuoteStore
) -> None:
    request = service.request_refresh("EUR", "MXN")
    memory_store.upsert_quote("EUR", "MXN", Decimal("21.7"))
    memory_store.transition_status(request.id, QuoteStatus.COMPLETED)

    quote = service.quote_for_request(request.id)

    assert quote.rate == Decimal("21.7")


def test_quote_for_unknown_request_raises_not_found(service: QuoteService) -> None:
    with pytest.raises(NotFoundError):
        service.quote_for_request("missing")


def test_latest_quote(service: QuoteService, memory_store: InMemoryQuoteStore) -> None:
    memory_store.upsert_quote("USD", "MXN", Decimal("18.5"))

    assert service.latest_quote("usd", "mxn").rate == Decimal("18.5")
    with pytest.raises(NotFoundError):
        service.latest_quote("MXN", "USD")


def test_empty_allow_list_is_rejected(memory_store: InMemoryQuoteStore) -> None:
    with pytest.raises(ValueError):
        QuoteService(memory_store, [])
