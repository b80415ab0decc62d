from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from domain.quotes import NotFoundError, QuoteStatus, StoreFailureError
from services.quote_store import InMemoryQuoteStore, QuoteStore


def test_create_returns_pending_request(store: QuoteStore) -> None:
    request = store.create_or_get_pending("EUR", "MXN")

    assert request.status == QuoteStatus.PENDING
    assert request.from_currency == "EUR"
    assert request.to_currency == "MXN"
    assert request.created_at == request.updated_at
    assert store.get_by_id(request.id) == request


def test_second_create_reuses_pending_and_refreshes_timestamp(store: QuoteStore) -> None:
    first = store.create_or_get_pending("EUR", "MXN")
    second = store.create_or_get_pending("EUR", "MXN")

    assert second.id == first.id
    assert second.created_at == first.created_at
    assert second.updated_at > first.updated_at
    assert [request.id for request in store.list_pending()] == [first.id]


def test_pairs_are_ordered(store: QuoteStore) -> None:
    forward = store.create_or_get_pending("EUR", "MXN")
    backward = store.create_or_get_pending("MXN", "EUR")

    assert forward.id != backward.id


def test_new_pending_request_once_previous_is_picked_up(store: QuoteStore) -> None:
    first = store.create_or_get_pending("EUR", "MXN")
    store.transition_status(first.id, QuoteStatus.PROCESSING)

    second = store.create_or_get_pending("EUR", "MXN")

    assert second.id != first.id
    assert [request.id for request in store.list_pending()] == [second.id]
    assert store.get_by_id(first.id).status == QuoteStatus.PROCESSING


def test_list_pending_is_oldest_first(store: QuoteStore) -> None:
    first = store.create_or_get_pending("EUR", "MXN")
    second = store.create_or_get_pending("USD", "EUR")
    third = store.create_or_get_pending("MXN", "USD")
    store.transition_status(second.id, QuoteStatus.FAILED)

    pending = store.list_pending()

    assert [request.id for request in pending] == [first.id, third.id]


def test_transition_updates_status_and_timestamp(store: QuoteStore) -> None:
    request = store.create_or_get_pending("EUR", "MXN")

    store.transition_status(request.id, QuoteStatus.COMPLETED)

    reloaded = store.get_by_id(request.id)
    assert reloaded.status == QuoteStatus.COMPLETED
    assert reloaded.updated_at > request.updated_at
    assert store.list_pending() == []


def test_transition_unknown_id_raises(store: QuoteStore) -> None:
    with pytest.raises(NotFoundError):
        store.transition_status("missing", QuoteStatus.FAILED)


def test_get_by_id_unknown_raises(store: QuoteStore) -> None:
    with pytest.raises(NotFoundError):
        store.get_by_id("missing")


def test_get_quote_before_any_upsert_raises(store: QuoteStore) -> None:
    with pytest.raises(NotFoundError):
        store.get_quote("EUR", "MXN")


def test_upsert_quote_replaces_in_place(store: QuoteStore) -> None:
    created = store.upsert_quote("EUR", "MXN", Decimal("21.5"))
    replaced = store.upsert_quote("EUR", "MXN", Decimal("21.7"))

    current = store.get_quote("EUR", "MXN")
    assert current.id == created.id == replaced.id
    assert current.rate == Decimal("21.7")
    assert current.created_at == created.created_at
    assert current.updated_at > created.updated_at


def test_quotes_are_keyed_by_ordered_pair(store: QuoteStore) -> None:
    store.upsert_quote("EUR", "MXN", Decimal("21.7"))

    with pytest.raises(NotFoundError):
        store.get_quote("MXN", "EUR")


def test_concurrent_creates_yield_single_pending_request(store: QuoteStore) -> None:
    callers = 16
    barrier = threading.Barrier(callers)

    def create() -> str:
        barrier.wait()
        return store.create_or_get_pending("EUR", "MXN").id

    with ThreadPoolExecutor(max_workers=callers) as pool:
        ids = list(pool.map(lambda _: create(), range(callers)))

    pending = store.list_pending()
    assert len(pending) == 1
    assert ids == [pending[0].id] * callers


def test_memory_store_rejects_second_pending_for_pair(memory_store: InMemoryQuoteStore) -> None:
    first = memory_store.create_or_get_pending("EUR", "MXN")
    memory_store.transition_status(first.id, QuoteStatus.PROCESSING)
    second = memory_store.create_or_get_pending("EUR", "MXN")

    with pytest.raises(StoreFailureError):
        memory_store.transition_status(first.id, QuoteStatus.PENDING)

    assert [request.id for request in memory_store.list_pending()] == [second.id]


def test_memory_store_returns_copies(memory_store: InMemoryQuoteStore) -> None:
    request = memory_store.create_or_get_pending("EUR", "MXN")
    request.status = QuoteStatus.FAILED

    assert memory_store.get_by_id(request.id).status == QuoteStatus.PENDING
