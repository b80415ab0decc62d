from __future__ import annotations

import logging
import threading
from decimal import Decimal
from typing import Protocol

from domain.quotes import (
    Clock,
    CurrencyCode,
    NotFoundError,
    Quote,
    QuoteRequest,
    QuoteStatus,
    StoreFailureError,
    utc_now,
)

logger = logging.getLogger(__name__)

Pair = tuple[CurrencyCode, CurrencyCode]


class QuoteStore(Protocol):
    """Durable record of quote requests and resolved quotes.

    ``create_or_get_pending`` is the only place new requests come from and must
    never leave two ``pending`` requests for the same pair, even under
    concurrent callers.
    """

    def create_or_get_pending(self, from_currency: str, to_currency: str) -> QuoteRequest: ...

    def transition_status(self, request_id: str, status: QuoteStatus) -> None: ...

    def list_pending(self) -> list[QuoteRequest]: ...

    def get_by_id(self, request_id: str) -> QuoteRequest: ...

    def get_quote(self, from_currency: str, to_currency: str) -> Quote: ...

    def upsert_quote(self, from_currency: str, to_currency: str, rate: Decimal) -> Quote: ...


class InMemoryQuoteStore(QuoteStore):
    def __init__(self, *, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._requests: dict[str, QuoteRequest] = {}
        self._pending_by_pair: dict[Pair, str] = {}
        self._quotes: dict[Pair, Quote] = {}

    def create_or_get_pending(self, from_currency: str, to_currency: str) -> QuoteRequest:
        pair = (CurrencyCode(from_currency), CurrencyCode(to_currency))
        with self._lock:
            now = self._clock()
            existing_id = self._pending_by_pair.get(pair)
            if existing_id is not None:
                existing = self._requests[existing_id].model_copy(update={"updated_at": now})
                self._requests[existing_id] = existing
                return existing.model_copy()

            request = QuoteRequest(
                from_currency=pair[0],
                to_currency=pair[1],
                status=QuoteStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            self._requests[request.id] = request
            self._pending_by_pair[pair] = request.id
            logger.debug("Created pending request %s for %s/%s", request.id, *pair)
            return request.model_copy()

    def transition_status(self, request_id: str, status: QuoteStatus) -> None:
        with self._lock:
            current = self._requests.get(request_id)
            if current is None:
                raise NotFoundError(f"Quote request {request_id} not found")

            holder = self._pending_by_pair.get(current.pair)
            if status == QuoteStatus.PENDING and holder not in (None, request_id):
                raise StoreFailureError(f"Pending request {holder} already exists for {current.pair}")

            self._requests[request_id] = current.model_copy(update={"status": status, "updated_at": self._clock()})
            if status == QuoteStatus.PENDING:
                self._pending_by_pair[current.pair] = request_id
            elif holder == request_id:
                del self._pending_by_pair[current.pair]

    def list_pending(self) -> list[QuoteRequest]:
        with self._lock:
            pending = [self._requests[request_id].model_copy() for request_id in self._pending_by_pair.values()]
        # sorted() is stable, so equal timestamps keep creation order.
        return sorted(pending, key=lambda request: request.created_at)

    def get_by_id(self, request_id: str) -> QuoteRequest:
        with self._lock:
            request = self._requests.get(request_id)
        if request is None:
            raise NotFoundError(f"Quote request {request_id} not found")
        return request.model_copy()

    def get_quote(self, from_currency: str, to_currency: str) -> Quote:
        with self._lock:
            quote = self._quotes.get((CurrencyCode(from_currency), CurrencyCode(to_currency)))
        if quote is None:
            raise NotFoundError(f"Quote not found for currency pair {from_currency}/{to_currency}")
        return quote.model_copy()

    def upsert_quote(self, from_currency: str, to_currency: str, rate: Decimal) -> Quote:
        pair = (CurrencyCode(from_currency), CurrencyCode(to_currency))
        with self._lock:
            now = self._clock()
            existing = self._quotes.get(pair)
            if existing is None:
                quote = Quote(from_currency=pair[0], to_currency=pair[1], rate=rate, created_at=now, updated_at=now)
            else:
                quote = Quote(
                    id=existing.id,
                    from_currency=pair[0],
                    to_currency=pair[1],
                    rate=rate,
                    created_at=existing.created_at,
                    updated_at=now,
                )
            self._quotes[pair] = quote
            return quote.model_copy()


__all__ = ["InMemoryQuoteStore", "Pair", "QuoteStore"]
