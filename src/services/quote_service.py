from __future__ import annotations

from collections.abc import Iterable

from domain.quotes import CurrencyCode, Quote, QuoteRequest, QuoteStatus

from .quote_store import QuoteStore


class InvalidCurrencyPairError(ValueError):
    pass


class RequestNotCompletedError(Exception):
    def __init__(self, request: QuoteRequest) -> None:
        super().__init__(f"Quote request is not completed yet. Status: {request.status}")
        self.request = request


class QuoteService:
    def __init__(self, store: QuoteStore, supported_currencies: Iterable[str]) -> None:
        self.store = store
        self.supported_currencies = tuple(code.upper() for code in supported_currencies)
        if not self.supported_currencies:
            msg = "supported_currencies must contain at least one entry"
            raise ValueError(msg)

    def request_refresh(self, from_currency: str, to_currency: str) -> QuoteRequest:
        base, quote = self.validate_pair(from_currency, to_currency)
        return self.store.create_or_get_pending(base, quote)

    def quote_for_request(self, request_id: str) -> Quote:
        request = self.store.get_by_id(request_id)
        if request.status != QuoteStatus.COMPLETED:
            raise RequestNotCompletedError(request)
        return self.store.get_quote(request.from_currency, request.to_currency)

    def latest_quote(self, from_currency: str, to_currency: str) -> Quote:
        base, quote = self.validate_pair(from_currency, to_currency)
        return self.store.get_quote(base, quote)

    def validate_pair(self, from_currency: str, to_currency: str) -> tuple[CurrencyCode, CurrencyCode]:
        base = self._normalize(from_currency, "From")
        quote = self._normalize(to_currency, "To")
        if base == quote:
            raise InvalidCurrencyPairError("From and To currencies must be different")
        return base, quote

    def _normalize(self, code: str, label: str) -> CurrencyCode:
        normalized = (code or "").strip().upper()
        if not normalized:
            raise InvalidCurrencyPairError(f"{label} currency is required")
        if normalized not in self.supported_currencies:
            supported = ", ".join(self.supported_currencies)
            raise InvalidCurrencyPairError(
                f"Currency '{normalized}' is not supported. Supported currencies: {supported}"
            )
        return CurrencyCode(normalized)


__all__ = ["InvalidCurrencyPairError", "QuoteService", "RequestNotCompletedError"]
