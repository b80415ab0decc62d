from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal
from enum import StrEnum
from typing import NewType
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

CurrencyCode = NewType("CurrencyCode", str)
QuoteRequestId = NewType("QuoteRequestId", str)
QuoteId = NewType("QuoteId", str)

USD = CurrencyCode("USD")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class QuoteStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (QuoteStatus.COMPLETED, QuoteStatus.FAILED)


class QuoteRequest(BaseModel):
    """Client request to refresh the rate of a currency pair.

    Created as ``pending``; a processing cycle moves it to ``processing`` and
    then to one of the terminal states ``completed`` or ``failed``.
    """

    id: QuoteRequestId = Field(default_factory=new_id)
    from_currency: CurrencyCode
    to_currency: CurrencyCode
    status: QuoteStatus = QuoteStatus.PENDING
    created_at: datetime
    updated_at: datetime

    @property
    def pair(self) -> tuple[CurrencyCode, CurrencyCode]:
        return self.from_currency, self.to_currency


class Quote(BaseModel):
    """Latest resolved rate for a pair. One per (from, to), overwritten in place."""

    id: QuoteId = Field(default_factory=new_id)
    from_currency: CurrencyCode
    to_currency: CurrencyCode
    rate: Decimal
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def _validate_rate(self) -> Quote:
        if self.rate <= 0:
            raise ValueError("Quote.rate must be positive")
        return self


class UnknownCurrencyError(Exception):
    def __init__(self, currency: str, message: str | None = None) -> None:
        super().__init__(message or f"Currency {currency} not found in rates")
        self.currency = currency


class RateSourceUnavailableError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None, payload: object | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class StoreFailureError(Exception):
    pass


class NotFoundError(LookupError):
    pass


__all__ = [
    "Clock",
    "CurrencyCode",
    "NotFoundError",
    "Quote",
    "QuoteId",
    "QuoteRequest",
    "QuoteRequestId",
    "QuoteStatus",
    "RateSourceUnavailableError",
    "StoreFailureError",
    "USD",
    "UnknownCurrencyError",
    "new_id",
    "utc_now",
]
