from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from domain.quotes import Quote, QuoteRequest


class UpdateQuoteBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_currency: str = Field(default="", alias="from")
    to_currency: str = Field(default="", alias="to")


class UpdateQuoteResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    from_currency: str = Field(alias="from")
    to_currency: str = Field(alias="to")
    status: str

    @classmethod
    def from_request(cls, request: QuoteRequest) -> UpdateQuoteResponse:
        return cls(
            id=request.id,
            from_currency=request.from_currency,
            to_currency=request.to_currency,
            status=request.status.value,
        )


class QuoteResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    from_currency: str = Field(alias="from")
    to_currency: str = Field(alias="to")
    rate: float
    updated_at: datetime

    @classmethod
    def from_quote(cls, quote: Quote) -> QuoteResponse:
        return cls(
            id=quote.id,
            from_currency=quote.from_currency,
            to_currency=quote.to_currency,
            rate=float(quote.rate),
            updated_at=quote.updated_at,
        )


class ErrorResponse(BaseModel):
    error: str
    message: str = ""


class HealthResponse(BaseModel):
    status: str
    service: str
    timestamp: datetime
