from typing import Annotated

from fastapi import Depends, Request

from config import AppSettings, config
from services.quote_service import QuoteService
from services.quote_store import QuoteStore


def get_settings() -> AppSettings:
    return config()


def get_quote_store(request: Request) -> QuoteStore:
    return request.app.state.store


def get_quote_service(
    store: Annotated[QuoteStore, Depends(get_quote_store)],
    settings: Annotated[AppSettings, Depends(get_settings)],
) -> QuoteService:
    return QuoteService(store, settings.supported_currencies)
