import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from time import perf_counter
from typing import Annotated, AsyncGenerator, Awaitable, Callable

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import sessionmaker

from api.dependencies import get_quote_service, get_settings
from api.schemas import ErrorResponse, HealthResponse, QuoteResponse, UpdateQuoteBody, UpdateQuoteResponse
from config import AppSettings, config
from db.db import init_db
from db.repositories import QuoteRepository
from domain.quotes import NotFoundError, StoreFailureError
from services.quote_processor import QuoteProcessor
from services.quote_service import InvalidCurrencyPairError, QuoteService, RequestNotCompletedError
from services.quote_store import QuoteStore
from services.rate_sources import UsdRateSource, build_rate_source
from services.scheduler import QuoteScheduler

logger = logging.getLogger(__name__)

SERVICE_NAME = "currency-quote-service"


def create_app(
    settings: AppSettings | None = None,
    *,
    store: QuoteStore | None = None,
    rate_source: UsdRateSource | None = None,
    run_scheduler: bool = True,
) -> FastAPI:
    """Build the API. Without an explicit ``store`` a SQL store is opened from ``settings.database_url``."""
    app_settings = settings or config()

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI) -> AsyncGenerator[None, None]:
        engine = None
        quote_store = store
        if quote_store is None:
            engine = init_db(app_settings.database_url)
            quote_store = QuoteRepository(sessionmaker(engine))
        fastapi_app.state.store = quote_store

        scheduler = None
        if run_scheduler:
            processor = QuoteProcessor(quote_store, rate_source or build_rate_source(app_settings))
            scheduler = QuoteScheduler(processor, interval_seconds=app_settings.worker_interval)
            scheduler.start()
        fastapi_app.state.scheduler = scheduler
        yield
        if scheduler is not None:
            scheduler.stop(timeout=app_settings.shutdown_timeout)
        if engine is not None:
            engine.dispose()

    app = FastAPI(title="Currency Quote Service", lifespan=lifespan)
    app.dependency_overrides[get_settings] = lambda: app_settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_process_time(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        start_time = perf_counter()
        response = await call_next(request)
        process_time = perf_counter() - start_time
        logger.info("Request time: %s %s: %.4fs", request.method, request.url, process_time)
        return response

    app.add_exception_handler(InvalidCurrencyPairError, _error_handler(400, "Validation error"))
    app.add_exception_handler(RequestNotCompletedError, _error_handler(400, "Request not completed"))
    app.add_exception_handler(NotFoundError, _error_handler(404, "Not found"))
    app.add_exception_handler(StoreFailureError, _error_handler(500, "Internal error"))
    app.add_exception_handler(RequestValidationError, _invalid_request_handler)

    @app.post("/quotes/update", responses={400: {"model": ErrorResponse}})
    def update_quote(
        body: UpdateQuoteBody, service: Annotated[QuoteService, Depends(get_quote_service)]
    ) -> UpdateQuoteResponse:
        request = service.request_refresh(body.from_currency, body.to_currency)
        logger.info("Quote refresh requested: %s %s/%s", request.id, request.from_currency, request.to_currency)
        return UpdateQuoteResponse.from_request(request)

    @app.get("/quotes/latest", responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}})
    def get_latest_quote(
        service: Annotated[QuoteService, Depends(get_quote_service)],
        from_currency: Annotated[str, Query(alias="from")] = "",
        to_currency: Annotated[str, Query(alias="to")] = "",
    ) -> QuoteResponse:
        return QuoteResponse.from_quote(service.latest_quote(from_currency, to_currency))

    @app.get("/quotes/{request_id}", responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}})
    def get_quote_by_id(request_id: str, service: Annotated[QuoteService, Depends(get_quote_service)]) -> QuoteResponse:
        return QuoteResponse.from_quote(service.quote_for_request(request_id))

    @app.get("/health")
    def health() -> HealthResponse:
        return HealthResponse(status="healthy", service=SERVICE_NAME, timestamp=datetime.now(timezone.utc))

    return app


def _error_handler(status_code: int, error: str) -> Callable[[Request, Exception], Awaitable[JSONResponse]]:
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url, exc)
        body = ErrorResponse(error=error, message=str(exc))
        return JSONResponse(status_code=status_code, content=body.model_dump())

    return handler


async def _invalid_request_handler(request: Request, exc: Exception) -> JSONResponse:
    errors = exc.errors() if isinstance(exc, RequestValidationError) else []
    message = errors[0].get("msg", "Invalid request body") if errors else "Invalid request body"
    body = ErrorResponse(error="Invalid JSON", message=message)
    return JSONResponse(status_code=400, content=body.model_dump())
