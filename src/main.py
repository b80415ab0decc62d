from __future__ import annotations

import argparse
import signal
import threading
from typing import Sequence

from sqlalchemy.orm import sessionmaker

from config import AppSettings, config, configure_logging
from db.db import init_db
from db.repositories import QuoteRepository
from domain.quotes import NotFoundError
from services.quote_processor import QuoteProcessor
from services.quote_service import InvalidCurrencyPairError, QuoteService, RequestNotCompletedError
from services.rate_sources import build_rate_source
from services.scheduler import QuoteScheduler


def build_repository(settings: AppSettings) -> QuoteRepository:
    engine = init_db(settings.database_url)
    return QuoteRepository(sessionmaker(engine))


def run_worker(settings: AppSettings) -> None:
    repository = build_repository(settings)
    processor = QuoteProcessor(repository, build_rate_source(settings))
    stop_event = threading.Event()

    def _request_stop(signum: int, frame: object) -> None:
        stop_event.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    scheduler = QuoteScheduler(processor, interval_seconds=settings.worker_interval, stop_event=stop_event)
    scheduler.start()
    stop_event.wait()
    scheduler.stop(timeout=settings.shutdown_timeout)


def run_once(settings: AppSettings) -> None:
    repository = build_repository(settings)
    result = QuoteProcessor(repository, build_rate_source(settings)).run_cycle()
    print(f"Discovered {result.discovered} pending requests in {result.groups} groups")
    print(f"  Completed: {len(result.completed)}")
    print(f"  Failed:    {len(result.failed)}")


def serve(settings: AppSettings) -> None:
    import uvicorn

    from api.api import create_app

    uvicorn.run(create_app(settings), host=settings.server_host, port=settings.server_port)


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Currency quote service.")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("serve", help="Run the HTTP API together with the background scheduler.")
    subparsers.add_parser("worker", help="Run only the background scheduler until interrupted.")
    subparsers.add_parser("run-once", help="Process pending quote requests once and exit.")
    request_parser = subparsers.add_parser("request", help="Request a refresh of a currency pair.")
    request_parser.add_argument("from_currency")
    request_parser.add_argument("to_currency")
    status_parser = subparsers.add_parser("status", help="Show a quote request and its quote once completed.")
    status_parser.add_argument("request_id")
    latest_parser = subparsers.add_parser("latest", help="Show the latest quote of a currency pair.")
    latest_parser.add_argument("from_currency")
    latest_parser.add_argument("to_currency")
    args = parser.parse_args(argv)

    settings = config()
    configure_logging(settings.log_level)

    if args.command == "serve":
        serve(settings)
        return 0
    if args.command == "worker":
        run_worker(settings)
        return 0
    if args.command == "run-once":
        run_once(settings)
        return 0

    service = QuoteService(build_repository(settings), settings.supported_currencies)
    try:
        if args.command == "request":
            request = service.request_refresh(args.from_currency, args.to_currency)
            print(f"{request.id} {request.from_currency}/{request.to_currency} {request.status}")
        elif args.command == "status":
            request = service.store.get_by_id(args.request_id)
            print(f"{request.id} {request.from_currency}/{request.to_currency} {request.status}")
            quote = service.quote_for_request(args.request_id)
            print(f"  rate={quote.rate} updated_at={quote.updated_at.isoformat()}")
        else:
            quote = service.latest_quote(args.from_currency, args.to_currency)
            updated_at = quote.updated_at.isoformat()
            print(f"{quote.from_currency}/{quote.to_currency} rate={quote.rate} updated_at={updated_at}")
    except RequestNotCompletedError:
        return 0
    except (InvalidCurrencyPairError, NotFoundError) as exc:
        print(f"Error: {exc}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
