from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from db import models
from domain.quotes import (
    Clock,
    CurrencyCode,
    NotFoundError,
    Quote,
    QuoteId,
    QuoteRequest,
    QuoteRequestId,
    QuoteStatus,
    StoreFailureError,
    new_id,
    utc_now,
)

logger = logging.getLogger(__name__)


class QuoteRepository:
    """SQL-backed quote store.

    Every call opens its own session, so one repository can be shared by the
    API threads and the scheduler thread. Pending-pair uniqueness is enforced
    by a partial unique index; the in-process lock only avoids hitting it.
    """

    def __init__(self, session_factory: sessionmaker[Session], *, clock: Clock = utc_now) -> None:
        self._session_factory = session_factory
        self._clock = clock
        self._create_lock = threading.Lock()

    def create_or_get_pending(self, from_currency: str, to_currency: str) -> QuoteRequest:
        with self._create_lock:
            try:
                with self._session_factory() as session:
                    existing = self._find_pending(session, from_currency, to_currency)
                    if existing is not None:
                        self._touch(session, existing)
                        return self._request_to_domain(existing)

                    now = self._clock()
                    orm_request = models.QuoteRequestOrm(
                        id=new_id(),
                        from_currency=from_currency,
                        to_currency=to_currency,
                        status=QuoteStatus.PENDING.value,
                        created_at=now,
                        updated_at=now,
                    )
                    session.add(orm_request)
                    try:
                        session.commit()
                    except IntegrityError:
                        # Another process inserted the pending row first.
                        session.rollback()
                        existing = self._find_pending(session, from_currency, to_currency)
                        if existing is None:
                            raise
                        logger.info("Reusing pending request %s for %s/%s", existing.id, from_currency, to_currency)
                        return self._request_to_domain(existing)
                    return self._request_to_domain(orm_request)
            except SQLAlchemyError as exc:
                raise StoreFailureError(f"Failed to create quote request for {from_currency}/{to_currency}") from exc

    def transition_status(self, request_id: str, status: QuoteStatus) -> None:
        try:
            with self._session_factory() as session:
                result = session.execute(
                    update(models.QuoteRequestOrm)
                    .where(models.QuoteRequestOrm.id == request_id)
                    .values(status=status.value, updated_at=self._clock())
                )
                if result.rowcount == 0:
                    session.rollback()
                    raise NotFoundError(f"Quote request {request_id} not found")
                session.commit()
        except SQLAlchemyError as exc:
            raise StoreFailureError(f"Failed to update quote request {request_id} to {status}") from exc

    def list_pending(self) -> list[QuoteRequest]:
        try:
            with self._session_factory() as session:
                orm_requests = session.scalars(
                    select(models.QuoteRequestOrm)
                    .where(models.QuoteRequestOrm.status == QuoteStatus.PENDING.value)
                    .order_by(models.QuoteRequestOrm.created_at.asc())
                ).all()
                return [self._request_to_domain(orm_request) for orm_request in orm_requests]
        except SQLAlchemyError as exc:
            raise StoreFailureError("Failed to list pending quote requests") from exc

    def get_by_id(self, request_id: str) -> QuoteRequest:
        try:
            with self._session_factory() as session:
                orm_request = session.get(models.QuoteRequestOrm, request_id)
                if orm_request is None:
                    raise NotFoundError(f"Quote request {request_id} not found")
                return self._request_to_domain(orm_request)
        except SQLAlchemyError as exc:
            raise StoreFailureError(f"Failed to get quote request {request_id}") from exc

    def get_quote(self, from_currency: str, to_currency: str) -> Quote:
        try:
            with self._session_factory() as session:
                orm_quote = self._find_quote(session, from_currency, to_currency)
                if orm_quote is None:
                    raise NotFoundError(f"Quote not found for currency pair {from_currency}/{to_currency}")
                return self._quote_to_domain(orm_quote)
        except SQLAlchemyError as exc:
            raise StoreFailureError(f"Failed to get quote for {from_currency}/{to_currency}") from exc

    def upsert_quote(self, from_currency: str, to_currency: str, rate: Decimal) -> Quote:
        try:
            with self._session_factory() as session:
                now = self._clock()
                orm_quote = self._find_quote(session, from_currency, to_currency)
                if orm_quote is None:
                    orm_quote = models.QuoteOrm(
                        id=new_id(),
                        from_currency=from_currency,
                        to_currency=to_currency,
                        rate=rate,
                        created_at=now,
                        updated_at=now,
                    )
                    session.add(orm_quote)
                    try:
                        session.commit()
                        return self._quote_to_domain(orm_quote)
                    except IntegrityError:
                        # Another writer inserted the pair first; update its row instead.
                        session.rollback()
                        orm_quote = self._find_quote(session, from_currency, to_currency)
                        if orm_quote is None:
                            raise
                        logger.info(
                            "Quote for %s/%s was inserted concurrently, updating it", from_currency, to_currency
                        )
                orm_quote.rate = rate
                orm_quote.updated_at = now
                session.commit()
                return self._quote_to_domain(orm_quote)
        except SQLAlchemyError as exc:
            raise StoreFailureError(f"Failed to upsert quote for {from_currency}/{to_currency}") from exc

    def _find_pending(self, session: Session, from_currency: str, to_currency: str) -> models.QuoteRequestOrm | None:
        return session.scalars(
            select(models.QuoteRequestOrm).where(
                models.QuoteRequestOrm.from_currency == from_currency,
                models.QuoteRequestOrm.to_currency == to_currency,
                models.QuoteRequestOrm.status == QuoteStatus.PENDING.value,
            )
        ).one_or_none()

    def _touch(self, session: Session, orm_request: models.QuoteRequestOrm) -> None:
        try:
            orm_request.updated_at = self._clock()
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.warning("Failed to refresh timestamp of pending request %s", orm_request.id, exc_info=True)

    @staticmethod
    def _find_quote(session: Session, from_currency: str, to_currency: str) -> models.QuoteOrm | None:
        return session.scalars(
            select(models.QuoteOrm).where(
                models.QuoteOrm.from_currency == from_currency,
                models.QuoteOrm.to_currency == to_currency,
            )
        ).one_or_none()

    @staticmethod
    def _request_to_domain(orm_request: models.QuoteRequestOrm) -> QuoteRequest:
        return QuoteRequest(
            id=QuoteRequestId(orm_request.id),
            from_currency=CurrencyCode(orm_request.from_currency),
            to_currency=CurrencyCode(orm_request.to_currency),
            status=QuoteStatus(orm_request.status),
            created_at=_as_utc(orm_request.created_at),
            updated_at=_as_utc(orm_request.updated_at),
        )

    @staticmethod
    def _quote_to_domain(orm_quote: models.QuoteOrm) -> Quote:
        return Quote(
            id=QuoteId(orm_quote.id),
            from_currency=CurrencyCode(orm_quote.from_currency),
            to_currency=CurrencyCode(orm_quote.to_currency),
            rate=orm_quote.rate,
            created_at=_as_utc(orm_quote.created_at),
            updated_at=_as_utc(orm_quote.updated_at),
        )


def _as_utc(timestamp: datetime) -> datetime:
    # SQLite drops tzinfo on the way back.
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp
