from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from domain.quotes import (
    CurrencyCode,
    QuoteRequest,
    QuoteStatus,
    RateSourceUnavailableError,
    StoreFailureError,
    UnknownCurrencyError,
)
from domain.rates import RateTable, cross_rate, normalize_usd_rates

from .quote_store import Pair, QuoteStore
from .rate_sources import UsdRateSource

logger = logging.getLogger(__name__)


@dataclass
class PairGroup:
    """Pending requests sharing one pair; resolved as a single unit."""

    pair: Pair
    requests: list[QuoteRequest] = field(default_factory=list)

    @property
    def from_currency(self) -> CurrencyCode:
        return self.pair[0]

    @property
    def to_currency(self) -> CurrencyCode:
        return self.pair[1]


@dataclass
class CycleResult:
    discovered: int = 0
    groups: int = 0
    completed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def collect_currencies(requests: Iterable[QuoteRequest]) -> set[str]:
    currencies: set[str] = set()
    for request in requests:
        currencies.add(request.from_currency)
        currencies.add(request.to_currency)
    return currencies


def group_by_pair(requests: Iterable[QuoteRequest]) -> list[PairGroup]:
    """Partition requests by pair; groups keep the order their first request was seen."""
    groups: list[PairGroup] = []
    index: dict[Pair, int] = {}
    for request in requests:
        position = index.get(request.pair)
        if position is None:
            index[request.pair] = len(groups)
            groups.append(PairGroup(pair=request.pair))
            position = index[request.pair]
        groups[position].requests.append(request)
    return groups


class QuoteProcessor:
    """Runs one discover, fetch and resolve cycle over pending quote requests.

    One rate-source call per cycle. If that call fails every discovered request
    fails; otherwise each pair group succeeds or fails on its own.
    """

    def __init__(self, store: QuoteStore, rate_source: UsdRateSource) -> None:
        self.store = store
        self.rate_source = rate_source

    def run_cycle(self) -> CycleResult:
        result = CycleResult()
        pending = self.store.list_pending()
        if not pending:
            logger.debug("No pending quote requests found")
            return result

        result.discovered = len(pending)
        currencies = collect_currencies(pending)
        logger.info("Found %d pending quote requests over %d currencies", len(pending), len(currencies))

        try:
            table = normalize_usd_rates(self.rate_source.fetch_usd_rates(currencies))
        except RateSourceUnavailableError as exc:
            logger.error("Failed to fetch USD rates, failing %d requests: %s", len(pending), exc)
            self._mark(pending, QuoteStatus.FAILED, result)
            return result

        groups = group_by_pair(pending)
        result.groups = len(groups)
        for group in groups:
            self._resolve_group(group, table, result)

        logger.info(
            "Cycle finished: %d groups, %d completed, %d failed",
            result.groups,
            len(result.completed),
            len(result.failed),
        )
        return result

    def _resolve_group(self, group: PairGroup, table: RateTable, result: CycleResult) -> None:
        pair_label = f"{group.from_currency}/{group.to_currency}"
        self._mark(group.requests, QuoteStatus.PROCESSING, result)

        try:
            rate = cross_rate(group.from_currency, group.to_currency, table)
            self.store.upsert_quote(group.from_currency, group.to_currency, rate)
        except UnknownCurrencyError as exc:
            logger.error("Failed to calculate exchange rate for %s: %s", pair_label, exc)
            self._mark(group.requests, QuoteStatus.FAILED, result)
            return
        except Exception:  # noqa: BLE001 - a group already in processing must still end terminal
            logger.exception("Failed to resolve quote for %s", pair_label)
            self._mark(group.requests, QuoteStatus.FAILED, result)
            return

        self._mark(group.requests, QuoteStatus.COMPLETED, result)
        logger.info("Resolved %s at %s for %d requests", pair_label, rate, len(group.requests))

    def _mark(self, requests: Sequence[QuoteRequest], status: QuoteStatus, result: CycleResult) -> None:
        for request in requests:
            try:
                self.store.transition_status(request.id, status)
            except (StoreFailureError, LookupError):
                logger.exception("Failed to update request %s status to %s", request.id, status)
                continue
            if status == QuoteStatus.COMPLETED:
                result.completed.append(request.id)
            elif status == QuoteStatus.FAILED:
                result.failed.append(request.id)


__all__ = ["CycleResult", "PairGroup", "QuoteProcessor", "collect_currencies", "group_by_pair"]
