from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

import requests
from requests import Response
from requests.adapters import HTTPAdapter
from urllib3.util import Retry

from config import AppSettings
from domain.quotes import USD, RateSourceUnavailableError
from domain.rates import normalize_usd_rates

logger = logging.getLogger(__name__)

USER_AGENT = "Currency-Quote-Service/1.0"


class UsdRateSource(Protocol):
    def fetch_usd_rates(self, currencies: Iterable[str]) -> dict[str, Decimal]: ...


class FxRatesAPIError(RateSourceUnavailableError):
    pass


@dataclass(frozen=True)
class LatestRates:
    date: str | None
    base: str
    rates: dict[str, Decimal]


# API docs: https://fxratesapi.com/docs
class _FxRatesApiClient:
    def __init__(
        self,
        base_url: str = "https://api.fxratesapi.com",
        api_key: str = "",
        timeout: float = 10.0,
        session: requests.Session | None = None,
        retry_attempts: int = 2,
        retry_backoff_seconds: float = 0.5,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._session = session or requests.Session()

        retries = Retry(
            total=retry_attempts,
            backoff_factor=retry_backoff_seconds,
            status_forcelist=[429],
            allowed_methods=frozenset({"GET"}),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retries)
        self._session.mount("https://", adapter)
        self._session.mount("http://", adapter)

    def get_latest_rates(self, *, symbols: Iterable[str]) -> LatestRates:
        params = {"base": USD, "symbols": ",".join(symbols)}
        payload = self._request("GET", "/latest", params=params)

        if payload.get("success") is not True:
            message = payload.get("description") or payload.get("message") or "FX Rates API returned success=false"
            raise FxRatesAPIError(message, payload=payload)

        rates_raw = payload.get("rates")
        if not isinstance(rates_raw, dict):
            raise FxRatesAPIError("FX Rates API payload missing rates", payload=payload)

        parsed_rates: dict[str, Decimal] = {}
        for code_raw, rate in rates_raw.items():
            value = self._to_decimal(rate)
            if value is None or value <= 0:
                raise FxRatesAPIError(f"FX Rates API returned invalid rate for {code_raw}: {rate!r}", payload=payload)
            parsed_rates[str(code_raw).upper()] = value

        return LatestRates(
            date=payload.get("date"),
            base=str(payload.get("base") or USD).upper(),
            rates=parsed_rates,
        )

    def _request(self, method: str, path: str, *, params: dict[str, str]) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        headers = {"User-Agent": USER_AGENT}
        if self.api_key:
            headers["apikey"] = self.api_key
        try:
            response = self._session.request(method, url, params=params, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as exc:
            resp = exc.response
            status_code = getattr(resp, "status_code", None)
            message, payload = self._extract_error(resp)
            raise FxRatesAPIError(message, status_code=status_code, payload=payload) from exc
        except requests.RequestException as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            raise FxRatesAPIError(f"FX Rates API request failed: {exc}", status_code=status_code) from exc

        try:
            payload_raw = response.json()
        except ValueError as exc:
            raise FxRatesAPIError("FX Rates API returned invalid JSON", payload=response.text) from exc

        if not isinstance(payload_raw, dict):
            raise FxRatesAPIError("FX Rates API returned unexpected payload type", payload=payload_raw)

        return payload_raw

    @staticmethod
    def _to_decimal(value: Any) -> Decimal | None:
        if isinstance(value, bool):
            return None
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            return None
        return result if result.is_finite() else None

    @staticmethod
    def _extract_error(response: Response | None) -> tuple[str, Any | None]:
        message = "FX Rates API request failed"
        payload: Any | None = None
        if response is None:
            return message, payload

        message = f"FX Rates API returned status {response.status_code}"
        try:
            payload = response.json()
            if isinstance(payload, dict):
                message = payload.get("description") or payload.get("message") or message
        except ValueError:
            payload = response.text
        return message, payload


class FxRatesApiSource(UsdRateSource):
    """USD-relative rates for a whole currency set in a single request."""

    def __init__(self, *, client: _FxRatesApiClient | None = None) -> None:
        self.client = client or _FxRatesApiClient()

    def fetch_usd_rates(self, currencies: Iterable[str]) -> dict[str, Decimal]:
        symbols = sorted({code.upper() for code in currencies} - {USD})
        if not symbols:
            return {USD: Decimal("1")}

        latest = self.client.get_latest_rates(symbols=symbols)
        if latest.base != USD:
            raise FxRatesAPIError(f"FX Rates API answered with base {latest.base}, expected {USD}")

        logger.info("Fetched %d USD rates for %s", len(latest.rates), ",".join(symbols))
        return normalize_usd_rates(latest.rates)


def build_rate_source(settings: AppSettings) -> FxRatesApiSource:
    client = _FxRatesApiClient(
        base_url=settings.external_api_url,
        api_key=settings.external_api_key,
        timeout=settings.external_api_timeout,
        retry_attempts=settings.external_api_retries,
    )
    return FxRatesApiSource(client=client)


__all__ = ["FxRatesAPIError", "FxRatesApiSource", "LatestRates", "UsdRateSource", "build_rate_source"]
