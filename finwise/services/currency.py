"""Currency metadata, exchange-rate cache, conversion and formatting.

Rates are multipliers relative to USD (``rates["USD"] == 1.0``). Conversion
between two non-base currencies goes through the base unit:
``amount / rate(from) * rate(to)``. Nothing is rounded until display.

The cache is an immutable :class:`ExchangeRateTable` owned by a
:class:`CurrencyService`. Whether to refresh is decided by the pure
:func:`resolve_rate_table`; a failed refresh keeps serving the stale table
and holds off further attempts until the retry time passes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Callable, Iterable, Mapping, Protocol, Sequence

import httpx
import structlog
from babel.core import UnknownLocaleError
from babel.numbers import format_currency as babel_format_currency
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from finwise.config import get_settings

logger = structlog.get_logger()

BASE_CURRENCY = "USD"


@dataclass(frozen=True)
class CurrencyInfo:
    symbol: str
    name: str


# Declaration order is the display order.
SUPPORTED_CURRENCIES: Mapping[str, CurrencyInfo] = MappingProxyType({
    "USD": CurrencyInfo("$", "US Dollar"),
    "EUR": CurrencyInfo("€", "Euro"),
    "GBP": CurrencyInfo("£", "British Pound"),
    "JPY": CurrencyInfo("¥", "Japanese Yen"),
    "CAD": CurrencyInfo("C$", "Canadian Dollar"),
    "AUD": CurrencyInfo("A$", "Australian Dollar"),
    "CHF": CurrencyInfo("CHF", "Swiss Franc"),
    "CNY": CurrencyInfo("¥", "Chinese Yuan"),
    "INR": CurrencyInfo("₹", "Indian Rupee"),
    "BRL": CurrencyInfo("R$", "Brazilian Real"),
    "PKR": CurrencyInfo("₨", "Pakistani Rupee"),
})

DEFAULT_RATES: Mapping[str, float] = MappingProxyType({
    "USD": 1.0,
    "EUR": 0.85,
    "GBP": 0.73,
    "JPY": 110.0,
    "CAD": 1.25,
    "AUD": 1.35,
    "CHF": 0.92,
    "CNY": 6.45,
    "INR": 74.5,
    "BRL": 5.2,
    "PKR": 278.5,
})


class InvalidCurrencyError(ValueError):
    """Raised for a currency code outside the supported set."""

    def __init__(self, code: str) -> None:
        super().__init__(f"Unsupported currency: {code}")
        self.code = code


class RateFetchError(RuntimeError):
    """Raised when the rate source cannot produce a usable table."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============ Metadata ============


def is_valid_currency(code: object) -> bool:
    """Return True if ``code`` is one of the supported currency codes."""
    return isinstance(code, str) and code in SUPPORTED_CURRENCIES


def _info(code: str) -> CurrencyInfo:
    if not is_valid_currency(code):
        raise InvalidCurrencyError(code)
    return SUPPORTED_CURRENCIES[code]


def get_currency_symbol(code: str) -> str:
    return _info(code).symbol


def get_currency_name(code: str) -> str:
    return _info(code).name


def get_currency_options() -> list[dict[str, str]]:
    """Supported currencies as ``{code, label}`` in declaration order."""
    return [
        {"code": code, "label": f"{code} - {info.name}"}
        for code, info in SUPPORTED_CURRENCIES.items()
    ]


# ============ Formatting ============


def format_currency_simple(amount: float, currency: str) -> str:
    """Symbol followed by the amount with two decimals."""
    return f"{_info(currency).symbol}{amount:.2f}"


def format_currency(amount: float, currency: str, locale: str = "en-US") -> str:
    """Locale-aware rendering, falling back to :func:`format_currency_simple`.

    Accepts BCP 47 style locales (``en-US``) as well as ``en_US``.
    """
    _info(currency)
    try:
        return babel_format_currency(
            amount,
            currency,
            locale=locale.replace("-", "_"),
            currency_digits=False,
        )
    except (UnknownLocaleError, ValueError, TypeError, AttributeError) as e:
        logger.warning(
            "Currency formatting failed, using fallback",
            currency=currency,
            locale=locale,
            error=str(e),
        )
        return format_currency_simple(amount, currency)


# ============ Rate table ============


@dataclass(frozen=True)
class ExchangeRateTable:
    """Immutable snapshot of base-relative rates.

    ``fetched_at`` is None for the seed table, which is therefore always
    eligible for refresh.
    """

    rates: Mapping[str, float]
    fetched_at: datetime | None = None
    base: str = field(default=BASE_CURRENCY)

    def __post_init__(self) -> None:
        rates = dict(self.rates)
        rates[self.base] = 1.0
        object.__setattr__(self, "rates", MappingProxyType(rates))

    @classmethod
    def seed(cls) -> ExchangeRateTable:
        return cls(rates=DEFAULT_RATES)

    def rate(self, code: str) -> float:
        """Rate for ``code``; unknown or missing codes raise."""
        if not is_valid_currency(code):
            raise InvalidCurrencyError(code)
        value = self.rates.get(code)
        if not value:
            raise InvalidCurrencyError(code)
        return value

    def is_fresh(self, now: datetime, ttl: timedelta) -> bool:
        return self.fetched_at is not None and now - self.fetched_at < ttl

    def merged_with(
        self, fetched: Mapping[str, float], fetched_at: datetime
    ) -> ExchangeRateTable:
        """New table from provider rates.

        Unsupported codes are dropped; supported codes the provider omitted
        (or returned as non-positive) keep their previous value.
        """
        rates = dict(self.rates)
        for code, value in fetched.items():
            if code in SUPPORTED_CURRENCIES and isinstance(value, (int, float)) and value > 0:
                rates[code] = float(value)
        return ExchangeRateTable(rates=rates, fetched_at=fetched_at, base=self.base)


def resolve_rate_table(
    table: ExchangeRateTable,
    now: datetime,
    ttl: timedelta,
    retry_after: datetime | None = None,
) -> tuple[ExchangeRateTable, bool]:
    """Return the table to serve and whether a refresh should be attempted.

    ``retry_after`` is set after a failed refresh; until then the stale
    table is served without contacting the rate source.
    """
    if table.is_fresh(now, ttl):
        return table, False
    if retry_after is not None and now < retry_after:
        return table, False
    return table, True


def convert_with_table(
    table: ExchangeRateTable, amount: float, from_currency: str, to_currency: str
) -> float:
    """Two-hop conversion through the base currency."""
    if from_currency == to_currency:
        if not is_valid_currency(from_currency):
            raise InvalidCurrencyError(from_currency)
        return amount
    from_rate = table.rate(from_currency)
    to_rate = table.rate(to_currency)
    return amount / from_rate * to_rate


def exchange_rate_with_table(
    table: ExchangeRateTable, from_currency: str, to_currency: str
) -> float:
    """Multiplicative factor converting ``from_currency`` into ``to_currency``."""
    if from_currency == to_currency:
        if not is_valid_currency(from_currency):
            raise InvalidCurrencyError(from_currency)
        return 1.0
    return (1 / table.rate(from_currency)) * table.rate(to_currency)


def rates_relative_to_table(
    table: ExchangeRateTable, base: str, targets: Sequence[str] | None = None
) -> dict[str, float]:
    """Rates re-derived for ``base``; unknown ``targets`` are skipped."""
    base_rate = table.rate(base)
    codes = list(targets) if targets else list(table.rates)

    rates: dict[str, float] = {}
    for code in codes:
        value = table.rates.get(code)
        if not value:
            continue
        rates[code] = value / base_rate
    return rates


# ============ Rate providers ============


class RateProvider(Protocol):
    async def fetch_rates(self) -> Mapping[str, float]:
        """Return base-relative rates."""


class StaticRateProvider:
    """Serves the built-in rates; used when no rate source is configured."""

    def __init__(self, rates: Mapping[str, float] = DEFAULT_RATES) -> None:
        self._rates = dict(rates)

    async def fetch_rates(self) -> Mapping[str, float]:
        return dict(self._rates)


class HttpRateProvider:
    """Fetches ``{"rates": {...}}`` JSON from an HTTP rate source."""

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._client_factory = client_factory or (
            lambda: httpx.AsyncClient(timeout=self._timeout)
        )

    @retry(
        retry=retry_if_exception_type(httpx.HTTPError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    async def fetch_rates(self) -> Mapping[str, float]:
        async with self._client_factory() as client:
            response = await client.get(self._url)
            response.raise_for_status()
            payload = response.json()

        rates = payload.get("rates") if isinstance(payload, dict) else None
        if not isinstance(rates, dict) or not rates:
            raise RateFetchError("Rate source returned no rates")
        return rates


# ============ Service ============


class CurrencyService:
    """Owns the rate-table cache and exposes conversion helpers."""

    def __init__(
        self,
        provider: RateProvider,
        ttl: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = _utcnow,
        table: ExchangeRateTable | None = None,
        retry_delay: timedelta = timedelta(minutes=1),
    ) -> None:
        self._provider = provider
        self._ttl = ttl
        self._clock = clock
        self._table = table or ExchangeRateTable.seed()
        self._retry_delay = retry_delay
        self._retry_after: datetime | None = None

    @property
    def table(self) -> ExchangeRateTable:
        """Current snapshot without triggering a refresh."""
        return self._table

    async def get_rates(self) -> ExchangeRateTable:
        """Cached table, refreshed when older than the TTL.

        A failed refresh returns the stale table and is not retried for
        ``retry_delay``.
        """
        now = self._clock()
        table, needs_refresh = resolve_rate_table(
            self._table, now, self._ttl, self._retry_after
        )
        if not needs_refresh:
            return table

        try:
            fetched = await self._provider.fetch_rates()
        except Exception as e:
            self._retry_after = now + self._retry_delay
            logger.warning(
                "Exchange rate refresh failed, serving cached rates",
                error=str(e),
                fetched_at=table.fetched_at.isoformat() if table.fetched_at else None,
                retry_after=self._retry_after.isoformat(),
            )
            return table

        refreshed = table.merged_with(fetched, fetched_at=now)
        self._table = refreshed
        self._retry_after = None
        logger.info("Exchange rates refreshed", currencies=len(refreshed.rates))
        return refreshed

    async def convert(self, amount: float, from_currency: str, to_currency: str) -> float:
        if from_currency == to_currency:
            if not is_valid_currency(from_currency):
                raise InvalidCurrencyError(from_currency)
            return amount
        table = await self.get_rates()
        return convert_with_table(table, amount, from_currency, to_currency)

    async def convert_many(
        self, amounts: Iterable[tuple[float, str]], to_currency: str
    ) -> list[float]:
        """Convert ``(amount, from_currency)`` pairs against one snapshot."""
        table = await self.get_rates()
        return [
            convert_with_table(table, amount, from_currency, to_currency)
            for amount, from_currency in amounts
        ]

    async def get_exchange_rate(self, from_currency: str, to_currency: str) -> float:
        if from_currency == to_currency:
            if not is_valid_currency(from_currency):
                raise InvalidCurrencyError(from_currency)
            return 1.0
        table = await self.get_rates()
        return exchange_rate_with_table(table, from_currency, to_currency)

    async def rates_relative_to(
        self, base: str, targets: Sequence[str] | None = None
    ) -> dict[str, float]:
        table = await self.get_rates()
        return rates_relative_to_table(table, base, targets)


def build_currency_service() -> CurrencyService:
    """Create a service configured from settings."""
    settings = get_settings()
    provider: RateProvider
    if settings.exchange_rate_api_url:
        provider = HttpRateProvider(
            settings.exchange_rate_api_url, timeout=settings.exchange_rate_timeout
        )
    else:
        provider = StaticRateProvider()
    return CurrencyService(
        provider,
        ttl=timedelta(seconds=settings.exchange_rate_ttl_seconds),
        retry_delay=timedelta(seconds=settings.exchange_rate_retry_seconds),
    )


# Singleton instance
_currency_service: CurrencyService | None = None


def get_currency_service() -> CurrencyService:
    """Get the currency service singleton."""
    global _currency_service
    if _currency_service is None:
        _currency_service = build_currency_service()
    return _currency_service
