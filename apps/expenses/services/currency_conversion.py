"""
Currency conversion.

Expense amounts are converted to the group's settlement currency with cross
rates taken from a single USD-based rate table (Open Exchange Rates
``latest.json``)::

    rate(A -> B) = rate(USD -> B) / rate(USD -> A)

The table is held by a ``RateCache`` owned by the resolver, so tests can
inject a fake clock or a pre-filled cache. Conversion never fails the
caller: when the provider is unreachable or not configured, the resolver
serves a stale table or falls back to a rate of 1 and logs the condition.
"""

import logging
import threading
import time
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Callable, Mapping, Optional

import httpx
from django.conf import settings

logger = logging.getLogger(__name__)

ONE = Decimal('1')
CENT = Decimal('0.01')
RATE_PLACES = Decimal('0.00000001')

DEFAULT_RATES_URL = 'https://openexchangerates.org/api/latest.json'


def _usable_rate(rate: Optional[Decimal]) -> bool:
    return rate is not None and rate.is_finite() and rate > 0


class RateProviderError(Exception):
    """Raised when the provider answers with something that is not a rate table."""
    pass


class OpenExchangeRatesClient:
    """Client for the Open Exchange Rates ``latest.json`` endpoint."""

    def __init__(
        self,
        app_id: str,
        *,
        url: str = DEFAULT_RATES_URL,
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.app_id = app_id
        self.url = url
        self.client = httpx.Client(timeout=timeout, transport=transport)

    def close(self):
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def fetch_rates(self) -> dict[str, Decimal]:
        """
        Fetch the latest rate table.

        Returns:
            Mapping of currency code to rate relative to USD

        Raises:
            httpx.HTTPError: On transport failure or a non-2xx response
            RateProviderError: If the payload carries no usable rates
        """
        response = self.client.get(self.url, params={'app_id': self.app_id})
        response.raise_for_status()

        try:
            data = response.json()
        except ValueError:
            raise RateProviderError("Rate provider returned invalid JSON")

        raw_rates = data.get('rates') if isinstance(data, dict) else None
        if not raw_rates or not isinstance(raw_rates, dict):
            raise RateProviderError("Rate provider response has no rates")

        rates = {}
        for code, value in raw_rates.items():
            try:
                rate = Decimal(str(value))
            except (InvalidOperation, ValueError):
                logger.warning("Skipping malformed rate for %s: %r", code, value)
                continue
            if not rate.is_finite() or rate <= 0:
                logger.warning("Skipping non-positive or non-finite rate for %s: %r", code, value)
                continue
            rates[code.upper()] = rate
        return rates


class RateCache:
    """
    Rate table with its fetch time and a freshness window.

    The table is replaced wholesale on refresh. All reads and writes go
    through ``lock``.
    """

    def __init__(self, ttl: float = 3600, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._rates: dict[str, Decimal] = {}
        self._fetched_at: Optional[float] = None
        self.lock = threading.Lock()

    @property
    def rates(self) -> dict[str, Decimal]:
        return dict(self._rates)

    @property
    def fetched_at(self) -> Optional[float]:
        return self._fetched_at

    def has_rates(self) -> bool:
        return bool(self._rates)

    def is_fresh(self) -> bool:
        if not self._rates or self._fetched_at is None:
            return False
        return self._clock() - self._fetched_at < self.ttl

    def store(self, rates: Mapping[str, Decimal]) -> None:
        self._rates = dict(rates)
        self._fetched_at = self._clock()

    def get(self, fetch: Callable[[], Mapping[str, Decimal]]) -> dict[str, Decimal]:
        """Return the table, fetching a new one when it is missing or expired."""
        with self.lock:
            if self.is_fresh():
                return self.rates
            return self._refresh(fetch)

    def refresh(self, fetch: Callable[[], Mapping[str, Decimal]]) -> dict[str, Decimal]:
        """Fetch a new table regardless of freshness."""
        with self.lock:
            return self._refresh(fetch)

    def _refresh(self, fetch):
        logger.info("Fetching exchange rates")
        try:
            rates = fetch()
        except (httpx.HTTPError, RateProviderError) as e:
            if self._rates:
                logger.warning("Exchange rate fetch failed, serving stale rates: %s", e)
                return self.rates
            logger.error("Exchange rate fetch failed and no cached rates exist: %s", e)
            return {}

        self.store(rates)
        return self.rates


class ExchangeRateResolver:
    """
    Resolves conversion rates between supported currencies.

    Args:
        client: Rate provider; ``None`` means conversion is not configured
            and every cross-currency rate resolves to 1
        cache: Rate table cache, a fresh one-hour cache by default
    """

    def __init__(
        self,
        client: Optional[OpenExchangeRatesClient] = None,
        cache: Optional[RateCache] = None
    ):
        self.client = client
        self.cache = cache if cache is not None else RateCache()

    def resolve_rate(self, from_currency: str, to_currency: str) -> Decimal:
        """
        Rate converting one unit of ``from_currency`` into ``to_currency``.

        Always positive. Same-currency lookups return 1 without touching the
        provider or the cache.
        """
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()

        if from_currency == to_currency:
            return ONE

        if self.client is None:
            logger.warning(
                "OPEN_EXCHANGE_RATES_APP_ID not configured, using rate 1 for %s->%s",
                from_currency, to_currency
            )
            return ONE

        rates = self.cache.get(self.client.fetch_rates)
        if not rates:
            return ONE

        rate_to = rates.get(to_currency)
        rate_from = rates.get(from_currency)
        if not _usable_rate(rate_to) or not _usable_rate(rate_from):
            logger.warning(
                "Currency not found in rates: %s or %s, using rate 1",
                from_currency, to_currency
            )
            return ONE

        return rate_to / rate_from

    def convert(
        self,
        amount: Decimal,
        from_currency: str,
        to_currency: str
    ) -> tuple[Decimal, Optional[Decimal]]:
        """
        Convert ``amount`` into ``to_currency``.

        Returns:
            Tuple of (settlement amount rounded to cents, rate used). The rate
            is ``None`` when no conversion was needed.
        """
        if from_currency.upper() == to_currency.upper():
            return amount.quantize(CENT, rounding=ROUND_HALF_UP), None

        rate = self.resolve_rate(from_currency, to_currency).quantize(
            RATE_PLACES, rounding=ROUND_HALF_UP
        )
        settlement_amount = (amount * rate).quantize(CENT, rounding=ROUND_HALF_UP)
        return settlement_amount, rate

    def refresh(self) -> bool:
        """Force a refresh of the rate table. Returns False when unavailable."""
        if self.client is None:
            return False
        return bool(self.cache.refresh(self.client.fetch_rates))


_resolver: Optional[ExchangeRateResolver] = None
_resolver_lock = threading.Lock()


def build_rate_resolver() -> ExchangeRateResolver:
    """Build a resolver from settings."""
    app_id = settings.OPEN_EXCHANGE_RATES_APP_ID
    client = None
    if app_id:
        client = OpenExchangeRatesClient(
            app_id,
            url=settings.EXCHANGE_RATES_URL,
            timeout=settings.EXCHANGE_RATE_TIMEOUT,
        )
    return ExchangeRateResolver(
        client=client,
        cache=RateCache(ttl=settings.EXCHANGE_RATE_CACHE_TTL),
    )


def get_rate_resolver() -> ExchangeRateResolver:
    """Process-wide resolver, built on first use."""
    global _resolver
    with _resolver_lock:
        if _resolver is None:
            _resolver = build_rate_resolver()
        return _resolver


def reset_rate_resolver() -> None:
    """Drop the process-wide resolver so the next call rebuilds it from settings."""
    global _resolver
    with _resolver_lock:
        if _resolver is not None and _resolver.client is not None:
            _resolver.client.close()
        _resolver = None
