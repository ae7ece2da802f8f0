"""
Currency conversion between the supported planner currencies.

Rates come from three base quotes (EUR->GBP, EUR->USD, GBP->USD); the
opposite directions are always their exact inverses so that converting
there and back returns the original amount. One table is fetched per
calendar day and reused until the date changes.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from models.data_models import ExchangeRateTable, SUPPORTED_CURRENCIES
from data.cache import ExpiringCache
from data.fx_source import FxSource
from .error_handler import ErrorHandler, RetryConfig, error_handler as default_error_handler

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


BASE_PAIRS: Tuple[Tuple[str, str], ...] = (('EUR', 'GBP'), ('EUR', 'USD'), ('GBP', 'USD'))
FX_CACHE_KEY = 'exchange_rates'


def rate_key(from_currency: str, to_currency: str) -> str:
    return f"{from_currency}to{to_currency}"


def build_rate_table(base_rates: Dict[Tuple[str, str], float], date_key: str) -> ExchangeRateTable:
    """
    Build the six-direction rate table from the three base rates.

    A missing, zero or non-numeric base rate is replaced by 1 so the
    inverse stays defined.
    """
    rates = {}
    for from_currency, to_currency in BASE_PAIRS:
        try:
            rate = float(base_rates.get((from_currency, to_currency)) or 1.0)
        except (TypeError, ValueError):
            rate = 1.0
        if rate <= 0 or rate != rate:
            rate = 1.0

        rates[rate_key(from_currency, to_currency)] = rate
        rates[rate_key(to_currency, from_currency)] = 1 / rate

    return ExchangeRateTable(rates=rates, date_key=date_key)


def convert(amount: float, from_currency: str, to_currency: str,
            table: Optional[ExchangeRateTable]) -> float:
    """
    Convert ``amount`` between two currencies.

    Same-currency conversion returns the amount untouched. A missing rate
    (unknown currency or no table) also returns the amount untouched.
    """
    if from_currency == to_currency:
        return amount
    if table is None:
        return amount

    rate = table.rate(from_currency, to_currency)
    if not rate:
        return amount
    return amount * rate


def rates_label(table: ExchangeRateTable) -> str:
    """One-line summary of the base rates for the planner header."""
    return (
        f"Rates today: 1 EUR={table.rates[rate_key('EUR', 'GBP')]:.2f} GBP | "
        f"1 EUR={table.rates[rate_key('EUR', 'USD')]:.2f} USD | "
        f"1 GBP={table.rates[rate_key('GBP', 'USD')]:.2f} USD"
    )


def is_supported_currency(code: Optional[str]) -> bool:
    return bool(code) and str(code).strip().upper() in SUPPORTED_CURRENCIES


class CurrencyConverter:
    """
    Daily exchange-rate table with read-through caching.

    The cache entry expires at the next midnight and is additionally keyed
    by the date string, so a table from yesterday is never reused.
    """

    def __init__(self, fx_source: FxSource, cache: Optional[ExpiringCache] = None,
                 handler: Optional[ErrorHandler] = None,
                 retry_config: Optional[RetryConfig] = None):
        """
        Initialize the converter.

        Args:
            fx_source: Provider for the three base rates
            cache: Cache holding the daily snapshot
            handler: Error handler used for fetch retries
            retry_config: Retry settings for each base-rate fetch
        """
        self.fx_source = fx_source
        self.cache = cache or ExpiringCache()
        self.handler = handler or default_error_handler
        self.retry_config = retry_config or RetryConfig(max_attempts=2, base_delay=0.5)
        self.failed_pairs = []

    def get_rate_table(self, today: Optional[datetime] = None) -> ExchangeRateTable:
        """
        Return today's rate table, fetching it when missing or stale.

        Args:
            today: Date to fetch for; defaults to the cache clock

        Returns:
            ExchangeRateTable for the requested date
        """
        today = today or self.cache.now()
        date_key = today.date().isoformat()

        cached = self.cache.get(FX_CACHE_KEY)
        if cached and cached.get('date') == date_key and cached.get('rates'):
            return ExchangeRateTable(rates=dict(cached['rates']), date_key=date_key)

        logger.info(f"Fetching exchange rates for {date_key}")
        table = self._fetch_table(date_key)

        next_midnight = datetime.combine(today.date() + timedelta(days=1), datetime.min.time())
        self.cache.put(
            FX_CACHE_KEY,
            {'date': date_key, 'rates': table.rates},
            expires_at=next_midnight
        )
        return table

    def prewarm(self, today: Optional[datetime] = None) -> bool:
        """Refresh today's table ahead of use; never raises."""
        try:
            table = self.get_rate_table(today)
            logger.info(f"FX cache pre-warmed for {table.date_key}")
            return True
        except Exception as e:
            logger.error(f"prewarm FX cache error: {str(e)}")
            return False

    def convert(self, amount: float, from_currency: str, to_currency: str,
                today: Optional[datetime] = None) -> float:
        return convert(amount, from_currency, to_currency, self.get_rate_table(today))

    def _fetch_table(self, date_key: str) -> ExchangeRateTable:
        self.failed_pairs = []
        base_rates = {}
        for from_currency, to_currency in BASE_PAIRS:
            base_rates[(from_currency, to_currency)] = self._fetch_rate_silent(from_currency, to_currency)
        return build_rate_table(base_rates, date_key)

    def _fetch_rate_silent(self, from_currency: str, to_currency: str) -> float:
        context = f"FX fetch {from_currency}{to_currency}"
        success, rate, error_info = self.handler.retry_with_backoff(
            lambda: self.fx_source.fetch_rate(from_currency, to_currency),
            self.retry_config,
            context
        )

        if not success:
            self.handler.log_error(error_info, context)
            self.failed_pairs.append(rate_key(from_currency, to_currency))
            logger.warning(f"Using rate 1 for {from_currency}{to_currency}")
            return 1.0

        return rate or 1.0
