"""
Centralized access to the reference workbook with short-lived caching.
"""

import logging
import os
from dataclasses import asdict
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from models.data_models import DspFeeEntry, ReferenceRate, TradingDealEntry
from business_logic.reference_resolver import ReferenceDataResolver
from .cache import ExpiringCache
from .parsers import ChannelRateParser, DspFeeParser, TradingDealParser

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class ReferenceDataManager:
    """
    Loads channel rates, DSP fees and trading deals from the reference workbook.

    Each table is cached for a bounded time under a versioned key. Bumping
    the version invalidates every table at once, for use after a sheet
    layout change. When the workbook cannot be read, the last cached copy
    is reused if there is one, otherwise the table is empty.
    """

    def __init__(self, workbook_path: str, cache: Optional[ExpiringCache] = None,
                 cache_ttl_minutes: int = 10, cache_version: int = 1):
        """
        Initialize the ReferenceDataManager.

        Args:
            workbook_path: Path to the reference Excel workbook
            cache: Cache shared with other components
            cache_ttl_minutes: Time-to-live for cached tables in minutes
            cache_version: Version suffix for cache keys
        """
        self.workbook_path = workbook_path
        self.cache = cache or ExpiringCache()
        self.cache_ttl = timedelta(minutes=cache_ttl_minutes)
        self.cache_version = cache_version

        # Last good copies, used when a refresh fails
        self._fallback: Dict[str, List[Dict[str, Any]]] = {}

    def cache_key(self, table: str) -> str:
        return f"{table}_v{self.cache_version}"

    def bump_cache_version(self) -> int:
        """Invalidate every cached table by moving to a new key version."""
        for table in ('rates', 'dsps', 'trading_deals'):
            self.cache.invalidate(self.cache_key(table))
        self.cache_version += 1
        self._fallback.clear()
        logger.info(f"Reference cache version bumped to v{self.cache_version}")
        return self.cache_version

    def _load_table(self, table: str, parse: Callable[[], List[Any]]) -> List[Dict[str, Any]]:
        key = self.cache_key(table)
        cached = self.cache.get(key)
        if cached is not None:
            logger.info(f"Using cached {table} table")
            return cached

        try:
            if not os.path.exists(self.workbook_path):
                raise FileNotFoundError(f"Reference workbook not found: {self.workbook_path}")
            rows = [asdict(entry) for entry in parse()]
        except Exception as e:
            logger.warning(f"Could not load {table} table: {str(e)}")
            return self._fallback.get(table, [])

        self.cache.put(key, rows, ttl=self.cache_ttl)
        self._fallback[table] = rows
        logger.info(f"{table} table loaded and cached ({len(rows)} rows)")
        return rows

    def load_channel_rates(self) -> List[ReferenceRate]:
        rows = self._load_table('rates', lambda: ChannelRateParser(self.workbook_path).parse())
        return [ReferenceRate(**row) for row in rows]

    def load_dsp_fees(self) -> List[DspFeeEntry]:
        rows = self._load_table('dsps', lambda: DspFeeParser(self.workbook_path).parse())
        return [DspFeeEntry(**row) for row in rows]

    def load_trading_deals(self) -> List[TradingDealEntry]:
        rows = self._load_table('trading_deals', lambda: TradingDealParser(self.workbook_path).parse())
        return [TradingDealEntry(**row) for row in rows]

    def build_resolver(self) -> ReferenceDataResolver:
        """Resolver over the current cached tables."""
        return ReferenceDataResolver(
            rates=self.load_channel_rates(),
            dsp_fees=self.load_dsp_fees(),
            trading_deals=self.load_trading_deals()
        )

    def get_dsp_names(self) -> List[str]:
        return [entry.name for entry in self.load_dsp_fees()]

    def get_buying_points(self) -> List[str]:
        return [deal.buying_point for deal in self.load_trading_deals()]

    def get_rate_options(self) -> Dict[str, List[str]]:
        """
        Distinct values for each identity column, for dropdowns.

        Returns:
            Dictionary of sorted country, channel, publisher and format lists
        """
        rates = self.load_channel_rates()
        return {
            'countries': sorted({r.country for r in rates}),
            'channels': sorted({r.channel for r in rates}),
            'publishers': sorted({r.publisher for r in rates}),
            'formats': sorted({r.format_name for r in rates})
        }

    def get_cache_stats(self) -> Dict[str, Any]:
        """
        Get statistics about cached tables.

        Returns:
            Dictionary containing cache statistics
        """
        stats = self.cache.get_stats()
        return {
            'cache_version': self.cache_version,
            'ttl_minutes': self.cache_ttl.total_seconds() / 60,
            'tables': {
                table: stats.get(self.cache_key(table))
                for table in ('rates', 'dsps', 'trading_deals')
            }
        }
