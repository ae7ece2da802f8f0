"""
Reference data lookups for planner rows: channel rates, DSP fees and trading deals.
"""

import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Tuple

from models.data_models import (
    DEFAULT_ROW_CURRENCY, DspFeeEntry, LineItem, ReferenceRate, TradingDealEntry
)

# Set up logging
logger = logging.getLogger(__name__)


def composite_key(country: str, channel: str, publisher: str, format_name: str) -> str:
    """Lowercased, trimmed identity joined into one lookup key."""
    return '||'.join(str(part or '').strip().lower() for part in (country, channel, publisher, format_name))


class ReferenceDataResolver:
    """
    Resolves reference values for planner rows.

    A miss is never an error: rows keep their stored currency and buy cost,
    unknown DSPs cost nothing and unknown buying points carry no discount.
    """

    def __init__(self, rates: Iterable[ReferenceRate] = (),
                 dsp_fees: Iterable[DspFeeEntry] = (),
                 trading_deals: Iterable[TradingDealEntry] = ()):
        self.rate_index = self._build_rate_index(rates)
        self.dsp_fees = list(dsp_fees)
        self.trading_deals = list(trading_deals)

    @staticmethod
    def _build_rate_index(rates: Iterable[ReferenceRate]) -> Dict[str, ReferenceRate]:
        index = {}
        for rate in rates:
            index[composite_key(rate.country, rate.channel, rate.publisher, rate.format_name)] = rate
        return index

    def resolve_row(self, identity: Tuple[str, str, str, str]) -> Optional[ReferenceRate]:
        return self.rate_index.get(composite_key(*identity))

    def apply_to_line(self, item: LineItem) -> LineItem:
        """
        Refresh a row's currency and buy cost from the rate card.

        Args:
            item: Row as stored

        Returns:
            Copy of the row with reference values applied where found
        """
        currency = (item.currency or '').strip().upper() or DEFAULT_ROW_CURRENCY
        buy_cost = item.buy_cost_per_thousand or 0.0

        match = self.resolve_row(item.identity())
        if match is not None:
            currency = match.currency or currency
            buy_cost = match.buy_cost_per_thousand or buy_cost
        else:
            logger.debug(f"No channel rate for {item.identity()}; keeping stored values")

        return replace(item, currency=currency, buy_cost_per_thousand=buy_cost)

    def resolve_dsp_fee(self, name: Optional[str]) -> float:
        for entry in self.dsp_fees:
            if entry.name == name:
                return entry.fee_rate
        return 0.0

    def resolve_trading_deal(self, buying_point: Optional[str]) -> float:
        """
        Percentage for a buying point; the first matching row wins.

        Returns:
            Fraction between 0 and 1, or 0 when the buying point is unknown
        """
        name = str(buying_point or '').strip()
        if not name:
            return 0.0

        for deal in self.trading_deals:
            if deal.buying_point == name:
                logger.info(f"Trading deal for {name} = {deal.percentage}")
                return deal.percentage

        logger.warning(f"No trading deal found for buying point '{name}'; using 0")
        return 0.0

    def dsp_names(self) -> List[str]:
        return [entry.name for entry in self.dsp_fees]

    def buying_points(self) -> List[str]:
        return [deal.buying_point for deal in self.trading_deals]

    def rate_options(self) -> List[ReferenceRate]:
        return list(self.rate_index.values())
