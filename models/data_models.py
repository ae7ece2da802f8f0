"""
Core data models for the media budget planner.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple


SUPPORTED_CURRENCIES = ('GBP', 'EUR', 'USD')
DEFAULT_ROW_CURRENCY = 'EUR'
DEFAULT_DISPLAY_CURRENCY = 'GBP'


@dataclass
class LineItem:
    """One planner row as entered by the planner."""
    country: str
    channel: str
    publisher: str
    format_name: str
    delivery_share: float
    currency: str = DEFAULT_ROW_CURRENCY
    buy_cost_per_thousand: float = 0.0
    dsp_fee_rate: float = 0.0

    def identity(self) -> Tuple[str, str, str, str]:
        """Reference lookup key for this row."""
        return (self.country, self.channel, self.publisher, self.format_name)


@dataclass
class PlanGlobals:
    """Plan-level inputs shared by every row."""
    total_budget: Optional[float]
    sell_price_per_thousand: Optional[float]
    display_currency: str = DEFAULT_DISPLAY_CURRENCY
    hard_cost_total_plan: float = 0.0
    trading_deal_percentage: float = 0.0
    buying_point: Optional[str] = None


@dataclass
class ReferenceRate:
    """Channel rate card entry for a country/channel/publisher/format."""
    country: str
    channel: str
    publisher: str
    format_name: str
    currency: str
    buy_cost_per_thousand: float


@dataclass
class DspFeeEntry:
    """DSP fee as a fraction of buy cost."""
    name: str
    fee_rate: float


@dataclass
class TradingDealEntry:
    """Negotiated trading deal for a buying point."""
    buying_point: str
    percentage: float


@dataclass
class ExchangeRateTable:
    """Daily FX snapshot keyed by direction, e.g. ``'EURtoGBP'``."""
    rates: Dict[str, float]
    date_key: str

    def rate(self, from_currency: str, to_currency: str) -> Optional[float]:
        return self.rates.get(f"{from_currency}to{to_currency}")


@dataclass
class ComputedLine:
    """A line item with every derived financial field."""
    item: LineItem
    gross_budget_native: float
    net_budget_native: float
    impressions: float
    publisher_spend: float
    dsp_fee_value: float
    total_media_spend: float
    gross_budget_plan: float
    net_budget_plan: float
    allocated_hard_cost_plan: float = 0.0
    allocated_hard_cost_native: float = 0.0
    gross_margin_native: float = 0.0
    gross_margin_plan: float = 0.0
    trading_deal_amount_native: float = 0.0
    gross_profit_native: float = 0.0
    gross_profit_plan: float = 0.0
    margin_ratio: float = 0.0
    profit_ratio: float = 0.0


@dataclass
class TotalsRecord:
    """Aggregate of all computed lines in the display currency."""
    delivery_share: float = 0.0
    impressions: float = 0.0
    gross_budget_plan: float = 0.0
    net_budget_plan: float = 0.0
    publisher_spend_plan: float = 0.0
    dsp_fee_value_plan: float = 0.0
    total_media_spend_plan: float = 0.0
    allocated_hard_cost_plan: float = 0.0
    gross_margin_plan: float = 0.0
    gross_profit_plan: float = 0.0
    blended_margin: float = 0.0
    blended_profit_ratio: float = 0.0


@dataclass
class RecalculationResult:
    """Outcome of a full planner recalculation."""
    lines: List[ComputedLine]
    totals: TotalsRecord
    exchange_rates: ExchangeRateTable
    display_currency: str
    trading_deal_percentage: float
    rates_label: str = ''
    warnings: List[str] = field(default_factory=list)
    calculated_at: datetime = field(default_factory=datetime.now)
