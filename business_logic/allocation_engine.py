"""
Hard-cost allocation, profit chain and plan totals.

Hard costs are entered once in the display currency and spread over the
rows by each row's share of the combined native net budget. The blended
margin and profit ratio are ratios of sums, never the mean of row ratios.
"""

import logging
from typing import List, Optional

from models.data_models import ComputedLine, ExchangeRateTable, TotalsRecord
from .currency_converter import convert

# Set up logging
logger = logging.getLogger(__name__)


def _safe_ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


class AllocationEngine:
    """
    Distributes hard costs, applies the trading deal and aggregates totals.
    """

    def __init__(self, display_currency: str, rates: Optional[ExchangeRateTable]):
        self.display_currency = display_currency
        self.rates = rates

    def allocate_hard_costs(self, lines: List[ComputedLine], hard_cost_total_plan: float) -> List[ComputedLine]:
        """
        Spread the plan-currency hard cost over rows by net budget share.

        Args:
            lines: Computed rows, updated in place
            hard_cost_total_plan: Hard cost total in the display currency

        Returns:
            The same rows with allocated hard costs set
        """
        total_net = sum(line.net_budget_native for line in lines)
        if not total_net:
            logger.info("Combined net budget is zero; no hard costs allocated")

        for line in lines:
            share = _safe_ratio(line.net_budget_native, total_net)
            line.allocated_hard_cost_plan = share * (hard_cost_total_plan or 0.0)
            line.allocated_hard_cost_native = convert(
                line.allocated_hard_cost_plan, self.display_currency, line.item.currency, self.rates
            )

        return lines

    def apply_profit_chain(self, line: ComputedLine, trading_deal_percentage: float) -> ComputedLine:
        """
        Compute margin before and profit after the trading deal for one row.

        Gross margin is net less media spend and allocated hard costs; gross
        profit is gross margin less the trading-deal share of it.
        """
        currency = line.item.currency

        gross_margin = line.net_budget_native - line.total_media_spend - line.allocated_hard_cost_native
        trading_deal_amount = gross_margin * trading_deal_percentage
        gross_profit = gross_margin - trading_deal_amount

        line.gross_margin_native = gross_margin
        line.trading_deal_amount_native = trading_deal_amount
        line.gross_profit_native = gross_profit
        line.gross_margin_plan = convert(gross_margin, currency, self.display_currency, self.rates)
        line.gross_profit_plan = convert(gross_profit, currency, self.display_currency, self.rates)
        line.margin_ratio = _safe_ratio(gross_margin, line.net_budget_native)
        line.profit_ratio = _safe_ratio(gross_profit, line.net_budget_native)
        return line

    def allocate(self, lines: List[ComputedLine], hard_cost_total_plan: float,
                 trading_deal_percentage: float) -> List[ComputedLine]:
        """Allocate hard costs, then run the profit chain on every row."""
        self.allocate_hard_costs(lines, hard_cost_total_plan)
        for line in lines:
            self.apply_profit_chain(line, trading_deal_percentage)
        return lines

    def aggregate_totals(self, lines: List[ComputedLine]) -> TotalsRecord:
        """
        Sum plan-currency columns and compute blended ratios.

        Buy-side spend is held in each row's native currency, so it is
        converted to the display currency before summing.
        """
        totals = TotalsRecord()

        for line in lines:
            currency = line.item.currency
            totals.delivery_share += line.item.delivery_share
            totals.impressions += line.impressions
            totals.gross_budget_plan += line.gross_budget_plan
            totals.net_budget_plan += line.net_budget_plan
            totals.publisher_spend_plan += convert(line.publisher_spend, currency, self.display_currency, self.rates)
            totals.dsp_fee_value_plan += convert(line.dsp_fee_value, currency, self.display_currency, self.rates)
            totals.total_media_spend_plan += convert(line.total_media_spend, currency, self.display_currency, self.rates)
            totals.allocated_hard_cost_plan += line.allocated_hard_cost_plan
            totals.gross_margin_plan += line.gross_margin_plan
            totals.gross_profit_plan += line.gross_profit_plan

        totals.blended_margin = _safe_ratio(totals.gross_margin_plan, totals.net_budget_plan)
        totals.blended_profit_ratio = _safe_ratio(totals.gross_profit_plan, totals.net_budget_plan)
        return totals
