#!/usr/bin/env python3
"""
Demonstration of the planner recalculation.

This script builds an in-memory planner with two rows in different
currencies, resolves them against a small reference table and prints the
computed rows and totals. Exchange rates come from a fixed table so the
demo runs offline.
"""

from business_logic.currency_converter import CurrencyConverter
from business_logic.planner_controller import PlannerController
from data.cache import ExpiringCache
from data.fx_source import StaticFxSource
from data.manager import ReferenceDataManager
from data.row_store import InMemoryPlannerStore
from models.data_models import DspFeeEntry, ReferenceRate, TradingDealEntry


class DemoReferenceManager(ReferenceDataManager):
    """Reference manager serving fixed tables instead of a workbook."""

    def load_channel_rates(self):
        return [
            ReferenceRate('UK', 'Display', 'PubA', 'MPU', 'GBP', 4.0),
            ReferenceRate('US', 'Video', 'PubB', 'Preroll', 'USD', 9.0),
        ]

    def load_dsp_fees(self):
        return [DspFeeEntry('DV360', 0.10)]

    def load_trading_deals(self):
        return [TradingDealEntry('Agency X', 0.10)]


def main():
    """Demonstrate a full planner recalculation."""

    print("=== Media Budget Planner Recalculation Demo ===\n")

    cache = ExpiringCache()
    fx_source = StaticFxSource({('EUR', 'GBP'): 0.85, ('EUR', 'USD'): 1.10, ('GBP', 'USD'): 1.27})
    store = InMemoryPlannerStore(plan_inputs={
        'total_budget': 100000,
        'sell_price_per_thousand': 10,
        'hard_cost_total_plan': 1000,
        'display_currency': 'GBP',
    })
    controller = PlannerController(
        store, DemoReferenceManager('demo.xlsx', cache=cache), CurrencyConverter(fx_source, cache=cache)
    )

    print("1. Selecting buying point...")
    controller.select_buying_point('Agency X')

    print("2. Adding line items...")
    controller.append_line('UK', 'Display', 'PubA', 'MPU', 0.6, 'DV360')
    success, result, message, notification = controller.append_line('US', 'Video', 'PubB', 'Preroll', 0.4)

    if not success:
        print(f"   ✗ {message}")
        return

    print(f"   ✓ {message}")
    print(f"   ✓ {result.rates_label}\n")

    print("3. Computed rows:")
    for line in result.lines:
        print(f"   • {' / '.join(line.item.identity())} [{line.item.currency}] "
              f"gross={line.gross_budget_native:,.2f} net={line.net_budget_native:,.2f} "
              f"impressions={line.impressions:,.0f} margin={line.margin_ratio:.1%}")

    totals = result.totals
    print(f"\n4. Totals ({result.display_currency}):")
    print(f"   ✓ Gross budget: {totals.gross_budget_plan:,.2f}")
    print(f"   ✓ Net budget: {totals.net_budget_plan:,.2f}")
    print(f"   ✓ Hard costs allocated: {totals.allocated_hard_cost_plan:,.2f}")
    print(f"   ✓ Gross margin: {totals.gross_margin_plan:,.2f} ({totals.blended_margin:.1%})")
    print(f"   ✓ Gross profit: {totals.gross_profit_plan:,.2f} ({totals.blended_profit_ratio:.1%})")

    print("\n=== Demo Complete ===")


if __name__ == "__main__":
    main()
