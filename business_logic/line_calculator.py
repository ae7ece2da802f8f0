"""
Per-row financial calculation for planner line items.
"""

from typing import Optional

from models.data_models import ComputedLine, ExchangeRateTable, LineItem, PlanGlobals
from .currency_converter import convert
from .error_handler import PlannerInputError


# Net budget is gross less a fixed 15% deduction
NET_BUDGET_FACTOR = 0.85


def validate_plan_globals(plan_globals: PlanGlobals) -> None:
    """
    Reject plan inputs that make every row incalculable.

    Raises:
        PlannerInputError: If the total budget or sell CPM is missing,
            non-numeric, or the sell CPM is zero
    """
    if not _is_number(plan_globals.total_budget):
        raise PlannerInputError(
            'total_budget',
            "Please set Total Budget and Sell CPM.",
            "Enter a numeric Total Budget before recalculating."
        )
    if not _is_number(plan_globals.sell_price_per_thousand):
        raise PlannerInputError(
            'sell_price_per_thousand',
            "Please set Total Budget and Sell CPM.",
            "Enter a numeric Sell CPM before recalculating."
        )
    if float(plan_globals.sell_price_per_thousand) == 0:
        raise PlannerInputError(
            'sell_price_per_thousand',
            "Sell CPM cannot be zero.",
            "Enter a Sell CPM greater than zero."
        )


def _is_number(value: Optional[float]) -> bool:
    if value is None or isinstance(value, bool):
        return False
    try:
        number = float(value)
    except (TypeError, ValueError):
        return False
    return number == number


def calculate_line(item: LineItem, plan_globals: PlanGlobals,
                   rates: Optional[ExchangeRateTable]) -> ComputedLine:
    """
    Compute the native and plan-currency budget figures for one row.

    Allocation and profit fields are left at zero; the allocation engine
    fills them once every row is known.

    Args:
        item: Row with currency and buy cost already resolved
        plan_globals: Validated plan inputs
        rates: Exchange-rate table for plan-currency conversion

    Returns:
        ComputedLine with budget, impression and spend fields set
    """
    validate_plan_globals(plan_globals)

    total_budget = float(plan_globals.total_budget)
    sell_cpm = float(plan_globals.sell_price_per_thousand)
    display_currency = plan_globals.display_currency

    gross = total_budget * item.delivery_share
    net = gross * NET_BUDGET_FACTOR
    impressions = (gross / sell_cpm) * 1000
    publisher_spend = (impressions / 1000) * item.buy_cost_per_thousand
    dsp_fee_value = (item.buy_cost_per_thousand * item.dsp_fee_rate) * (impressions / 1000)

    return ComputedLine(
        item=item,
        gross_budget_native=gross,
        net_budget_native=net,
        impressions=impressions,
        publisher_spend=publisher_spend,
        dsp_fee_value=dsp_fee_value,
        total_media_spend=publisher_spend + dsp_fee_value,
        gross_budget_plan=convert(gross, item.currency, display_currency, rates),
        net_budget_plan=convert(net, item.currency, display_currency, rates)
    )
