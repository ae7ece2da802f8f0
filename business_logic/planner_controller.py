"""
Planner Controller - Orchestrates recalculation of the budget planner.

This module ties together the row store, reference data, currency
conversion and the calculation engines. A recalculation reads everything
it needs before writing anything, so a refused run leaves the planner
exactly as it was.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from models.data_models import (
    ComputedLine, DEFAULT_DISPLAY_CURRENCY, LineItem, RecalculationResult, SUPPORTED_CURRENCIES
)
from data.manager import ReferenceDataManager
from data.row_store import OUTPUT_COLUMNS, RowStore
from .allocation_engine import AllocationEngine
from .currency_converter import CurrencyConverter, rates_label
from .error_handler import ErrorHandler, ErrorInfo, PlannerInputError, error_handler as default_error_handler
from .line_calculator import calculate_line, validate_plan_globals

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


OUTPUT_FIELDS = [field for field, _ in OUTPUT_COLUMNS]

ControllerResult = Tuple[bool, Any, str, Optional[Dict[str, Any]]]


def line_record(line: ComputedLine) -> Dict[str, Any]:
    """Fields written back to the store for one computed row."""
    return {
        'currency': line.item.currency,
        'buy_cost_per_thousand': line.item.buy_cost_per_thousand,
        'gross_budget_native': line.gross_budget_native,
        'gross_budget_plan': line.gross_budget_plan,
        'net_budget_native': line.net_budget_native,
        'net_budget_plan': line.net_budget_plan,
        'impressions': line.impressions,
        'publisher_spend': line.publisher_spend,
        'dsp_fee_value': line.dsp_fee_value,
        'total_media_spend': line.total_media_spend,
        'allocated_hard_cost_plan': line.allocated_hard_cost_plan,
        'gross_margin_plan': line.gross_margin_plan,
        'margin_ratio': line.margin_ratio,
        'gross_profit_plan': line.gross_profit_plan,
        'profit_ratio': line.profit_ratio,
    }


class PlannerController:
    """
    Main controller for the planner workflow.

    Every public operation returns ``(success, result, message,
    notification)``; the notification is None on success.
    """

    def __init__(self, store: RowStore, reference_manager: ReferenceDataManager,
                 currency_converter: CurrencyConverter,
                 handler: Optional[ErrorHandler] = None):
        """
        Initialize the planner controller.

        Args:
            store: Planner rows and plan-level inputs
            reference_manager: Cached access to the reference workbook
            currency_converter: Daily exchange-rate provider
            handler: Error handler for classification and notifications
        """
        self.store = store
        self.reference_manager = reference_manager
        self.currency_converter = currency_converter
        self.handler = handler or default_error_handler

        logger.info("PlannerController initialized")

    def recalculate(self) -> ControllerResult:
        """
        Recompute every row and the plan totals.

        Returns:
            Tuple of (success, RecalculationResult or None, status message, user_notification)
        """
        try:
            plan_globals = self.store.get_globals()
            validate_plan_globals(plan_globals)

            rows = self.store.get_rows()
            resolver = self.reference_manager.build_resolver()
            if plan_globals.buying_point:
                trading_deal_percentage = resolver.resolve_trading_deal(plan_globals.buying_point)
            else:
                # No buying point selected; keep the percentage as entered
                trading_deal_percentage = plan_globals.trading_deal_percentage
            rate_table = self.currency_converter.get_rate_table()

            resolved = [resolver.apply_to_line(row) for row in rows]
            lines = [calculate_line(item, plan_globals, rate_table) for item in resolved]

            engine = AllocationEngine(plan_globals.display_currency, rate_table)
            engine.allocate(lines, plan_globals.hard_cost_total_plan, trading_deal_percentage)
            totals = engine.aggregate_totals(lines)

        except PlannerInputError as e:
            error_info = self.handler.handle_input_error(e, "planner recalculation")
            return self._failure(error_info, "Recalculation")
        except Exception as e:
            error_info = self.handler.classify_error(e, "planner recalculation")
            return self._failure(error_info, "Recalculation")

        warnings = []
        if self.currency_converter.failed_pairs:
            warnings.append(
                f"Exchange rates unavailable for {', '.join(self.currency_converter.failed_pairs)}; using 1."
            )
        if plan_globals.buying_point and not trading_deal_percentage:
            warnings.append(f"No trading deal found for '{plan_globals.buying_point}'.")

        label = rates_label(rate_table)

        # Rows before plan inputs: a failed batch writes nothing else
        try:
            self.store.ensure_columns(['currency', 'buy_cost_per_thousand'] + OUTPUT_FIELDS)
            if lines:
                self.store.write_rows(0, [line_record(line) for line in lines])
            self.store.set_cell('trading_deal_percentage', trading_deal_percentage)
            self.store.set_cell('rates_label', label)
            self.store.set_totals(totals)
        except Exception as e:
            error_info = self.handler.classify_error(e, "planner write-back")
            return self._failure(error_info, "Recalculation")

        result = RecalculationResult(
            lines=lines,
            totals=totals,
            exchange_rates=rate_table,
            display_currency=plan_globals.display_currency,
            trading_deal_percentage=trading_deal_percentage,
            rates_label=label,
            warnings=warnings
        )

        message = f"Recalculated {len(lines)} line item(s)"
        logger.info(f"{message}; totals gross={totals.gross_budget_plan:.2f} {plan_globals.display_currency}")
        return True, result, message, None

    def append_line(self, country: str, channel: str, publisher: str, format_name: str,
                    delivery_share: float, dsp_name: Optional[str] = None) -> ControllerResult:
        """
        Add a line item and recalculate.

        Currency and buy cost are left blank for the rate card to fill in.

        Args:
            country: Market of the placement
            channel: Channel of the placement
            publisher: Publisher of the placement
            format_name: Ad format
            delivery_share: Fraction of the total budget for this row
            dsp_name: DSP whose fee applies, if any

        Returns:
            Result of the follow-up recalculation
        """
        try:
            share = float(delivery_share)
        except (TypeError, ValueError):
            error_info = self.handler.handle_input_error(
                PlannerInputError('delivery_share', "Percentage Delivery must be a number."),
                "adding line item"
            )
            return self._failure(error_info, "Add line")

        dsp_fee = self.reference_manager.build_resolver().resolve_dsp_fee(dsp_name)
        item = LineItem(
            country=country,
            channel=channel,
            publisher=publisher,
            format_name=format_name,
            delivery_share=share,
            currency='',
            buy_cost_per_thousand=0.0,
            dsp_fee_rate=dsp_fee
        )

        self.store.append_row(item)
        logger.info(f"Added line item {item.identity()} at {share:.2%}")
        return self.recalculate()

    def remove_line(self, index: int) -> ControllerResult:
        """Delete the row at ``index`` (zero-based) and recalculate."""
        row_count = len(self.store.get_rows())
        if not isinstance(index, int) or index < 0 or index >= row_count:
            error_info = self.handler.handle_input_error(
                PlannerInputError(
                    'row',
                    f"Row {index} does not exist.",
                    f"Choose a row between 1 and {row_count}." if row_count else "The planner has no rows to remove."
                ),
                "removing line item"
            )
            return self._failure(error_info, "Remove line")

        self.store.delete_row(index)
        logger.info(f"Removed line item at row {index}")
        return self.recalculate()

    def clear_lines(self) -> ControllerResult:
        """Remove every data row and the totals row."""
        removed = len(self.store.get_rows())
        self.store.clear_rows()
        self.store.set_totals(None)
        logger.info(f"Cleared {removed} line item(s)")
        return True, removed, f"Cleared {removed} line item(s)", None

    def total_delivery_share(self) -> float:
        return sum(row.delivery_share for row in self.store.get_rows())

    def select_buying_point(self, name: str) -> ControllerResult:
        """
        Store the buying point, write back its trading-deal percentage and recalculate.
        """
        resolver = self.reference_manager.build_resolver()
        percentage = resolver.resolve_trading_deal(name)

        self.store.set_cell('buying_point', name)
        self.store.set_cell('trading_deal_percentage', percentage)
        return self.recalculate()

    def set_display_currency(self, code: Optional[str]) -> str:
        """
        Set the plan display currency; unknown codes fall back to the default.

        Returns:
            The currency actually stored
        """
        currency = str(code or '').strip().upper()
        if currency not in SUPPORTED_CURRENCIES:
            logger.warning(f"Unsupported display currency '{code}'; using {DEFAULT_DISPLAY_CURRENCY}")
            currency = DEFAULT_DISPLAY_CURRENCY

        self.store.set_cell('display_currency', currency)
        return currency

    def prewarm_fx_cache(self) -> bool:
        return self.currency_converter.prewarm()

    def get_reference_options(self) -> Dict[str, List[str]]:
        """Dropdown values for the line-item form."""
        options = self.reference_manager.get_rate_options()
        options['dsps'] = self.reference_manager.get_dsp_names()
        options['buying_points'] = self.reference_manager.get_buying_points()
        return options

    def _failure(self, error_info: ErrorInfo, context: str) -> ControllerResult:
        self.handler.log_error(error_info, context)
        notification = self.handler.create_user_notification(error_info)
        return False, None, error_info.user_message, notification

    def get_system_status(self) -> Dict[str, Any]:
        """
        Get the status of the planner's data sources.

        Returns:
            Dictionary with row count, reference cache and error statistics
        """
        return {
            'rows': len(self.store.get_rows()),
            'reference_cache': self.reference_manager.get_cache_stats(),
            'failed_fx_pairs': list(self.currency_converter.failed_pairs),
            'errors': self.handler.get_error_statistics()
        }
