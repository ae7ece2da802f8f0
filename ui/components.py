"""
UI components for the Media Budget Planner application.
"""

import streamlit as st
from typing import Dict, Any, List, Optional, Tuple
import logging
import pandas as pd

from models.data_models import RecalculationResult, SUPPORTED_CURRENCIES
from business_logic.planner_controller import PlannerController
from data.row_store import COLUMN_HEADERS, InMemoryPlannerStore, TOTALS_MARKER

logger = logging.getLogger(__name__)


CURRENCY_SYMBOLS = {'GBP': '£', 'EUR': '€', 'USD': '$'}

MONEY_FIELDS = [
    'gross_budget_native', 'gross_budget_plan', 'net_budget_native', 'net_budget_plan',
    'publisher_spend', 'dsp_fee_value', 'total_media_spend', 'allocated_hard_cost_plan',
    'gross_margin_plan', 'gross_profit_plan'
]
RATIO_FIELDS = ['delivery_share', 'dsp_fee_rate', 'margin_ratio', 'profit_ratio']


def format_money(amount: Optional[float], currency: str) -> str:
    """Format an amount with its currency symbol, e.g. '£1,234.50'."""
    if amount is None or pd.isna(amount):
        return ''
    symbol = CURRENCY_SYMBOLS.get(currency, '')
    sign = '-' if amount < 0 else ''
    return f"{sign}{symbol}{abs(amount):,.2f}"


def format_percentage(value: Optional[float]) -> str:
    if value is None or pd.isna(value):
        return ''
    return f"{value * 100:.1f}%"


def display_notification(notification: Optional[Dict[str, Any]]):
    """
    Show a notification produced by the error handler.

    Args:
        notification: Dict with type, title, message and optional action
    """
    if not notification:
        return

    render = {
        'error': st.error,
        'warning': st.warning,
        'info': st.info
    }.get(notification.get('type'), st.error)

    render(f"**{notification.get('title', 'Error')}**: {notification.get('message', '')}")

    if notification.get('action'):
        st.info(f"💡 {notification['action']}")

    if notification.get('technical_details'):
        with st.expander("🔧 Technical Details"):
            st.code(notification['technical_details'])


class PlanInputsForm:
    """
    Form for the plan-level inputs: total budget, sell CPM, hard costs,
    display currency and buying point.
    """

    def __init__(self, controller: PlannerController):
        """
        Initialize the PlanInputsForm.

        Args:
            controller: PlannerController owning the planner store
        """
        self.controller = controller

    def render(self) -> Tuple[Dict[str, Any], bool]:
        """
        Render the plan inputs form.

        Returns:
            Tuple of (form_data, submitted)
        """
        st.subheader("📋 Plan Inputs")
        store = self.controller.store
        plan_globals = store.get_globals()

        try:
            buying_points = self.controller.reference_manager.get_buying_points()
        except Exception as e:
            logger.error(f"Error loading buying points: {str(e)}")
            buying_points = []

        form_data = {}
        with st.form("plan_inputs_form", clear_on_submit=False):
            col1, col2 = st.columns(2)

            with col1:
                form_data['total_budget'] = st.number_input(
                    "Total Budget *",
                    min_value=0.0,
                    value=float(plan_globals.total_budget or 0.0),
                    step=1000.0,
                    format="%.2f",
                    help="Gross budget for the whole plan, in each row's own currency"
                )
                form_data['sell_price_per_thousand'] = st.number_input(
                    "Sell CPM *",
                    min_value=0.0,
                    value=float(plan_globals.sell_price_per_thousand or 0.0),
                    step=0.5,
                    format="%.2f",
                    help="Price charged to the client per thousand impressions"
                )
                form_data['hard_cost_total_plan'] = st.number_input(
                    "Hard Costs",
                    min_value=0.0,
                    value=float(plan_globals.hard_cost_total_plan or 0.0),
                    step=100.0,
                    format="%.2f",
                    help="Fixed costs in the display currency, shared across rows by net budget"
                )

            with col2:
                currencies = list(SUPPORTED_CURRENCIES)
                form_data['display_currency'] = st.selectbox(
                    "Display Currency",
                    options=currencies,
                    index=currencies.index(plan_globals.display_currency),
                    help="Currency used for plan totals"
                )

                options = ['None'] + buying_points
                current = plan_globals.buying_point
                form_data['buying_point'] = st.selectbox(
                    "Buying Point",
                    options=options,
                    index=options.index(current) if current in options else 0,
                    help="Buying point whose trading deal is deducted from margin"
                )

                st.metric("Trading Deal", format_percentage(plan_globals.trading_deal_percentage))

            submitted = st.form_submit_button("💾 Save & Recalculate", type="primary")

        if form_data.get('buying_point') == 'None':
            form_data['buying_point'] = None

        return form_data, submitted

    def apply(self, form_data: Dict[str, Any]) -> Tuple[bool, Any, str, Optional[Dict[str, Any]]]:
        """Write the submitted inputs to the store and recalculate."""
        store = self.controller.store
        store.set_cell('total_budget', form_data.get('total_budget'))
        store.set_cell('sell_price_per_thousand', form_data.get('sell_price_per_thousand'))
        store.set_cell('hard_cost_total_plan', form_data.get('hard_cost_total_plan'))
        self.controller.set_display_currency(form_data.get('display_currency'))

        if form_data.get('buying_point') != store.get_globals().buying_point:
            return self.controller.select_buying_point(form_data.get('buying_point'))
        return self.controller.recalculate()


class LineItemForm:
    """
    Form for adding a line item from the rate card's identity values.
    """

    def __init__(self, controller: PlannerController):
        self.controller = controller

    def _get_options(self) -> Dict[str, List[str]]:
        try:
            return self.controller.get_reference_options()
        except Exception as e:
            logger.error(f"Error loading reference options: {str(e)}")
            st.warning("⚠️ Reference data could not be loaded; lists may be empty.")
            return {'countries': [], 'channels': [], 'publishers': [], 'formats': [], 'dsps': [],
                    'buying_points': []}

    def render(self) -> Tuple[Dict[str, Any], bool]:
        """
        Render the add-line form.

        Returns:
            Tuple of (form_data, submitted)
        """
        st.subheader("➕ Add Line Item")
        options = self._get_options()
        allocated = self.controller.total_delivery_share()

        form_data = {}
        with st.form("line_item_form", clear_on_submit=True):
            col1, col2 = st.columns(2)

            with col1:
                form_data['country'] = st.selectbox("Country *", options=options['countries'])
                form_data['channel'] = st.selectbox("Channel *", options=options['channels'])
                form_data['publisher'] = st.selectbox("Publisher *", options=options['publishers'])

            with col2:
                form_data['format_name'] = st.selectbox("Format *", options=options['formats'])
                share_percent = st.number_input(
                    "Percentage Delivery (%) *",
                    min_value=0.0,
                    max_value=100.0,
                    value=max(0.0, min(100.0, 100.0 - allocated * 100)),
                    step=1.0,
                    help="Share of the total budget delivered through this row"
                )
                form_data['delivery_share'] = share_percent / 100
                form_data['dsp_name'] = st.selectbox("DSP", options=['None'] + options['dsps'])

            submitted = st.form_submit_button("Add Line", type="primary")

        if form_data.get('dsp_name') == 'None':
            form_data['dsp_name'] = None

        st.caption(f"Allocated so far: {format_percentage(allocated)} of the total budget")
        return form_data, submitted

    def validate(self, form_data: Dict[str, Any]) -> Dict[str, str]:
        """
        Check the form before the line is added.

        Returns:
            Field name -> error message
        """
        errors = {}
        for field, label in (('country', 'Country'), ('channel', 'Channel'),
                             ('publisher', 'Publisher'), ('format_name', 'Format')):
            if not form_data.get(field):
                errors[field] = f"{label} is required"

        share = form_data.get('delivery_share') or 0
        if share <= 0:
            errors['delivery_share'] = "Percentage Delivery must be greater than zero"
        elif self.controller.total_delivery_share() + share > 1.0 + 1e-9:
            errors['delivery_share'] = "Total Percentage Delivery would exceed 100%"

        return errors


class PlannerTableComponent:
    """
    Displays planner rows with formatted values and the totals row.
    """

    def __init__(self, store: InMemoryPlannerStore):
        self.store = store

    def build_display_frame(self, display_currency: str) -> pd.DataFrame:
        """
        Planner rows formatted for display.

        Native columns use each row's currency, plan columns and the totals
        row use the display currency.
        """
        frame = self.store.render_frame()
        if frame.empty:
            return frame

        columns = self.store.columns
        currency_header = columns.get('currency')
        display = frame.copy().astype(object)

        for index, row in frame.iterrows():
            is_totals = row[frame.columns[0]] == TOTALS_MARKER
            row_currency = display_currency if is_totals or currency_header is None else row[currency_header]

            for field in MONEY_FIELDS:
                header = columns.get(field)
                if header is None:
                    continue
                currency = display_currency if field.endswith('_plan') else row_currency
                display.at[index, header] = format_money(_as_float(row[header]), currency)

            for field in RATIO_FIELDS:
                header = columns.get(field)
                if header is not None:
                    display.at[index, header] = format_percentage(_as_float(row[header]))

            header = columns.get('impressions')
            if header is not None:
                impressions = _as_float(row[header])
                display.at[index, header] = '' if impressions is None else f"{impressions:,.0f}"

        return display

    def render(self, display_currency: str) -> Optional[int]:
        """
        Render the planner table and the row-removal control.

        Returns:
            Zero-based index of a row the user asked to remove, or None
        """
        st.subheader("📊 Planner")
        rates_label = self.store.get_cell('rates_label')
        if rates_label:
            st.caption(rates_label)

        display = self.build_display_frame(display_currency)
        if display.empty:
            st.info("No line items yet. Add one above to start planning.")
            return None

        st.dataframe(display, use_container_width=True, hide_index=True)

        csv_data = self.store.render_frame().to_csv(index=False)
        st.download_button(
            "📥 Download CSV",
            data=csv_data,
            file_name="media_budget_plan.csv",
            mime="text/csv"
        )

        row_count = self.store.row_count()
        col1, col2 = st.columns([3, 1])
        with col1:
            row_number = st.number_input("Row to remove", min_value=1, max_value=row_count, value=row_count, step=1)
        with col2:
            if st.button("🗑️ Remove Row"):
                return int(row_number) - 1
        return None


def _as_float(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if pd.isna(number) else number


def display_recalculation_summary(result: RecalculationResult):
    """
    Display plan totals and any warnings from a recalculation.

    Args:
        result: Outcome of the last recalculation
    """
    totals = result.totals
    currency = result.display_currency

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric(f"Gross Budget ({currency})", format_money(totals.gross_budget_plan, currency))
    with col2:
        st.metric(f"Net Budget ({currency})", format_money(totals.net_budget_plan, currency))
    with col3:
        st.metric("Gross Margin", format_money(totals.gross_margin_plan, currency),
                  format_percentage(totals.blended_margin))
    with col4:
        st.metric("Gross Profit", format_money(totals.gross_profit_plan, currency),
                  format_percentage(totals.blended_profit_ratio))

    if abs(totals.delivery_share - 1.0) > 1e-6 and result.lines:
        st.warning(f"⚠️ Percentage Delivery totals {format_percentage(totals.delivery_share)}, not 100%.")

    for warning in result.warnings:
        st.warning(f"⚠️ {warning}")

    st.caption(f"{COLUMN_HEADERS['impressions']}: {totals.impressions:,.0f} · "
               f"Trading Deal: {format_percentage(result.trading_deal_percentage)} · "
               f"Calculated {result.calculated_at.strftime('%H:%M:%S')}")
