"""
Main entry point for the Media Budget Planner application.
"""
import os
import logging
import streamlit as st

from config.settings import config_manager
from data.cache import ExpiringCache
from data.fx_source import HttpFxSource
from data.manager import ReferenceDataManager
from data.row_store import ExcelPlannerStore
from business_logic.currency_converter import CurrencyConverter
from business_logic.planner_controller import PlannerController
from ui.components import (
    LineItemForm, PlanInputsForm, PlannerTableComponent,
    display_notification, display_recalculation_summary
)

# Set up logging
logger = logging.getLogger(__name__)


def build_controller(config) -> PlannerController:
    """
    Wire the planner from configuration.

    Raises:
        FileNotFoundError: If the planner workbook does not exist
        ValueError: If the planner sheet is missing or malformed
    """
    cache = ExpiringCache(cache_dir=config.cache_dir)
    store = ExcelPlannerStore(config.planner_workbook_path)
    if not store.get_cell('display_currency'):
        store.set_cell('display_currency', config.default_display_currency)

    reference_manager = ReferenceDataManager(
        config.reference_workbook_path,
        cache=cache,
        cache_ttl_minutes=config.reference_cache_minutes,
        cache_version=config.reference_cache_version
    )
    converter = CurrencyConverter(
        HttpFxSource(base_url=config.fx_api_url, timeout=config.fx_timeout_seconds),
        cache=cache
    )
    return PlannerController(store, reference_manager, converter)


def handle_result(controller: PlannerController, outcome):
    """Show the outcome of a planner operation and save on success."""
    success, result, message, notification = outcome
    if not success:
        display_notification(notification)
        return False

    controller.store.save()
    st.session_state['last_result'] = result
    st.success(f"✅ {message}")
    return True


def main():
    """Main application entry point."""
    st.set_page_config(
        page_title="Media Budget Planner",
        page_icon="📊",
        layout="wide",
        initial_sidebar_state="expanded"
    )

    st.title("📊 Media Budget Planner")
    st.markdown("Plan line-item budgets, margins and profit across currencies")

    # Load configuration
    try:
        config = config_manager.load_config()
    except ValueError as e:
        st.error(f"❌ Configuration Error: {e}")
        st.stop()

    if 'controller' not in st.session_state:
        try:
            st.session_state['controller'] = build_controller(config)
        except FileNotFoundError as e:
            st.error("❌ **Planner Workbook Not Found**")
            st.error(str(e))
            st.info(f"Set PLANNER_WORKBOOK_PATH or place '{config.planner_workbook_path}' in the application directory.")
            st.stop()
        except ValueError as e:
            st.error("❌ **Planner Workbook Invalid**")
            st.error(str(e))
            st.stop()

        st.session_state['controller'].prewarm_fx_cache()

    controller: PlannerController = st.session_state['controller']

    with st.sidebar:
        st.header("Planner")
        st.metric("Percentage Delivery allocated", f"{controller.total_delivery_share() * 100:.1f}%")

        if st.button("🔄 Recalculate", use_container_width=True):
            handle_result(controller, controller.recalculate())

        if st.button("🧹 Clear All Lines", use_container_width=True):
            handle_result(controller, controller.clear_lines())
            st.session_state.pop('last_result', None)

        if st.button("♻️ Refresh Reference Data", use_container_width=True):
            controller.reference_manager.bump_cache_version()
            handle_result(controller, controller.recalculate())

        line_form = LineItemForm(controller)
        line_data, line_submitted = line_form.render()
        if line_submitted:
            errors = line_form.validate(line_data)
            if errors:
                for message in errors.values():
                    st.error(f"❌ {message}")
            else:
                handle_result(controller, controller.append_line(**line_data))

    inputs_form = PlanInputsForm(controller)
    form_data, submitted = inputs_form.render()
    if submitted:
        handle_result(controller, inputs_form.apply(form_data))

    table = PlannerTableComponent(controller.store)
    display_currency = controller.store.get_globals().display_currency
    remove_index = table.render(display_currency)
    if remove_index is not None:
        if handle_result(controller, controller.remove_line(remove_index)):
            st.rerun()

    last_result = st.session_state.get('last_result')
    if last_result is not None:
        display_recalculation_summary(last_result)

    # Display current configuration (for development)
    with st.expander("System Information"):
        col1, col2 = st.columns(2)

        with col1:
            st.write("**Configuration:**")
            st.write(f"Planner: {os.path.basename(config.planner_workbook_path)}")
            st.write(f"Reference data: {os.path.basename(config.reference_workbook_path)}")
            st.write(f"Default Currency: {config.default_display_currency}")

        with col2:
            status = controller.get_system_status()
            st.write("**Data Status:**")
            st.write(f"Rows: {status['rows']}")
            st.write(f"Reference cache: v{status['reference_cache']['cache_version']}, "
                     f"{status['reference_cache']['ttl_minutes']:.0f} min TTL")
            if status['failed_fx_pairs']:
                st.write(f"FX fallbacks: {', '.join(status['failed_fx_pairs'])}")


if __name__ == "__main__":
    main()
