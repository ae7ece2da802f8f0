"""
Unit tests for planner row storage.
"""

import os
import shutil
import tempfile
import unittest

import pandas as pd

from data.row_store import (
    ExcelPlannerStore, INPUTS_SHEET, InMemoryPlannerStore, PLANNER_SHEET, TOTALS_MARKER,
    is_totals_row, resolve_columns
)
from models.data_models import LineItem, TotalsRecord


def planner_frame():
    return pd.DataFrame({
        'Country': ['UK', 'US'],
        'Channel': ['Display', 'Video'],
        'Publisher': ['PubA', 'PubB'],
        'Format': ['MPU', 'Preroll'],
        'Percentage Delivery': [0.6, 0.4],
        'Currency': ['gbp', None],
        'Buy CPM': [2.0, None],
        'DSP Fee': [10, 0.05],
    })


class TestResolveColumns(unittest.TestCase):
    """Test cases for header resolution."""

    def test_exact_headers(self):
        mapping = resolve_columns(['Country', 'Gross Budget', 'Gross Budget (In Plan Currency)', 'Margin', 'Gross Margin'])

        self.assertEqual(mapping['gross_budget_native'], 'Gross Budget')
        self.assertEqual(mapping['gross_budget_plan'], 'Gross Budget (In Plan Currency)')
        self.assertEqual(mapping['margin_ratio'], 'Margin')
        self.assertEqual(mapping['gross_margin_plan'], 'Gross Margin')

    def test_case_insensitive_and_aliases(self):
        mapping = resolve_columns(['COUNTRY', 'channel', '% Delivery', 'Margin %'])

        self.assertEqual(mapping['country'], 'COUNTRY')
        self.assertEqual(mapping['channel'], 'channel')
        self.assertEqual(mapping['delivery_share'], '% Delivery')
        self.assertEqual(mapping['margin_ratio'], 'Margin %')

    def test_substring_fallback(self):
        mapping = resolve_columns(['Country', 'Buy CPM (EUR)', 'Total Media Spend (native)'])

        self.assertEqual(mapping['buy_cost_per_thousand'], 'Buy CPM (EUR)')
        self.assertEqual(mapping['total_media_spend'], 'Total Media Spend (native)')

    def test_is_totals_row(self):
        self.assertTrue(is_totals_row(TOTALS_MARKER))
        self.assertTrue(is_totals_row('Totals'))
        self.assertFalse(is_totals_row('UK'))
        self.assertFalse(is_totals_row(None))


class TestInMemoryPlannerStore(unittest.TestCase):
    """Test cases for InMemoryPlannerStore."""

    def setUp(self):
        self.store = InMemoryPlannerStore(planner_frame(), {
            'total_budget': '10,000',
            'sell_price_per_thousand': 5,
            'display_currency': 'eur',
            'trading_deal_percentage': '15%',
            'buying_point': ' Agency X ',
        })

    def test_missing_identity_columns_rejected(self):
        with self.assertRaises(ValueError):
            InMemoryPlannerStore(pd.DataFrame({'Country': ['UK']}))

    def test_get_rows_parses_values(self):
        rows = self.store.get_rows()

        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0].currency, 'GBP')
        self.assertEqual(rows[0].dsp_fee_rate, 0.10)
        self.assertEqual(rows[1].currency, '')
        self.assertEqual(rows[1].buy_cost_per_thousand, 0.0)
        self.assertEqual(rows[1].dsp_fee_rate, 0.05)

    def test_get_globals_parses_values(self):
        plan_globals = self.store.get_globals()

        self.assertEqual(plan_globals.total_budget, 10000.0)
        self.assertEqual(plan_globals.sell_price_per_thousand, 5.0)
        self.assertEqual(plan_globals.display_currency, 'EUR')
        self.assertAlmostEqual(plan_globals.trading_deal_percentage, 0.15)
        self.assertEqual(plan_globals.buying_point, 'Agency X')
        self.assertEqual(plan_globals.hard_cost_total_plan, 0.0)

    def test_unparseable_globals(self):
        store = InMemoryPlannerStore(planner_frame(), {'total_budget': 'lots', 'display_currency': 'JPY'})
        plan_globals = store.get_globals()

        self.assertIsNone(plan_globals.total_budget)
        self.assertIsNone(plan_globals.sell_price_per_thousand)
        self.assertEqual(plan_globals.display_currency, 'GBP')

    def test_ensure_columns_is_idempotent(self):
        added = self.store.ensure_columns(['impressions', 'gross_margin_plan'])
        self.assertEqual(added, ['Impressions', 'Gross Margin'])

        again = self.store.ensure_columns(['impressions', 'gross_margin_plan'])
        self.assertEqual(again, [])
        self.assertEqual(list(self.store.frame.columns).count('Impressions'), 1)

    def test_write_rows_single_batch(self):
        self.store.write_rows(0, [{'impressions': 1000.0}, {'impressions': 2000.0}])

        self.assertEqual(self.store.get_column('impressions'), [1000.0, 2000.0])
        self.assertEqual(self.store.write_count, 2)  # column added, rows written

    def test_write_rows_out_of_range(self):
        with self.assertRaises(IndexError):
            self.store.write_rows(1, [{'impressions': 1.0}, {'impressions': 2.0}])

    def test_append_and_delete_rows(self):
        self.store.append_row(LineItem('DE', 'Display', 'PubC', 'MPU', 0.1, currency='', dsp_fee_rate=0.05))
        self.assertEqual(self.store.row_count(), 3)
        self.assertEqual(self.store.get_rows()[2].country, 'DE')

        self.store.delete_row(0)
        rows = self.store.get_rows()
        self.assertEqual([row.country for row in rows], ['US', 'DE'])

        with self.assertRaises(IndexError):
            self.store.delete_row(5)

    def test_clear_rows(self):
        self.store.set_totals(TotalsRecord(delivery_share=1.0))
        self.store.clear_rows()

        self.assertEqual(self.store.get_rows(), [])
        self.assertIsNone(self.store.totals)

    def test_totals_rendered_as_final_row(self):
        self.store.ensure_columns(['gross_budget_plan', 'margin_ratio'])
        self.store.set_totals(TotalsRecord(delivery_share=1.0, gross_budget_plan=500.0, blended_margin=0.4))

        frame = self.store.render_frame()

        self.assertEqual(len(frame), 3)
        last = frame.iloc[-1]
        self.assertEqual(last['Country'], TOTALS_MARKER)
        self.assertEqual(last['Gross Budget (In Plan Currency)'], 500.0)
        self.assertEqual(last['Margin'], 0.4)
        # Totals are never part of the data rows
        self.assertEqual(len(self.store.get_rows()), 2)


class TestExcelPlannerStore(unittest.TestCase):
    """Test cases for ExcelPlannerStore."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.test_file = os.path.join(self.temp_dir, 'planner.xlsx')

        frame = planner_frame()
        totals = pd.DataFrame([{'Country': TOTALS_MARKER, 'Percentage Delivery': 1.0}])
        inputs = pd.DataFrame([['Total Budget', 10000], ['Sell CPM', 5], ['Display Currency', 'USD']])

        with pd.ExcelWriter(self.test_file, engine='openpyxl') as writer:
            pd.concat([frame, totals], ignore_index=True).to_excel(writer, sheet_name=PLANNER_SHEET, index=False)
            inputs.to_excel(writer, sheet_name=INPUTS_SHEET, index=False, header=False)

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            ExcelPlannerStore(os.path.join(self.temp_dir, 'missing.xlsx'))

    def test_missing_planner_sheet(self):
        other = os.path.join(self.temp_dir, 'other.xlsx')
        with pd.ExcelWriter(other, engine='openpyxl') as writer:
            pd.DataFrame({'A': [1]}).to_excel(writer, sheet_name='Other', index=False)

        with self.assertRaises(ValueError) as ctx:
            ExcelPlannerStore(other)
        self.assertIn("not found", str(ctx.exception))

    def test_load_strips_totals_row(self):
        store = ExcelPlannerStore(self.test_file)

        self.assertEqual(store.row_count(), 2)
        self.assertEqual([row.country for row in store.get_rows()], ['UK', 'US'])

    def test_load_plan_inputs(self):
        plan_globals = ExcelPlannerStore(self.test_file).get_globals()

        self.assertEqual(plan_globals.total_budget, 10000.0)
        self.assertEqual(plan_globals.sell_price_per_thousand, 5.0)
        self.assertEqual(plan_globals.display_currency, 'USD')

    def test_save_and_reload(self):
        store = ExcelPlannerStore(self.test_file)
        store.write_rows(0, [{'impressions': 1200000.0}, {'impressions': 800000.0}])
        store.set_cell('rates_label', 'Rates today: 1 EUR=0.85 GBP')
        store.set_totals(TotalsRecord(delivery_share=1.0, impressions=2000000.0))
        store.save()

        reloaded = ExcelPlannerStore(self.test_file)

        self.assertEqual(reloaded.row_count(), 2)
        self.assertEqual(reloaded.get_column('impressions'), [1200000.0, 800000.0])
        self.assertEqual(reloaded.get_cell('rates_label'), 'Rates today: 1 EUR=0.85 GBP')

        saved = pd.read_excel(self.test_file, sheet_name=PLANNER_SHEET)
        self.assertEqual(saved.iloc[-1]['Country'], TOTALS_MARKER)
        self.assertEqual(saved.iloc[-1]['Impressions'], 2000000.0)


if __name__ == '__main__':
    unittest.main()
