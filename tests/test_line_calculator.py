"""
Unit tests for per-row budget calculation.
"""

import unittest

from business_logic.currency_converter import build_rate_table
from business_logic.error_handler import PlannerInputError
from business_logic.line_calculator import calculate_line, validate_plan_globals
from models.data_models import LineItem, PlanGlobals


RATES = build_rate_table({('EUR', 'GBP'): 0.85, ('EUR', 'USD'): 1.10, ('GBP', 'USD'): 1.25}, '2024-05-01')


class TestValidatePlanGlobals(unittest.TestCase):
    """Test cases for plan input validation."""

    def test_missing_total_budget(self):
        with self.assertRaises(PlannerInputError) as ctx:
            validate_plan_globals(PlanGlobals(None, 5.0))
        self.assertEqual(ctx.exception.field, 'total_budget')
        self.assertIn("Total Budget", str(ctx.exception))

    def test_non_numeric_sell_price(self):
        with self.assertRaises(PlannerInputError) as ctx:
            validate_plan_globals(PlanGlobals(10000.0, 'abc'))
        self.assertEqual(ctx.exception.field, 'sell_price_per_thousand')

    def test_zero_sell_price(self):
        with self.assertRaises(PlannerInputError) as ctx:
            validate_plan_globals(PlanGlobals(10000.0, 0.0))
        self.assertEqual(str(ctx.exception), "Sell CPM cannot be zero.")

    def test_valid_inputs(self):
        validate_plan_globals(PlanGlobals(10000.0, 5.0))


class TestCalculateLine(unittest.TestCase):
    """Test cases for calculate_line."""

    def setUp(self):
        self.plan_globals = PlanGlobals(total_budget=10000.0, sell_price_per_thousand=5.0, display_currency='EUR')

    def test_single_eur_row(self):
        """Half the budget at a sell CPM of 5 and buy CPM of 2."""
        item = LineItem('UK', 'Display', 'PubA', 'MPU', 0.5, 'EUR', 2.0, 0.0)

        line = calculate_line(item, self.plan_globals, RATES)

        self.assertAlmostEqual(line.gross_budget_native, 5000.0)
        self.assertAlmostEqual(line.net_budget_native, 4250.0)
        self.assertAlmostEqual(line.impressions, 1000000.0)
        self.assertAlmostEqual(line.publisher_spend, 2000.0)
        self.assertAlmostEqual(line.dsp_fee_value, 0.0)
        self.assertAlmostEqual(line.total_media_spend, 2000.0)
        self.assertAlmostEqual(line.gross_budget_plan, 5000.0)
        self.assertAlmostEqual(line.net_budget_plan, 4250.0)

    def test_dsp_fee_value(self):
        item = LineItem('UK', 'Display', 'PubA', 'MPU', 0.5, 'EUR', 2.0, 0.10)

        line = calculate_line(item, self.plan_globals, RATES)

        self.assertAlmostEqual(line.dsp_fee_value, 200.0)
        self.assertAlmostEqual(line.total_media_spend, 2200.0)

    def test_zero_delivery_share(self):
        item = LineItem('UK', 'Display', 'PubA', 'MPU', 0.0, 'EUR', 2.0, 0.10)

        line = calculate_line(item, self.plan_globals, RATES)

        self.assertEqual(line.gross_budget_native, 0.0)
        self.assertEqual(line.net_budget_native, 0.0)
        self.assertEqual(line.impressions, 0.0)
        self.assertEqual(line.total_media_spend, 0.0)

    def test_plan_currency_conversion(self):
        """A USD row shown in GBP uses the USD to GBP rate."""
        plan_globals = PlanGlobals(10000.0, 5.0, display_currency='GBP')
        item = LineItem('US', 'Video', 'PubB', 'Preroll', 0.5, 'USD', 2.0, 0.0)

        line = calculate_line(item, plan_globals, RATES)

        self.assertAlmostEqual(line.gross_budget_native, 5000.0)
        self.assertAlmostEqual(line.gross_budget_plan, 4000.0)
        self.assertAlmostEqual(line.net_budget_plan, 3400.0)

    def test_zero_sell_price_raises(self):
        item = LineItem('UK', 'Display', 'PubA', 'MPU', 0.5)
        with self.assertRaises(PlannerInputError):
            calculate_line(item, PlanGlobals(10000.0, 0.0), RATES)


if __name__ == '__main__':
    unittest.main()
