"""
Unit tests for ReferenceDataManager caching and fallback.
"""

import os
import shutil
import tempfile
import unittest
from datetime import datetime, timedelta
from unittest.mock import patch

import pandas as pd

from data.cache import ExpiringCache
from data.manager import ReferenceDataManager
from data.parsers import CHANNEL_RATES_SHEET, DSP_FEES_SHEET, TRADING_DEALS_SHEET


class TestReferenceDataManager(unittest.TestCase):
    """Test cases for ReferenceDataManager."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.test_file = os.path.join(self.temp_dir, 'reference.xlsx')
        self.write_workbook(buy_cpm=4.0)

        self.now = datetime(2024, 5, 1, 9, 0)
        self.cache = ExpiringCache(clock=lambda: self.now)
        self.manager = ReferenceDataManager(self.test_file, cache=self.cache, cache_ttl_minutes=10)

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def write_workbook(self, buy_cpm):
        rates = pd.DataFrame({
            'Country': ['UK', 'US'], 'Channel': ['Display', 'Video'],
            'Publisher': ['PubA', 'PubB'], 'Format': ['MPU', 'Preroll'],
            'Currency': ['GBP', 'USD'], 'Buy CPM': [buy_cpm, 9.0]
        })
        with pd.ExcelWriter(self.test_file, engine='openpyxl') as writer:
            rates.to_excel(writer, sheet_name=CHANNEL_RATES_SHEET, index=False)
            pd.DataFrame({'DSP': ['DV360'], 'Fee': [10]}).to_excel(writer, sheet_name=DSP_FEES_SHEET, index=False)
            pd.DataFrame({'Buying Point': ['Agency X'], 'Deal': [0.1]}).to_excel(
                writer, sheet_name=TRADING_DEALS_SHEET, index=False)

    def test_load_tables(self):
        rates = self.manager.load_channel_rates()
        fees = self.manager.load_dsp_fees()
        deals = self.manager.load_trading_deals()

        self.assertEqual(len(rates), 2)
        self.assertEqual(rates[0].buy_cost_per_thousand, 4.0)
        self.assertEqual(fees[0].fee_rate, 0.1)
        self.assertEqual(deals[0].buying_point, 'Agency X')

    def test_versioned_cache_keys(self):
        self.manager.load_channel_rates()
        self.assertIn('rates_v1', self.cache.keys())

    def test_cached_within_ttl(self):
        self.manager.load_channel_rates()
        self.write_workbook(buy_cpm=5.0)

        self.now += timedelta(minutes=5)
        rates = self.manager.load_channel_rates()

        self.assertEqual(rates[0].buy_cost_per_thousand, 4.0)

    def test_reloaded_after_ttl(self):
        self.manager.load_channel_rates()
        self.write_workbook(buy_cpm=5.0)

        self.now += timedelta(minutes=11)
        rates = self.manager.load_channel_rates()

        self.assertEqual(rates[0].buy_cost_per_thousand, 5.0)

    def test_bump_cache_version_forces_reload(self):
        self.manager.load_channel_rates()
        self.write_workbook(buy_cpm=5.0)

        version = self.manager.bump_cache_version()
        rates = self.manager.load_channel_rates()

        self.assertEqual(version, 2)
        self.assertNotIn('rates_v1', self.cache.keys())
        self.assertIn('rates_v2', self.cache.keys())
        self.assertEqual(rates[0].buy_cost_per_thousand, 5.0)

    def test_failed_refresh_uses_last_good_copy(self):
        self.manager.load_channel_rates()
        self.now += timedelta(minutes=11)

        with patch('data.manager.ChannelRateParser.parse', side_effect=ValueError("corrupt")):
            rates = self.manager.load_channel_rates()

        self.assertEqual(len(rates), 2)

    def test_missing_workbook_gives_empty_tables(self):
        manager = ReferenceDataManager(os.path.join(self.temp_dir, 'missing.xlsx'), cache=self.cache)

        self.assertEqual(manager.load_channel_rates(), [])
        self.assertEqual(manager.load_dsp_fees(), [])
        self.assertEqual(manager.load_trading_deals(), [])

    def test_build_resolver(self):
        resolver = self.manager.build_resolver()

        self.assertIsNotNone(resolver.resolve_row(('uk', 'display', 'puba', 'mpu')))
        self.assertEqual(resolver.resolve_dsp_fee('DV360'), 0.1)
        self.assertEqual(resolver.resolve_trading_deal('Agency X'), 0.1)

    def test_dropdown_helpers(self):
        self.assertEqual(self.manager.get_dsp_names(), ['DV360'])
        self.assertEqual(self.manager.get_buying_points(), ['Agency X'])
        self.assertEqual(self.manager.get_rate_options(), {
            'countries': ['UK', 'US'],
            'channels': ['Display', 'Video'],
            'publishers': ['PubA', 'PubB'],
            'formats': ['MPU', 'Preroll'],
        })

    def test_cache_stats(self):
        self.manager.load_channel_rates()
        stats = self.manager.get_cache_stats()

        self.assertEqual(stats['cache_version'], 1)
        self.assertEqual(stats['ttl_minutes'], 10)
        self.assertIsNotNone(stats['tables']['rates'])
        self.assertIsNone(stats['tables']['dsps'])


if __name__ == '__main__':
    unittest.main()
