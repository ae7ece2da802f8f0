"""
Unit tests for error handling and user notifications.
"""

import unittest

import requests

from business_logic.error_handler import (
    ErrorCategory, ErrorHandler, ErrorSeverity, PlannerInputError, RetryConfig
)


class TestErrorHandler(unittest.TestCase):
    """Test cases for ErrorHandler."""

    def setUp(self):
        self.delays = []
        self.handler = ErrorHandler(sleep=self.delays.append)

    def test_input_error(self):
        error = PlannerInputError('total_budget', "Please set Total Budget and Sell CPM.")
        info = self.handler.classify_error(error, "recalculation")

        self.assertEqual(info.category, ErrorCategory.USER_ERROR)
        self.assertEqual(info.severity, ErrorSeverity.ERROR)
        self.assertEqual(info.user_message, "Please set Total Budget and Sell CPM.")
        self.assertIn('total_budget', info.suggested_action)
        self.assertFalse(info.retry_possible)

    def test_network_errors(self):
        for error in (requests.ConnectionError("refused"), ConnectionError("down"), TimeoutError("slow")):
            info = self.handler.classify_error(error, "FX fetch")
            self.assertEqual(info.category, ErrorCategory.NETWORK_ERROR)
            self.assertTrue(info.retry_possible)

    def test_timeout_message(self):
        info = self.handler.classify_error(requests.Timeout("timed out"), "FX fetch")
        self.assertEqual(info.user_message, "The exchange rate service timed out.")

    def test_data_errors(self):
        missing = self.handler.classify_error(FileNotFoundError("Reference workbook not found: x.xlsx"))
        self.assertEqual(missing.category, ErrorCategory.DATA_ERROR)
        self.assertEqual(missing.user_message, "A required workbook could not be found.")

        sheet = self.handler.classify_error(ValueError("Sheet 'Planner' not found in x.xlsx"))
        self.assertEqual(sheet.category, ErrorCategory.DATA_ERROR)
        self.assertEqual(sheet.user_message, "The workbook is missing a required sheet.")

    def test_unknown_error_is_system_error(self):
        info = self.handler.classify_error(RuntimeError("boom"))
        self.assertEqual(info.category, ErrorCategory.SYSTEM_ERROR)

    def test_retry_succeeds_after_failure(self):
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) < 2:
                raise ConnectionError("down")
            return 0.85

        success, result, error_info = self.handler.retry_with_backoff(
            flaky, RetryConfig(max_attempts=3, base_delay=0.5), "FX fetch")

        self.assertTrue(success)
        self.assertEqual(result, 0.85)
        self.assertIsNone(error_info)
        self.assertEqual(self.delays, [0.5])

    def test_retry_exponential_backoff(self):
        def always_down():
            raise ConnectionError("down")

        success, result, error_info = self.handler.retry_with_backoff(
            always_down, RetryConfig(max_attempts=3, base_delay=1.0), "FX fetch")

        self.assertFalse(success)
        self.assertIsNone(result)
        self.assertEqual(error_info.category, ErrorCategory.NETWORK_ERROR)
        self.assertEqual(self.delays, [1.0, 2.0])

    def test_no_retry_for_non_retryable_errors(self):
        attempts = []

        def missing_file():
            attempts.append(1)
            raise FileNotFoundError("gone")

        success, _, _ = self.handler.retry_with_backoff(missing_file, RetryConfig(max_attempts=3), "load")

        self.assertFalse(success)
        self.assertEqual(len(attempts), 1)
        self.assertEqual(self.delays, [])

    def test_user_notification(self):
        info = self.handler.classify_error(PlannerInputError('sell_price_per_thousand', "Sell CPM cannot be zero."))
        notification = self.handler.create_user_notification(info)

        self.assertEqual(notification['type'], 'error')
        self.assertEqual(notification['title'], "Planner Input Required")
        self.assertEqual(notification['message'], "Sell CPM cannot be zero.")
        self.assertFalse(notification['dismissible'])
        self.assertIn('action', notification)

    def test_error_statistics(self):
        self.assertEqual(self.handler.get_error_statistics(), {'total_errors': 0})

        self.handler.log_error(self.handler.classify_error(ConnectionError("down")), "FX fetch")
        self.handler.log_error(self.handler.classify_error(RuntimeError("boom")), "recalculation")
        stats = self.handler.get_error_statistics()

        self.assertEqual(stats['total_errors'], 2)
        self.assertEqual(stats['category_breakdown'], {'network_error': 1, 'system_error': 1})


if __name__ == '__main__':
    unittest.main()
