"""
Error handling and user feedback for the planner.

This module provides the error taxonomy used across the recalculation
pipeline, retry with backoff for external sources, and user-facing
notifications for the UI.
"""

import logging
import time
from typing import Dict, Any, Optional, Callable, Tuple
from enum import Enum
from dataclasses import dataclass
from datetime import datetime, timedelta

import requests

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class PlannerInputError(Exception):
    """Fatal input problem that stops a recalculation before any write."""

    def __init__(self, field: str, message: str, suggested_action: Optional[str] = None):
        super().__init__(message)
        self.field = field
        self.suggested_action = suggested_action


class ErrorSeverity(Enum):
    """Error severity levels."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for better classification."""
    DATA_ERROR = "data_error"
    VALIDATION_ERROR = "validation_error"
    NETWORK_ERROR = "network_error"
    SYSTEM_ERROR = "system_error"
    USER_ERROR = "user_error"


@dataclass
class ErrorInfo:
    """Structured error information."""
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    user_message: str
    technical_details: Optional[str] = None
    suggested_action: Optional[str] = None
    retry_possible: bool = False
    timestamp: datetime = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now()


class RetryConfig:
    """Configuration for retry mechanisms."""

    def __init__(self, max_attempts: int = 3, base_delay: float = 1.0,
                 exponential_backoff: bool = True, max_delay: float = 60.0):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.exponential_backoff = exponential_backoff
        self.max_delay = max_delay


class ErrorHandler:
    """
    Centralized error handling and user feedback.

    Classifies exceptions, retries external calls, and turns failures into
    notifications the UI can show.
    """

    def __init__(self, sleep: Callable[[float], None] = time.sleep):
        self.error_history = []
        self._sleep = sleep

    def handle_input_error(self, error: PlannerInputError, context: str = "") -> ErrorInfo:
        """
        Handle a fatal planner input error.

        Args:
            error: The input exception naming the offending field
            context: Additional context about the operation

        Returns:
            ErrorInfo object with structured error information
        """
        return ErrorInfo(
            category=ErrorCategory.USER_ERROR,
            severity=ErrorSeverity.ERROR,
            message=f"Invalid input '{error.field}' in {context}: {str(error)}",
            user_message=str(error),
            suggested_action=error.suggested_action or f"Please correct {error.field} and recalculate.",
            retry_possible=False
        )

    def handle_data_error(self, error: Exception, context: str = "") -> ErrorInfo:
        """
        Handle data-related errors (workbook missing, sheet missing, parsing errors).

        Args:
            error: The data exception
            context: Additional context about the operation

        Returns:
            ErrorInfo object with structured error information
        """
        error_str = str(error).lower()

        if "not found" in error_str and "sheet" in error_str:
            return ErrorInfo(
                category=ErrorCategory.DATA_ERROR,
                severity=ErrorSeverity.ERROR,
                message=f"Required sheet missing: {str(error)}",
                user_message="The workbook is missing a required sheet.",
                suggested_action="Check that the planner and reference sheets exist with their expected names.",
                retry_possible=False
            )

        elif isinstance(error, FileNotFoundError) or "no such file" in error_str or "not found" in error_str:
            return ErrorInfo(
                category=ErrorCategory.DATA_ERROR,
                severity=ErrorSeverity.ERROR,
                message=f"Required data file not found: {str(error)}",
                user_message="A required workbook could not be found.",
                suggested_action="Check the planner and reference workbook paths in the settings.",
                retry_possible=False
            )

        elif isinstance(error, PermissionError) or "permission denied" in error_str:
            return ErrorInfo(
                category=ErrorCategory.DATA_ERROR,
                severity=ErrorSeverity.ERROR,
                message=f"File permission error: {str(error)}",
                user_message="Cannot access the workbook due to permission restrictions.",
                suggested_action="Check file permissions or contact your system administrator.",
                retry_possible=False
            )

        # Generic data error
        return ErrorInfo(
            category=ErrorCategory.DATA_ERROR,
            severity=ErrorSeverity.ERROR,
            message=f"Data processing error in {context}: {str(error)}",
            user_message="An error occurred while reading planner data.",
            technical_details=str(error),
            suggested_action="Check your workbook and try again.",
            retry_possible=False
        )

    def handle_network_error(self, error: Exception, context: str = "") -> ErrorInfo:
        """
        Handle network-related errors from the FX provider.

        Args:
            error: The network exception
            context: Additional context about the operation

        Returns:
            ErrorInfo object with structured error information
        """
        error_str = str(error).lower()

        if isinstance(error, (TimeoutError, requests.Timeout)) or "timeout" in error_str or "timed out" in error_str:
            return ErrorInfo(
                category=ErrorCategory.NETWORK_ERROR,
                severity=ErrorSeverity.WARNING,
                message=f"Network timeout: {str(error)}",
                user_message="The exchange rate service timed out.",
                suggested_action="Cached or default rates are used until the service responds.",
                retry_possible=True
            )

        # Generic network error
        return ErrorInfo(
            category=ErrorCategory.NETWORK_ERROR,
            severity=ErrorSeverity.WARNING,
            message=f"Network error in {context}: {str(error)}",
            user_message="Could not reach the exchange rate service.",
            technical_details=str(error),
            suggested_action="Check your internet connection and recalculate.",
            retry_possible=True
        )

    def retry_with_backoff(self, func: Callable, config: RetryConfig = None,
                           context: str = "") -> Tuple[bool, Any, Optional[ErrorInfo]]:
        """
        Execute a function with retry logic and exponential backoff.

        Args:
            func: Function to execute
            config: Retry configuration
            context: Context for error reporting

        Returns:
            Tuple of (success, result, error_info)
        """
        if config is None:
            config = RetryConfig()

        last_error = None

        for attempt in range(config.max_attempts):
            try:
                result = func()
                return True, result, None

            except Exception as e:
                last_error = e
                logger.warning(f"Attempt {attempt + 1}/{config.max_attempts} failed in {context}: {str(e)}")

                # Don't retry on the last attempt
                if attempt == config.max_attempts - 1:
                    break

                error_info = self.classify_error(e, context)
                if not error_info.retry_possible:
                    break

                if config.exponential_backoff:
                    delay = min(config.base_delay * (2 ** attempt), config.max_delay)
                else:
                    delay = config.base_delay

                logger.info(f"Retrying in {delay} seconds...")
                self._sleep(delay)

        error_info = self.classify_error(last_error, context)
        return False, None, error_info

    def classify_error(self, error: Exception, context: str = "") -> ErrorInfo:
        """
        Classify an error and return appropriate ErrorInfo.

        Args:
            error: The exception to classify
            context: Additional context about the operation

        Returns:
            ErrorInfo object with structured error information
        """
        if isinstance(error, PlannerInputError):
            return self.handle_input_error(error, context)

        elif isinstance(error, (requests.RequestException, ConnectionError, TimeoutError)):
            return self.handle_network_error(error, context)

        elif isinstance(error, (FileNotFoundError, PermissionError)):
            return self.handle_data_error(error, context)

        error_str = str(error).lower()

        if any(keyword in error_str for keyword in ["network", "connection", "timeout"]):
            return self.handle_network_error(error, context)

        elif any(keyword in error_str for keyword in ["file", "excel", "sheet", "column"]):
            return self.handle_data_error(error, context)

        # Generic system error
        return ErrorInfo(
            category=ErrorCategory.SYSTEM_ERROR,
            severity=ErrorSeverity.ERROR,
            message=f"Unexpected error in {context}: {str(error)}",
            user_message="An unexpected error occurred while recalculating the planner.",
            technical_details=str(error),
            suggested_action="Try again. If the problem persists, contact support with the error details.",
            retry_possible=True
        )

    def create_user_notification(self, error_info: ErrorInfo) -> Dict[str, Any]:
        """
        Create a user-friendly notification from error information.

        Args:
            error_info: Structured error information

        Returns:
            Dictionary with notification data for UI display
        """
        notification_type_map = {
            ErrorSeverity.INFO: "info",
            ErrorSeverity.WARNING: "warning",
            ErrorSeverity.ERROR: "error",
            ErrorSeverity.CRITICAL: "error"
        }

        notification = {
            'type': notification_type_map[error_info.severity],
            'title': self._get_error_title(error_info),
            'message': error_info.user_message,
            'timestamp': error_info.timestamp.isoformat(),
            'dismissible': error_info.severity in [ErrorSeverity.INFO, ErrorSeverity.WARNING],
            'retry_possible': error_info.retry_possible
        }

        if error_info.suggested_action:
            notification['action'] = error_info.suggested_action

        if error_info.technical_details and error_info.severity == ErrorSeverity.CRITICAL:
            notification['technical_details'] = error_info.technical_details

        return notification

    def _get_error_title(self, error_info: ErrorInfo) -> str:
        title_map = {
            ErrorCategory.DATA_ERROR: "Data Error",
            ErrorCategory.VALIDATION_ERROR: "Input Validation Error",
            ErrorCategory.NETWORK_ERROR: "Exchange Rate Service",
            ErrorCategory.SYSTEM_ERROR: "System Error",
            ErrorCategory.USER_ERROR: "Planner Input Required"
        }

        return title_map.get(error_info.category, "Error")

    def log_error(self, error_info: ErrorInfo, context: str = ""):
        """
        Log error information for monitoring and debugging.

        Args:
            error_info: Structured error information
            context: Additional context
        """
        self.error_history.append(error_info)

        # Keep only recent errors (last 100)
        if len(self.error_history) > 100:
            self.error_history = self.error_history[-100:]

        log_message = f"{context}: {error_info.message}"

        if error_info.severity == ErrorSeverity.CRITICAL:
            logger.critical(log_message)
        elif error_info.severity == ErrorSeverity.ERROR:
            logger.error(log_message)
        elif error_info.severity == ErrorSeverity.WARNING:
            logger.warning(log_message)
        else:
            logger.info(log_message)

    def get_error_statistics(self) -> Dict[str, Any]:
        """
        Get error statistics for monitoring.

        Returns:
            Dictionary with error statistics
        """
        if not self.error_history:
            return {'total_errors': 0}

        category_counts = {}
        severity_counts = {}

        recent_errors = [
            err for err in self.error_history
            if err.timestamp > datetime.now() - timedelta(hours=24)
        ]

        for error in recent_errors:
            category_counts[error.category.value] = category_counts.get(error.category.value, 0) + 1
            severity_counts[error.severity.value] = severity_counts.get(error.severity.value, 0) + 1

        return {
            'total_errors': len(self.error_history),
            'recent_errors_24h': len(recent_errors),
            'category_breakdown': category_counts,
            'severity_breakdown': severity_counts
        }


# Global error handler instance
error_handler = ErrorHandler()
