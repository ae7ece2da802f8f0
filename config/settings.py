"""
Configuration management for the Media Budget Planner application.
Handles workbook locations, cache settings, and the exchange-rate service.
"""

import os
import streamlit as st
from dotenv import load_dotenv
from typing import Optional
from dataclasses import dataclass

from models.data_models import SUPPORTED_CURRENCIES

load_dotenv()


@dataclass
class AppConfig:
    """Application configuration settings."""
    planner_workbook_path: str = "planner.xlsx"
    reference_workbook_path: str = "reference_data.xlsx"
    default_display_currency: str = "GBP"
    reference_cache_minutes: int = 10
    reference_cache_version: int = 1
    fx_api_url: str = "https://api.frankfurter.app"
    fx_timeout_seconds: float = 10.0
    cache_dir: str = ".cache"


class ConfigManager:
    """Manages application configuration and settings."""

    def __init__(self):
        self._config: Optional[AppConfig] = None

    def load_config(self) -> AppConfig:
        """Load configuration from Streamlit secrets and environment."""
        if self._config is not None:
            return self._config

        default_currency = self._get_setting("DEFAULT_DISPLAY_CURRENCY", "GBP").strip().upper()
        if default_currency not in SUPPORTED_CURRENCIES:
            raise ValueError(
                f"Unsupported DEFAULT_DISPLAY_CURRENCY '{default_currency}'. "
                f"Use one of: {', '.join(SUPPORTED_CURRENCIES)}."
            )

        self._config = AppConfig(
            planner_workbook_path=self._get_setting("PLANNER_WORKBOOK_PATH", "planner.xlsx"),
            reference_workbook_path=self._get_setting("REFERENCE_WORKBOOK_PATH", "reference_data.xlsx"),
            default_display_currency=default_currency,
            reference_cache_minutes=self._get_int_setting("REFERENCE_CACHE_MINUTES", 10),
            reference_cache_version=self._get_int_setting("REFERENCE_CACHE_VERSION", 1),
            fx_api_url=self._get_setting("FX_API_URL", "https://api.frankfurter.app"),
            fx_timeout_seconds=float(self._get_int_setting("FX_TIMEOUT_SECONDS", 10)),
            cache_dir=self._get_setting("CACHE_DIR", ".cache")
        )

        return self._config

    def reset(self) -> None:
        self._config = None

    def _get_secret_or_env(self, key: str) -> Optional[str]:
        """Get value from Streamlit secrets or environment variables."""
        # Try Streamlit secrets first
        try:
            if hasattr(st, 'secrets') and key in st.secrets:
                return st.secrets[key]
        except Exception:
            pass

        # Fall back to environment variables
        return os.getenv(key)

    def _get_setting(self, key: str, default: str) -> str:
        """Get string setting with default value."""
        value = self._get_secret_or_env(key)
        return value if value is not None else default

    def _get_int_setting(self, key: str, default: int) -> int:
        """Get integer setting with default value."""
        value = self._get_secret_or_env(key)
        if value is not None:
            try:
                return int(value)
            except ValueError:
                pass
        return default


# Global configuration manager instance
config_manager = ConfigManager()
