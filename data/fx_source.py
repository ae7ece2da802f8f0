"""
Foreign-exchange rate sources used to build the daily rate table.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

import requests

# Set up logging
logger = logging.getLogger(__name__)


class FxSource(ABC):
    """Provider of spot exchange rates between two currencies."""

    @abstractmethod
    def fetch_rate(self, from_currency: str, to_currency: str) -> float:
        """Return how many ``to_currency`` units one ``from_currency`` buys."""
        raise NotImplementedError


class HttpFxSource(FxSource):
    """
    Rates from a Frankfurter-style JSON API.

    ``GET {base_url}/latest?from=EUR&to=GBP`` is expected to answer with
    ``{"rates": {"GBP": 0.86}}``.
    """

    def __init__(self, base_url: str = "https://api.frankfurter.app", timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch_rate(self, from_currency: str, to_currency: str) -> float:
        response = self.session.get(
            f"{self.base_url}/latest",
            params={'from': from_currency, 'to': to_currency},
            timeout=self.timeout
        )
        response.raise_for_status()

        payload = response.json()
        try:
            rate = float(payload['rates'][to_currency])
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Malformed FX response for {from_currency}{to_currency}: {payload}") from e

        logger.info(f"Fetched FX rate {from_currency}{to_currency}={rate}")
        return rate


class StaticFxSource(FxSource):
    """Fixed rates, for offline use and tests."""

    def __init__(self, rates: Dict[Tuple[str, str], float]):
        self.rates = dict(rates)
        self.calls = 0

    def fetch_rate(self, from_currency: str, to_currency: str) -> float:
        self.calls += 1
        try:
            return self.rates[(from_currency, to_currency)]
        except KeyError:
            raise ConnectionError(f"No static rate for {from_currency}{to_currency}")
