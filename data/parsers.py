"""
Data parsers for the reference workbook: channel rates, DSP fees and trading deals.
"""

import pandas as pd
import logging
from typing import Any, Dict, List, Optional
from datetime import datetime
from pathlib import Path

from models.data_models import (
    DEFAULT_ROW_CURRENCY, DspFeeEntry, ReferenceRate, TradingDealEntry
)

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


CHANNEL_RATES_SHEET = 'Combined Channel Rates'
DSP_FEES_SHEET = 'DSP Fees'
TRADING_DEALS_SHEET = 'Trading Deals'


def normalize_percentage(value: Any) -> float:
    """
    Convert a fee or discount cell into a fraction.

    Blank cells become 0, a trailing ``%`` is ignored, and any value above 1
    is read as a percentage and divided by 100. A value such as ``1.5`` meant
    as 1.5% cannot be told apart from 150%; it is treated as 1.5%.
    """
    if value is None:
        return 0.0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if pd.isna(value):
            return 0.0
        number = float(value)
    else:
        text = str(value).strip()
        if text.endswith('%'):
            text = text[:-1].strip()
        if text == '':
            return 0.0
        try:
            number = float(text)
        except ValueError:
            return 0.0
        if pd.isna(number):
            return 0.0

    return number / 100 if number > 1 else number


def find_column(headers: List[str], *needles: str, exclude: Optional[List[int]] = None) -> int:
    """
    Locate a column by case-insensitive header name.

    Exact matches win over substring matches; columns listed in ``exclude``
    are skipped. Returns -1 when nothing matches.
    """
    exclude = exclude or []
    lowered = [str(h).strip().lower() for h in headers]

    for needle in needles:
        for i, header in enumerate(lowered):
            if i not in exclude and header == needle.lower():
                return i

    for needle in needles:
        for i, header in enumerate(lowered):
            if i not in exclude and needle.lower() in header:
                return i

    return -1


def _clean_text(value: Any) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ''
    return str(value).strip()


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return default if pd.isna(number) else number


class _SheetParser:
    """Shared workbook access for the reference sheet parsers."""

    sheet_name = ''

    def __init__(self, file_path: str):
        """
        Initialize the parser with a reference workbook path.

        Args:
            file_path: Path to the Excel reference workbook
        """
        self.file_path = Path(file_path)
        self.last_updated = None

        if not self.file_path.exists():
            raise FileNotFoundError(f"Reference workbook not found: {file_path}")

    def read_sheet(self) -> pd.DataFrame:
        try:
            return pd.read_excel(self.file_path, sheet_name=self.sheet_name)
        except ValueError as e:
            raise ValueError(f"Sheet '{self.sheet_name}' not found in {self.file_path.name}: {str(e)}")

    def parse(self) -> List[Any]:
        df = self.read_sheet()
        entries = self.parse_frame(df)
        self.last_updated = datetime.now()
        return entries

    def parse_frame(self, df: pd.DataFrame) -> List[Any]:
        raise NotImplementedError


class ChannelRateParser(_SheetParser):
    """
    Parser for the combined channel rate sheet.

    Columns are located by header name so the sheet may be reordered or
    extended. Rows missing any of country, channel, publisher or format are
    skipped. A missing currency column means every rate is in EUR.
    """

    sheet_name = CHANNEL_RATES_SHEET

    def parse_frame(self, df: pd.DataFrame) -> List[ReferenceRate]:
        headers = [str(c) for c in df.columns]

        columns = {
            'country': find_column(headers, 'country'),
            'channel': find_column(headers, 'channel'),
            'publisher': find_column(headers, 'publisher'),
            'format': find_column(headers, 'format'),
            'buy': find_column(headers, 'buy cpm'),
        }
        missing = [name for name, idx in columns.items() if idx == -1]
        if missing:
            raise ValueError(f"Channel rate sheet is missing columns: {', '.join(missing)}")
        currency_col = find_column(headers, 'currency')

        rates = []
        for _, row in df.iterrows():
            values = row.tolist()
            country = _clean_text(values[columns['country']])
            channel = _clean_text(values[columns['channel']])
            publisher = _clean_text(values[columns['publisher']])
            format_name = _clean_text(values[columns['format']])

            if not (country and channel and publisher and format_name):
                continue

            currency = DEFAULT_ROW_CURRENCY
            if currency_col != -1:
                currency = _clean_text(values[currency_col]).upper() or DEFAULT_ROW_CURRENCY

            rates.append(ReferenceRate(
                country=country,
                channel=channel,
                publisher=publisher,
                format_name=format_name,
                currency=currency,
                buy_cost_per_thousand=_to_float(values[columns['buy']])
            ))

        logger.info(f"Parsed {len(rates)} channel rates")
        return rates


class DspFeeParser(_SheetParser):
    """Parser for the DSP fee sheet (DSP name and fee columns)."""

    sheet_name = DSP_FEES_SHEET

    def parse_frame(self, df: pd.DataFrame) -> List[DspFeeEntry]:
        headers = [str(c) for c in df.columns]
        dsp_col = find_column(headers, 'dsp')
        fee_col = find_column(headers, 'dsp fee', 'fee', exclude=[dsp_col])

        if dsp_col == -1 or fee_col == -1:
            logger.warning("DSP fee sheet has no DSP/fee columns")
            return []

        fees = []
        for _, row in df.iterrows():
            values = row.tolist()
            name = _clean_text(values[dsp_col])
            if not name:
                continue
            fees.append(DspFeeEntry(name=name, fee_rate=normalize_percentage(values[fee_col])))

        logger.info(f"Parsed {len(fees)} DSP fees")
        return fees


class TradingDealParser(_SheetParser):
    """
    Parser for the trading deal sheet.

    Buying point names are in the first column and percentages in the second,
    whatever the headers say.
    """

    sheet_name = TRADING_DEALS_SHEET

    def parse_frame(self, df: pd.DataFrame) -> List[TradingDealEntry]:
        if len(df.columns) < 2:
            logger.warning("Trading deal sheet needs a buying point and a percentage column")
            return []

        deals = []
        for _, row in df.iterrows():
            values = row.tolist()
            buying_point = _clean_text(values[0])
            if not buying_point:
                continue
            deals.append(TradingDealEntry(
                buying_point=buying_point,
                percentage=normalize_percentage(values[1])
            ))

        logger.info(f"Parsed {len(deals)} trading deals")
        return deals


def parse_reference_workbook(file_path: str) -> Dict[str, List[Any]]:
    """
    Parse every reference sheet in one workbook.

    Returns:
        Dictionary with 'rates', 'dsp_fees' and 'trading_deals' lists
    """
    return {
        'rates': ChannelRateParser(file_path).parse(),
        'dsp_fees': DspFeeParser(file_path).parse(),
        'trading_deals': TradingDealParser(file_path).parse()
    }
