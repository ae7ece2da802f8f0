"""
Planner row storage.

The planner table has a fixed column schema (``PLANNER_COLUMNS``). The
Excel adapter maps whatever headers a workbook carries onto that schema by
case-insensitive name, so older layouts with reordered or renamed columns
still load. Totals are kept beside the rows and only rendered as a tagged
final row when the table is shown or saved.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from models.data_models import (
    DEFAULT_DISPLAY_CURRENCY, LineItem, PlanGlobals, SUPPORTED_CURRENCIES, TotalsRecord
)
from .parsers import normalize_percentage

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


SCHEMA_VERSION = 2
PLANNER_SHEET = 'Planner'
INPUTS_SHEET = 'Plan Inputs'
TOTALS_MARKER = 'Totals:'

INPUT_COLUMNS = [
    ('country', 'Country'),
    ('channel', 'Channel'),
    ('publisher', 'Publisher'),
    ('format_name', 'Format'),
    ('delivery_share', 'Percentage Delivery'),
    ('currency', 'Currency'),
    ('buy_cost_per_thousand', 'Buy CPM'),
    ('dsp_fee_rate', 'DSP Fee'),
]

OUTPUT_COLUMNS = [
    ('gross_budget_native', 'Gross Budget'),
    ('gross_budget_plan', 'Gross Budget (In Plan Currency)'),
    ('net_budget_native', 'Net Budget'),
    ('net_budget_plan', 'Net Budget (In Plan Currency)'),
    ('impressions', 'Impressions'),
    ('publisher_spend', 'Publisher Spend'),
    ('dsp_fee_value', 'DSP Fee Value'),
    ('total_media_spend', 'Total Media Spend'),
    ('allocated_hard_cost_plan', 'Allocated Hard Cost'),
    ('gross_margin_plan', 'Gross Margin'),
    ('margin_ratio', 'Margin'),
    ('gross_profit_plan', 'Gross Profit'),
    ('profit_ratio', 'Profit %'),
]

PLANNER_COLUMNS = INPUT_COLUMNS + OUTPUT_COLUMNS
COLUMN_HEADERS = dict(PLANNER_COLUMNS)
REQUIRED_FIELDS = ['country', 'channel', 'publisher', 'format_name', 'delivery_share']

# Older sheet headers that map onto the current schema
HEADER_ALIASES: Dict[str, List[str]] = {
    'delivery_share': ['% Delivery', 'Delivery %', 'Percentage'],
    'buy_cost_per_thousand': ['Buy Price', 'Buy Cost'],
    'allocated_hard_cost_plan': ['Allocated Hard Costs'],
    'margin_ratio': ['Margin %'],
    'profit_ratio': ['Profit Pct', 'Gross Profit %'],
}

GLOBAL_FIELDS = [
    ('total_budget', 'Total Budget'),
    ('sell_price_per_thousand', 'Sell CPM'),
    ('hard_cost_total_plan', 'Hard Costs'),
    ('display_currency', 'Display Currency'),
    ('buying_point', 'Buying Point'),
    ('trading_deal_percentage', 'Trading Deal'),
    ('rates_label', 'FX Rates'),
]


def resolve_columns(headers: List[str]) -> Dict[str, str]:
    """
    Map schema fields onto sheet headers.

    Exact (case-insensitive) matches on the canonical header or an alias
    are tried for every field first; remaining fields fall back to the
    first unclaimed header containing the canonical name. Longer headers
    are resolved first so 'Gross Budget (In Plan Currency)' is never taken
    by 'Gross Budget'.
    """
    lowered = {str(h).strip().lower(): h for h in headers}
    fields = sorted(PLANNER_COLUMNS, key=lambda fc: len(fc[1]), reverse=True)
    mapping: Dict[str, str] = {}
    claimed = set()

    for field, canonical in fields:
        for candidate in [canonical] + HEADER_ALIASES.get(field, []):
            header = lowered.get(candidate.lower())
            if header is not None and header not in claimed:
                mapping[field] = header
                claimed.add(header)
                break

    for field, canonical in fields:
        if field in mapping:
            continue
        for header in headers:
            if header not in claimed and canonical.lower() in str(header).strip().lower():
                mapping[field] = header
                claimed.add(header)
                break

    return mapping


def _parse_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.replace(',', '').strip()
        if value == '':
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if pd.isna(number) else number


def _parse_text(value: Any) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ''
    return str(value).strip()


def is_totals_row(first_cell: Any) -> bool:
    text = _parse_text(first_cell)
    return text == 'Totals' or 'Totals:' in text


class RowStore(ABC):
    """Storage interface the planner core reads from and writes to."""

    @abstractmethod
    def get_rows(self) -> List[LineItem]:
        raise NotImplementedError

    @abstractmethod
    def write_rows(self, start_index: int, records: List[Dict[str, Any]]) -> None:
        raise NotImplementedError

    @abstractmethod
    def append_row(self, item: LineItem) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete_row(self, index: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def clear_rows(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_globals(self) -> PlanGlobals:
        raise NotImplementedError

    @abstractmethod
    def get_cell(self, name: str) -> Any:
        raise NotImplementedError

    @abstractmethod
    def set_cell(self, name: str, value: Any) -> None:
        raise NotImplementedError

    @abstractmethod
    def ensure_columns(self, fields: List[str]) -> List[str]:
        raise NotImplementedError

    @abstractmethod
    def set_totals(self, totals: Optional[TotalsRecord]) -> None:
        raise NotImplementedError


class InMemoryPlannerStore(RowStore):
    """
    Planner table held in a pandas DataFrame.

    ``write_count`` counts every mutating call so callers can check that a
    refused recalculation left the store untouched.
    """

    def __init__(self, frame: Optional[pd.DataFrame] = None,
                 plan_inputs: Optional[Dict[str, Any]] = None):
        if frame is None:
            frame = pd.DataFrame(columns=[header for _, header in INPUT_COLUMNS])

        self.frame = frame.reset_index(drop=True)
        self.columns = resolve_columns(list(self.frame.columns))
        missing = [f for f in REQUIRED_FIELDS if f not in self.columns]
        if missing:
            raise ValueError(f"Planner sheet is missing columns: {', '.join(COLUMN_HEADERS[f] for f in missing)}")

        self.plan_inputs: Dict[str, Any] = dict(plan_inputs or {})
        self.totals: Optional[TotalsRecord] = None
        self.write_count = 0

    # -- reads -----------------------------------------------------------
    def row_count(self) -> int:
        return len(self.frame)

    def get_rows(self) -> List[LineItem]:
        rows = []
        for _, row in self.frame.iterrows():
            rows.append(LineItem(
                country=_parse_text(self._value(row, 'country')),
                channel=_parse_text(self._value(row, 'channel')),
                publisher=_parse_text(self._value(row, 'publisher')),
                format_name=_parse_text(self._value(row, 'format_name')),
                delivery_share=_parse_number(self._value(row, 'delivery_share')) or 0.0,
                currency=_parse_text(self._value(row, 'currency')).upper(),
                buy_cost_per_thousand=_parse_number(self._value(row, 'buy_cost_per_thousand')) or 0.0,
                dsp_fee_rate=normalize_percentage(self._value(row, 'dsp_fee_rate'))
            ))
        return rows

    def _value(self, row: pd.Series, field: str) -> Any:
        header = self.columns.get(field)
        return row[header] if header is not None else None

    def get_globals(self) -> PlanGlobals:
        display_currency = _parse_text(self.plan_inputs.get('display_currency')).upper()
        if display_currency not in SUPPORTED_CURRENCIES:
            display_currency = DEFAULT_DISPLAY_CURRENCY

        return PlanGlobals(
            total_budget=_parse_number(self.plan_inputs.get('total_budget')),
            sell_price_per_thousand=_parse_number(self.plan_inputs.get('sell_price_per_thousand')),
            display_currency=display_currency,
            hard_cost_total_plan=_parse_number(self.plan_inputs.get('hard_cost_total_plan')) or 0.0,
            trading_deal_percentage=normalize_percentage(self.plan_inputs.get('trading_deal_percentage')),
            buying_point=_parse_text(self.plan_inputs.get('buying_point')) or None
        )

    def get_cell(self, name: str) -> Any:
        return self.plan_inputs.get(name)

    def get_column(self, field: str) -> List[Any]:
        header = self.columns.get(field)
        return [] if header is None else self.frame[header].tolist()

    # -- writes ----------------------------------------------------------
    def write_rows(self, start_index: int, records: List[Dict[str, Any]]) -> None:
        """
        Write computed fields for consecutive rows in one swap.

        Args:
            start_index: Zero-based index of the first row to update
            records: One dict of field -> value per row
        """
        if not records:
            return
        if start_index < 0 or start_index + len(records) > len(self.frame):
            raise IndexError(f"Rows {start_index}..{start_index + len(records) - 1} are outside the planner")

        fields = sorted({f for record in records for f in record})
        self.ensure_columns(fields)

        updated = self.frame.copy()
        index = updated.index[start_index:start_index + len(records)]
        for field in fields:
            header = self.columns[field]
            if updated[header].dtype != object:
                updated[header] = updated[header].astype(object)
            updated.loc[index, header] = [record.get(field) for record in records]

        self.frame = updated
        self.write_count += 1

    def append_row(self, item: LineItem) -> None:
        values = {
            'country': item.country,
            'channel': item.channel,
            'publisher': item.publisher,
            'format_name': item.format_name,
            'delivery_share': item.delivery_share,
            'currency': item.currency or '',
            'buy_cost_per_thousand': item.buy_cost_per_thousand or '',
            'dsp_fee_rate': item.dsp_fee_rate,
        }
        self.ensure_columns(list(values.keys()))
        new_row = pd.DataFrame([{self.columns[f]: v for f, v in values.items()}], dtype=object)
        self.frame = pd.concat([self.frame.astype(object), new_row], ignore_index=True)
        self.totals = None
        self.write_count += 1

    def delete_row(self, index: int) -> None:
        if index < 0 or index >= len(self.frame):
            raise IndexError(f"Row {index} is outside the planner")
        self.frame = self.frame.drop(self.frame.index[index]).reset_index(drop=True)
        self.totals = None
        self.write_count += 1

    def clear_rows(self) -> None:
        self.frame = self.frame.iloc[0:0].copy()
        self.totals = None
        self.write_count += 1

    def set_cell(self, name: str, value: Any) -> None:
        self.plan_inputs[name] = value
        self.write_count += 1

    def ensure_columns(self, fields: List[str]) -> List[str]:
        """
        Append any missing schema columns, each once.

        Returns:
            Headers that were added
        """
        added = []
        for field in fields:
            if field in self.columns:
                continue
            header = COLUMN_HEADERS[field]
            self.frame[header] = pd.Series([None] * len(self.frame), index=self.frame.index, dtype=object)
            self.columns[field] = header
            added.append(header)

        if added:
            logger.info(f"Added planner columns: {', '.join(added)}")
            self.write_count += 1
        return added

    def set_totals(self, totals: Optional[TotalsRecord]) -> None:
        self.totals = totals
        self.write_count += 1

    # -- rendering -------------------------------------------------------
    def totals_row(self) -> Dict[str, Any]:
        """Totals rendered onto the planner headers, tagged in the first column."""
        if self.totals is None:
            return {}

        t = self.totals
        values = {
            'delivery_share': t.delivery_share,
            'impressions': t.impressions,
            'gross_budget_plan': t.gross_budget_plan,
            'net_budget_plan': t.net_budget_plan,
            'publisher_spend': t.publisher_spend_plan,
            'dsp_fee_value': t.dsp_fee_value_plan,
            'total_media_spend': t.total_media_spend_plan,
            'allocated_hard_cost_plan': t.allocated_hard_cost_plan,
            'gross_margin_plan': t.gross_margin_plan,
            'margin_ratio': t.blended_margin,
            'gross_profit_plan': t.gross_profit_plan,
            'profit_ratio': t.blended_profit_ratio,
        }
        row = {self.columns[f]: v for f, v in values.items() if f in self.columns}
        row[self.frame.columns[0]] = TOTALS_MARKER
        return row

    def render_frame(self) -> pd.DataFrame:
        """Rows plus the tagged totals row, for display or saving."""
        totals = self.totals_row()
        if not totals:
            return self.frame.copy()
        return pd.concat([self.frame, pd.DataFrame([totals], columns=self.frame.columns)], ignore_index=True)


class ExcelPlannerStore(InMemoryPlannerStore):
    """
    Planner stored in an Excel workbook.

    The ``Planner`` sheet holds the rows and the ``Plan Inputs`` sheet holds
    Setting/Value pairs for the plan-level inputs. Tagged totals rows from a
    previous save are dropped on load.
    """

    def __init__(self, file_path: str):
        """
        Load the planner workbook.

        Args:
            file_path: Path to the planner Excel workbook

        Raises:
            FileNotFoundError: If the workbook does not exist
            ValueError: If the planner sheet or its identity columns are missing
        """
        self.file_path = Path(file_path)
        if not self.file_path.exists():
            raise FileNotFoundError(f"Planner workbook not found: {file_path}")

        try:
            frame = pd.read_excel(self.file_path, sheet_name=PLANNER_SHEET)
        except ValueError as e:
            raise ValueError(f"Sheet '{PLANNER_SHEET}' not found in {self.file_path.name}: {str(e)}")

        if len(frame.columns) and len(frame):
            totals_mask = frame[frame.columns[0]].apply(is_totals_row)
            if totals_mask.any():
                logger.info(f"Dropping {int(totals_mask.sum())} totals row(s) from {PLANNER_SHEET}")
            frame = frame[~totals_mask]

        super().__init__(frame, self._read_plan_inputs())

    def _read_plan_inputs(self) -> Dict[str, Any]:
        try:
            df = pd.read_excel(self.file_path, sheet_name=INPUTS_SHEET, header=None)
        except ValueError:
            logger.warning(f"No '{INPUTS_SHEET}' sheet in {self.file_path.name}")
            return {}

        labels = {label.lower(): field for field, label in GLOBAL_FIELDS}
        inputs = {}
        for _, row in df.iterrows():
            if len(row) < 2:
                continue
            field = labels.get(_parse_text(row.iloc[0]).lower())
            if field is not None:
                value = row.iloc[1]
                inputs[field] = None if (not isinstance(value, str) and pd.isna(value)) else value
        return inputs

    def save(self, file_path: Optional[str] = None) -> Path:
        """Write rows, the tagged totals row and plan inputs back to the workbook."""
        target = Path(file_path) if file_path else self.file_path
        inputs = pd.DataFrame(
            [[label, self.plan_inputs.get(field)] for field, label in GLOBAL_FIELDS],
            columns=['Setting', 'Value']
        )

        with pd.ExcelWriter(target, engine='openpyxl') as writer:
            self.render_frame().to_excel(writer, sheet_name=PLANNER_SHEET, index=False)
            inputs.to_excel(writer, sheet_name=INPUTS_SHEET, index=False, header=False)

        logger.info(f"Saved planner to {target}")
        return target
