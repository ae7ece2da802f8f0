# Data layer for media budget planner

from .parsers import ChannelRateParser, DspFeeParser, TradingDealParser
from .manager import ReferenceDataManager
from .row_store import ExcelPlannerStore, InMemoryPlannerStore, RowStore

__all__ = [
    'ChannelRateParser', 'DspFeeParser', 'TradingDealParser', 'ReferenceDataManager',
    'ExcelPlannerStore', 'InMemoryPlannerStore', 'RowStore'
]
