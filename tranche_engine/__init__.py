"""
TRANCHE SCHEDULING & REVENUE RECOGNITION ENGINE
"""

from .models import DateOverrides, PaidMonthsLedger, Partner, SaleRecord, SaleView
from .processor import SaleProcessor
from .rules import RuleTable

__all__ = [
    'SaleProcessor',
    'RuleTable',
    'SaleRecord',
    'SaleView',
    'Partner',
    'DateOverrides',
    'PaidMonthsLedger',
]
