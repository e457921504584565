"""
Reports Views Package

Organizes view modules by functionality.
"""

from .ledger_reports import DayEndReportView, TransactionReportView

__all__ = [
    'DayEndReportView',
    'TransactionReportView',
]
