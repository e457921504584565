"""
Reports Services Module

Exports the ledger report builders for easy importing
"""

from .ledger import as_payload, day_end_summary, summarize_transactions, transaction_report

__all__ = [
    'as_payload',
    'day_end_summary',
    'summarize_transactions',
    'transaction_report',
]
