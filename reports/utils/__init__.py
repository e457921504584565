"""
Reports Utility Modules

This package contains utility functions and classes for report generation.
"""

from .response import ReportResponse, ReportError, ReportMetadata
from .date_utils import DateRangeValidator, day_bounds

__all__ = [
    'ReportResponse',
    'ReportError',
    'ReportMetadata',
    'DateRangeValidator',
    'day_bounds',
]
