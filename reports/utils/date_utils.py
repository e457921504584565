"""
Date Range Utilities for Reports

Handles date validation, parsing and day boundaries.
"""

from datetime import datetime, time, timedelta, date
from typing import Tuple, Optional
from django.utils import timezone


class DateRangeValidator:
    """Validate and normalize date ranges for reports"""

    @staticmethod
    def parse_date(date_str: str) -> Optional[date]:
        """
        Parse date string to date object

        Args:
            date_str: Date string in YYYY-MM-DD format (ISO datetimes accepted)

        Returns:
            date object or None if invalid
        """
        if not date_str:
            return None

        try:
            return datetime.strptime(date_str, '%Y-%m-%d').date()
        except (ValueError, TypeError):
            try:
                return datetime.fromisoformat(date_str.replace('Z', '+00:00')).date()
            except (ValueError, TypeError):
                return None

    @staticmethod
    def validate(
        start_date: str,
        end_date: str,
        max_days: int = 366
    ) -> Tuple[bool, Optional[str], Optional[date], Optional[date]]:
        """
        Validate date range

        Returns:
            Tuple of (is_valid, error_message, parsed_start, parsed_end)
        """
        start = DateRangeValidator.parse_date(start_date)
        end = DateRangeValidator.parse_date(end_date)

        if not start:
            return False, "Invalid start_date format. Use YYYY-MM-DD", None, None

        if not end:
            return False, "Invalid end_date format. Use YYYY-MM-DD", None, None

        if start > end:
            return False, "start_date must be before or equal to end_date", start, end

        if (end - start).days > max_days:
            return False, f"Date range cannot exceed {max_days} days", start, end

        return True, None, start, end

    @staticmethod
    def get_default_range(days: int = 30) -> Tuple[date, date]:
        """Last ``days`` days, ending today in the active timezone."""
        end_date = timezone.localdate()
        start_date = end_date - timedelta(days=days)
        return start_date, end_date


def day_bounds(start: date, end: Optional[date] = None) -> Tuple[datetime, datetime]:
    """
    Aware datetimes covering ``start`` through ``end`` inclusive.

    The upper bound is exclusive midnight after ``end``.
    """
    end = end or start
    tz = timezone.get_current_timezone()
    lower = timezone.make_aware(datetime.combine(start, time.min), tz)
    upper = timezone.make_aware(datetime.combine(end + timedelta(days=1), time.min), tz)
    return lower, upper
