"""
Base Report View Classes

Common request handling for the ledger reports.
"""

from typing import Dict, Optional, Tuple
from datetime import date
from rest_framework.views import APIView
from rest_framework.permissions import IsAuthenticated

from reports.utils.response import ReportError
from reports.utils.date_utils import DateRangeValidator


class DateRangeFilterMixin:
    """Mixin to handle date range filtering"""

    def get_date_range(
        self,
        request,
        start_param: str = 'start_date',
        end_param: str = 'end_date',
        default_days: int = 30,
        max_days: int = 366
    ) -> Tuple[Optional[date], Optional[date], Optional[Dict]]:
        """
        Extract and validate date range from request

        Returns:
            Tuple of (start_date, end_date, error_dict)
        """
        start_str = request.query_params.get(start_param)
        end_str = request.query_params.get(end_param)

        if not start_str and not end_str:
            start_date, end_date = DateRangeValidator.get_default_range(default_days)
            return start_date, end_date, None

        # A single bound means a single day
        start_str = start_str or end_str
        end_str = end_str or start_str

        is_valid, error_msg, start_date, end_date = DateRangeValidator.validate(
            start_str, end_str, max_days=max_days
        )
        if not is_valid:
            return None, None, ReportError.invalid_date_range(start_str, end_str, error_msg)

        return start_date, end_date, None

    def get_report_date(self, request, param: str = 'date') -> Tuple[Optional[date], Optional[Dict]]:
        """Single report day; defaults to today."""
        value = request.query_params.get(param)
        if not value:
            return DateRangeValidator.get_default_range(0)[1], None

        parsed = DateRangeValidator.parse_date(value)
        if parsed is None:
            return None, ReportError.invalid_date(param, value)
        return parsed, None


class PaginationMixin:
    """Mixin to handle pagination for reports"""

    DEFAULT_PAGE_SIZE = 50
    MAX_PAGE_SIZE = 500

    def get_pagination_params(
        self,
        request,
        page_param: str = 'page',
        page_size_param: str = 'page_size'
    ) -> Tuple[int, int]:
        try:
            page = max(1, int(request.query_params.get(page_param, 1)))
        except (ValueError, TypeError):
            page = 1

        try:
            page_size = int(request.query_params.get(page_size_param, self.DEFAULT_PAGE_SIZE))
            page_size = min(max(1, page_size), self.MAX_PAGE_SIZE)
        except (ValueError, TypeError):
            page_size = self.DEFAULT_PAGE_SIZE

        return page, page_size


class BaseReportView(APIView, DateRangeFilterMixin, PaginationMixin):
    """Base class for the ledger report views"""

    permission_classes = [IsAuthenticated]
