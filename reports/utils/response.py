"""
Standardized Response Utilities for Reports

Provides consistent response formats across the ledger reports.
"""

from typing import Any, Dict, Optional, List
from django.utils import timezone
from rest_framework.response import Response
from rest_framework import status


def _timestamp() -> str:
    return timezone.now().isoformat()


class ReportError:
    """Standard error response structure"""

    # Error codes
    INVALID_DATE = 'INVALID_DATE'
    INVALID_DATE_RANGE = 'INVALID_DATE_RANGE'
    INVALID_FILTER = 'INVALID_FILTER'

    @staticmethod
    def create(code: str, message: str, details: Optional[Dict] = None) -> Dict:
        """
        Create standardized error response

        Args:
            code: Error code from class constants
            message: Human-readable error message
            details: Additional error details

        Returns:
            Dict containing error information
        """
        return {
            'success': False,
            'data': None,
            'error': {
                'code': code,
                'message': message,
                'details': details or {},
                'timestamp': _timestamp(),
            }
        }

    @staticmethod
    def invalid_date(param_name: str, value: str) -> Dict:
        return ReportError.create(
            ReportError.INVALID_DATE,
            f"Invalid {param_name} format. Use YYYY-MM-DD",
            {'parameter': param_name, 'value': value}
        )

    @staticmethod
    def invalid_date_range(start_date: str, end_date: str, reason: str = None) -> Dict:
        """Create invalid date range error"""
        return ReportError.create(
            ReportError.INVALID_DATE_RANGE,
            reason or "Invalid date range provided",
            {'start_date': start_date, 'end_date': end_date}
        )

    @staticmethod
    def invalid_filter(param_name: str, value: str, allowed: List[str]) -> Dict:
        return ReportError.create(
            ReportError.INVALID_FILTER,
            f"Unsupported value '{value}' for '{param_name}'",
            {'parameter': param_name, 'allowed': allowed}
        )


class ReportResponse:
    """Standard report response builder"""

    @staticmethod
    def success(
        summary: Dict[str, Any],
        results: List[Dict[str, Any]],
        metadata: Dict[str, Any]
    ) -> Response:
        """
        Create successful report response

        Args:
            summary: Aggregated metrics
            results: Detailed rows
            metadata: Report metadata (period, filters, etc.)
        """
        return Response({
            'success': True,
            'data': {
                'summary': summary,
                'results': results,
                'metadata': {
                    'generated_at': _timestamp(),
                    'total_records': len(results),
                    **metadata
                }
            },
            'error': None
        }, status=status.HTTP_200_OK)

    @staticmethod
    def error(error_dict: Dict, http_status: int = status.HTTP_400_BAD_REQUEST) -> Response:
        return Response(error_dict, status=http_status)

    @staticmethod
    def paginated(
        summary: Dict[str, Any],
        results: List[Dict[str, Any]],
        metadata: Dict[str, Any],
        page: int,
        page_size: int,
        total_count: int
    ) -> Response:
        """
        Create paginated report response

        Args:
            summary: Aggregated metrics over every row, not just this page
            results: Current page of rows
            metadata: Report metadata
            page: Current page number
            page_size: Rows per page
            total_count: Total rows available
        """
        total_pages = (total_count + page_size - 1) // page_size

        return Response({
            'success': True,
            'data': {
                'summary': summary,
                'results': results,
                'metadata': {
                    'generated_at': _timestamp(),
                    'total_records': total_count,
                    'pagination': {
                        'page': page,
                        'page_size': page_size,
                        'total_pages': total_pages,
                        'has_next': page < total_pages,
                        'has_previous': page > 1
                    },
                    **metadata
                }
            },
            'error': None
        }, status=status.HTTP_200_OK)


class ReportMetadata:
    """Helper for building report metadata"""

    @staticmethod
    def create(
        period_start: str = None,
        period_end: str = None,
        filters_applied: Dict = None,
    ) -> Dict:
        metadata = {}

        if period_start or period_end:
            metadata['period'] = {
                'start': period_start,
                'end': period_end,
            }

        if filters_applied:
            metadata['filters_applied'] = filters_applied

        return metadata
