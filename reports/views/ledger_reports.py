"""
Ledger Reports

Day-end collections and the full transaction report.
"""

from rest_framework.permissions import IsAuthenticated

from reports.services.ledger import as_payload, day_end_summary, summarize_transactions, transaction_report
from reports.services.report_base import BaseReportView
from reports.utils.response import ReportError, ReportMetadata, ReportResponse


class DayEndReportView(BaseReportView):
    """
    Day-End Collection Summary

    GET /reports/api/day-end/

    Query Parameters:
    - date: YYYY-MM-DD (default: today)

    Returns:
    - Gross and net sales value
    - Cash, cheque and bank transfer collected, change given, refunds paid
    - Credit issued and collected for the day's sales
    - Cheque numbers and bank transfer references seen
    """

    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        report_date, error = self.get_report_date(request)
        if error:
            return ReportResponse.error(error)

        summary = day_end_summary(report_date)
        metadata = ReportMetadata.create(
            period_start=report_date.isoformat(),
            period_end=report_date.isoformat(),
        )
        return ReportResponse.success(as_payload(summary), [], metadata)


class TransactionReportView(BaseReportView):
    """
    Full Transaction Report

    GET /reports/api/transactions/

    Query Parameters:
    - start_date: YYYY-MM-DD (default: 30 days ago)
    - end_date: YYYY-MM-DD (default: today)
    - kind: sold, returned or exchanged (optional)
    - page, page_size

    Returns one row per line, returned lines negative, newest first.
    """

    permission_classes = [IsAuthenticated]
    LINE_KINDS = ['sold', 'returned', 'exchanged']

    def get(self, request, *args, **kwargs):
        start_date, end_date, error = self.get_date_range(request)
        if error:
            return ReportResponse.error(error)

        kind = request.query_params.get('kind')
        if kind and kind not in self.LINE_KINDS:
            return ReportResponse.error(ReportError.invalid_filter('kind', kind, self.LINE_KINDS))

        rows = transaction_report(start_date, end_date)
        if kind:
            rows = [row for row in rows if row['line_kind'] == kind]

        page, page_size = self.get_pagination_params(request)
        offset = (page - 1) * page_size
        page_rows = [
            {key: value for key, value in row.items() if key != 'timestamp'}
            for row in rows[offset:offset + page_size]
        ]

        metadata = ReportMetadata.create(
            period_start=start_date.isoformat(),
            period_end=end_date.isoformat(),
            filters_applied={'kind': kind} if kind else None,
        )
        return ReportResponse.paginated(
            summary=as_payload(summarize_transactions(rows)),
            results=as_payload(page_rows),
            metadata=metadata,
            page=page,
            page_size=page_size,
            total_count=len(rows),
        )
