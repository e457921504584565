"""
Ledger Reports

Day-end collection summary and the full transaction report, both read
straight from sales, the payment log and return transactions.
"""
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List

from django.db.models import Count, Prefetch, Sum
from django.utils import timezone

from inventory.models import Product
from sales.models import Payment, ReturnTransaction, Sale
from sales.money import ZERO, format_money, to_decimal
from sales.tenders import PaymentMethod
from reports.utils.date_utils import day_bounds

logger = logging.getLogger(__name__)


def _unique(values):
    seen = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


def _local(moment):
    return timezone.localtime(moment) if timezone.is_aware(moment) else moment


def as_payload(data):
    """Money as two-decimal strings, dates as ISO strings, recursively."""
    if isinstance(data, dict):
        return {key: as_payload(value) for key, value in data.items()}
    if isinstance(data, (list, tuple)):
        return [as_payload(value) for value in data]
    if isinstance(data, Decimal):
        return format_money(data)
    if isinstance(data, (date, datetime)):
        return data.isoformat()
    return data


def day_end_summary(report_date: date) -> Dict[str, Any]:
    """
    Collections and credit movement for one business day.

    Cash in counts cash as tendered; change handed back and refunds paid
    out are reported separately and netted into ``net_cash_in_hand``.
    """
    start, end = day_bounds(report_date)

    sales = Sale.objects.filter(sale_date__gte=start, sale_date__lt=end)
    totals = sales.aggregate(
        count=Count('id'),
        gross=Sum('total_amount'),
        cash_in=Sum('cash_tendered'),
        cheque_in=Sum('paid_amount_cheque'),
        bank_in=Sum('paid_amount_bank_transfer'),
        change=Sum('change_given'),
        new_credit=Sum('initial_outstanding_balance'),
        outstanding=Sum('outstanding_balance'),
    )
    credit_sales_count = sales.filter(initial_outstanding_balance__gt=ZERO).count()

    cash_in = to_decimal(totals['cash_in'])
    cheque_in = to_decimal(totals['cheque_in'])
    bank_in = to_decimal(totals['bank_in'])
    change_given = to_decimal(totals['change'])
    credit_settled = ZERO
    paid_against_new_credit = ZERO

    cheque_numbers = [(details or {}).get('number') for details in sales.values_list('cheque_details', flat=True)]
    bank_refs = [
        (details or {}).get('reference_number')
        for details in sales.values_list('bank_transfer_details', flat=True)
    ]

    payments = Payment.objects.filter(date__gte=start, date__lt=end).select_related('sale')
    for payment in payments:
        amount = to_decimal(payment.amount)
        if payment.method == PaymentMethod.RETURN_CREDIT:
            credit_settled += amount
            continue

        if payment.method == PaymentMethod.CASH:
            cash_in += amount
            change_given += to_decimal(payment.change_given)
        elif payment.method == PaymentMethod.CHEQUE:
            cheque_in += amount
            cheque_numbers.append((payment.details or {}).get('number'))
        elif payment.method == PaymentMethod.BANK_TRANSFER:
            bank_in += amount
            bank_refs.append((payment.details or {}).get('reference_number'))

        if start <= payment.sale.sale_date < end:
            paid_against_new_credit += payment.retained_amount

    refunds_for_today_sales = ZERO
    refunds_for_past_sales = ZERO
    refunds_paid = ZERO
    returns = ReturnTransaction.objects.filter(
        return_date__gte=start, return_date__lt=end
    ).select_related('original_sale')
    for ret in returns:
        if start <= ret.original_sale.sale_date < end:
            refunds_for_today_sales += to_decimal(ret.return_total_value)
        else:
            refunds_for_past_sales += to_decimal(ret.return_total_value)
        refunds_paid += to_decimal(ret.refund_amount)

    gross = to_decimal(totals['gross'])

    logger.debug(
        f"Day-end {report_date}: {totals['count']} sales, {len(payments)} payments, {len(returns)} returns"
    )

    return {
        'report_date': report_date,
        'total_transactions': totals['count'],
        'gross_sales_value': gross,
        'refunds_for_today_sales': refunds_for_today_sales,
        'refunds_for_past_sales': refunds_for_past_sales,
        'net_sales_value': gross - refunds_for_today_sales - refunds_for_past_sales,
        'total_cash_in': cash_in,
        'total_cheque_in': cheque_in,
        'total_bank_transfer_in': bank_in,
        'total_change_given': change_given,
        'total_refunds_paid_today': refunds_paid,
        'net_cash_in_hand': cash_in - change_given - refunds_paid,
        'credit_settled_by_returns': credit_settled,
        'new_credit_issued': to_decimal(totals['new_credit']),
        'paid_against_new_credit': paid_against_new_credit,
        'net_outstanding_from_today': to_decimal(totals['outstanding']),
        'credit_sales_count': credit_sales_count,
        'cheque_numbers': _unique(cheque_numbers),
        'bank_transfer_refs': _unique(bank_refs),
    }


def _category_name(product):
    if product is not None and product.category_id:
        return product.category.name
    return None


def transaction_report(start_date: date, end_date: date) -> List[Dict[str, Any]]:
    """
    One row per sold, returned or exchanged line between the two days.

    Returned lines carry negative quantities and totals. Rows are newest
    first.
    """
    start, end = day_bounds(start_date, end_date)
    products = Product.objects.select_related('category')
    rows = []

    sales = Sale.objects.filter(sale_date__gte=start, sale_date__lt=end).prefetch_related(
        Prefetch('items__product', queryset=products),
        'additional_payments',
    )
    for sale in sales:
        at = _local(sale.sale_date)
        close_date = None
        if sale.is_fully_paid and sale.updated_at:
            close_date = _local(sale.updated_at).date()
        payment_details = [
            {
                'date': _local(payment.date),
                'method': payment.method,
                'amount': to_decimal(payment.retained_amount),
            }
            for payment in sale.additional_payments.all()
        ]
        for item in sale.items.all():
            rows.append({
                'transaction_id': str(sale.id),
                'transaction_type': 'Sale',
                'line_kind': 'sold',
                'reference': sale.receipt_number,
                'timestamp': at,
                'transaction_date': at.date(),
                'transaction_time': at.strftime('%H:%M:%S'),
                'related_id': None,
                'invoice_close_date': close_date,
                'customer_name': sale.customer_name or 'Walk-in',
                'product_name': item.product_name,
                'product_category': _category_name(item.product),
                'quantity': item.quantity,
                'applied_price': to_decimal(item.applied_price),
                'line_total': item.line_total,
                'sale_type': item.sale_type,
                'payment_summary': sale.payment_summary,
                'payment_details': payment_details,
                'staff_id': sale.staff_id,
            })

    returns = ReturnTransaction.objects.filter(
        return_date__gte=start, return_date__lt=end
    ).prefetch_related(
        Prefetch('returned_items__product', queryset=products),
        Prefetch('exchanged_items__product', queryset=products),
    )
    for ret in returns:
        at = _local(ret.return_date)
        base = {
            'transaction_id': str(ret.id),
            'transaction_type': 'Return',
            'reference': ret.reference,
            'timestamp': at,
            'transaction_date': at.date(),
            'transaction_time': at.strftime('%H:%M:%S'),
            'related_id': str(ret.original_sale_id),
            'invoice_close_date': None,
            'customer_name': ret.customer_name or 'N/A',
            'payment_summary': ret.payment_summary,
            'payment_details': [],
            'staff_id': ret.staff_id,
        }
        for item in ret.returned_items.all():
            rows.append({
                **base,
                'line_kind': 'returned',
                'product_name': item.product.name,
                'product_category': _category_name(item.product),
                'quantity': -item.quantity,
                'applied_price': to_decimal(item.applied_price),
                'line_total': -item.line_total,
                'sale_type': item.sale_type,
            })
        for item in ret.exchanged_items.all():
            rows.append({
                **base,
                'line_kind': 'exchanged',
                'product_name': item.product.name,
                'product_category': _category_name(item.product),
                'quantity': item.quantity,
                'applied_price': to_decimal(item.applied_price),
                'line_total': item.line_total,
                'sale_type': item.sale_type,
            })

    rows.sort(key=lambda row: row['timestamp'], reverse=True)
    return rows


def summarize_transactions(rows) -> Dict[str, Any]:
    """Totals per line kind for a transaction report."""
    summary = {
        'sold_value': ZERO,
        'returned_value': ZERO,
        'exchanged_value': ZERO,
        'sale_count': len({row['transaction_id'] for row in rows if row['transaction_type'] == 'Sale'}),
        'return_count': len({row['transaction_id'] for row in rows if row['transaction_type'] == 'Return'}),
    }
    for row in rows:
        summary[f"{row['line_kind']}_value"] += row['line_total']
    summary['net_value'] = summary['sold_value'] + summary['returned_value'] + summary['exchanged_value']
    return summary
