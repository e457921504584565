"""
Payment summary formatting.

``paymentSummary`` is display-only derived state. It is always rebuilt from
the complete set of retained tenders, never patched, so the stored string can
be reproduced from the numeric payment history at any time.
"""
from collections import OrderedDict

from .money import ZERO, format_money, to_decimal
from .tenders import METHOD_ORDER, PaymentMethod, Tender


def group_tenders(tenders):
    """Sum tenders per method, keeping the distinct references in order."""
    grouped = OrderedDict((method, {'amount': ZERO, 'references': []}) for method in METHOD_ORDER)
    for tender in tenders:
        if isinstance(tender, Tender):
            method, amount, reference = tender.method, tender.amount, tender.reference
        else:
            method, amount = tender[0], tender[1]
            reference = tender[2] if len(tender) > 2 else None
        bucket = grouped.setdefault(method, {'amount': ZERO, 'references': []})
        bucket['amount'] += to_decimal(amount)
        if reference and reference not in bucket['references']:
            bucket['references'].append(reference)
    return grouped


def _describe(method, amount, references):
    label = f'{PaymentMethod(method).label} ({format_money(amount)})'
    if method == PaymentMethod.CHEQUE and references:
        label += ' - ' + ', '.join(f'#{number}' for number in references)
    elif method == PaymentMethod.BANK_TRANSFER and references:
        label += ' - Ref: ' + ', '.join(references)
    return label


def build_payment_summary(tenders, *, amount_due, outstanding_balance):
    """
    Describe how a sale was settled.

    Args:
        tenders: iterable of ``Tender`` (or ``(method, amount[, reference])``
            tuples) holding amounts actually retained, i.e. after change.
        amount_due: what the sale asks for in total.
        outstanding_balance: balance left once these tenders are applied.

    Returns:
        e.g. ``"Cash (600.00)"``, ``"Split (Cash (10.00) + Cheque (5.00) - #12)"``,
        ``"Partial (Cash (600.00)) - Outstanding: 400.00"``, ``"Full Credit"``.
    """
    amount_due = to_decimal(amount_due)
    outstanding_balance = to_decimal(outstanding_balance)
    grouped = group_tenders(tenders)

    total_applied = sum((bucket['amount'] for bucket in grouped.values()), ZERO)
    methods_used = [
        _describe(method, bucket['amount'], bucket['references'])
        for method, bucket in grouped.items()
        if bucket['amount'] > ZERO
    ]

    if len(methods_used) > 1:
        summary = f"Split ({' + '.join(methods_used)})"
    elif len(methods_used) == 1:
        summary = methods_used[0]
    elif amount_due == ZERO and total_applied == ZERO:
        summary = 'Paid (Zero Value)'
    elif amount_due > ZERO:
        summary = 'Full Credit'
    else:
        summary = 'N/A'

    if outstanding_balance > ZERO:
        if total_applied == ZERO:
            return f'Full Credit - Outstanding: {format_money(outstanding_balance)}'
        return f'Partial ({summary}) - Outstanding: {format_money(outstanding_balance)}'
    return summary
