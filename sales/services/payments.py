"""
Payment application engine.

Applies one installment to an existing sale: validates the tender, replays
the sale's history with the new entry, and commits through the coordinator.
"""
from __future__ import annotations

import logging
from typing import Optional

from sales.money import ZERO, clamp_zero, format_money
from sales.tenders import PaymentMethod, Tender, TenderedPayment

from .coordinator import TransactionCoordinator
from .ledger import LedgerState
from .stores import AuditDraft, LedgerMutation, PaymentDraft

logger = logging.getLogger(__name__)


def plan_payment(sale, payment: TenderedPayment) -> LedgerMutation:
    """
    Compute the ledger mutation for ``payment`` against the loaded ``sale``.

    Cash beyond the outstanding balance goes back as change, so cash offered
    on a settled sale is logged with its whole amount as change and leaves
    ``total_amount_paid`` where it was. The entry still records that the
    cashier took and returned the money. Cheques and transfers cannot be
    handed back and are retained in full.
    """
    log = list(sale.additional_payments.all())
    state = LedgerState.from_sale(sale, payments=log)
    outstanding_before = state.outstanding_balance

    change_given = ZERO
    if payment.method == PaymentMethod.CASH:
        change_given = clamp_zero(payment.amount - outstanding_before)
    retained = payment.amount - change_given

    reference = payment.detail.reference if payment.detail is not None else None
    state.add_tender(Tender(payment.method, retained, reference))

    draft = PaymentDraft(
        position=len(log),
        amount=payment.amount,
        change_given=change_given,
        method=payment.method,
        staff_id=payment.staff_id,
        date=payment.recorded_at,
        notes=payment.notes,
        details=payment.detail.to_dict() if payment.detail is not None else {},
    )
    return LedgerMutation(
        total_amount_paid=state.total_amount_paid,
        credit_settled=state.credit_settled,
        exchange_charges=state.exchange_charges,
        outstanding_balance=state.outstanding_balance,
        payment_summary=state.payment_summary,
        payments=[draft],
        audit=AuditDraft(
            event_type='payment.applied',
            description=(
                f"{PaymentMethod(payment.method).label} payment of {format_money(payment.amount)} "
                f"applied to sale {sale.receipt_number or sale.id}"
            ),
            event_data={
                'amount': format_money(payment.amount),
                'retained': format_money(retained),
                'change_given': format_money(change_given),
                'method': payment.method,
                'outstanding_before': format_money(outstanding_before),
                'outstanding_after': format_money(state.outstanding_balance),
            },
        ),
    )


def apply_payment(
    sale_id,
    amount,
    method,
    date=None,
    staff_id: Optional[str] = None,
    notes: Optional[str] = None,
    detail=None,
    coordinator: Optional[TransactionCoordinator] = None,
):
    """
    Record an installment payment against a sale.

    Validation happens before the sale is loaded, in this order:
    InvalidAmount / InvalidPaymentMethod, MissingStaff, ChequeNumberRequired,
    BankDetailsRequired. NotFound is raised on load.

    Returns:
        The refreshed Sale. ``sale.applied_payment`` holds the new log entry.
    """
    payment = TenderedPayment(
        amount=amount,
        method=method,
        staff_id=staff_id,
        date=date,
        notes=notes,
        detail=detail,
    ).validate()

    coordinator = coordinator or TransactionCoordinator()
    result = coordinator.run(sale_id, lambda sale: plan_payment(sale, payment))

    sale = result.sale
    sale.applied_payment = result.payments[0]
    logger.info(
        f"Applied {payment.method} payment of {format_money(payment.amount)} to sale {sale.id}; "
        f"outstanding now {format_money(sale.outstanding_balance)}"
    )
    return sale
