"""
Return/exchange netting engine.

Order of operations is fixed: return credit first settles existing debt (when
requested), what is left is netted against the exchanged goods, and only then
is a new payment collected for any residual amount due. The settlement is
written to the sale's payment log as a RETURN_CREDIT entry; collected tenders
are written as ordinary entries linked to the return transaction and charged
to the sale as exchange charges, so the post-settlement balance is unchanged
by the exchange itself.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils import timezone

from inventory.models import Product
from sales.exceptions import (
    InsufficientPayment,
    InvalidAmount,
    MissingStaff,
    NotFound,
    NothingToReturn,
    OverReturn,
)
from sales.models import ReturnTransaction, Sale
from sales.money import ZERO, format_money, money_sum, to_decimal
from sales.summary import build_payment_summary
from sales.tenders import PaymentMethod, Tender, TenderSet

from .coordinator import TransactionCoordinator
from .ledger import LedgerState
from .stock import StockMovement, apply_stock_movements
from .stores import (
    AuditDraft,
    ExchangedLineDraft,
    LedgerMutation,
    PaymentDraft,
    ReturnDraft,
    ReturnedLineDraft,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReturnLine:
    """A sold line coming back. ``sale_item_id`` wins over product matching."""
    product_id: object
    quantity: int
    sale_type: str = Sale.TYPE_RETAIL
    is_resellable: bool = True
    sale_item_id: object = None


@dataclass(frozen=True)
class ExchangeLine:
    """A product handed out. Without ``applied_price`` the catalog price is used."""
    product_id: object
    quantity: int
    sale_type: str = Sale.TYPE_RETAIL
    applied_price: Optional[Decimal] = None


@dataclass(frozen=True)
class NettingResult:
    return_total_value: Decimal
    outstanding_to_settle: Decimal
    net_credit_after_settle: Decimal
    exchange_total_value: Decimal
    final_difference: Decimal
    final_amount_due: Decimal
    refund_to_customer: Decimal


@dataclass(frozen=True)
class SettlementResult:
    total_tendered: Decimal = ZERO
    change_given: Decimal = ZERO
    total_payment_applied: Decimal = ZERO


@dataclass
class ReturnExchangeResult:
    return_transaction: ReturnTransaction
    sale: Sale
    netting: NettingResult
    settlement: SettlementResult
    warnings: List[str] = field(default_factory=list)


def compute_netting(return_total_value, exchange_total_value, outstanding_balance,
                    apply_credit_to_outstanding) -> NettingResult:
    """Net return credit, debt settlement and exchange cost into one figure."""
    return_total_value = to_decimal(return_total_value)
    exchange_total_value = to_decimal(exchange_total_value)
    outstanding_balance = to_decimal(outstanding_balance)

    outstanding_to_settle = ZERO
    if apply_credit_to_outstanding:
        outstanding_to_settle = max(ZERO, min(return_total_value, outstanding_balance))
    net_credit_after_settle = return_total_value - outstanding_to_settle
    final_difference = exchange_total_value - net_credit_after_settle

    final_amount_due = final_difference if final_difference > ZERO else ZERO
    refund_to_customer = -final_difference if final_difference < ZERO else ZERO

    return NettingResult(
        return_total_value=return_total_value,
        outstanding_to_settle=outstanding_to_settle,
        net_credit_after_settle=net_credit_after_settle,
        exchange_total_value=exchange_total_value,
        final_difference=final_difference,
        final_amount_due=final_amount_due,
        refund_to_customer=refund_to_customer,
    )


def compute_settlement(final_amount_due, tenders: Optional[TenderSet]) -> SettlementResult:
    """
    Check that the tendered money covers ``final_amount_due``.

    Raises:
        InsufficientPayment: retained tenders fall short of the amount due.
    """
    final_amount_due = to_decimal(final_amount_due)
    if final_amount_due <= ZERO:
        return SettlementResult()

    tenders = tenders or TenderSet()
    change_given = tenders.change_for(final_amount_due)
    total_payment_applied = tenders.total - change_given
    if total_payment_applied < final_amount_due:
        raise InsufficientPayment(
            f'Payment of {format_money(total_payment_applied)} does not cover '
            f'the {format_money(final_amount_due)} due.',
            amount_due=format_money(final_amount_due),
            amount_paid=format_money(total_payment_applied),
        )
    return SettlementResult(
        total_tendered=tenders.total,
        change_given=change_given,
        total_payment_applied=total_payment_applied,
    )


def _match_sale_items(sale, returned_items):
    """Resolve each return line to a sale item and check returnable quantities."""
    items = list(sale.items.all())
    by_id = {str(item.id): item for item in items}
    requested = defaultdict(int)
    matched = []

    for line in returned_items:
        if line.quantity < 0:
            raise InvalidAmount('Return quantity cannot be negative.')
        if line.quantity == 0:
            continue
        if line.sale_item_id is not None:
            item = by_id.get(str(line.sale_item_id))
        else:
            item = next(
                (
                    candidate for candidate in items
                    if str(candidate.product_id) == str(line.product_id)
                    and candidate.sale_type == line.sale_type
                    and candidate.returnable_quantity - requested[candidate.id] > 0
                ),
                None,
            )
            if item is None:
                item = next(
                    (
                        candidate for candidate in items
                        if str(candidate.product_id) == str(line.product_id)
                        and candidate.sale_type == line.sale_type
                    ),
                    None,
                )
        if item is None:
            raise NotFound(
                f'Product {line.product_id} ({line.sale_type}) is not part of this sale.',
                product_id=line.product_id,
            )

        requested[item.id] += line.quantity
        if requested[item.id] > item.returnable_quantity:
            raise OverReturn(
                f'Cannot return {requested[item.id]} of {item.product_name}; '
                f'only {item.returnable_quantity} remaining.',
                sale_item_id=item.id,
                requested=requested[item.id],
                returnable=item.returnable_quantity,
            )
        matched.append((item, line))
    return matched, dict(requested)


def _price_exchange_lines(exchanged_items) -> List[ExchangedLineDraft]:
    lines = [line for line in exchanged_items if line.quantity]
    for line in lines:
        if line.quantity < 0:
            raise InvalidAmount('Exchange quantity cannot be negative.')
    try:
        products = Product.objects.in_bulk([line.product_id for line in lines])
    except (DjangoValidationError, ValueError):
        raise NotFound('Exchange product not found.')
    products = {str(pk): product for pk, product in products.items()}

    drafts = []
    for line in lines:
        product = products.get(str(line.product_id))
        if product is None:
            raise NotFound(f'Product {line.product_id} not found.', product_id=line.product_id)
        if line.applied_price is not None:
            price = to_decimal(line.applied_price)
        else:
            price = to_decimal(product.price_for(line.sale_type))
        if price < ZERO:
            raise InvalidAmount('Exchange price cannot be negative.')
        drafts.append(ExchangedLineDraft(
            product_id=product.pk,
            sale_type=line.sale_type,
            quantity=line.quantity,
            applied_price=price,
        ))
    return drafts


def plan_return_exchange(sale, *, returned_items, exchanged_items, apply_credit_to_outstanding,
                         tenders: Optional[TenderSet], staff_id, notes=None, return_date=None):
    """Compute the ledger mutation and netting for a return against ``sale``."""
    matched, requested = _match_sale_items(sale, returned_items)
    exchanged_lines = _price_exchange_lines(exchanged_items)
    if not matched and not exchanged_lines:
        raise NothingToReturn()

    return_total_value = money_sum(item.applied_price * line.quantity for item, line in matched)
    exchange_total_value = money_sum(line.applied_price * line.quantity for line in exchanged_lines)

    log = list(sale.additional_payments.all())
    state = LedgerState.from_sale(sale, payments=log)
    netting = compute_netting(
        return_total_value,
        exchange_total_value,
        state.outstanding_balance,
        apply_credit_to_outstanding,
    )
    settlement = compute_settlement(netting.final_amount_due, tenders)
    when = return_date or timezone.now()

    drafts = []
    if netting.outstanding_to_settle > ZERO:
        drafts.append(PaymentDraft(
            position=len(log),
            amount=netting.outstanding_to_settle,
            method=PaymentMethod.RETURN_CREDIT,
            staff_id=staff_id,
            date=when,
            notes='Return credit applied to outstanding balance',
            from_return=True,
        ))
        state.add_tender(Tender(PaymentMethod.RETURN_CREDIT, netting.outstanding_to_settle))

    collected = []
    if settlement.total_payment_applied > ZERO:
        state.exchange_charges += settlement.total_payment_applied
        collected = tenders.tenders(settlement.change_given)
        for tender in collected:
            change = settlement.change_given if tender.method == PaymentMethod.CASH else ZERO
            if tender.method == PaymentMethod.CHEQUE and tenders.cheque_detail:
                details = tenders.cheque_detail.to_dict()
            elif tender.method == PaymentMethod.BANK_TRANSFER and tenders.bank_transfer_detail:
                details = tenders.bank_transfer_detail.to_dict()
            else:
                details = {}
            drafts.append(PaymentDraft(
                position=len(log) + len(drafts),
                amount=tender.amount + change,
                change_given=change,
                method=tender.method,
                staff_id=staff_id,
                date=when,
                notes='Payment for exchanged items',
                details=details,
                from_return=True,
            ))
            state.add_tender(tender)

    payment_summary = None
    if netting.final_amount_due > ZERO:
        payment_summary = build_payment_summary(
            collected,
            amount_due=netting.final_amount_due,
            outstanding_balance=ZERO,
        )

    return_draft = ReturnDraft(
        staff_id=staff_id,
        return_date=when,
        apply_credit_to_outstanding=apply_credit_to_outstanding,
        return_total_value=netting.return_total_value,
        exchange_total_value=netting.exchange_total_value,
        returned_lines=[
            ReturnedLineDraft(
                sale_item_id=item.id,
                product_id=item.product_id,
                sale_type=item.sale_type,
                quantity=line.quantity,
                applied_price=item.applied_price,
                is_resellable=line.is_resellable,
            )
            for item, line in matched
        ],
        exchanged_lines=exchanged_lines,
        settle_outstanding_amount=netting.outstanding_to_settle or None,
        refund_amount=netting.refund_to_customer or None,
        amount_paid=settlement.total_payment_applied or None,
        payment_summary=payment_summary,
        change_given=settlement.change_given if netting.final_amount_due > ZERO else None,
        cheque_details=tenders.cheque_detail.to_dict() if tenders and tenders.cheque > ZERO and tenders.cheque_detail else {},
        bank_transfer_details=(
            tenders.bank_transfer_detail.to_dict()
            if tenders and tenders.bank_transfer > ZERO and tenders.bank_transfer_detail else {}
        ),
        notes=notes,
    )

    mutation = LedgerMutation(
        total_amount_paid=state.total_amount_paid,
        credit_settled=state.credit_settled,
        exchange_charges=state.exchange_charges,
        outstanding_balance=state.outstanding_balance,
        payment_summary=state.payment_summary,
        payments=drafts,
        returned_quantities=requested,
        return_draft=return_draft,
        audit=AuditDraft(
            event_type='return.processed',
            description=(
                f"Return against sale {sale.receipt_number or sale.id}: "
                f"credit {format_money(netting.return_total_value)}, "
                f"exchange {format_money(netting.exchange_total_value)}"
            ),
            event_data={
                'return_total_value': format_money(netting.return_total_value),
                'exchange_total_value': format_money(netting.exchange_total_value),
                'outstanding_to_settle': format_money(netting.outstanding_to_settle),
                'final_amount_due': format_money(netting.final_amount_due),
                'refund_to_customer': format_money(netting.refund_to_customer),
                'change_given': format_money(settlement.change_given),
            },
        ),
    )
    return mutation, netting, settlement


def process_return_exchange(
    sale_id,
    returned_items=(),
    exchanged_items=(),
    apply_credit_to_outstanding: bool = True,
    payment: Optional[TenderSet] = None,
    staff_id: Optional[str] = None,
    notes: Optional[str] = None,
    return_date=None,
    coordinator: Optional[TransactionCoordinator] = None,
    adjuster=None,
) -> ReturnExchangeResult:
    """
    Process a return, an exchange, or both against an existing sale.

    Every validation error (NothingToReturn, NotFound, OverReturn,
    InsufficientPayment, tender detail errors) is raised before anything is
    written. Stock is adjusted after the ledger commit; failures there come
    back as ``warnings`` and leave the ledger untouched.
    """
    staff_id = (staff_id or '').strip()
    if not staff_id:
        raise MissingStaff('Staff ID is required to process a return.')
    returned_items = list(returned_items or [])
    exchanged_items = list(exchanged_items or [])
    if not any(line.quantity for line in returned_items) and not any(line.quantity for line in exchanged_items):
        raise NothingToReturn()
    if payment is not None:
        payment.validate()

    outcome = {}

    def compute(sale):
        mutation, netting, settlement = plan_return_exchange(
            sale,
            returned_items=returned_items,
            exchanged_items=exchanged_items,
            apply_credit_to_outstanding=apply_credit_to_outstanding,
            tenders=payment,
            staff_id=staff_id,
            notes=notes,
            return_date=return_date,
        )
        outcome['mutation'] = mutation
        outcome['netting'] = netting
        outcome['settlement'] = settlement
        return mutation

    coordinator = coordinator or TransactionCoordinator()
    result = coordinator.run(sale_id, compute)
    return_transaction = result.return_transaction
    netting = outcome['netting']

    logger.info(
        f"Processed {return_transaction.reference} against sale {result.sale.id}: "
        f"settled {format_money(netting.outstanding_to_settle)}, "
        f"due {format_money(netting.final_amount_due)}, "
        f"refund {format_money(netting.refund_to_customer)}"
    )

    movements = []
    return_draft = outcome['mutation'].return_draft
    for index, line in enumerate(return_draft.returned_lines):
        if line.is_resellable:
            movements.append(StockMovement(
                product_id=line.product_id,
                delta=line.quantity,
                adjustment_type='CUSTOMER_RETURN',
                idempotency_key=f"{return_transaction.reference}:returned:{index}",
            ))
    for index, line in enumerate(return_draft.exchanged_lines):
        movements.append(StockMovement(
            product_id=line.product_id,
            delta=-line.quantity,
            adjustment_type='EXCHANGE_ISSUE',
            idempotency_key=f"{return_transaction.reference}:exchanged:{index}",
        ))
    warnings = apply_stock_movements(
        movements,
        reference=return_transaction.reference,
        sale=result.sale,
        staff_id=staff_id,
        return_transaction=return_transaction,
        adjuster=adjuster,
    )

    return ReturnExchangeResult(
        return_transaction=return_transaction,
        sale=result.sale,
        netting=netting,
        settlement=outcome['settlement'],
        warnings=warnings,
    )
