"""
Checkout: creates a sale with its creation-time tenders.

Change is owed only from cash, and only for the part of the cash that the
non-cash tenders did not already cover.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from inventory.models import Product
from sales.exceptions import Conflict, CustomerRequired, InvalidAmount, MissingStaff, NotFound, NothingToSell
from sales.models import AuditLog, Sale, SaleItem
from sales.money import ZERO, clamp_zero, format_money, has_sub_cent, money_sum, to_decimal
from sales.summary import build_payment_summary
from sales.tenders import TenderSet

from .coordinator import DEFAULT_MAX_ATTEMPTS
from .stock import StockMovement, apply_stock_movements

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartLine:
    product_id: object
    quantity: int
    applied_price: Optional[Decimal] = None
    sale_type: str = Sale.TYPE_RETAIL
    is_offer_item: bool = False


@dataclass
class CheckoutResult:
    sale: Sale
    warnings: list


def _generate_receipt_number(when):
    """RCP-YYYYMMDD-NNNN, one past the highest number issued that day."""
    prefix = f"RCP-{when:%Y%m%d}-"
    last = (
        Sale.objects.filter(receipt_number__startswith=prefix)
        .order_by('-receipt_number')
        .values_list('receipt_number', flat=True)
        .first()
    )
    sequence = int(last[len(prefix):]) + 1 if last else 1
    return f"{prefix}{sequence:04d}"


def create_sale(
    items,
    staff_id: Optional[str],
    tenders: Optional[TenderSet] = None,
    discount_amount=ZERO,
    customer_id: Optional[str] = None,
    customer_name: Optional[str] = None,
    sale_date=None,
    notes: Optional[str] = None,
    adjuster=None,
) -> CheckoutResult:
    """
    Create a sale and record what was paid at the till.

    Raises:
        MissingStaff, NothingToSell, InvalidAmount, ChequeNumberRequired,
        BankDetailsRequired, CustomerRequired, NotFound, Conflict (receipt
        number still taken after every attempt)
    """
    staff_id = (staff_id or '').strip()
    if not staff_id:
        raise MissingStaff('Staff ID is required to record a sale.')
    lines = [line for line in items or [] if line.quantity]
    if not lines:
        raise NothingToSell()
    for line in lines:
        if line.quantity < 0:
            raise InvalidAmount('Item quantity cannot be negative.')

    tenders = (tenders or TenderSet()).validate()
    try:
        discount_amount = to_decimal(discount_amount)
    except ValueError as exc:
        raise InvalidAmount(str(exc))
    if discount_amount < ZERO or has_sub_cent(discount_amount):
        raise InvalidAmount('Discount must be a non-negative amount in whole cents.')

    try:
        products = Product.objects.in_bulk([line.product_id for line in lines])
    except (DjangoValidationError, ValueError):
        raise NotFound('Product not found.')
    products = {str(pk): product for pk, product in products.items()}

    priced = []
    for line in lines:
        product = products.get(str(line.product_id))
        if product is None:
            raise NotFound(f'Product {line.product_id} not found.', product_id=line.product_id)
        price = to_decimal(line.applied_price) if line.applied_price is not None else to_decimal(
            product.price_for(line.sale_type)
        )
        if price < ZERO or has_sub_cent(price):
            raise InvalidAmount('Item price must be a non-negative amount in whole cents.')
        priced.append((product, line, price))

    sub_total = money_sum(price * line.quantity for _, line, price in priced)
    total_amount = clamp_zero(sub_total - discount_amount)

    change_given = tenders.change_for(total_amount)
    retained = tenders.tenders(change_given)
    total_paid = tenders.total - change_given
    outstanding = clamp_zero(total_amount - total_paid)

    customer_id = (customer_id or '').strip() or None
    if outstanding > ZERO and not customer_id:
        raise CustomerRequired()

    when = sale_date or timezone.now()
    receipt_day = timezone.localtime(when) if timezone.is_aware(when) else when
    summary = build_payment_summary(retained, amount_due=total_amount, outstanding_balance=outstanding)
    sale_fields = dict(
        customer_id=customer_id,
        customer_name=customer_name,
        staff_id=staff_id,
        sub_total=sub_total,
        discount_amount=discount_amount,
        total_amount=total_amount,
        cash_tendered=tenders.cash,
        paid_amount_cash=tenders.cash - change_given,
        paid_amount_cheque=tenders.cheque,
        paid_amount_bank_transfer=tenders.bank_transfer,
        cheque_details=tenders.cheque_detail.to_dict() if tenders.cheque > ZERO and tenders.cheque_detail else {},
        bank_transfer_details=(
            tenders.bank_transfer_detail.to_dict()
            if tenders.bank_transfer > ZERO and tenders.bank_transfer_detail else {}
        ),
        change_given=change_given,
        total_amount_paid=total_paid,
        outstanding_balance=outstanding,
        initial_outstanding_balance=outstanding,
        payment_summary=summary,
        sale_date=when,
        notes=notes,
    )

    max_attempts = getattr(settings, 'LEDGER_MAX_COMMIT_ATTEMPTS', DEFAULT_MAX_ATTEMPTS)
    for attempt in range(1, max_attempts + 1):
        receipt_number = _generate_receipt_number(receipt_day)
        try:
            with transaction.atomic():
                sale = Sale.objects.create(receipt_number=receipt_number, **sale_fields)
                for line_number, (product, line, price) in enumerate(priced):
                    SaleItem.objects.create(
                        sale=sale,
                        product=product,
                        line_number=line_number,
                        sale_type=line.sale_type,
                        quantity=line.quantity,
                        applied_price=price,
                        is_offer_item=line.is_offer_item,
                    )
                AuditLog.log_event(
                    event_type='sale.created',
                    staff_id=staff_id,
                    sale=sale,
                    event_data={
                        'total_amount': format_money(total_amount),
                        'total_amount_paid': format_money(total_paid),
                        'change_given': format_money(change_given),
                        'outstanding_balance': format_money(outstanding),
                    },
                    description=f"Sale {sale.receipt_number} created: {summary}",
                )
            break
        except IntegrityError:
            if not Sale.objects.filter(receipt_number=receipt_number).exists():
                raise
            logger.debug(f"Receipt number {receipt_number} already taken (attempt {attempt}/{max_attempts})")
    else:
        raise Conflict(
            f'Could not allocate a receipt number after {max_attempts} attempts. Please retry.',
            receipt_number=receipt_number,
        )

    logger.info(f"Created sale {sale.receipt_number} for {format_money(total_amount)} ({summary})")

    movements = [
        StockMovement(
            product_id=product.pk,
            delta=-line.quantity,
            adjustment_type='SALE',
            idempotency_key=f"{sale.receipt_number}:sold:{index}",
        )
        for index, (product, line, _) in enumerate(priced)
    ]
    warnings = apply_stock_movements(
        movements,
        reference=sale.receipt_number,
        sale=sale,
        staff_id=staff_id,
        adjuster=adjuster,
    )
    return CheckoutResult(sale=sale, warnings=warnings)
