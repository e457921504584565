"""
Persistence for the sale ledger.

``SaleStore.commit`` is the only place that writes ledger aggregates. It is a
compare-and-swap on ``Sale.version``: the aggregate update, the appended
payments, the returned quantities, the return transaction and the audit entry
go in one ``transaction.atomic()`` block, or nothing does.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from sales.exceptions import Conflict, NotFound
from sales.models import (
    AuditLog,
    ExchangedItem,
    Payment,
    ReturnedItem,
    ReturnTransaction,
    Sale,
    SaleItem,
)
from sales.money import ZERO

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentDraft:
    """A payment log entry waiting to be committed."""
    position: int
    amount: Decimal
    method: str
    staff_id: str
    date: object
    change_given: Decimal = ZERO
    notes: Optional[str] = None
    details: Dict = field(default_factory=dict)
    from_return: bool = False


@dataclass(frozen=True)
class ReturnedLineDraft:
    sale_item_id: uuid.UUID
    product_id: uuid.UUID
    sale_type: str
    quantity: int
    applied_price: Decimal
    is_resellable: bool = True


@dataclass(frozen=True)
class ExchangedLineDraft:
    product_id: uuid.UUID
    sale_type: str
    quantity: int
    applied_price: Decimal


@dataclass(frozen=True)
class ReturnDraft:
    """Everything needed to create a ReturnTransaction, except its reference."""
    staff_id: str
    return_date: object
    apply_credit_to_outstanding: bool
    return_total_value: Decimal
    exchange_total_value: Decimal
    returned_lines: List[ReturnedLineDraft] = field(default_factory=list)
    exchanged_lines: List[ExchangedLineDraft] = field(default_factory=list)
    settle_outstanding_amount: Optional[Decimal] = None
    refund_amount: Optional[Decimal] = None
    amount_paid: Optional[Decimal] = None
    payment_summary: Optional[str] = None
    change_given: Optional[Decimal] = None
    cheque_details: Dict = field(default_factory=dict)
    bank_transfer_details: Dict = field(default_factory=dict)
    notes: Optional[str] = None


@dataclass(frozen=True)
class AuditDraft:
    event_type: str
    description: str
    event_data: Dict = field(default_factory=dict)


@dataclass(frozen=True)
class LedgerMutation:
    """New aggregate state for a sale plus the rows that come with it."""
    total_amount_paid: Decimal
    credit_settled: Decimal
    exchange_charges: Decimal
    outstanding_balance: Decimal
    payment_summary: str
    payments: List[PaymentDraft] = field(default_factory=list)
    returned_quantities: Dict[uuid.UUID, int] = field(default_factory=dict)
    return_draft: Optional[ReturnDraft] = None
    audit: Optional[AuditDraft] = None

    def aggregate_fields(self):
        return {
            'total_amount_paid': self.total_amount_paid,
            'credit_settled': self.credit_settled,
            'exchange_charges': self.exchange_charges,
            'outstanding_balance': self.outstanding_balance,
            'payment_summary': self.payment_summary,
        }


@dataclass
class CommitResult:
    sale: Sale
    payments: List[Payment]
    return_transaction: Optional[ReturnTransaction] = None


class ReturnTransactionStore:
    """Creates return transactions with per-month references."""

    @staticmethod
    def reference_prefix(when) -> str:
        when = timezone.localtime(when) if timezone.is_aware(when) else when
        return f"return-{when:%m}.{when:%y}-"

    def next_reference(self, when) -> str:
        prefix = self.reference_prefix(when)
        count = ReturnTransaction.objects.filter(reference__startswith=prefix).count()
        return f"{prefix}{count + 1}"

    def create(self, draft: ReturnDraft, sale: Sale) -> ReturnTransaction:
        """
        Persist a return transaction and its lines.

        Must run inside the caller's atomic block. A reference collision
        surfaces as IntegrityError and is turned into Conflict by the store.
        """
        return_transaction = ReturnTransaction.objects.create(
            reference=self.next_reference(draft.return_date),
            original_sale=sale,
            return_date=draft.return_date,
            staff_id=draft.staff_id,
            customer_id=sale.customer_id,
            customer_name=sale.customer_name,
            notes=draft.notes,
            apply_credit_to_outstanding=draft.apply_credit_to_outstanding,
            return_total_value=draft.return_total_value,
            exchange_total_value=draft.exchange_total_value,
            settle_outstanding_amount=draft.settle_outstanding_amount,
            refund_amount=draft.refund_amount,
            amount_paid=draft.amount_paid,
            payment_summary=draft.payment_summary,
            change_given=draft.change_given,
            cheque_details=draft.cheque_details,
            bank_transfer_details=draft.bank_transfer_details,
        )
        ReturnedItem.objects.bulk_create([
            ReturnedItem(
                return_transaction=return_transaction,
                sale_item_id=line.sale_item_id,
                product_id=line.product_id,
                sale_type=line.sale_type,
                quantity=line.quantity,
                applied_price=line.applied_price,
                is_resellable=line.is_resellable,
            )
            for line in draft.returned_lines
        ])
        ExchangedItem.objects.bulk_create([
            ExchangedItem(
                return_transaction=return_transaction,
                product_id=line.product_id,
                sale_type=line.sale_type,
                quantity=line.quantity,
                applied_price=line.applied_price,
            )
            for line in draft.exchanged_lines
        ])
        return return_transaction


class SaleStore:
    """Loads sales with their ledger history and commits mutations."""

    def __init__(self, return_store: Optional[ReturnTransactionStore] = None):
        self.return_store = return_store or ReturnTransactionStore()

    def get(self, sale_id) -> Sale:
        try:
            return Sale.objects.prefetch_related(
                'items',
                'additional_payments',
                'returns',
            ).get(pk=sale_id)
        except (Sale.DoesNotExist, DjangoValidationError, ValueError, TypeError):
            # Malformed UUIDs land here too
            raise NotFound(f'Sale {sale_id} not found.', sale_id=sale_id)

    def commit(self, sale_id, mutation: LedgerMutation, expected_version: int) -> CommitResult:
        """
        Apply ``mutation`` if the sale is still at ``expected_version``.

        Raises:
            Conflict: the sale moved on, or a payment position / return
                reference was taken concurrently. Nothing was written.
            NotFound: the sale no longer exists.
        """
        try:
            with transaction.atomic():
                updated = Sale.objects.filter(pk=sale_id, version=expected_version).update(
                    version=F('version') + 1,
                    updated_at=timezone.now(),
                    **mutation.aggregate_fields(),
                )
                if updated == 0:
                    if not Sale.objects.filter(pk=sale_id).exists():
                        raise NotFound(f'Sale {sale_id} not found.', sale_id=sale_id)
                    raise Conflict(sale_id=sale_id, expected_version=expected_version)

                sale = Sale.objects.get(pk=sale_id)

                return_transaction = None
                if mutation.return_draft is not None:
                    return_transaction = self.return_store.create(mutation.return_draft, sale)

                for sale_item_id, quantity in mutation.returned_quantities.items():
                    SaleItem.objects.filter(pk=sale_item_id, sale_id=sale_id).update(
                        returned_quantity=F('returned_quantity') + quantity,
                        updated_at=timezone.now(),
                    )

                payments = [
                    Payment.objects.create(
                        sale=sale,
                        position=draft.position,
                        amount=draft.amount,
                        change_given=draft.change_given,
                        method=draft.method,
                        date=draft.date,
                        staff_id=draft.staff_id,
                        notes=draft.notes,
                        details=draft.details,
                        return_transaction=return_transaction if draft.from_return else None,
                    )
                    for draft in mutation.payments
                ]

                if mutation.audit is not None:
                    AuditLog.log_event(
                        event_type=mutation.audit.event_type,
                        staff_id=(mutation.payments[-1].staff_id if mutation.payments
                                  else getattr(mutation.return_draft, 'staff_id', None)),
                        sale=sale,
                        payment=payments[-1] if payments else None,
                        return_transaction=return_transaction,
                        event_data=mutation.audit.event_data,
                        description=mutation.audit.description,
                    )
        except IntegrityError as exc:
            logger.debug(f"Integrity collision committing sale {sale_id}: {exc}")
            raise Conflict(sale_id=sale_id, expected_version=expected_version) from exc

        logger.info(
            f"Committed ledger mutation for sale {sale_id} "
            f"(version {expected_version} -> {sale.version}, "
            f"outstanding {sale.outstanding_balance})"
        )
        return CommitResult(sale=sale, payments=payments, return_transaction=return_transaction)
