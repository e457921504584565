"""
Data integrity validators for the sales module
Ensures stored ledger aggregates can be rebuilt from payment history
"""
from decimal import Decimal

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from sales.exceptions import Conflict, LedgerIntegrityError
from sales.models import AuditLog, Sale
from sales.services.ledger import LedgerState


LEDGER_FIELDS = (
    'total_amount_paid',
    'credit_settled',
    'exchange_charges',
    'outstanding_balance',
    'payment_summary',
)


def replay_ledger(sale):
    """
    Recompute a sale's aggregate from creation tenders, the payment log and
    its return transactions.

    Returns:
        dict keyed by LEDGER_FIELDS
    """
    return LedgerState.from_sale(sale).snapshot()


class LedgerIntegrityValidator:
    """
    Validates that Sale aggregate fields match a replay of their history
    Detects corruption and manual edits
    """

    @staticmethod
    def find_mismatches(sale):
        """
        Compare the stored aggregate with the replayed one

        Returns:
            dict: field -> (stored, expected) for every field that differs
        """
        expected = replay_ledger(sale)
        mismatches = {}
        for field in LEDGER_FIELDS:
            stored = getattr(sale, field)
            if isinstance(expected[field], Decimal):
                if Decimal(stored) != expected[field]:
                    mismatches[field] = (stored, expected[field])
            elif stored != expected[field]:
                mismatches[field] = (stored, expected[field])
        return mismatches

    @classmethod
    def validate(cls, sale):
        """
        Validate that the sale's aggregate is reproducible

        Args:
            sale: Sale instance

        Raises:
            LedgerIntegrityError if any aggregate field differs from replay
        """
        mismatches = cls.find_mismatches(sale)
        if mismatches:
            detail = ', '.join(
                f"{field}: stored={stored}, expected={expected}"
                for field, (stored, expected) in mismatches.items()
            )
            raise LedgerIntegrityError(
                f"Sale {sale.receipt_number or sale.id} ledger mismatch: {detail}",
                mismatches=mismatches,
                sale_id=sale.id,
            )

    @staticmethod
    def validate_outstanding_equation(sale):
        """
        Validate outstanding_balance = max(0, amount_due - paid - settled)

        Raises:
            LedgerIntegrityError if the stored fields disagree with each other
        """
        expected = sale.amount_due - sale.total_amount_paid - sale.credit_settled
        if expected < Decimal('0'):
            expected = Decimal('0.00')
        if sale.outstanding_balance != expected:
            raise LedgerIntegrityError(
                f"Sale {sale.receipt_number or sale.id} outstanding_balance={sale.outstanding_balance}, "
                f"expected {expected}",
                mismatches={'outstanding_balance': (sale.outstanding_balance, expected)},
                sale_id=sale.id,
            )

    @classmethod
    def repair(cls, sale):
        """
        Rewrite the aggregate from replay, bumping the version

        Returns:
            dict of the mismatches that were corrected (empty if none)

        Raises:
            Conflict if the sale changed while it was being checked
        """
        mismatches = cls.find_mismatches(sale)
        if not mismatches:
            return {}

        expected = replay_ledger(sale)
        with transaction.atomic():
            updated = Sale.objects.filter(pk=sale.pk, version=sale.version).update(
                version=F('version') + 1,
                updated_at=timezone.now(),
                **expected,
            )
            if not updated:
                raise Conflict(sale_id=sale.pk, expected_version=sale.version)
            AuditLog.log_event(
                event_type='ledger.repaired',
                sale=sale,
                event_data={
                    field: {'stored': str(stored), 'expected': str(value)}
                    for field, (stored, value) in mismatches.items()
                },
                description=f"Ledger aggregate rebuilt for sale {sale.receipt_number or sale.id}",
            )
        return mismatches
