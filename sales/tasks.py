import logging

from celery import shared_task

from sales.models import AuditLog, Sale
from sales.validators import LedgerIntegrityValidator

logger = logging.getLogger(__name__)


@shared_task(name="sales.tasks.verify_ledger_integrity", ignore_result=True)
def verify_ledger_integrity(limit=None):
    """Celery task that replays recent sale ledgers and records any drift."""
    sales = Sale.objects.prefetch_related('additional_payments', 'returns').order_by('-updated_at')
    if limit:
        sales = sales[:limit]

    drifted = 0
    for sale in sales:
        mismatches = LedgerIntegrityValidator.find_mismatches(sale)
        if not mismatches:
            continue
        drifted += 1
        logger.warning(
            "Ledger drift on sale %s: %s",
            sale.receipt_number or sale.id,
            ", ".join(sorted(mismatches)),
        )
        AuditLog.log_event(
            event_type='ledger.integrity_failed',
            sale=sale,
            event_data={
                field: {'stored': str(stored), 'expected': str(expected)}
                for field, (stored, expected) in mismatches.items()
            },
            description=f"Stored aggregate differs from replay for sale {sale.receipt_number or sale.id}",
        )

    if drifted:
        logger.info("Ledger integrity check found %s drifted sales", drifted)
    else:
        logger.debug("All checked sale ledgers replay cleanly.")
    return drifted
