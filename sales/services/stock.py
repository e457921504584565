"""Stock side effects that follow a committed ledger change."""
import logging
from dataclasses import dataclass

from inventory.services import InventoryAdjuster
from sales.exceptions import InventoryAdjustmentFailed
from sales.models import AuditLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockMovement:
    product_id: object
    delta: int
    adjustment_type: str
    idempotency_key: str


def apply_stock_movements(movements, *, reference, sale, staff_id=None,
                          return_transaction=None, adjuster=None):
    """
    Push stock movements to the inventory adjuster.

    A failed movement never undoes the ledger commit. It is logged, written to
    the audit log and returned as a warning for the operator.

    Returns:
        List of warning strings, empty when every movement succeeded.
    """
    adjuster = adjuster or InventoryAdjuster()
    warnings = []
    for movement in movements:
        try:
            adjuster.adjust_stock(
                movement.product_id,
                movement.delta,
                adjustment_type=movement.adjustment_type,
                reference=reference,
                idempotency_key=movement.idempotency_key,
            )
        except InventoryAdjustmentFailed as exc:
            message = f"Stock adjustment {movement.idempotency_key} failed: {exc.message}"
            logger.warning(message)
            AuditLog.log_event(
                event_type='stock.adjustment_failed',
                staff_id=staff_id,
                sale=sale,
                return_transaction=return_transaction,
                event_data={
                    'product_id': str(movement.product_id),
                    'delta': movement.delta,
                    'adjustment_type': movement.adjustment_type,
                    'idempotency_key': movement.idempotency_key,
                },
                description=message,
            )
            warnings.append(message)
    return warnings
