"""
Inventory adjuster used by the sale ledger.

Stock moves happen after a ledger commit and are keyed so that replaying the
same effect never moves stock twice.
"""
from __future__ import annotations

import logging
from typing import Optional

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction

from sales.exceptions import InventoryAdjustmentFailed

from .models import Product, StockAdjustment

logger = logging.getLogger(__name__)


class InventoryAdjuster:
    """Applies signed quantity changes to products, one journal row each."""

    def adjust_stock(
        self,
        product_id,
        delta: int,
        *,
        adjustment_type: str = 'CORRECTION',
        reference: str = '',
        idempotency_key: Optional[str] = None,
    ) -> StockAdjustment:
        """
        Move ``delta`` units of stock for a product.

        A repeated ``idempotency_key`` is a no-op that returns the first
        adjustment.

        Raises:
            InventoryAdjustmentFailed: zero delta, unknown product, or the
                write failed.
        """
        if not delta:
            raise InventoryAdjustmentFailed('Stock adjustment needs a non-zero quantity.', product_id=product_id)

        idempotency_key = idempotency_key or f"{reference}:{product_id}:{delta}"
        existing = StockAdjustment.objects.filter(idempotency_key=idempotency_key).first()
        if existing is not None:
            logger.debug(f"Stock adjustment {idempotency_key} already applied, skipping")
            return existing

        try:
            with transaction.atomic():
                try:
                    product = Product.objects.select_for_update().get(pk=product_id)
                except (Product.DoesNotExist, ValidationError, ValueError):
                    raise InventoryAdjustmentFailed(
                        f'Product {product_id} not found.',
                        product_id=product_id,
                    )

                quantity_before = product.quantity
                quantity_after = quantity_before + delta
                Product.objects.filter(pk=product.pk).update(quantity=quantity_after)

                adjustment = StockAdjustment.objects.create(
                    product=product,
                    adjustment_type=adjustment_type,
                    quantity=delta,
                    quantity_before=quantity_before,
                    quantity_after=quantity_after,
                    reference=reference,
                    idempotency_key=idempotency_key,
                )
        except IntegrityError:
            # Lost a race against the same key
            existing = StockAdjustment.objects.filter(idempotency_key=idempotency_key).first()
            if existing is not None:
                return existing
            raise InventoryAdjustmentFailed(
                f'Could not record stock adjustment {idempotency_key}.',
                product_id=product_id,
            )

        if quantity_after < 0:
            logger.warning(
                f"Stock for {product.sku} went negative ({quantity_after}) after {adjustment_type} {reference}"
            )
        else:
            logger.info(
                f"Adjusted stock for {product.sku} by {delta} ({quantity_before} -> {quantity_after}) "
                f"[{adjustment_type} {reference}]"
            )
        return adjustment
