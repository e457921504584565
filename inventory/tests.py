import uuid

from django.test import TestCase

from inventory.models import StockAdjustment
from inventory.services import InventoryAdjuster
from sales.exceptions import InventoryAdjustmentFailed
from tests.utils import make_product


class InventoryAdjusterTest(TestCase):
    def setUp(self):
        self.product = make_product(name="Soap", retail_price="12.00", quantity=10)
        self.adjuster = InventoryAdjuster()

    def test_adjust_records_journal_row(self):
        adjustment = self.adjuster.adjust_stock(
            self.product.id, -3, adjustment_type="SALE", reference="RCP-1", idempotency_key="RCP-1:sold:0"
        )

        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 7)
        self.assertEqual(adjustment.quantity_before, 10)
        self.assertEqual(adjustment.quantity_after, 7)
        self.assertFalse(adjustment.is_increase)

    def test_repeated_key_moves_stock_once(self):
        first = self.adjuster.adjust_stock(self.product.id, 2, idempotency_key="return-01.25-1:returned:0")
        second = self.adjuster.adjust_stock(self.product.id, 2, idempotency_key="return-01.25-1:returned:0")

        self.product.refresh_from_db()
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(self.product.quantity, 12)
        self.assertEqual(StockAdjustment.objects.count(), 1)

    def test_stock_may_go_negative(self):
        self.adjuster.adjust_stock(self.product.id, -15, idempotency_key="oversold")
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, -5)

    def test_unknown_product(self):
        with self.assertRaises(InventoryAdjustmentFailed):
            self.adjuster.adjust_stock(uuid.uuid4(), 1, idempotency_key="ghost")
        self.assertFalse(StockAdjustment.objects.exists())

    def test_zero_delta(self):
        with self.assertRaises(InventoryAdjustmentFailed):
            self.adjuster.adjust_stock(self.product.id, 0)
