import re
from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase

from inventory.models import StockAdjustment
from sales.exceptions import ChequeNumberRequired, Conflict, CustomerRequired, MissingStaff, NotFound, NothingToSell
from sales.models import AuditLog, Sale
from sales.services import CartLine, create_sale
from sales.services import checkout as checkout_service
from sales.tenders import ChequeDetail, TenderSet
from tests.utils import make_product


class CreateSaleTest(TestCase):
    def setUp(self):
        self.product = make_product(name="Rice Bag", retail_price="500.00", wholesale_price="450.00")

    def test_cash_overpayment_gives_change(self):
        result = create_sale(
            [CartLine(product_id=self.product.id, quantity=2)],
            staff_id="cashier-1",
            tenders=TenderSet(cash="1200.00"),
        )
        sale = result.sale

        self.assertEqual(sale.total_amount, Decimal("1000.00"))
        self.assertEqual(sale.cash_tendered, Decimal("1200.00"))
        self.assertEqual(sale.paid_amount_cash, Decimal("1000.00"))
        self.assertEqual(sale.change_given, Decimal("200.00"))
        self.assertEqual(sale.total_amount_paid, Decimal("1000.00"))
        self.assertEqual(sale.outstanding_balance, Decimal("0.00"))
        self.assertEqual(sale.payment_summary, "Cash (1000.00)")
        self.assertEqual(result.warnings, [])
        self.assertTrue(re.match(r"^RCP-\d{8}-\d{4}$", sale.receipt_number))

    def test_split_tender_change_comes_from_cash_only(self):
        sale = create_sale(
            [CartLine(product_id=self.product.id, quantity=2)],
            staff_id="cashier-1",
            tenders=TenderSet(cash="500.00", cheque="600.00", cheque_detail=ChequeDetail(number="000123")),
        ).sale

        self.assertEqual(sale.change_given, Decimal("100.00"))
        self.assertEqual(sale.total_amount_paid, Decimal("1000.00"))
        self.assertEqual(sale.cheque_details["number"], "000123")
        self.assertEqual(sale.payment_summary, "Split (Cash (400.00) + Cheque (600.00) - #000123)")

    def test_partial_payment_needs_customer(self):
        with self.assertRaises(CustomerRequired):
            create_sale(
                [CartLine(product_id=self.product.id, quantity=2)],
                staff_id="cashier-1",
                tenders=TenderSet(cash="600.00"),
            )

    def test_partial_payment_records_outstanding(self):
        sale = create_sale(
            [CartLine(product_id=self.product.id, quantity=2)],
            staff_id="cashier-1",
            tenders=TenderSet(cash="600.00"),
            customer_id="C-001",
        ).sale

        self.assertEqual(sale.outstanding_balance, Decimal("400.00"))
        self.assertEqual(sale.initial_outstanding_balance, Decimal("400.00"))
        self.assertEqual(sale.payment_summary, "Partial (Cash (600.00)) - Outstanding: 400.00")

    def test_wholesale_price_and_discount(self):
        sale = create_sale(
            [CartLine(product_id=self.product.id, quantity=2, sale_type="WHOLESALE")],
            staff_id="cashier-1",
            tenders=TenderSet(cash="850.00"),
            discount_amount="50.00",
        ).sale

        self.assertEqual(sale.sub_total, Decimal("900.00"))
        self.assertEqual(sale.total_amount, Decimal("850.00"))
        self.assertEqual(sale.items.get().applied_price, Decimal("450.00"))

    def test_stock_leaves_with_the_sale(self):
        sale = create_sale(
            [CartLine(product_id=self.product.id, quantity=3)],
            staff_id="cashier-1",
            tenders=TenderSet(cash="1500.00"),
        ).sale

        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 47)
        adjustment = StockAdjustment.objects.get(product=self.product)
        self.assertEqual(adjustment.idempotency_key, f"{sale.receipt_number}:sold:0")
        self.assertEqual(adjustment.quantity, -3)
        self.assertTrue(AuditLog.objects.filter(event_type="sale.created", sale=sale).exists())

    def test_item_snapshot(self):
        sale = create_sale(
            [CartLine(product_id=self.product.id, quantity=1)],
            staff_id="cashier-1",
            tenders=TenderSet(cash="500.00"),
        ).sale
        item = sale.items.get()
        self.assertEqual(item.product_name, "Rice Bag")
        self.assertEqual(item.product_sku, self.product.sku)

    def test_rejects_bad_input(self):
        with self.assertRaises(MissingStaff):
            create_sale([CartLine(product_id=self.product.id, quantity=1)], staff_id="")
        with self.assertRaises(NothingToSell):
            create_sale([], staff_id="cashier-1")
        with self.assertRaises(NotFound):
            create_sale(
                [CartLine(product_id="00000000-0000-0000-0000-000000000000", quantity=1)],
                staff_id="cashier-1",
            )
        with self.assertRaises(ChequeNumberRequired):
            create_sale(
                [CartLine(product_id=self.product.id, quantity=1)],
                staff_id="cashier-1",
                tenders=TenderSet(cheque="500.00"),
            )


class ReceiptNumberTest(TestCase):
    def setUp(self):
        self.product = make_product(name="Kettle", retail_price="120.00")
        self.first = self.sell()

    def sell(self):
        return create_sale(
            [CartLine(product_id=self.product.id, quantity=1)],
            staff_id="cashier-1",
            tenders=TenderSet(cash="120.00"),
        ).sale

    def test_taken_number_is_reissued(self):
        """A till that lost the race for a number picks the next free one."""
        taken = [self.first.receipt_number]
        issue = checkout_service._generate_receipt_number

        def next_number(when):
            return taken.pop() if taken else issue(when)

        with patch("sales.services.checkout._generate_receipt_number", side_effect=next_number):
            second = self.sell()

        self.assertNotEqual(second.receipt_number, self.first.receipt_number)
        self.assertTrue(second.receipt_number.endswith("-0002"))
        self.assertEqual(Sale.objects.count(), 2)
        self.assertEqual(AuditLog.objects.filter(event_type="sale.created").count(), 2)

    def test_gives_up_with_conflict(self):
        with patch(
            "sales.services.checkout._generate_receipt_number", return_value=self.first.receipt_number
        ) as issue:
            with self.assertRaises(Conflict):
                self.sell()

        self.assertEqual(issue.call_count, 3)
        self.assertEqual(Sale.objects.count(), 1)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 49)

    def test_numbers_follow_the_highest_issued(self):
        Sale.objects.filter(pk=self.first.pk).update(
            receipt_number=self.first.receipt_number[:-4] + "0007"
        )
        self.assertTrue(self.sell().receipt_number.endswith("-0008"))
