from datetime import datetime, timezone as dt_timezone
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import TestCase

from inventory.models import StockAdjustment
from sales.exceptions import (
    InsufficientPayment,
    InventoryAdjustmentFailed,
    MissingStaff,
    NotFound,
    NothingToReturn,
    OverReturn,
)
from sales.models import AuditLog, Payment, ReturnTransaction, Sale, SaleItem
from sales.services import ExchangeLine, ReturnLine, ReturnTransactionStore, process_return_exchange
from sales.tenders import PaymentMethod, TenderSet
from sales.validators import LedgerIntegrityValidator
from tests.utils import checkout, make_product


class FailingAdjuster:
    def __init__(self):
        self.calls = []

    def adjust_stock(self, product_id, delta, **kwargs):
        self.calls.append((product_id, delta, kwargs['idempotency_key']))
        raise InventoryAdjustmentFailed('Warehouse offline.')


class ReturnExchangeTest(TestCase):
    def setUp(self):
        self.shirt = make_product(name="Shirt", retail_price="250.00", quantity=20)
        self.jacket = make_product(name="Jacket", retail_price="300.00", quantity=10)
        self.cap = make_product(name="Cap", retail_price="100.00", quantity=10)

    def assertLedgerConsistent(self, sale_id):
        sale = Sale.objects.get(pk=sale_id)
        self.assertEqual(LedgerIntegrityValidator.find_mismatches(sale), {})
        LedgerIntegrityValidator.validate_outstanding_equation(sale)

    def test_return_settles_outstanding_then_refunds(self):
        sale = checkout(self.shirt, quantity=2, cash="400.00", customer_id="C-001")
        self.assertEqual(sale.outstanding_balance, Decimal("100.00"))

        result = process_return_exchange(
            sale.id,
            returned_items=[ReturnLine(product_id=self.shirt.id, quantity=1)],
            apply_credit_to_outstanding=True,
            staff_id="cashier-1",
        )

        netting = result.netting
        self.assertEqual(netting.outstanding_to_settle, Decimal("100.00"))
        self.assertEqual(netting.net_credit_after_settle, Decimal("150.00"))
        self.assertEqual(netting.final_amount_due, Decimal("0"))
        self.assertEqual(netting.refund_to_customer, Decimal("150.00"))

        sale = result.sale
        self.assertEqual(sale.outstanding_balance, Decimal("0.00"))
        self.assertEqual(sale.credit_settled, Decimal("100.00"))
        self.assertEqual(sale.total_amount_paid, Decimal("400.00"))
        self.assertEqual(sale.payment_summary, "Split (Cash (400.00) + Return Credit (100.00))")

        credit = Payment.objects.get(sale=sale)
        self.assertEqual(credit.method, PaymentMethod.RETURN_CREDIT)
        self.assertEqual(credit.amount, Decimal("100.00"))
        self.assertEqual(credit.return_transaction, result.return_transaction)

        ret = result.return_transaction
        self.assertEqual(ret.refund_amount, Decimal("150.00"))
        self.assertEqual(ret.settle_outstanding_amount, Decimal("100.00"))
        self.assertIsNone(ret.amount_paid)
        self.assertEqual(SaleItem.objects.get(sale=sale).returned_quantity, 1)
        self.assertLedgerConsistent(sale.id)

    def test_exchange_collects_difference_with_change(self):
        sale = checkout(self.cap, quantity=1, cash="100.00")

        result = process_return_exchange(
            sale.id,
            returned_items=[ReturnLine(product_id=self.cap.id, quantity=1)],
            exchanged_items=[ExchangeLine(product_id=self.jacket.id, quantity=1)],
            apply_credit_to_outstanding=False,
            payment=TenderSet(cash="250.00"),
            staff_id="cashier-1",
        )

        self.assertEqual(result.netting.final_amount_due, Decimal("200.00"))
        self.assertEqual(result.settlement.change_given, Decimal("50.00"))
        self.assertEqual(result.settlement.total_payment_applied, Decimal("200.00"))

        ret = result.return_transaction
        self.assertEqual(ret.amount_paid, Decimal("200.00"))
        self.assertEqual(ret.change_given, Decimal("50.00"))
        self.assertEqual(ret.payment_summary, "Cash (200.00)")
        self.assertIsNone(ret.refund_amount)

        sale = result.sale
        self.assertEqual(sale.exchange_charges, Decimal("200.00"))
        self.assertEqual(sale.total_amount_paid, Decimal("300.00"))
        self.assertEqual(sale.outstanding_balance, Decimal("0.00"))

        payment = Payment.objects.get(sale=sale)
        self.assertEqual(payment.amount, Decimal("250.00"))
        self.assertEqual(payment.change_given, Decimal("50.00"))
        self.assertEqual(payment.return_transaction, ret)
        self.assertLedgerConsistent(sale.id)

    def test_short_exchange_payment_changes_nothing(self):
        sale = checkout(self.cap, quantity=1, cash="100.00")

        with self.assertRaises(InsufficientPayment):
            process_return_exchange(
                sale.id,
                returned_items=[ReturnLine(product_id=self.cap.id, quantity=1)],
                exchanged_items=[ExchangeLine(product_id=self.jacket.id, quantity=1)],
                apply_credit_to_outstanding=False,
                payment=TenderSet(cash="150.00"),
                staff_id="cashier-1",
            )

        self.assertFalse(ReturnTransaction.objects.exists())
        self.assertEqual(Sale.objects.get(pk=sale.id).version, sale.version)
        self.assertEqual(SaleItem.objects.get(sale=sale).returned_quantity, 0)

    def test_over_return_rejected_without_state_change(self):
        sale = checkout(self.shirt, quantity=2, cash="500.00")
        process_return_exchange(
            sale.id,
            returned_items=[ReturnLine(product_id=self.shirt.id, quantity=1)],
            staff_id="cashier-1",
        )
        version = Sale.objects.get(pk=sale.id).version

        with self.assertRaises(OverReturn):
            process_return_exchange(
                sale.id,
                returned_items=[ReturnLine(product_id=self.shirt.id, quantity=2)],
                staff_id="cashier-1",
            )

        self.assertEqual(Sale.objects.get(pk=sale.id).version, version)
        self.assertEqual(SaleItem.objects.get(sale=sale).returned_quantity, 1)
        self.assertEqual(ReturnTransaction.objects.count(), 1)

    def test_references_count_up_within_month(self):
        sale = checkout(self.shirt, quantity=2, cash="500.00")
        first = process_return_exchange(
            sale.id, returned_items=[ReturnLine(product_id=self.shirt.id, quantity=1)], staff_id="cashier-1"
        )
        second = process_return_exchange(
            sale.id, returned_items=[ReturnLine(product_id=self.shirt.id, quantity=1)], staff_id="cashier-1"
        )

        prefix = ReturnTransactionStore.reference_prefix(first.return_transaction.return_date)
        self.assertEqual(first.return_transaction.reference, f"{prefix}1")
        self.assertEqual(second.return_transaction.reference, f"{prefix}2")

    def test_reference_prefix_format(self):
        when = datetime(2024, 3, 5, 12, 0, tzinfo=dt_timezone.utc)
        self.assertEqual(ReturnTransactionStore.reference_prefix(when), "return-03.24-")

    def test_stock_moves_for_resellable_and_exchanged_goods(self):
        sale = checkout(self.shirt, quantity=2, cash="500.00")
        result = process_return_exchange(
            sale.id,
            returned_items=[
                ReturnLine(product_id=self.shirt.id, quantity=1, is_resellable=True),
                ReturnLine(product_id=self.shirt.id, quantity=1, is_resellable=False),
            ],
            exchanged_items=[ExchangeLine(product_id=self.cap.id, quantity=2)],
            staff_id="cashier-1",
        )
        reference = result.return_transaction.reference

        self.shirt.refresh_from_db()
        self.cap.refresh_from_db()
        self.assertEqual(self.shirt.quantity, 19)
        self.assertEqual(self.cap.quantity, 8)
        self.assertTrue(StockAdjustment.objects.filter(idempotency_key=f"{reference}:returned:0").exists())
        self.assertFalse(StockAdjustment.objects.filter(idempotency_key=f"{reference}:returned:1").exists())
        self.assertTrue(StockAdjustment.objects.filter(idempotency_key=f"{reference}:exchanged:0").exists())
        self.assertEqual(result.netting.refund_to_customer, Decimal("300.00"))

    def test_inventory_failure_keeps_ledger_and_warns(self):
        sale = checkout(self.shirt, quantity=2, cash="400.00", customer_id="C-001")
        adjuster = FailingAdjuster()

        result = process_return_exchange(
            sale.id,
            returned_items=[ReturnLine(product_id=self.shirt.id, quantity=1)],
            staff_id="cashier-1",
            adjuster=adjuster,
        )

        self.assertEqual(len(result.warnings), 1)
        self.assertIn("Warehouse offline.", result.warnings[0])
        self.assertEqual(adjuster.calls[0][2], f"{result.return_transaction.reference}:returned:0")
        self.assertEqual(Sale.objects.get(pk=sale.id).outstanding_balance, Decimal("0.00"))
        failure = AuditLog.objects.get(event_type="stock.adjustment_failed")
        self.assertEqual(failure.return_transaction, result.return_transaction)

    def test_rejects_empty_and_unknown(self):
        sale = checkout(self.shirt, quantity=1, cash="250.00")
        with self.assertRaises(NothingToReturn):
            process_return_exchange(sale.id, staff_id="cashier-1")
        with self.assertRaises(MissingStaff):
            process_return_exchange(sale.id, returned_items=[ReturnLine(product_id=self.shirt.id, quantity=1)])
        with self.assertRaises(NotFound):
            process_return_exchange(
                sale.id,
                returned_items=[ReturnLine(product_id=self.cap.id, quantity=1)],
                staff_id="cashier-1",
            )

    def test_return_records_are_immutable(self):
        sale = checkout(self.shirt, quantity=1, cash="250.00")
        ret = process_return_exchange(
            sale.id, returned_items=[ReturnLine(product_id=self.shirt.id, quantity=1)], staff_id="cashier-1"
        ).return_transaction

        ret.notes = "edited"
        with self.assertRaises(ValidationError):
            ret.save()
