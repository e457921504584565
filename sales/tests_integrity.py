from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.test import TestCase

from sales.exceptions import Conflict, LedgerIntegrityError
from sales.models import AuditLog, Sale
from sales.services import ReturnLine, apply_payment, process_return_exchange
from sales.tasks import verify_ledger_integrity
from sales.validators import LedgerIntegrityValidator, replay_ledger
from tests.utils import checkout, make_product


class LedgerIntegrityValidatorTest(TestCase):
    def setUp(self):
        self.product = make_product(name="Iron", retail_price="200.00")
        sale = checkout(self.product, quantity=3, cash="300.00", customer_id="C-009")
        apply_payment(sale.id, "100.00", "CHEQUE", staff_id="cashier-1", detail={"number": "55"})
        process_return_exchange(
            sale.id, returned_items=[ReturnLine(product_id=self.product.id, quantity=1)], staff_id="cashier-1"
        )
        self.sale = Sale.objects.get(pk=sale.id)

    def test_replay_matches_stored_aggregate(self):
        expected = replay_ledger(self.sale)

        self.assertEqual(expected["total_amount_paid"], self.sale.total_amount_paid)
        self.assertEqual(expected["credit_settled"], Decimal("200.00"))
        self.assertEqual(expected["outstanding_balance"], Decimal("0.00"))
        self.assertEqual(expected["payment_summary"], self.sale.payment_summary)
        LedgerIntegrityValidator.validate(self.sale)

    def test_detects_tampering(self):
        Sale.objects.filter(pk=self.sale.pk).update(outstanding_balance=Decimal("75.00"))
        sale = Sale.objects.get(pk=self.sale.pk)

        with self.assertRaises(LedgerIntegrityError) as ctx:
            LedgerIntegrityValidator.validate(sale)

        self.assertIn("outstanding_balance", ctx.exception.mismatches)
        with self.assertRaises(LedgerIntegrityError):
            LedgerIntegrityValidator.validate_outstanding_equation(sale)

    def test_repair_rewrites_aggregate(self):
        Sale.objects.filter(pk=self.sale.pk).update(payment_summary="Cash (1.00)")
        sale = Sale.objects.get(pk=self.sale.pk)

        fixed = LedgerIntegrityValidator.repair(sale)

        self.assertEqual(list(fixed), ["payment_summary"])
        repaired = Sale.objects.get(pk=self.sale.pk)
        self.assertEqual(repaired.version, sale.version + 1)
        self.assertEqual(LedgerIntegrityValidator.find_mismatches(repaired), {})
        self.assertTrue(AuditLog.objects.filter(event_type="ledger.repaired", sale=repaired).exists())

    def test_repair_refuses_moved_sale(self):
        Sale.objects.filter(pk=self.sale.pk).update(payment_summary="Cash (1.00)")
        sale = Sale.objects.get(pk=self.sale.pk)
        Sale.objects.filter(pk=self.sale.pk).update(version=sale.version + 5)

        with self.assertRaises(Conflict):
            LedgerIntegrityValidator.repair(sale)


class ValidateLedgerIntegrityCommandTest(TestCase):
    def setUp(self):
        product = make_product(name="Fan", retail_price="150.00")
        self.sale = checkout(product, cash="50.00", customer_id="C-010")

    def test_clean_ledgers(self):
        out = StringIO()
        call_command("validate_ledger_integrity", stdout=out)
        self.assertIn("All sale ledgers replay cleanly", out.getvalue())

    def test_drift_exits_nonzero_without_fix(self):
        Sale.objects.filter(pk=self.sale.pk).update(total_amount_paid=Decimal("0.00"))

        with self.assertRaises(SystemExit):
            call_command("validate_ledger_integrity", stdout=StringIO())

    def test_fix_rebuilds_aggregate(self):
        Sale.objects.filter(pk=self.sale.pk).update(total_amount_paid=Decimal("0.00"))
        out = StringIO()

        call_command("validate_ledger_integrity", "--fix", "--sale", str(self.sale.pk), stdout=out)

        self.assertIn("FIXED", out.getvalue())
        self.assertEqual(Sale.objects.get(pk=self.sale.pk).total_amount_paid, Decimal("50.00"))


class VerifyLedgerIntegrityTaskTest(TestCase):
    def test_records_drift_in_audit_log(self):
        product = make_product(name="Heater", retail_price="80.00")
        sale = checkout(product, cash="80.00")
        checkout(product, cash="80.00")
        Sale.objects.filter(pk=sale.pk).update(credit_settled=Decimal("10.00"))

        drifted = verify_ledger_integrity()

        self.assertEqual(drifted, 1)
        entry = AuditLog.objects.get(event_type="ledger.integrity_failed")
        self.assertEqual(entry.sale_id, sale.pk)
        self.assertIn("credit_settled", entry.event_data)
