import uuid
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import TestCase

from sales.exceptions import (
    BankDetailsRequired,
    ChequeNumberRequired,
    InvalidAmount,
    InvalidPaymentMethod,
    MissingStaff,
    NotFound,
)
from sales.models import AuditLog, Payment, Sale
from sales.services import apply_payment
from sales.validators import LedgerIntegrityValidator
from tests.utils import checkout, make_product


class ApplyPaymentTest(TestCase):
    """Installments against a 1000.00 sale with 600.00 paid at checkout."""

    def setUp(self):
        self.product = make_product(name="Gas Cooker", retail_price="1000.00")
        self.sale = checkout(self.product, cash="600.00", customer_id="C-001")

    def assertLedgerConsistent(self, sale_id):
        sale = Sale.objects.get(pk=sale_id)
        self.assertEqual(LedgerIntegrityValidator.find_mismatches(sale), {})
        LedgerIntegrityValidator.validate_outstanding_equation(sale)

    def test_partial_then_final_cash_payment(self):
        self.assertEqual(self.sale.outstanding_balance, Decimal("400.00"))
        self.assertEqual(self.sale.payment_summary, "Partial (Cash (600.00)) - Outstanding: 400.00")

        sale = apply_payment(self.sale.id, "400.00", "CASH", staff_id="cashier-2")

        self.assertEqual(sale.outstanding_balance, Decimal("0.00"))
        self.assertEqual(sale.total_amount_paid, Decimal("1000.00"))
        self.assertEqual(sale.payment_summary, "Cash (1000.00)")
        self.assertEqual(sale.version, self.sale.version + 1)
        self.assertEqual(sale.applied_payment.position, 0)
        self.assertEqual(sale.applied_payment.change_given, Decimal("0.00"))
        self.assertLedgerConsistent(sale.id)

    def test_underpayment_reduces_balance(self):
        sale = apply_payment(self.sale.id, "150.00", "CASH", staff_id="cashier-2")

        self.assertEqual(sale.outstanding_balance, Decimal("250.00"))
        self.assertEqual(sale.applied_payment.change_given, Decimal("0.00"))
        self.assertEqual(sale.payment_summary, "Partial (Cash (750.00)) - Outstanding: 250.00")

    def test_cash_overpayment_returns_change(self):
        sale = apply_payment(self.sale.id, "500.00", "CASH", staff_id="cashier-2")

        self.assertEqual(sale.applied_payment.change_given, Decimal("100.00"))
        self.assertEqual(sale.applied_payment.retained_amount, Decimal("400.00"))
        self.assertEqual(sale.outstanding_balance, Decimal("0.00"))
        self.assertEqual(sale.total_amount_paid, Decimal("1000.00"))
        self.assertLedgerConsistent(sale.id)

    def test_cheque_overpayment_keeps_full_amount(self):
        sale = apply_payment(
            self.sale.id, "500.00", "CHEQUE", staff_id="cashier-2", detail={"number": "000777", "bank": "GCB"}
        )

        self.assertEqual(sale.applied_payment.change_given, Decimal("0.00"))
        self.assertEqual(sale.total_amount_paid, Decimal("1100.00"))
        self.assertEqual(sale.outstanding_balance, Decimal("0.00"))
        self.assertEqual(sale.payment_summary, "Split (Cash (600.00) + Cheque (500.00) - #000777)")
        self.assertEqual(sale.applied_payment.details["number"], "000777")

    def test_bank_transfer_reference_in_summary(self):
        sale = apply_payment(
            self.sale.id, "100.00", "Bank Transfer", staff_id="cashier-2",
            detail={"bank_name": "Ecobank", "reference_number": "TRX-55"},
        )

        self.assertEqual(sale.applied_payment.method, "BANK_TRANSFER")
        self.assertEqual(
            sale.payment_summary,
            "Partial (Split (Cash (600.00) + Bank Transfer (100.00) - Ref: TRX-55)) - Outstanding: 300.00",
        )

    def test_payments_are_appended_in_order(self):
        apply_payment(self.sale.id, "100.00", "CASH", staff_id="cashier-2")
        apply_payment(self.sale.id, "100.00", "CASH", staff_id="cashier-2")
        sale = apply_payment(self.sale.id, "200.00", "CASH", staff_id="cashier-2")

        positions = list(Payment.objects.filter(sale=sale).values_list("position", flat=True))
        self.assertEqual(positions, [0, 1, 2])
        self.assertEqual(sale.outstanding_balance, Decimal("0.00"))
        self.assertEqual(AuditLog.objects.filter(event_type="payment.applied", sale=sale).count(), 3)
        self.assertLedgerConsistent(sale.id)

    def test_cash_on_settled_sale_is_all_change(self):
        apply_payment(self.sale.id, "400.00", "CASH", staff_id="cashier-2")
        sale = apply_payment(self.sale.id, "50.00", "CASH", staff_id="cashier-2")

        self.assertEqual(sale.applied_payment.change_given, Decimal("50.00"))
        self.assertEqual(sale.total_amount_paid, Decimal("1000.00"))
        self.assertLedgerConsistent(sale.id)

    def test_zero_amount_rejected_without_state_change(self):
        with self.assertRaises(InvalidAmount):
            apply_payment(self.sale.id, "0", "CASH", staff_id="cashier-2")

        sale = Sale.objects.get(pk=self.sale.id)
        self.assertEqual(sale.version, self.sale.version)
        self.assertEqual(sale.outstanding_balance, Decimal("400.00"))
        self.assertFalse(Payment.objects.filter(sale=sale).exists())

    def test_sub_cent_amount_rejected_without_state_change(self):
        with self.assertRaises(InvalidAmount):
            apply_payment(self.sale.id, "0.004", "CASH", staff_id="cashier-2")
        with self.assertRaises(InvalidAmount):
            apply_payment(self.sale.id, "100.005", "CASH", staff_id="cashier-2")

        sale = Sale.objects.get(pk=self.sale.id)
        self.assertEqual(sale.version, self.sale.version)
        self.assertEqual(sale.total_amount_paid, Decimal("600.00"))
        self.assertFalse(Payment.objects.filter(sale=sale).exists())

    def test_boundary_validation(self):
        with self.assertRaises(InvalidPaymentMethod):
            apply_payment(self.sale.id, "10.00", "BITCOIN", staff_id="cashier-2")
        with self.assertRaises(MissingStaff):
            apply_payment(self.sale.id, "10.00", "CASH")
        with self.assertRaises(ChequeNumberRequired):
            apply_payment(self.sale.id, "10.00", "CHEQUE", staff_id="cashier-2", detail={"bank": "GCB"})
        with self.assertRaises(BankDetailsRequired):
            apply_payment(self.sale.id, "10.00", "BANK_TRANSFER", staff_id="cashier-2", detail={})
        self.assertFalse(Payment.objects.exists())

    def test_unknown_sale(self):
        with self.assertRaises(NotFound):
            apply_payment(uuid.uuid4(), "10.00", "CASH", staff_id="cashier-2")
        with self.assertRaises(NotFound):
            apply_payment("not-a-uuid", "10.00", "CASH", staff_id="cashier-2")


class PaymentImmutabilityTest(TestCase):
    def setUp(self):
        product = make_product(name="Kettle", retail_price="300.00")
        sale = checkout(product, cash="100.00", customer_id="C-002")
        self.payment = apply_payment(sale.id, "50.00", "CASH", staff_id="cashier-1").applied_payment

    def test_payment_cannot_be_edited(self):
        self.payment.amount = Decimal("5.00")
        with self.assertRaises(ValidationError):
            self.payment.save()

    def test_payment_cannot_be_deleted(self):
        with self.assertRaises(ValidationError):
            self.payment.delete()
        self.assertTrue(Payment.objects.filter(pk=self.payment.pk).exists())
