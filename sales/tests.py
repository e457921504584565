from decimal import Decimal

from django.test import SimpleTestCase

from sales.exceptions import (
    BankDetailsRequired,
    ChequeNumberRequired,
    InsufficientPayment,
    InvalidAmount,
    InvalidPaymentMethod,
    MissingStaff,
)
from sales.money import format_money, to_decimal
from sales.services import compute_netting, compute_settlement
from sales.summary import build_payment_summary
from sales.tenders import (
    BankTransferDetail,
    ChequeDetail,
    PaymentMethod,
    Tender,
    TenderedPayment,
    TenderSet,
    normalize_method,
)


class MoneyHelpersTest(SimpleTestCase):
    def test_to_decimal_goes_through_str(self):
        self.assertEqual(to_decimal(0.1), Decimal("0.1"))
        self.assertEqual(to_decimal("250.50"), Decimal("250.50"))
        self.assertEqual(to_decimal(None), Decimal("0.00"))

    def test_to_decimal_rejects_garbage(self):
        with self.assertRaises(ValueError):
            to_decimal("twelve")

    def test_format_money_always_two_places(self):
        self.assertEqual(format_money(Decimal("1000")), "1000.00")
        self.assertEqual(format_money("1.005"), "1.01")
        self.assertEqual(format_money(0), "0.00")


class PaymentSummaryTest(SimpleTestCase):
    def test_partial_cash_sale(self):
        summary = build_payment_summary(
            [Tender(PaymentMethod.CASH, Decimal("600"))],
            amount_due=Decimal("1000"),
            outstanding_balance=Decimal("400"),
        )
        self.assertEqual(summary, "Partial (Cash (600.00)) - Outstanding: 400.00")

    def test_same_method_tenders_are_grouped(self):
        summary = build_payment_summary(
            [Tender(PaymentMethod.CASH, Decimal("600")), Tender(PaymentMethod.CASH, Decimal("400"))],
            amount_due=Decimal("1000"),
            outstanding_balance=Decimal("0"),
        )
        self.assertEqual(summary, "Cash (1000.00)")

    def test_split_lists_methods_in_fixed_order(self):
        summary = build_payment_summary(
            [
                Tender(PaymentMethod.BANK_TRANSFER, Decimal("100"), "TRX-9"),
                Tender(PaymentMethod.CHEQUE, Decimal("50"), "000123"),
                Tender(PaymentMethod.CASH, Decimal("10")),
            ],
            amount_due=Decimal("160"),
            outstanding_balance=Decimal("0"),
        )
        self.assertEqual(
            summary,
            "Split (Cash (10.00) + Cheque (50.00) - #000123 + Bank Transfer (100.00) - Ref: TRX-9)",
        )

    def test_full_credit(self):
        summary = build_payment_summary([], amount_due=Decimal("400"), outstanding_balance=Decimal("400"))
        self.assertEqual(summary, "Full Credit - Outstanding: 400.00")

    def test_zero_value_sale(self):
        summary = build_payment_summary([], amount_due=Decimal("0"), outstanding_balance=Decimal("0"))
        self.assertEqual(summary, "Paid (Zero Value)")

    def test_return_credit_is_listed_last(self):
        summary = build_payment_summary(
            [Tender(PaymentMethod.RETURN_CREDIT, Decimal("100")), Tender(PaymentMethod.CASH, Decimal("400"))],
            amount_due=Decimal("500"),
            outstanding_balance=Decimal("0"),
        )
        self.assertEqual(summary, "Split (Cash (400.00) + Return Credit (100.00))")

    def test_same_input_same_output(self):
        tenders = [Tender(PaymentMethod.CHEQUE, Decimal("75.5"), "42")]
        first = build_payment_summary(tenders, amount_due=Decimal("100"), outstanding_balance=Decimal("24.5"))
        second = build_payment_summary(tenders, amount_due=Decimal("100"), outstanding_balance=Decimal("24.5"))
        self.assertEqual(first, second)
        self.assertEqual(first, "Partial (Cheque (75.50) - #42) - Outstanding: 24.50")


class TenderTest(SimpleTestCase):
    def test_normalize_method_accepts_display_names(self):
        self.assertEqual(normalize_method("cash"), "CASH")
        self.assertEqual(normalize_method("Bank Transfer"), "BANK_TRANSFER")
        self.assertEqual(normalize_method("BankTransfer"), "BANK_TRANSFER")
        with self.assertRaises(InvalidPaymentMethod):
            normalize_method("BITCOIN")

    def test_amount_must_be_positive(self):
        with self.assertRaises(InvalidAmount):
            TenderedPayment(amount="0", method="CASH", staff_id="s1")
        with self.assertRaises(InvalidAmount):
            TenderedPayment(amount="-5", method="CASH", staff_id="s1")

    def test_amount_must_be_whole_cents(self):
        with self.assertRaises(InvalidAmount):
            TenderedPayment(amount="0.004", method="CASH", staff_id="s1")
        with self.assertRaises(InvalidAmount):
            TenderedPayment(amount="NaN", method="CASH", staff_id="s1")
        with self.assertRaises(InvalidAmount):
            TenderSet(cash="10.001")
        self.assertEqual(TenderedPayment(amount="10.5", method="CASH", staff_id="s1").amount, Decimal("10.5"))

    def test_amount_is_checked_before_staff(self):
        with self.assertRaises(InvalidAmount):
            TenderedPayment(amount="0", method="CASH").validate()

    def test_staff_is_required(self):
        with self.assertRaises(MissingStaff):
            TenderedPayment(amount="10", method="CASH", staff_id="  ").validate()

    def test_cheque_needs_a_number(self):
        with self.assertRaises(ChequeNumberRequired):
            TenderedPayment(amount="10", method="CHEQUE", staff_id="s1", detail={"bank": "GCB"}).validate()
        payment = TenderedPayment(amount="10", method="CHEQUE", staff_id="s1", detail={"number": "000123"})
        self.assertIsInstance(payment.validate().detail, ChequeDetail)

    def test_bank_transfer_needs_bank_or_reference(self):
        with self.assertRaises(BankDetailsRequired):
            TenderedPayment(amount="10", method="BANK_TRANSFER", staff_id="s1").validate()
        payment = TenderedPayment(
            amount="10", method="BANK_TRANSFER", staff_id="s1", detail={"reference_number": "TRX-1"}
        )
        self.assertIsInstance(payment.validate().detail, BankTransferDetail)

    def test_change_only_from_cash(self):
        tenders = TenderSet(cash="500", cheque="600", cheque_detail=ChequeDetail(number="1"))
        self.assertEqual(tenders.change_for(Decimal("1000")), Decimal("100"))
        self.assertEqual(TenderSet(cheque="1200", cheque_detail=ChequeDetail(number="1")).change_for(
            Decimal("1000")), Decimal("0.00"))
        self.assertEqual(TenderSet(cash="250").change_for(Decimal("200")), Decimal("50"))

    def test_change_never_exceeds_cash(self):
        tenders = TenderSet(cash="20", cheque="1000", cheque_detail=ChequeDetail(number="1"))
        self.assertEqual(tenders.change_for(Decimal("500")), Decimal("20"))

    def test_negative_tender_rejected(self):
        with self.assertRaises(InvalidAmount):
            TenderSet(cash="-1")


class NettingTest(SimpleTestCase):
    def test_return_settles_debt_then_refunds(self):
        netting = compute_netting(Decimal("250"), Decimal("0"), Decimal("100"), True)
        self.assertEqual(netting.outstanding_to_settle, Decimal("100"))
        self.assertEqual(netting.net_credit_after_settle, Decimal("150"))
        self.assertEqual(netting.final_amount_due, Decimal("0"))
        self.assertEqual(netting.refund_to_customer, Decimal("150"))

    def test_exchange_without_settlement(self):
        netting = compute_netting(Decimal("100"), Decimal("300"), Decimal("80"), False)
        self.assertEqual(netting.outstanding_to_settle, Decimal("0"))
        self.assertEqual(netting.final_amount_due, Decimal("200"))
        self.assertEqual(netting.refund_to_customer, Decimal("0"))

    def test_settlement_bounds_and_exclusive_outcome(self):
        values = [Decimal(v) for v in ("0", "0.01", "50", "100", "250.75", "1000")]
        for return_total in values:
            for outstanding in values:
                for exchange_total in values:
                    netting = compute_netting(return_total, exchange_total, outstanding, True)
                    self.assertEqual(netting.outstanding_to_settle, min(return_total, outstanding))
                    self.assertGreaterEqual(netting.outstanding_to_settle, Decimal("0"))
                    self.assertFalse(netting.final_amount_due > 0 and netting.refund_to_customer > 0)

    def test_netting_is_pure(self):
        first = compute_netting("120", "80", "30", True)
        second = compute_netting("120", "80", "30", True)
        self.assertEqual(first, second)

    def test_settlement_with_change(self):
        settlement = compute_settlement(Decimal("200"), TenderSet(cash="250"))
        self.assertEqual(settlement.change_given, Decimal("50"))
        self.assertEqual(settlement.total_payment_applied, Decimal("200"))

    def test_settlement_short_payment(self):
        with self.assertRaises(InsufficientPayment):
            compute_settlement(Decimal("200"), TenderSet(cash="150"))
        with self.assertRaises(InsufficientPayment):
            compute_settlement(Decimal("200"), None)

    def test_nothing_due_needs_no_payment(self):
        settlement = compute_settlement(Decimal("0"), None)
        self.assertEqual(settlement.total_payment_applied, Decimal("0"))
