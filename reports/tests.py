from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from reports.services import day_end_summary, summarize_transactions, transaction_report
from sales.services import CartLine, ExchangeLine, ReturnLine, apply_payment, create_sale, process_return_exchange
from sales.tenders import BankTransferDetail, ChequeDetail, TenderSet
from tests.utils import checkout, make_product


User = get_user_model()


class DayEndSummaryTest(TestCase):
    def setUp(self):
        self.today = timezone.localdate()
        self.product = make_product(name="Sugar", retail_price="1000.00")

    def test_collections_and_credit(self):
        sale = checkout(self.product, cash="600.00", customer_id="C-001")
        apply_payment(sale.id, "100.00", "CASH", staff_id="cashier-1")
        create_sale(
            [CartLine(product_id=self.product.id, quantity=1)],
            staff_id="cashier-1",
            tenders=TenderSet(
                cash="1100.00",
                cheque="200.00",
                bank_transfer="100.00",
                cheque_detail=ChequeDetail(number="000321"),
                bank_transfer_detail=BankTransferDetail(reference_number="TRX-77"),
            ),
        )

        summary = day_end_summary(self.today)

        self.assertEqual(summary["total_transactions"], 2)
        self.assertEqual(summary["gross_sales_value"], Decimal("2000.00"))
        self.assertEqual(summary["total_cash_in"], Decimal("1800.00"))
        self.assertEqual(summary["total_change_given"], Decimal("400.00"))
        self.assertEqual(summary["net_cash_in_hand"], Decimal("1400.00"))
        self.assertEqual(summary["total_cheque_in"], Decimal("200.00"))
        self.assertEqual(summary["total_bank_transfer_in"], Decimal("100.00"))
        self.assertEqual(summary["new_credit_issued"], Decimal("400.00"))
        self.assertEqual(summary["paid_against_new_credit"], Decimal("100.00"))
        self.assertEqual(summary["net_outstanding_from_today"], Decimal("300.00"))
        self.assertEqual(summary["credit_sales_count"], 1)
        self.assertEqual(summary["cheque_numbers"], ["000321"])
        self.assertEqual(summary["bank_transfer_refs"], ["TRX-77"])

    def test_returns_split_by_sale_day(self):
        old_sale = checkout(
            self.product, cash="1000.00", sale_date=timezone.now() - timedelta(days=3)
        )
        new_sale = checkout(self.product, cash="300.00", customer_id="C-002")
        process_return_exchange(
            old_sale.id, returned_items=[ReturnLine(product_id=self.product.id, quantity=1)], staff_id="s1"
        )
        process_return_exchange(
            new_sale.id, returned_items=[ReturnLine(product_id=self.product.id, quantity=1)], staff_id="s1"
        )

        summary = day_end_summary(self.today)

        self.assertEqual(summary["refunds_for_past_sales"], Decimal("1000.00"))
        self.assertEqual(summary["refunds_for_today_sales"], Decimal("1000.00"))
        self.assertEqual(summary["total_refunds_paid_today"], Decimal("1300.00"))
        self.assertEqual(summary["credit_settled_by_returns"], Decimal("700.00"))
        self.assertEqual(summary["net_sales_value"], Decimal("-1000.00"))


class TransactionReportTest(TestCase):
    def setUp(self):
        self.shirt = make_product(name="Shirt", retail_price="250.00")
        self.cap = make_product(name="Cap", retail_price="100.00")

    def test_rows_are_signed_and_newest_first(self):
        sale = checkout(self.shirt, quantity=2, cash="500.00", sale_date=timezone.now() - timedelta(hours=1))
        process_return_exchange(
            sale.id,
            returned_items=[ReturnLine(product_id=self.shirt.id, quantity=1)],
            exchanged_items=[ExchangeLine(product_id=self.cap.id, quantity=1)],
            staff_id="cashier-1",
        )
        today = timezone.localdate()

        rows = transaction_report(today - timedelta(days=1), today)

        self.assertEqual([row["line_kind"] for row in rows], ["returned", "exchanged", "sold"])
        returned = rows[0]
        self.assertEqual(returned["quantity"], -1)
        self.assertEqual(returned["line_total"], Decimal("-250.00"))
        self.assertEqual(returned["related_id"], str(sale.id))
        self.assertEqual(rows[2]["line_total"], Decimal("500.00"))
        self.assertEqual(rows[2]["product_category"], "Beverages")

        summary = summarize_transactions(rows)
        self.assertEqual(summary["net_value"], Decimal("350.00"))
        self.assertEqual(summary["sale_count"], 1)
        self.assertEqual(summary["return_count"], 1)


class LedgerReportAPITest(APITestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="manager", password="TestPass123")
        self.client.force_authenticate(user=self.user)
        product = make_product(name="Flour", retail_price="80.00")
        checkout(product, cash="100.00")

    def test_day_end_endpoint(self):
        response = self.client.get(reverse("day-end-report"), {"date": timezone.localdate().isoformat()})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        summary = response.data["data"]["summary"]
        self.assertEqual(summary["gross_sales_value"], "80.00")
        self.assertEqual(summary["total_change_given"], "20.00")

    def test_day_end_bad_date(self):
        response = self.client.get(reverse("day-end-report"), {"date": "yesterday-ish"})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"]["code"], "INVALID_DATE")

    def test_transactions_endpoint(self):
        response = self.client.get(reverse("transaction-report"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data["data"]
        self.assertEqual(data["metadata"]["total_records"], 1)
        self.assertEqual(data["results"][0]["line_total"], "80.00")
        self.assertNotIn("timestamp", data["results"][0])

    def test_transactions_reject_unknown_kind(self):
        response = self.client.get(reverse("transaction-report"), {"kind": "refunded"})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"]["code"], "INVALID_FILTER")
