import uuid

from django.contrib.auth import get_user_model
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from sales.models import AuditLog, Payment, Sale
from tests.utils import checkout, make_product


User = get_user_model()


class SaleLedgerAPITest(APITestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="cashier", password="TestPass123")
        self.product = make_product(name="Water Bottle", retail_price="500.00")
        self.client.force_authenticate(user=self.user)

    def test_requires_authentication(self):
        self.client.force_authenticate(user=None)
        response = self.client.get(reverse("sale-list"))
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

    def test_checkout_endpoint(self):
        payload = {
            "items": [{"product_id": str(self.product.id), "quantity": 2}],
            "customer_id": "C-001",
            "payment": {"cash": "600.00"},
        }
        response = self.client.post(reverse("sale-list"), payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        sale = response.data["sale"]
        self.assertEqual(sale["total_amount"], "1000.00")
        self.assertEqual(sale["outstanding_balance"], "400.00")
        self.assertEqual(sale["payment_summary"], "Partial (Cash (600.00)) - Outstanding: 400.00")
        self.assertEqual(sale["staff_id"], "cashier")
        self.assertEqual(response.data["warnings"], [])

    def test_checkout_credit_without_customer(self):
        payload = {"items": [{"product_id": str(self.product.id), "quantity": 1}]}
        response = self.client.post(reverse("sale-list"), payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "CUSTOMER_REQUIRED")

    def test_record_payment_endpoint(self):
        sale = checkout(self.product, quantity=2, cash="600.00", customer_id="C-001")
        url = reverse("sale-record-payment", kwargs={"pk": sale.id})

        response = self.client.post(url, {"amount": "500.00", "method": "CASH"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["payment"]["change_given"], "100.00")
        self.assertEqual(response.data["payment"]["staff_id"], "cashier")
        self.assertEqual(response.data["sale"]["outstanding_balance"], "0.00")
        self.assertEqual(response.data["sale"]["payment_summary"], "Cash (1000.00)")
        self.assertEqual(len(response.data["sale"]["additional_payments"]), 1)

    def test_record_cheque_payment(self):
        sale = checkout(self.product, quantity=2, cash="600.00", customer_id="C-001")
        url = reverse("sale-record-payment", kwargs={"pk": sale.id})

        response = self.client.post(
            url,
            {"amount": "150.00", "method": "CHEQUE", "cheque": {"number": "000123", "bank": "GCB"}},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["payment"]["details"]["number"], "000123")
        self.assertEqual(response.data["sale"]["outstanding_balance"], "250.00")

    def test_payment_detail_follows_method(self):
        sale = checkout(self.product, quantity=2, cash="600.00", customer_id="C-001")
        url = reverse("sale-record-payment", kwargs={"pk": sale.id})
        payload = {
            "amount": "150.00",
            "method": "BANK_TRANSFER",
            "cheque": {"number": "000999"},
            "bank_transfer": {"bank_name": "GCB", "reference_number": "TRX-501"},
        }

        response = self.client.post(url, payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["payment"]["details"]["reference_number"], "TRX-501")
        self.assertNotIn("number", response.data["payment"]["details"])
        self.assertEqual(response.data["sale"]["outstanding_balance"], "250.00")

    def test_payment_errors(self):
        sale = checkout(self.product, quantity=2, cash="600.00", customer_id="C-001")
        url = reverse("sale-record-payment", kwargs={"pk": sale.id})

        response = self.client.post(url, {"amount": "0", "method": "CASH"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "INVALID_AMOUNT")

        response = self.client.post(url, {"amount": "10.00", "method": "CHEQUE"}, format="json")
        self.assertEqual(response.data["error"], "CHEQUE_NUMBER_REQUIRED")

        response = self.client.post(url, {"amount": "10.00", "method": "GOLD"}, format="json")
        self.assertEqual(response.data["error"], "INVALID_PAYMENT_METHOD")

        missing = reverse("sale-record-payment", kwargs={"pk": uuid.uuid4()})
        response = self.client.post(missing, {"amount": "10.00", "method": "CASH"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["error"], "NOT_FOUND")

        self.assertFalse(Payment.objects.exists())

    def test_sales_are_not_editable(self):
        sale = checkout(self.product, quantity=1, cash="500.00")
        url = reverse("sale-detail", kwargs={"pk": sale.id})

        self.assertEqual(self.client.patch(url, {"total_amount": "1.00"}, format="json").status_code,
                         status.HTTP_405_METHOD_NOT_ALLOWED)
        self.assertEqual(self.client.delete(url).status_code, status.HTTP_405_METHOD_NOT_ALLOWED)

    def test_outstanding_filter(self):
        checkout(self.product, quantity=1, cash="500.00")
        credit = checkout(self.product, quantity=1, cash="100.00", customer_id="C-002")

        response = self.client.get(reverse("sale-list"), {"has_outstanding_balance": "true"})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        ids = [row["id"] for row in response.data["results"]]
        self.assertEqual(ids, [str(credit.id)])

    def test_integrity_endpoint(self):
        sale = checkout(self.product, quantity=1, cash="500.00")
        url = reverse("sale-integrity", kwargs={"pk": sale.id})

        self.assertTrue(self.client.get(url).data["consistent"])

        Sale.objects.filter(pk=sale.pk).update(payment_summary="tampered")
        response = self.client.get(url)
        self.assertFalse(response.data["consistent"])
        self.assertEqual(response.data["mismatches"]["payment_summary"]["expected"], "Cash (500.00)")


class ReturnAPITest(APITestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="supervisor", password="TestPass123")
        self.shirt = make_product(name="Shirt", retail_price="250.00")
        self.jacket = make_product(name="Jacket", retail_price="300.00")
        self.client.force_authenticate(user=self.user)

    def test_return_with_settlement(self):
        sale = checkout(self.shirt, quantity=2, cash="400.00", customer_id="C-001")
        payload = {
            "sale_id": str(sale.id),
            "returned_items": [{"product_id": str(self.shirt.id), "quantity": 1}],
            "apply_credit_to_outstanding": True,
        }

        response = self.client.post(reverse("return-list"), payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["netting"]["outstanding_to_settle"], "100.00")
        self.assertEqual(response.data["netting"]["refund_to_customer"], "150.00")
        self.assertEqual(response.data["sale"]["outstanding_balance"], "0.00")
        self.assertTrue(response.data["return_transaction"]["reference"].startswith("return-"))
        self.assertEqual(response.data["return_transaction"]["staff_id"], "supervisor")

    def test_exchange_with_payment(self):
        sale = checkout(self.shirt, quantity=1, cash="250.00")
        payload = {
            "sale_id": str(sale.id),
            "returned_items": [{"product_id": str(self.shirt.id), "quantity": 1}],
            "exchanged_items": [{"product_id": str(self.jacket.id), "quantity": 1}],
            "apply_credit_to_outstanding": False,
            "payment": {"cash": "100.00"},
        }

        response = self.client.post(reverse("return-list"), payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["netting"]["final_amount_due"], "50.00")
        self.assertEqual(response.data["netting"]["change_given"], "50.00")
        self.assertEqual(response.data["sale"]["exchange_charges"], "50.00")

    def test_over_return(self):
        sale = checkout(self.shirt, quantity=1, cash="250.00")
        payload = {
            "sale_id": str(sale.id),
            "returned_items": [{"product_id": str(self.shirt.id), "quantity": 3}],
        }

        response = self.client.post(reverse("return-list"), payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "OVER_RETURN")

    def test_audit_trail_is_listed(self):
        sale = checkout(self.shirt, quantity=1, cash="250.00")
        response = self.client.get(reverse("auditlog-list"), {"sale": str(sale.id)})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["results"][0]["event_type"], "sale.created")
        self.assertEqual(AuditLog.objects.filter(sale=sale).count(), 1)
