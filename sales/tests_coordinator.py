from decimal import Decimal
from types import SimpleNamespace

from django.test import SimpleTestCase, TestCase

from sales.exceptions import Conflict, InvalidAmount, NotFound
from sales.models import Payment, Sale
from sales.services import SaleStore, TransactionCoordinator, apply_payment, plan_payment
from sales.tenders import TenderedPayment
from tests.utils import checkout, make_product


class FlakyStore:
    """Loses the first ``conflicts`` commits."""

    def __init__(self, conflicts):
        self.conflicts = conflicts
        self.loads = 0
        self.commits = []

    def get(self, sale_id):
        self.loads += 1
        return SimpleNamespace(id=sale_id, version=self.loads)

    def commit(self, sale_id, mutation, expected_version):
        self.commits.append(expected_version)
        if self.conflicts:
            self.conflicts -= 1
            raise Conflict(sale_id=sale_id, expected_version=expected_version)
        return "committed"


class TransactionCoordinatorTest(SimpleTestCase):
    def setUp(self):
        self.sleeps = []

    def coordinator(self, store, max_attempts=3):
        return TransactionCoordinator(
            store=store,
            max_attempts=max_attempts,
            backoff_seconds=0.05,
            sleep=self.sleeps.append,
        )

    def test_retries_against_fresh_state(self):
        store = FlakyStore(conflicts=2)
        seen = []

        result = self.coordinator(store).run("sale-1", lambda sale: seen.append(sale.version) or "mutation")

        self.assertEqual(result, "committed")
        self.assertEqual(seen, [1, 2, 3])
        self.assertEqual(store.commits, [1, 2, 3])
        self.assertEqual(self.sleeps, [0.05, 0.1])

    def test_gives_up_after_max_attempts(self):
        store = FlakyStore(conflicts=5)

        with self.assertRaises(Conflict):
            self.coordinator(store).run("sale-1", lambda sale: "mutation")

        self.assertEqual(store.loads, 3)

    def test_validation_errors_are_not_retried(self):
        store = FlakyStore(conflicts=0)

        def compute(sale):
            raise InvalidAmount()

        with self.assertRaises(InvalidAmount):
            self.coordinator(store).run("sale-1", compute)

        self.assertEqual(store.loads, 1)
        self.assertEqual(store.commits, [])


class SaleStoreCommitTest(TestCase):
    def setUp(self):
        product = make_product(name="Blender", retail_price="1000.00")
        self.sale = checkout(product, cash="600.00", customer_id="C-001")
        self.store = SaleStore()

    def test_stale_version_is_a_conflict(self):
        sale = self.store.get(self.sale.id)
        mutation = plan_payment(sale, TenderedPayment(amount="100.00", method="CASH", staff_id="cashier-1"))
        self.store.commit(sale.id, mutation, expected_version=sale.version)

        with self.assertRaises(Conflict):
            self.store.commit(sale.id, mutation, expected_version=sale.version)

        self.assertEqual(Payment.objects.filter(sale_id=sale.id).count(), 1)
        self.assertEqual(Sale.objects.get(pk=sale.id).version, sale.version + 1)

    def test_missing_sale(self):
        sale = self.store.get(self.sale.id)
        mutation = plan_payment(sale, TenderedPayment(amount="100.00", method="CASH", staff_id="cashier-1"))
        with self.assertRaises(NotFound):
            self.store.commit("00000000-0000-0000-0000-000000000000", mutation, expected_version=1)

    def test_interleaved_payment_is_replayed(self):
        """A payment landing between read and commit forces a recompute."""
        versions = []

        def compute(sale):
            versions.append(sale.version)
            if len(versions) == 1:
                apply_payment(self.sale.id, "100.00", "CASH", staff_id="cashier-2")
            return plan_payment(sale, TenderedPayment(amount="50.00", method="CASH", staff_id="cashier-1"))

        result = TransactionCoordinator(sleep=lambda seconds: None).run(self.sale.id, compute)

        self.assertEqual(versions, [1, 2])
        self.assertEqual(result.sale.version, 3)
        self.assertEqual(result.sale.outstanding_balance, Decimal("250.00"))
        positions = list(Payment.objects.filter(sale=self.sale).values_list("position", flat=True))
        self.assertEqual(positions, [0, 1])
