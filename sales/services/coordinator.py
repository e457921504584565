"""
Transaction coordinator for sale ledger mutations.

Every payment or return runs as read -> compute -> compare-and-swap commit.
When the commit loses a race, the whole sequence is retried against the
fresh sale, not just the write.
"""
import logging
import time

from django.conf import settings

from sales.exceptions import Conflict

from .stores import SaleStore

logger = logging.getLogger(__name__)


DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_SECONDS = 0.05


class TransactionCoordinator:
    """Serializes mutations of one sale through its version column."""

    def __init__(self, store=None, max_attempts=None, backoff_seconds=None, sleep=time.sleep):
        self.store = store or SaleStore()
        self.max_attempts = max_attempts or getattr(
            settings, 'LEDGER_MAX_COMMIT_ATTEMPTS', DEFAULT_MAX_ATTEMPTS
        )
        if backoff_seconds is None:
            backoff_seconds = getattr(settings, 'LEDGER_RETRY_BACKOFF_SECONDS', DEFAULT_BACKOFF_SECONDS)
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    def run(self, sale_id, compute):
        """
        Commit the mutation produced by ``compute(sale)``.

        ``compute`` receives the freshly loaded sale and returns a
        ``LedgerMutation``. It may raise validation errors, which propagate
        untouched and are never retried.

        Returns:
            CommitResult from the store.

        Raises:
            Conflict: every attempt lost the race.
        """
        attempt = 0
        while True:
            attempt += 1
            sale = self.store.get(sale_id)
            mutation = compute(sale)
            try:
                return self.store.commit(sale_id, mutation, expected_version=sale.version)
            except Conflict:
                if attempt >= self.max_attempts:
                    logger.warning(
                        f"Giving up on sale {sale_id} after {attempt} conflicting commit attempts"
                    )
                    raise
                logger.debug(
                    f"Version conflict on sale {sale_id} (attempt {attempt}/{self.max_attempts}), retrying"
                )
                if self.backoff_seconds:
                    self._sleep(self.backoff_seconds * attempt)
