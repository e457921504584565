"""
Ledger arithmetic shared by payments, returns and integrity checks.

A sale's aggregate is a pure function of its creation tenders, its payment
log and its return transactions. ``LedgerState.from_sale`` rebuilds it; the
engines extend it with new log entries and format the result.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List

from sales.money import ZERO, clamp_zero, to_decimal
from sales.summary import build_payment_summary
from sales.tenders import PaymentMethod, Tender


@dataclass
class LedgerState:
    total_amount: Decimal
    total_amount_paid: Decimal = ZERO
    credit_settled: Decimal = ZERO
    exchange_charges: Decimal = ZERO
    tenders: List[Tender] = field(default_factory=list)

    @classmethod
    def from_sale(cls, sale, payments=None, returns=None):
        """Replay a sale from its history, ignoring the stored aggregate."""
        if payments is None:
            payments = sale.additional_payments.all()
        if returns is None:
            returns = sale.returns.all()
        state = cls(total_amount=to_decimal(sale.total_amount))
        for tender in sale.creation_tenders():
            state.add_tender(tender)
        for payment in sorted(payments, key=lambda p: p.position):
            state.add_tender(payment.as_tender())
        for return_transaction in returns:
            state.exchange_charges += to_decimal(return_transaction.amount_paid)
        return state

    @property
    def amount_due(self) -> Decimal:
        return self.total_amount + self.exchange_charges

    @property
    def outstanding_balance(self) -> Decimal:
        return clamp_zero(self.amount_due - self.total_amount_paid - self.credit_settled)

    def add_tender(self, tender: Tender):
        if tender.method == PaymentMethod.RETURN_CREDIT:
            self.credit_settled += tender.amount
        else:
            self.total_amount_paid += tender.amount
        self.tenders.append(tender)

    @property
    def payment_summary(self) -> str:
        return build_payment_summary(
            self.tenders,
            amount_due=self.amount_due,
            outstanding_balance=self.outstanding_balance,
        )

    def snapshot(self):
        return {
            'total_amount_paid': self.total_amount_paid,
            'credit_settled': self.credit_settled,
            'exchange_charges': self.exchange_charges,
            'outstanding_balance': self.outstanding_balance,
            'payment_summary': self.payment_summary,
        }
