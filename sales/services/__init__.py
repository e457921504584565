"""
Sale ledger services.

Payments, returns and checkout compute their effect on a sale and hand it to
the transaction coordinator, which commits it against the sale's version.
"""

from .checkout import CartLine, CheckoutResult, create_sale
from .coordinator import TransactionCoordinator
from .ledger import LedgerState
from .payments import apply_payment, plan_payment
from .returns import (
    ExchangeLine,
    NettingResult,
    ReturnExchangeResult,
    ReturnLine,
    SettlementResult,
    compute_netting,
    compute_settlement,
    process_return_exchange,
)
from .stores import LedgerMutation, ReturnTransactionStore, SaleStore

__all__ = [
    'CartLine',
    'CheckoutResult',
    'create_sale',
    'TransactionCoordinator',
    'LedgerState',
    'apply_payment',
    'plan_payment',
    'ExchangeLine',
    'NettingResult',
    'ReturnExchangeResult',
    'ReturnLine',
    'SettlementResult',
    'compute_netting',
    'compute_settlement',
    'process_return_exchange',
    'LedgerMutation',
    'ReturnTransactionStore',
    'SaleStore',
]
