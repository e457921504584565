"""
Domain errors raised by the sale ledger.

Every error carries a stable ``code`` and the HTTP status the API layer
answers with. Validation errors are raised before any mutation is attempted.
"""
from rest_framework import status


class LedgerError(Exception):
    code = 'LEDGER_ERROR'
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Ledger operation failed.'

    def __init__(self, message=None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def as_dict(self):
        payload = {'error': self.code, 'detail': self.message}
        if self.context:
            payload['context'] = {key: str(value) for key, value in self.context.items()}
        return payload


class LedgerValidationError(LedgerError):
    code = 'VALIDATION_ERROR'


class InvalidAmount(LedgerValidationError):
    code = 'INVALID_AMOUNT'
    default_message = 'Payment amount must be greater than zero.'


class InvalidPaymentMethod(LedgerValidationError):
    code = 'INVALID_PAYMENT_METHOD'
    default_message = 'Unsupported payment method.'


class MissingStaff(LedgerValidationError):
    code = 'MISSING_STAFF'
    default_message = 'Staff ID is required for payment record.'


class ChequeNumberRequired(LedgerValidationError):
    code = 'CHEQUE_NUMBER_REQUIRED'
    default_message = 'Please enter a cheque number if paying by cheque.'


class BankDetailsRequired(LedgerValidationError):
    code = 'BANK_DETAILS_REQUIRED'
    default_message = 'Bank name or reference number is required for bank transfers.'


class CustomerRequired(LedgerValidationError):
    code = 'CUSTOMER_REQUIRED'
    default_message = 'A customer must be selected for credit or partially paid sales.'


class NothingToSell(LedgerValidationError):
    code = 'NOTHING_TO_SELL'
    default_message = 'A sale needs at least one item.'


class NothingToReturn(LedgerValidationError):
    code = 'NOTHING_TO_RETURN'
    default_message = 'Please specify items to return or exchange.'


class OverReturn(LedgerValidationError):
    code = 'OVER_RETURN'
    default_message = 'Return quantity exceeds the remaining returnable quantity.'


class InsufficientPayment(LedgerValidationError):
    code = 'INSUFFICIENT_PAYMENT'
    default_message = 'Payment does not cover the amount due.'


class NotFound(LedgerError):
    code = 'NOT_FOUND'
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Sale not found.'


class Conflict(LedgerError):
    """The sale changed between read and commit; safe to retry."""
    code = 'CONFLICT'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'The sale was modified concurrently. Please retry.'


class InventoryAdjustmentFailed(LedgerError):
    """Stock could not be adjusted after a committed ledger change."""
    code = 'INVENTORY_ADJUSTMENT_FAILED'
    status_code = status.HTTP_200_OK
    default_message = 'Stock adjustment failed.'


class LedgerIntegrityError(LedgerError):
    code = 'LEDGER_INTEGRITY_ERROR'
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = 'Stored ledger aggregate does not match its payment history.'

    def __init__(self, message=None, mismatches=None, **context):
        self.mismatches = mismatches or {}
        super().__init__(message, **context)
