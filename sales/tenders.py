"""
Payment value types.

A payment's structured detail is a tagged variant keyed by its method:
cheques carry a cheque number, bank transfers a bank name and/or reference,
cash and return credit carry nothing.
"""
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union

from django.db import models
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from .exceptions import (
    BankDetailsRequired,
    ChequeNumberRequired,
    InvalidAmount,
    InvalidPaymentMethod,
    MissingStaff,
)
from .money import ZERO, clamp_zero, has_sub_cent, to_decimal


class PaymentMethod(models.TextChoices):
    CASH = 'CASH', 'Cash'
    CHEQUE = 'CHEQUE', 'Cheque'
    BANK_TRANSFER = 'BANK_TRANSFER', 'Bank Transfer'
    RETURN_CREDIT = 'RETURN_CREDIT', 'Return Credit'


# Order in which methods appear in a payment summary
METHOD_ORDER = (
    PaymentMethod.CASH,
    PaymentMethod.CHEQUE,
    PaymentMethod.BANK_TRANSFER,
    PaymentMethod.RETURN_CREDIT,
)

TENDER_METHODS = (PaymentMethod.CASH, PaymentMethod.CHEQUE, PaymentMethod.BANK_TRANSFER)


def normalize_method(method) -> str:
    """Accept 'CASH', 'Cash', 'BankTransfer', 'Bank Transfer' and friends."""
    if isinstance(method, PaymentMethod):
        return method.value
    if not method:
        raise InvalidPaymentMethod()
    key = str(method).strip().replace(' ', '').replace('_', '').upper()
    for choice in PaymentMethod:
        if choice.value.replace('_', '') == key:
            return choice.value
    raise InvalidPaymentMethod(f'Unsupported payment method: {method}')


def _clean(value):
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _parse_when(value):
    if value is None or isinstance(value, (date, datetime)):
        return value
    parsed = parse_datetime(str(value))
    if parsed is None:
        parsed = parse_date(str(value))
    return parsed


@dataclass(frozen=True)
class ChequeDetail:
    number: Optional[str] = None
    bank: Optional[str] = None
    date: Optional[Union[date, datetime]] = None
    amount: Optional[Decimal] = None

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        amount = data.get('amount')
        return cls(
            number=_clean(data.get('number')),
            bank=_clean(data.get('bank')),
            date=_parse_when(data.get('date')),
            amount=to_decimal(amount) if amount not in (None, '') else None,
        )

    def to_dict(self):
        payload = {'kind': 'cheque'}
        if self.number:
            payload['number'] = self.number
        if self.bank:
            payload['bank'] = self.bank
        if self.date:
            payload['date'] = self.date.isoformat()
        if self.amount is not None:
            payload['amount'] = str(self.amount)
        return payload

    @property
    def reference(self):
        return self.number


@dataclass(frozen=True)
class BankTransferDetail:
    bank_name: Optional[str] = None
    reference_number: Optional[str] = None
    amount: Optional[Decimal] = None

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        amount = data.get('amount')
        return cls(
            bank_name=_clean(data.get('bank_name', data.get('bankName'))),
            reference_number=_clean(data.get('reference_number', data.get('referenceNumber'))),
            amount=to_decimal(amount) if amount not in (None, '') else None,
        )

    def to_dict(self):
        payload = {'kind': 'bank_transfer'}
        if self.bank_name:
            payload['bank_name'] = self.bank_name
        if self.reference_number:
            payload['reference_number'] = self.reference_number
        if self.amount is not None:
            payload['amount'] = str(self.amount)
        return payload

    @property
    def reference(self):
        return self.reference_number


PaymentDetail = Union[ChequeDetail, BankTransferDetail]


def detail_for(method, data) -> Optional[PaymentDetail]:
    """Build the detail variant that belongs to ``method`` (or None)."""
    if data is None:
        return None
    if isinstance(data, (ChequeDetail, BankTransferDetail)):
        return data
    method = normalize_method(method)
    if method == PaymentMethod.CHEQUE:
        return ChequeDetail.from_dict(data)
    if method == PaymentMethod.BANK_TRANSFER:
        return BankTransferDetail.from_dict(data)
    return None


def require_detail(method, detail):
    """Boundary validation of the variant-specific identifying fields."""
    if method == PaymentMethod.CHEQUE:
        if not isinstance(detail, ChequeDetail) or not detail.number:
            raise ChequeNumberRequired()
    elif method == PaymentMethod.BANK_TRANSFER:
        if not isinstance(detail, BankTransferDetail) or not (detail.bank_name or detail.reference_number):
            raise BankDetailsRequired()


@dataclass(frozen=True)
class TenderedPayment:
    """A payment offered against a sale, before it is recorded."""

    amount: Decimal
    method: str
    staff_id: Optional[str] = None
    date: Optional[datetime] = None
    notes: Optional[str] = None
    detail: Optional[PaymentDetail] = None

    def __post_init__(self):
        try:
            amount = to_decimal(self.amount)
        except ValueError as exc:
            raise InvalidAmount(str(exc))
        if amount <= ZERO:
            raise InvalidAmount(amount=amount)
        if has_sub_cent(amount):
            raise InvalidAmount('Amount cannot have more than two decimal places.', amount=amount)
        object.__setattr__(self, 'amount', amount)
        object.__setattr__(self, 'method', normalize_method(self.method))
        object.__setattr__(self, 'staff_id', _clean(self.staff_id))
        object.__setattr__(self, 'notes', _clean(self.notes))
        object.__setattr__(self, 'detail', detail_for(self.method, self.detail))

    def validate(self):
        if not self.staff_id:
            raise MissingStaff()
        require_detail(self.method, self.detail)
        return self

    @property
    def recorded_at(self):
        when = self.date or timezone.now()
        if isinstance(when, datetime):
            if timezone.is_naive(when):
                when = timezone.make_aware(when)
            return when
        return timezone.make_aware(datetime.combine(when, datetime.min.time()))


@dataclass(frozen=True)
class Tender:
    """One retained amount fed to the payment summary."""

    method: str
    amount: Decimal
    reference: Optional[str] = None


@dataclass
class TenderSet:
    """Multi-method tender offered at checkout or during an exchange."""

    cash: Decimal = ZERO
    cheque: Decimal = ZERO
    bank_transfer: Decimal = ZERO
    cheque_detail: Optional[ChequeDetail] = None
    bank_transfer_detail: Optional[BankTransferDetail] = None

    def __post_init__(self):
        for name in ('cash', 'cheque', 'bank_transfer'):
            try:
                value = to_decimal(getattr(self, name))
            except ValueError as exc:
                raise InvalidAmount(str(exc))
            if value < ZERO:
                raise InvalidAmount(f'{name.replace("_", " ").title()} amount cannot be negative.')
            if has_sub_cent(value):
                raise InvalidAmount(
                    f'{name.replace("_", " ").title()} amount cannot have more than two decimal places.'
                )
            setattr(self, name, value)

    @property
    def total(self) -> Decimal:
        return self.cash + self.cheque + self.bank_transfer

    @property
    def non_cash(self) -> Decimal:
        return self.cheque + self.bank_transfer

    def validate(self):
        if self.cheque > ZERO:
            require_detail(PaymentMethod.CHEQUE, self.cheque_detail)
        if self.bank_transfer > ZERO:
            require_detail(PaymentMethod.BANK_TRANSFER, self.bank_transfer_detail)
        return self

    def change_for(self, amount_due) -> Decimal:
        """Cash handed back when cash exceeds its share of ``amount_due``."""
        amount_due = to_decimal(amount_due)
        if self.cash > ZERO and self.total > amount_due:
            excess = self.cash - (amount_due - self.non_cash)
            return min(self.cash, clamp_zero(excess))
        return ZERO

    def tenders(self, change_given=ZERO):
        retained = []
        cash = self.cash - to_decimal(change_given)
        if cash > ZERO:
            retained.append(Tender(PaymentMethod.CASH, cash))
        if self.cheque > ZERO:
            reference = self.cheque_detail.number if self.cheque_detail else None
            retained.append(Tender(PaymentMethod.CHEQUE, self.cheque, reference))
        if self.bank_transfer > ZERO:
            reference = self.bank_transfer_detail.reference_number if self.bank_transfer_detail else None
            retained.append(Tender(PaymentMethod.BANK_TRANSFER, self.bank_transfer, reference))
        return retained
