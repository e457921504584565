"""
Money helpers for ledger arithmetic.

All ledger math runs on Decimal. Values coming from JSON or forms are
converted through ``str`` so binary floats never leak into a balance, and
only display formatting is quantized.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP


ZERO = Decimal('0.00')
CENT = Decimal('0.01')


def to_decimal(value, default=None):
    """Convert user or database input to Decimal without float drift."""
    if value is None or value == '':
        if default is None:
            return ZERO
        return default
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value).strip())
        except (InvalidOperation, ValueError, TypeError):
            raise ValueError(f'Invalid monetary amount: {value!r}')
    if not amount.is_finite():
        raise ValueError(f'Invalid monetary amount: {value!r}')
    return amount


def has_sub_cent(value) -> bool:
    """True when the amount cannot be stored in whole cents."""
    value = to_decimal(value)
    return value != value.quantize(CENT)


def quantize_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value) -> str:
    """Render an amount with exactly two fractional digits."""
    return f'{quantize_money(value):.2f}'


def clamp_zero(value) -> Decimal:
    value = to_decimal(value)
    return value if value > ZERO else ZERO


def money_sum(values) -> Decimal:
    total = ZERO
    for value in values:
        total += to_decimal(value)
    return total
