"""Money helpers for LoanBook.

Amounts are ``Decimal`` values with two places in the domain and integer
cents in storage. Binary floats are converted through their shortest
string form and must already be exact to the cent.
"""
from decimal import Decimal, InvalidOperation

from loanbook.config import MONEY_QUANTUM, CENTS_PER_UNIT, CURRENCY_SYMBOL, MAX_MONEY
from loanbook.exceptions import InvalidAmountError

ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Convert ``value`` to a two-place Decimal.

    Raises:
        InvalidAmountError: If the value is not a finite number, carries
            fractions of a cent or is above MAX_MONEY.
    """
    if isinstance(value, bool):
        raise InvalidAmountError(value, "not a number")
    if isinstance(value, float):
        value = repr(value)
    try:
        amount = Decimal(str(value).strip()) if not isinstance(value, Decimal) else value
    except (InvalidOperation, ValueError):
        raise InvalidAmountError(value, "not a number")
    if not amount.is_finite():
        raise InvalidAmountError(value, "not a finite number")

    try:
        quantized = amount.quantize(MONEY_QUANTUM)
    except InvalidOperation:
        raise InvalidAmountError(value, "too large")
    if abs(quantized) > MAX_MONEY:
        raise InvalidAmountError(value, "too large")
    if quantized != amount:
        raise InvalidAmountError(value, "fractions of a cent are not allowed")
    return quantized


def to_positive_money(value) -> Decimal:
    """Like :func:`to_money` but rejects zero and negative amounts."""
    amount = to_money(value)
    if amount <= 0:
        raise InvalidAmountError(value)
    return amount


def to_cents(value) -> int:
    """Convert an amount to integer cents for storage."""
    return int(to_money(value) * CENTS_PER_UNIT)


def from_cents(cents) -> Decimal:
    """Convert stored integer cents back to a two-place Decimal."""
    if cents is None:
        return None
    return (Decimal(int(cents)) / CENTS_PER_UNIT).quantize(MONEY_QUANTUM)


def format_money(value) -> str:
    """Format an amount for documents, e.g. ``S/ 1,250.00``."""
    return f"{CURRENCY_SYMBOL} {to_money(value):,.2f}"
