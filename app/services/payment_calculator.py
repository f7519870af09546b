"""
Deposit / Balance Calculator

Amounts are whole units of a zero-decimal currency (JPY by default), so the
charge computed here is passed to the payment processor unchanged.

Rounding is half-up: calculate_deposit_charge(9999, 50) == 5000.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import NamedTuple, Union

from ..models.booking import PaymentStatus, DEPOSIT_CHOICES

Number = Union[int, float, Decimal]


class InvalidChargeError(ValueError):
    """Raised when a computed charge is not payable"""


class PaymentUpdate(NamedTuple):
    amount_paid: int
    remaining_amount: int
    payment_status: PaymentStatus


def round_half_up(value: Number) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_deposit_charge(total_amount: Number, deposit_choice: int) -> int:
    """Charge for the initial checkout: total * choice / 100, rounded half-up."""
    if deposit_choice not in DEPOSIT_CHOICES:
        raise InvalidChargeError(
            f"deposit_choice must be one of {', '.join(str(c) for c in DEPOSIT_CHOICES)}"
        )
    charge = round_half_up(Decimal(str(total_amount)) * deposit_choice / Decimal(100))
    if charge <= 0:
        raise InvalidChargeError("Invalid charge amount")
    return charge


def calculate_balance_charge(remaining_amount: Number) -> int:
    charge = round_half_up(remaining_amount or 0)
    if charge <= 0:
        raise InvalidChargeError("No remaining balance to pay")
    return charge


def derive_payment_status(total_amount: int, amount_paid: int) -> PaymentStatus:
    """paid iff nothing remains, partial iff something was paid, otherwise unpaid"""
    remaining = max(total_amount - amount_paid, 0)
    if remaining == 0:
        return PaymentStatus.PAID
    if amount_paid > 0:
        return PaymentStatus.PARTIAL
    return PaymentStatus.UNPAID


def apply_payment(total_amount: int, amount_paid: int, paid_now: int) -> PaymentUpdate:
    """Fold a captured payment into the booking's running totals."""
    new_paid = (amount_paid or 0) + (paid_now or 0)
    remaining = max(total_amount - new_paid, 0)
    return PaymentUpdate(
        amount_paid=new_paid,
        remaining_amount=remaining,
        payment_status=derive_payment_status(total_amount, new_paid),
    )
