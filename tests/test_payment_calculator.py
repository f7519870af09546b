"""
Tests for the deposit / balance calculator
"""

import pytest
from decimal import Decimal

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.models.booking import PaymentStatus
from app.services.payment_calculator import (
    InvalidChargeError,
    apply_payment,
    calculate_balance_charge,
    calculate_deposit_charge,
    derive_payment_status,
    round_half_up,
)


class TestDepositCharge:

    def test_quarter_deposit(self):
        assert calculate_deposit_charge(10000, 25) == 2500

    def test_half_deposit_rounds_half_up(self):
        assert calculate_deposit_charge(9999, 50) == 5000

    def test_full_payment_is_total(self):
        assert calculate_deposit_charge(123457, 100) == 123457

    def test_small_total_rounds_up_to_one(self):
        # 1 * 50% = 0.5 -> 1
        assert calculate_deposit_charge(1, 50) == 1

    def test_rejects_unknown_choice(self):
        with pytest.raises(InvalidChargeError):
            calculate_deposit_charge(10000, 30)

    def test_rejects_zero_total(self):
        with pytest.raises(InvalidChargeError):
            calculate_deposit_charge(0, 100)

    def test_invalid_charge_is_value_error(self):
        with pytest.raises(ValueError):
            calculate_deposit_charge(10000, 10)


class TestBalanceCharge:

    def test_remaining_is_charged_as_is(self):
        assert calculate_balance_charge(75000) == 75000

    @pytest.mark.parametrize("remaining", [0, None, -5])
    def test_nothing_to_pay(self, remaining):
        with pytest.raises(InvalidChargeError):
            calculate_balance_charge(remaining)


class TestRounding:

    def test_half_rounds_away_from_zero(self):
        assert round_half_up(Decimal("2.5")) == 3
        assert round_half_up(Decimal("3.5")) == 4

    def test_float_input(self):
        assert round_half_up(4999.5) == 5000


class TestPaymentStatus:

    def test_unpaid(self):
        assert derive_payment_status(100000, 0) == PaymentStatus.UNPAID

    def test_partial(self):
        assert derive_payment_status(100000, 25000) == PaymentStatus.PARTIAL

    def test_paid_exact(self):
        assert derive_payment_status(100000, 100000) == PaymentStatus.PAID

    def test_overpaid_counts_as_paid(self):
        assert derive_payment_status(100000, 120000) == PaymentStatus.PAID


class TestApplyPayment:

    def test_deposit_then_balance(self):
        first = apply_payment(100000, 0, 25000)
        assert first.amount_paid == 25000
        assert first.remaining_amount == 75000
        assert first.payment_status == PaymentStatus.PARTIAL

        second = apply_payment(100000, first.amount_paid, first.remaining_amount)
        assert second.amount_paid == 100000
        assert second.remaining_amount == 0
        assert second.payment_status == PaymentStatus.PAID

    def test_remaining_never_negative(self):
        update = apply_payment(100000, 90000, 20000)
        assert update.remaining_amount == 0
        assert update.amount_paid == 110000
        assert update.payment_status == PaymentStatus.PAID

    @pytest.mark.parametrize("total,paid,now", [
        (100000, 0, 25000),
        (9999, 0, 5000),
        (50000, 10000, 40000),
        (300, 299, 0),
    ])
    def test_invariant_holds(self, total, paid, now):
        update = apply_payment(total, paid, now)
        assert update.remaining_amount == max(total - update.amount_paid, 0)
        assert (update.payment_status == PaymentStatus.PAID) == (update.remaining_amount == 0)
