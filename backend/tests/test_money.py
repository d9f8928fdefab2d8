# Overview: Pytest coverage for integer-cent money arithmetic.

import pytest

from poscore.money import (
    DISCOUNT_FIXED,
    DISCOUNT_PERCENTAGE,
    discount_amount,
    format_cents,
    line_amounts,
    percent_of,
    prorate,
    round_half_up,
)


class TestRounding:
    def test_half_rounds_away_from_zero(self):
        assert round_half_up(5, 2) == 3
        assert round_half_up(-5, 2) == -3
        assert round_half_up(15, 10) == 2

    def test_below_half_rounds_down(self):
        assert round_half_up(149, 100) == 1
        assert round_half_up(-149, 100) == -1

    def test_zero_denominator_rejected(self):
        with pytest.raises(ZeroDivisionError):
            round_half_up(1, 0)

    def test_percent_of_basis_points(self):
        # 14% of 200.00
        assert percent_of(20000, 1400) == 2800
        # 14% of 99.99 = 13.9986 -> 14.00
        assert percent_of(9999, 1400) == 1400

    def test_prorate_rounds_to_cent(self):
        assert prorate(11399, 1, 3) == 3800
        assert prorate(11399, 2, 3) == 7599
        assert prorate(11399, 3, 3) == 11399


class TestDiscounts:
    def test_percentage_in_basis_points(self):
        assert discount_amount(20000, DISCOUNT_PERCENTAGE, 1000) == 2000

    def test_fixed_in_cents(self):
        assert discount_amount(20000, DISCOUNT_FIXED, 1500) == 1500

    def test_clamped_to_base(self):
        assert discount_amount(1000, DISCOUNT_FIXED, 5000) == 1000

    def test_no_discount(self):
        assert discount_amount(1000, None, None) == 0
        assert discount_amount(1000, DISCOUNT_FIXED, 0) == 0

    def test_invalid_type_rejected(self):
        with pytest.raises(ValueError):
            discount_amount(1000, "bogus", 10)


class TestLineAmounts:
    def test_tax_added_on_top(self):
        """100.00 x 2 at 14% -> 200.00 + 28.00 = 228.00"""
        amounts = line_amounts(10000, 2, 1400)
        assert amounts.subtotal_cents == 20000
        assert amounts.discount_cents == 0
        assert amounts.tax_cents == 2800
        assert amounts.total_cents == 22800

    def test_tax_on_discounted_net(self):
        amounts = line_amounts(10000, 2, 1400, DISCOUNT_PERCENTAGE, 1000)
        assert amounts.discount_cents == 2000
        assert amounts.net_cents == 18000
        assert amounts.tax_cents == 2520
        assert amounts.total_cents == 20520

    def test_zero_rate(self):
        amounts = line_amounts(333, 3, 0)
        assert amounts.tax_cents == 0
        assert amounts.total_cents == 999


def test_format_cents():
    assert format_cents(22800) == "228.00"
    assert format_cents(-1405) == "-14.05"
    assert format_cents(7) == "0.07"
