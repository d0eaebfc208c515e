"""
Tests for money helpers
"""

from decimal import Decimal

from tablecart.money import round_money, to_decimal, to_price_string


def test_to_decimal():
    assert to_decimal("10.00") == Decimal("10.00")
    assert to_decimal(1.1) == Decimal("1.1")
    assert to_decimal(None) == Decimal("0")
    assert to_decimal("not a price") == Decimal("0")


def test_round_money_half_up():
    assert round_money("2.345") == Decimal("2.35")
    assert to_price_string(3) == "3.00"

