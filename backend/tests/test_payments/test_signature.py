"""Tests for gateway MAC computation and verification."""

import hashlib
from decimal import Decimal

from planpay.payments.signature import click_sign, click_sign_params, format_amount, md5_mac, verify


class TestFormatAmount:
    """Amounts are rendered the way Click prints a parsed number."""

    def test_integral_decimal_drops_fraction(self):
        assert format_amount(Decimal("1000.00")) == "1000"

    def test_fractional_amount_keeps_significant_digits(self):
        assert format_amount(Decimal("1000.50")) == "1000.5"

    def test_int_and_string_inputs(self):
        assert format_amount(5000) == "5000"
        assert format_amount("5000.0") == "5000"


class TestClickSignParams:
    def test_prepare_order(self):
        params = click_sign_params(1, 2, "s", "plan", Decimal("100.00"), 0, "2024-01-01 10:00:00")
        assert params == [1, 2, "s", "plan", "100", 0, "2024-01-01 10:00:00"]

    def test_complete_includes_prepare_id_after_merchant_trans_id(self):
        params = click_sign_params(1, 2, "s", "plan", 100, 1, "t", merchant_prepare_id=77)
        assert params == [1, 2, "s", "plan", 77, "100", 1, "t"]


class TestVerify:
    def test_matching_mac_verifies(self):
        params = click_sign_params(10, 20, "secret", "plan-1", 1000, 0, "2024-05-01 12:00:00")
        expected = hashlib.md5("1020secretplan-1100002024-05-01 12:00:00".encode()).hexdigest()
        assert md5_mac(params) == expected
        assert verify(params, expected, "secret") is True

    def test_uppercase_mac_verifies(self):
        params = ["a", "b"]
        assert verify(params, md5_mac(params).upper(), "secret") is True

    def test_any_changed_field_fails(self):
        mac = click_sign(10, 20, "secret", "plan-1", 1000, 0, "2024-05-01 12:00:00")
        tampered = click_sign_params(10, 20, "secret", "plan-1", 1001, 0, "2024-05-01 12:00:00")
        assert verify(tampered, mac, "secret") is False

    def test_wrong_secret_fails(self):
        mac = click_sign(10, 20, "secret", "plan-1", 1000, 0, "t")
        params = click_sign_params(10, 20, "other", "plan-1", 1000, 0, "t")
        assert verify(params, mac, "other") is False

    def test_empty_secret_never_verifies(self):
        params = click_sign_params(10, 20, "", "plan-1", 1000, 0, "t")
        assert verify(params, md5_mac(params), "") is False

    def test_missing_mac_fails(self):
        assert verify(["x"], None, "secret") is False
        assert verify(["x"], "", "secret") is False
