"""Tests for amount conversion and import id truncation."""

from decimal import Decimal

import pytest

from upynab.domain.amounts import AmountCodec, truncate_import_id
from upynab.domain.errors import ValidationError


class TestAmountCodec:
    """Tests for the cents to milliunits codec."""

    def test_debit_scales_by_ten(self):
        """Test that -$25.50 becomes -25500 milliunits."""
        codec = AmountCodec()
        assert codec.ratio == 10
        assert codec.to_target(-2550) == -25500

    def test_zero_and_credit(self):
        codec = AmountCodec()
        assert codec.to_target(0) == 0
        assert codec.to_target(123456) == 1234560

    def test_rejects_non_integer(self):
        codec = AmountCodec()
        with pytest.raises(ValidationError):
            codec.to_target(25.5)
        with pytest.raises(ValidationError):
            codec.to_target(True)

    def test_target_exponent_must_not_be_smaller(self):
        with pytest.raises(ValidationError):
            AmountCodec(source_exponent=3, target_exponent=2)

    def test_validate_accepts_exact_image(self):
        codec = AmountCodec()
        assert codec.validate(-2550, -25500) is True
        assert codec.validate(-2550, -25500, "-25.50") is True
        assert codec.validate(-2550, -25500, "-25.5") is True

    def test_validate_rejects_mismatches(self):
        codec = AmountCodec()
        assert codec.validate(-2550, -25501) is False
        assert codec.validate(-2550, -2550) is False
        assert codec.validate(-2550, -25500, "-25.51") is False
        assert codec.validate(-2550, -25500, "not a number") is False
        assert codec.validate("-2550", -25500) is False

    def test_to_decimal(self):
        assert AmountCodec().to_decimal(-25500) == Decimal("-25.500")

    def test_other_exponents(self):
        codec = AmountCodec(source_exponent=0, target_exponent=3)
        assert codec.to_target(-7) == -7000
        assert codec.validate(-7, -7000, "-7") is True


class TestImportId:
    def test_long_id_keeps_first_36_characters(self):
        source_id = "abc123" + "d" * 40
        assert truncate_import_id(source_id) == source_id[:36]
        assert len(truncate_import_id(source_id)) == 36

    def test_short_id_is_unchanged(self):
        assert truncate_import_id("short-id") == "short-id"

    def test_length_must_be_positive(self):
        with pytest.raises(ValidationError):
            truncate_import_id("abc", 0)
