"""Tests for fixed-point and identity helpers."""

from __future__ import annotations

from decimal import Decimal

import pytest

from rebalancer.errors import ValidationError
from rebalancer.units import (
    MAX_PRICE_CHANGE,
    SCALE,
    ZERO_ADDRESS,
    from_fixed,
    is_zero_identity,
    normalize_address,
    relative_delta,
    to_fixed,
)


class TestFixedPoint:
    def test_to_fixed_and_back(self) -> None:
        assert to_fixed("0.25") == SCALE // 4
        assert to_fixed(2) == 2 * SCALE
        assert from_fixed(SCALE // 2) == Decimal("0.5")

    def test_max_price_change_is_half(self) -> None:
        assert MAX_PRICE_CHANGE == to_fixed("0.5")


class TestRelativeDelta:
    def test_increase(self) -> None:
        assert relative_delta(to_fixed(2), to_fixed("2.5")) == to_fixed("0.25")

    def test_decrease_is_negative(self) -> None:
        assert relative_delta(to_fixed(2), to_fixed("1.5")) == -to_fixed("0.25")

    def test_truncates_toward_zero(self) -> None:
        third = SCALE // 3
        assert relative_delta(3, 4) == third
        assert relative_delta(3, 2) == -third

    def test_no_change(self) -> None:
        assert relative_delta(7, 7) == 0

    @pytest.mark.parametrize("old", [0, -1])
    def test_non_positive_reference_rejected(self, old: int) -> None:
        with pytest.raises(ValidationError):
            relative_delta(old, 1)


class TestAddresses:
    def test_normalize_checksums(self) -> None:
        lower = "0x" + "ab" * 20
        assert normalize_address(lower) == normalize_address(lower.upper().replace("0X", "0x"))
        assert normalize_address(lower) != lower

    def test_zero_identity_rejected_by_default(self) -> None:
        with pytest.raises(ValidationError, match="zero identity"):
            normalize_address(ZERO_ADDRESS, field="owner")

    def test_zero_identity_allowed_when_requested(self) -> None:
        assert normalize_address(None, allow_zero=True) == ZERO_ADDRESS
        assert normalize_address(ZERO_ADDRESS, allow_zero=True) == ZERO_ADDRESS

    @pytest.mark.parametrize("value", [None, "", "0x1234", "not-an-address"])
    def test_malformed_rejected(self, value) -> None:
        with pytest.raises(ValidationError):
            normalize_address(value)

    def test_is_zero_identity(self) -> None:
        assert is_zero_identity(None)
        assert is_zero_identity(ZERO_ADDRESS)
        assert not is_zero_identity("0x" + "01" * 20)
