"""Unit tests for fare allocation."""

from decimal import Decimal

import pytest

from rideshare.domain.fares import compute_share, has_seat, headcount, to_decimal


class TestComputeShare:
    def test_second_rider_pays_half(self):
        # host + first joiner
        assert compute_share(Decimal("300"), 2) == Decimal("150.00")

    def test_third_rider_pays_a_third(self):
        assert compute_share(Decimal("300"), 3) == Decimal("100.00")

    def test_rounds_half_up_to_paise(self):
        assert compute_share(Decimal("200"), 3) == Decimal("66.67")
        assert compute_share(Decimal("100"), 3) == Decimal("33.33")
        # 0.125 -> 0.13 (banker's rounding would give 0.12)
        assert compute_share(Decimal("0.25"), 2) == Decimal("0.13")

    def test_accepts_floats_without_binary_noise(self):
        assert compute_share(0.3, 3) == Decimal("0.10")

    def test_zero_riders_rejected(self):
        with pytest.raises(ValueError):
            compute_share(Decimal("100"), 0)


class TestHeadcount:
    def test_host_always_counts(self):
        assert headcount(0) == 1
        assert headcount(3) == 4

    def test_seat_available_below_max(self):
        assert has_seat(booked_count=0, max_passengers=2)
        assert has_seat(booked_count=2, max_passengers=4)

    def test_no_seat_at_max(self):
        assert not has_seat(booked_count=1, max_passengers=2)
        assert not has_seat(booked_count=3, max_passengers=4)

    def test_single_seat_ride_is_host_only(self):
        assert not has_seat(booked_count=0, max_passengers=1)


def test_to_decimal_keeps_decimals():
    d = Decimal("12.34")
    assert to_decimal(d) is d
    assert to_decimal("0.1") == Decimal("0.1")
    assert to_decimal(0.1) == Decimal("0.1")
