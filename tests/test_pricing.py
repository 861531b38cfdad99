"""Tests for target price, price per km and direction."""

import pytest
from hypothesis import given, strategies as st

from core.exceptions import TargetPriceError
from services.pricing import calculate_price_per_km, calculate_target_price, should_negotiate_up

positive = st.floats(min_value=0.001, max_value=1e6, allow_nan=False, allow_infinity=False)
non_positive = st.floats(max_value=0, allow_nan=False, allow_infinity=False)
optional_price = st.one_of(st.none(), st.floats(allow_nan=False, allow_infinity=False))


class TestCalculateTargetPrice:
    def test_distance_string_with_unit(self):
        result = calculate_target_price("500 km", 2.0)
        assert result.target_total == 1000.0
        assert result.target_total_str == "1000.00 EUR"
        assert result.target_per_km == 2.0

    def test_thousands_separator_in_distance(self):
        assert calculate_target_price("1,200 km", 1.5).target_total == 1800.0

    @pytest.mark.parametrize("distance", [None, "", "unknown", "0 km", 0, -10])
    def test_invalid_distance(self, distance):
        with pytest.raises(TargetPriceError, match="Invalid or missing distance"):
            calculate_target_price(distance, 2.0)

    @pytest.mark.parametrize("rate", [None, 0, -1.5, "abc"])
    def test_invalid_rate(self, rate):
        with pytest.raises(TargetPriceError, match="Invalid target price per km"):
            calculate_target_price("500 km", rate)

    def test_target_price_error_is_value_error(self):
        with pytest.raises(ValueError):
            calculate_target_price("500", 0)

    @given(positive, positive)
    def test_target_is_distance_times_rate(self, distance, rate):
        assert calculate_target_price(distance, rate).target_total == distance * rate

    @given(non_positive, positive)
    def test_non_positive_distance_is_rejected(self, distance, rate):
        with pytest.raises(TargetPriceError):
            calculate_target_price(distance, rate)

    @given(positive, non_positive)
    def test_non_positive_rate_is_rejected(self, distance, rate):
        with pytest.raises(TargetPriceError):
            calculate_target_price(distance, rate)


class TestPricePerKm:
    def test_initial_offer(self):
        assert calculate_price_per_km("800 EUR", "500 km") == 1.6

    @pytest.mark.parametrize("price, distance", [(None, "500"), ("800", None), ("800", "0")])
    def test_missing_inputs(self, price, distance):
        assert calculate_price_per_km(price, distance) is None


class TestShouldNegotiateUp:
    def test_below_target_goes_up(self):
        assert should_negotiate_up(950, 1000) is True

    def test_at_or_above_target_holds(self):
        assert should_negotiate_up(1000, 1000) is False
        assert should_negotiate_up(1200, 1000) is False

    @pytest.mark.parametrize("current, target", [(None, 1000), (950, None), (None, None)])
    def test_missing_input_defaults_up(self, current, target):
        assert should_negotiate_up(current, target) is True

    @given(optional_price, optional_price)
    def test_total_and_consistent(self, current, target):
        result = should_negotiate_up(current, target)
        assert isinstance(result, bool)
        if current is not None and target is not None:
            assert result == (target > current)
