# tests/core/test_fare_calculator.py
"""
Тесты расчёта стоимости поездки.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import patch

import pytest

from src.core.rides.fare import FareCalculator


class TestFareCalculator:
    """Тесты FareCalculator."""

    def test_calculate_by_distance_and_time(self) -> None:
        """Проверяет формулу: км × тариф + минуты × тариф."""
        calculator = FareCalculator(rate_per_km=0.5, rate_per_minute=0.1)

        assert calculator.calculate(100, 90) == Decimal("59.00")

    def test_result_has_two_decimal_places(self) -> None:
        """Проверяет округление до копеек half-up."""
        calculator = FareCalculator(rate_per_km=0.5, rate_per_minute=0.1)

        fare = calculator.calculate(12.345, 0)

        assert fare == Decimal("6.17")
        assert fare.as_tuple().exponent == -2

    def test_zero_route_is_free(self) -> None:
        calculator = FareCalculator(rate_per_km=0.5, rate_per_minute=0.1)

        assert calculator.calculate(0, 0) == Decimal("0.00")

    @pytest.mark.parametrize("distance,duration", [(-1, 10), (10, -1)])
    def test_negative_input_rejected(self, distance: float, duration: float) -> None:
        """Проверяет отказ для отрицательных значений."""
        calculator = FareCalculator(rate_per_km=0.5, rate_per_minute=0.1)

        with pytest.raises(ValueError):
            calculator.calculate(distance, duration)

    def test_rates_from_settings(self) -> None:
        """Проверяет, что тарифы по умолчанию берутся из конфига."""
        with patch("src.config.settings") as mock_settings:
            mock_settings.fares.RATE_PER_KM = 1.0
            mock_settings.fares.RATE_PER_MINUTE = 0.5

            calculator = FareCalculator()

        assert calculator.calculate(10, 10) == Decimal("15.00")
