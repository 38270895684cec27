# src/core/rides/fare.py
"""
Калькулятор стоимости поездки.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


class FareCalculator:
    """
    Стоимость = расстояние × тариф за км + время × тариф за минуту,
    округлённая до 2 знаков.
    """

    def __init__(
        self,
        rate_per_km: float | None = None,
        rate_per_minute: float | None = None,
    ) -> None:
        if rate_per_km is None or rate_per_minute is None:
            from src.config import settings
            if rate_per_km is None:
                rate_per_km = settings.fares.RATE_PER_KM
            if rate_per_minute is None:
                rate_per_minute = settings.fares.RATE_PER_MINUTE

        self._rate_per_km = Decimal(str(rate_per_km))
        self._rate_per_minute = Decimal(str(rate_per_minute))

    def calculate(self, distance_km: float, duration_minutes: float) -> Decimal:
        """
        Рассчитывает стоимость.

        Args:
            distance_km: Расстояние (км)
            duration_minutes: Время в пути (минуты)

        Returns:
            Стоимость с точностью до 0.01
        """
        if distance_km < 0 or duration_minutes < 0:
            raise ValueError("Расстояние и время не могут быть отрицательными")

        fare = (
            Decimal(str(distance_km)) * self._rate_per_km
            + Decimal(str(duration_minutes)) * self._rate_per_minute
        )
        return fare.quantize(CENT, rounding=ROUND_HALF_UP)
