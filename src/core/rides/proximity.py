# src/core/rides/proximity.py
"""
Ранжирование поездок по близости к точкам запроса.
"""

from __future__ import annotations

from src.core.geo.distance import calculate_distance
from src.core.geo.service import Location
from src.core.rides.models import Ride, RideSearchResult


class ProximityMatcher:
    """
    Фильтрует поездки по радиусу и сортирует по сумме расстояний.

    Поездки без координат не фильтруются и получают нулевые расстояния.
    """

    def rank(
        self,
        rides: list[Ride],
        start: Location,
        end: Location,
        max_distance_km: float,
    ) -> list[RideSearchResult]:
        results: list[RideSearchResult] = []

        for ride in rides:
            if not ride.has_coordinates:
                results.append(RideSearchResult(ride=ride))
                continue

            start_distance = calculate_distance(
                start.latitude, start.longitude, ride.start_lat, ride.start_lng,
            )
            end_distance = calculate_distance(
                end.latitude, end.longitude, ride.end_lat, ride.end_lng,
            )
            if start_distance > max_distance_km or end_distance > max_distance_km:
                continue

            results.append(RideSearchResult(
                ride=ride,
                start_distance=round(start_distance, 3),
                end_distance=round(end_distance, 3),
                total_distance=round(start_distance + end_distance, 3),
            ))

        results.sort(key=lambda r: r.total_distance)
        return results
