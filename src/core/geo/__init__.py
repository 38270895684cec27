# src/core/geo/__init__.py
"""
Geo-сервис: геокодирование, расстояние по дорогам и по прямой.
"""

from src.core.geo.distance import calculate_distance
from src.core.geo.service import GeoService, Location, RouteInfo

__all__ = [
    "GeoService",
    "Location",
    "RouteInfo",
    "calculate_distance",
]
