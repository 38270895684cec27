# src/core/rides/__init__.py
"""
Домен поездок: модели, расчёт стоимости, поиск по близости,
переходы статусов и сервис жизненного цикла.
"""

from src.core.rides.fare import FareCalculator
from src.core.rides.models import (
    Ride,
    RideCreateDTO,
    RideList,
    RideResult,
    RideSearchDTO,
    RideSearchPage,
    RideSearchResult,
    RideUpdateDTO,
)
from src.core.rides.proximity import ProximityMatcher
from src.core.rides.repository import RideRepository
from src.core.rides.service import RideService
from src.core.rides.state_machine import RideStateMachine

__all__ = [
    "Ride",
    "RideCreateDTO",
    "RideUpdateDTO",
    "RideSearchDTO",
    "RideSearchResult",
    "RideSearchPage",
    "RideResult",
    "RideList",
    "FareCalculator",
    "ProximityMatcher",
    "RideStateMachine",
    "RideRepository",
    "RideService",
]
