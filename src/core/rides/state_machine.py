# src/core/rides/state_machine.py
"""
Допустимые переходы статусов поездки.
"""

from __future__ import annotations

from src.common.constants import RideStatus


class RideStateMachine:
    """
    Переходы статусов поездки.

    active и booked могут чередоваться вместе с количеством мест,
    completed и cancelled терминальные.
    """

    ALLOWED_TRANSITIONS: dict[RideStatus, frozenset[RideStatus]] = {
        RideStatus.ACTIVE: frozenset({RideStatus.BOOKED, RideStatus.COMPLETED, RideStatus.CANCELLED}),
        RideStatus.BOOKED: frozenset({RideStatus.ACTIVE, RideStatus.COMPLETED, RideStatus.CANCELLED}),
        RideStatus.COMPLETED: frozenset(),
        RideStatus.CANCELLED: frozenset(),
    }

    @classmethod
    def can_transition(cls, current: RideStatus, target: RideStatus) -> bool:
        return target in cls.ALLOWED_TRANSITIONS.get(current, frozenset())

    @classmethod
    def is_terminal(cls, status: RideStatus) -> bool:
        return not cls.ALLOWED_TRANSITIONS.get(status)
