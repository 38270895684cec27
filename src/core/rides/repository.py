# src/core/rides/repository.py
"""
Репозиторий поездок.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from asyncpg import Connection

from src.common.constants import BookingStatus, RideStatus
from src.core.rides.models import Ride
from src.infra.database import BaseRepository

_RIDE_COLUMNS = """
    id, driver_id, passenger_id,
    start_location, start_lat, start_lng,
    end_location, end_lat, end_lng,
    departure_time, available_seats, vehicle_type, status,
    fare, distance, duration, payment_type, selected_card_id,
    created_at, updated_at
"""

# Колонки, которые разрешено менять через update_fields
_UPDATABLE_COLUMNS = frozenset({
    "start_location", "start_lat", "start_lng",
    "end_location", "end_lat", "end_lng",
    "departure_time", "available_seats", "vehicle_type", "status",
    "fare", "distance", "duration", "payment_type", "selected_card_id",
})


class RideRepository(BaseRepository):
    """Репозиторий поездок."""

    async def get_by_id(self, ride_id: str, conn: Connection | None = None) -> Optional[Ride]:
        """
        Получает поездку по ID.

        Args:
            ride_id: UUID поездки
            conn: Соединение транзакции (необязательно)

        Returns:
            Поездка или None
        """
        row = await self._q(conn).fetchrow(
            f"SELECT {_RIDE_COLUMNS} FROM rides WHERE id = $1",
            ride_id,
        )
        return self._row_to_ride(row) if row else None

    async def get_for_update(self, ride_id: str, conn: Connection) -> Optional[Ride]:
        """
        Получает поездку с блокировкой строки (SELECT ... FOR UPDATE).
        Блокировка держится до конца транзакции conn.
        """
        row = await conn.fetchrow(
            f"SELECT {_RIDE_COLUMNS} FROM rides WHERE id = $1 FOR UPDATE",
            ride_id,
        )
        return self._row_to_ride(row) if row else None

    async def create(
        self,
        driver_id: str,
        start_location: str,
        start_lat: float,
        start_lng: float,
        end_location: str,
        end_lat: float,
        end_lng: float,
        departure_time: datetime,
        available_seats: int,
        vehicle_type: str,
        fare: Decimal,
        distance: float,
        duration: int,
        payment_type: str,
        selected_card_id: str | None,
        conn: Connection | None = None,
    ) -> Ride:
        """Создаёт поездку в статусе active."""
        row = await self._q(conn).fetchrow(
            f"""
            INSERT INTO rides (
                driver_id, start_location, start_lat, start_lng,
                end_location, end_lat, end_lng, departure_time,
                available_seats, vehicle_type, status,
                fare, distance, duration, payment_type, selected_card_id
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16)
            RETURNING {_RIDE_COLUMNS}
            """,
            driver_id,
            start_location,
            start_lat,
            start_lng,
            end_location,
            end_lat,
            end_lng,
            departure_time,
            available_seats,
            vehicle_type,
            RideStatus.ACTIVE.value,
            fare,
            distance,
            duration,
            payment_type,
            selected_card_id,
        )
        return self._row_to_ride(row)

    async def update_fields(
        self,
        ride_id: str,
        fields: dict[str, Any],
        conn: Connection | None = None,
    ) -> Optional[Ride]:
        """
        Обновляет перечисленные колонки поездки.

        Raises:
            ValueError: колонка не входит в разрешённый список
        """
        unknown = set(fields) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Недопустимые поля поездки: {sorted(unknown)}")

        if not fields:
            return await self.get_by_id(ride_id, conn=conn)

        columns = list(fields)
        assignments = ", ".join(f"{column} = ${i}" for i, column in enumerate(columns, start=2))
        values = [
            fields[column].value if isinstance(fields[column], Enum) else fields[column]
            for column in columns
        ]

        row = await self._q(conn).fetchrow(
            f"""
            UPDATE rides SET {assignments}, updated_at = NOW()
            WHERE id = $1
            RETURNING {_RIDE_COLUMNS}
            """,
            ride_id,
            *values,
        )
        return self._row_to_ride(row) if row else None

    async def set_status(
        self,
        ride_id: str,
        status: RideStatus,
        conn: Connection | None = None,
    ) -> Optional[Ride]:
        """Устанавливает статус поездки."""
        row = await self._q(conn).fetchrow(
            f"""
            UPDATE rides SET status = $2, updated_at = NOW()
            WHERE id = $1
            RETURNING {_RIDE_COLUMNS}
            """,
            ride_id,
            status.value,
        )
        return self._row_to_ride(row) if row else None

    async def reserve_seats(
        self,
        ride_id: str,
        seats: int,
        conn: Connection | None = None,
    ) -> Optional[int]:
        """
        Условно списывает места: только если их хватает.
        При нуле оставшихся мест поездка переходит в booked.

        Returns:
            Оставшееся количество мест или None, если мест не хватило
        """
        return await self._q(conn).fetchval(
            """
            UPDATE rides
            SET available_seats = available_seats - $2,
                status = CASE WHEN available_seats - $2 = 0 THEN 'booked' ELSE status END,
                updated_at = NOW()
            WHERE id = $1 AND available_seats >= $2
            RETURNING available_seats
            """,
            ride_id,
            seats,
        )

    async def search(
        self,
        statuses: list[RideStatus],
        min_seats: int,
        date_from: datetime,
        date_to: datetime,
        limit: int,
        offset: int,
    ) -> list[Ride]:
        """Страница поездок по статусу, числу мест и окну дат (без фильтра по расстоянию)."""
        rows = await self._db.fetch(
            f"""
            SELECT {_RIDE_COLUMNS} FROM rides
            WHERE status = ANY($1::text[])
              AND available_seats >= $2
              AND departure_time >= $3
              AND departure_time < $4
            ORDER BY departure_time ASC, id ASC
            LIMIT $5 OFFSET $6
            """,
            [s.value for s in statuses],
            min_seats,
            date_from,
            date_to,
            limit,
            offset,
        )
        return [self._row_to_ride(row) for row in rows]

    async def count_search(
        self,
        statuses: list[RideStatus],
        min_seats: int,
        date_from: datetime,
        date_to: datetime,
    ) -> int:
        """Количество поездок для search без пагинации."""
        return await self._db.fetchval(
            """
            SELECT COUNT(*) FROM rides
            WHERE status = ANY($1::text[])
              AND available_seats >= $2
              AND departure_time >= $3
              AND departure_time < $4
            """,
            [s.value for s in statuses],
            min_seats,
            date_from,
            date_to,
        )

    async def list_by_driver(self, driver_id: str) -> list[Ride]:
        """Поездки, где пользователь водитель."""
        rows = await self._db.fetch(
            f"SELECT {_RIDE_COLUMNS} FROM rides WHERE driver_id = $1 ORDER BY departure_time ASC",
            driver_id,
        )
        return [self._row_to_ride(row) for row in rows]

    async def list_booked_by_passenger(self, passenger_id: str) -> list[Ride]:
        """Поездки, где у пользователя принятая или подтверждённая заявка."""
        rows = await self._db.fetch(
            f"""
            SELECT {_RIDE_COLUMNS} FROM rides
            WHERE id IN (
                SELECT ride_id FROM booking_requests
                WHERE passenger_id = $1 AND status = ANY($2::text[])
            )
            ORDER BY departure_time ASC
            """,
            passenger_id,
            [BookingStatus.ACCEPTED.value, BookingStatus.CONFIRMED.value],
        )
        return [self._row_to_ride(row) for row in rows]

    async def delete(self, ride_id: str, conn: Connection | None = None) -> None:
        """Удаляет поездку."""
        await self._q(conn).execute("DELETE FROM rides WHERE id = $1", ride_id)

    def _row_to_ride(self, row) -> Ride:
        return Ride.model_validate(dict(row))
