# src/core/bookings/repository.py
"""
Репозиторий заявок на бронирование.
"""

from __future__ import annotations

from typing import Optional

from asyncpg import Connection

from src.common.constants import BookingStatus
from src.core.bookings.models import BookingRequest
from src.infra.database import BaseRepository

_BOOKING_COLUMNS = "id, ride_id, passenger_id, passenger_count, status, created_at"


class BookingRepository(BaseRepository):
    """Репозиторий заявок."""

    async def get_by_id(self, request_id: str, conn: Connection | None = None) -> Optional[BookingRequest]:
        """Получает заявку по ID."""
        row = await self._q(conn).fetchrow(
            f"SELECT {_BOOKING_COLUMNS} FROM booking_requests WHERE id = $1",
            request_id,
        )
        return self._row_to_booking(row) if row else None

    async def get_for_update(self, request_id: str, conn: Connection) -> Optional[BookingRequest]:
        """Получает заявку с блокировкой строки."""
        row = await conn.fetchrow(
            f"SELECT {_BOOKING_COLUMNS} FROM booking_requests WHERE id = $1 FOR UPDATE",
            request_id,
        )
        return self._row_to_booking(row) if row else None

    async def get_by_ride_and_passenger(
        self,
        ride_id: str,
        passenger_id: str,
        conn: Connection | None = None,
    ) -> Optional[BookingRequest]:
        """Заявка пассажира на поездку в любом статусе."""
        row = await self._q(conn).fetchrow(
            f"""
            SELECT {_BOOKING_COLUMNS} FROM booking_requests
            WHERE ride_id = $1 AND passenger_id = $2
            """,
            ride_id,
            passenger_id,
        )
        return self._row_to_booking(row) if row else None

    async def get_accepted_for_update(
        self,
        ride_id: str,
        passenger_id: str,
        conn: Connection,
    ) -> Optional[BookingRequest]:
        """Принятая (или подтверждённая) заявка пассажира с блокировкой строки."""
        row = await conn.fetchrow(
            f"""
            SELECT {_BOOKING_COLUMNS} FROM booking_requests
            WHERE ride_id = $1 AND passenger_id = $2 AND status = ANY($3::text[])
            FOR UPDATE
            """,
            ride_id,
            passenger_id,
            [BookingStatus.ACCEPTED.value, BookingStatus.CONFIRMED.value],
        )
        return self._row_to_booking(row) if row else None

    async def create(
        self,
        ride_id: str,
        passenger_id: str,
        passenger_count: int,
        conn: Connection | None = None,
    ) -> BookingRequest:
        """Создаёт заявку в статусе pending."""
        row = await self._q(conn).fetchrow(
            f"""
            INSERT INTO booking_requests (ride_id, passenger_id, passenger_count, status)
            VALUES ($1, $2, $3, $4)
            RETURNING {_BOOKING_COLUMNS}
            """,
            ride_id,
            passenger_id,
            passenger_count,
            BookingStatus.PENDING.value,
        )
        return self._row_to_booking(row)

    async def set_status(
        self,
        request_id: str,
        status: BookingStatus,
        conn: Connection | None = None,
    ) -> Optional[BookingRequest]:
        """Устанавливает статус заявки."""
        row = await self._q(conn).fetchrow(
            f"""
            UPDATE booking_requests SET status = $2
            WHERE id = $1
            RETURNING {_BOOKING_COLUMNS}
            """,
            request_id,
            status.value,
        )
        return self._row_to_booking(row) if row else None

    async def reject_pending_for_ride(
        self,
        ride_id: str,
        except_id: str | None = None,
        conn: Connection | None = None,
    ) -> list[BookingRequest]:
        """
        Отклоняет все ожидающие заявки поездки, кроме except_id.

        Returns:
            Отклонённые заявки
        """
        rows = await self._q(conn).fetch(
            f"""
            UPDATE booking_requests SET status = $3
            WHERE ride_id = $1 AND status = $2 AND id IS DISTINCT FROM $4
            RETURNING {_BOOKING_COLUMNS}
            """,
            ride_id,
            BookingStatus.PENDING.value,
            BookingStatus.REJECTED.value,
            except_id,
        )
        return [self._row_to_booking(row) for row in rows]

    async def list_by_ride(
        self,
        ride_id: str,
        statuses: list[BookingStatus] | None = None,
        conn: Connection | None = None,
    ) -> list[BookingRequest]:
        """Заявки поездки, при необходимости только в указанных статусах."""
        if statuses is None:
            rows = await self._q(conn).fetch(
                f"SELECT {_BOOKING_COLUMNS} FROM booking_requests WHERE ride_id = $1 ORDER BY created_at",
                ride_id,
            )
        else:
            rows = await self._q(conn).fetch(
                f"""
                SELECT {_BOOKING_COLUMNS} FROM booking_requests
                WHERE ride_id = $1 AND status = ANY($2::text[])
                ORDER BY created_at
                """,
                ride_id,
                [s.value for s in statuses],
            )
        return [self._row_to_booking(row) for row in rows]

    async def list_for_driver(self, driver_id: str) -> list[BookingRequest]:
        """Заявки на поездки водителя."""
        rows = await self._db.fetch(
            """
            SELECT b.id, b.ride_id, b.passenger_id, b.passenger_count, b.status, b.created_at
            FROM booking_requests b
            JOIN rides r ON r.id = b.ride_id
            WHERE r.driver_id = $1
            ORDER BY b.created_at DESC
            """,
            driver_id,
        )
        return [self._row_to_booking(row) for row in rows]

    async def list_by_passenger(self, passenger_id: str) -> list[BookingRequest]:
        """Собственные заявки пассажира."""
        rows = await self._db.fetch(
            f"""
            SELECT {_BOOKING_COLUMNS} FROM booking_requests
            WHERE passenger_id = $1
            ORDER BY created_at DESC
            """,
            passenger_id,
        )
        return [self._row_to_booking(row) for row in rows]

    async def delete_by_ride(self, ride_id: str, conn: Connection | None = None) -> None:
        """Удаляет заявки поездки."""
        await self._q(conn).execute("DELETE FROM booking_requests WHERE ride_id = $1", ride_id)

    def _row_to_booking(self, row) -> BookingRequest:
        return BookingRequest.model_validate(dict(row))
