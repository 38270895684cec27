# src/core/payments/repository.py
"""
Репозитории платежей и выплат.
"""

from __future__ import annotations

from typing import Optional

from asyncpg import Connection

from src.common.constants import INACTIVE_PAYMENT_STATUSES, VOID_PAYOUT_STATUSES, PaymentMethod, PaymentStatus
from src.core.payments.models import Payment, PaymentHistoryItem, Payout
from src.infra.database import BaseRepository

_PAYMENT_COLUMNS = """
    id, ride_id, user_id, gateway_payment_id, amount, commission, driver_amount,
    currency, payment_method, status, is_paid, created_at, updated_at
"""

_PAYOUT_COLUMNS = "id, user_id, gateway_payout_id, amount, currency, status, created_at, updated_at"


class PaymentRepository(BaseRepository):
    """Репозиторий платежей."""

    async def get_by_id(self, payment_id: str, conn: Connection | None = None) -> Optional[Payment]:
        """Получает платёж по ID."""
        row = await self._q(conn).fetchrow(
            f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE id = $1",
            payment_id,
        )
        return self._row_to_payment(row) if row else None

    async def get_for_update(self, payment_id: str, conn: Connection) -> Optional[Payment]:
        """Получает платёж с блокировкой строки."""
        row = await conn.fetchrow(
            f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE id = $1 FOR UPDATE",
            payment_id,
        )
        return self._row_to_payment(row) if row else None

    async def get_by_gateway_id(
        self,
        gateway_payment_id: str,
        conn: Connection | None = None,
    ) -> Optional[Payment]:
        """Получает платёж по ID платежа в шлюзе."""
        row = await self._q(conn).fetchrow(
            f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE gateway_payment_id = $1",
            gateway_payment_id,
        )
        return self._row_to_payment(row) if row else None

    async def find_active(
        self,
        ride_id: str,
        user_id: str,
        conn: Connection | None = None,
    ) -> Optional[Payment]:
        """Активный (не failed/canceled/refunded) платёж пассажира за поездку."""
        row = await self._q(conn).fetchrow(
            f"""
            SELECT {_PAYMENT_COLUMNS} FROM payments
            WHERE ride_id = $1 AND user_id = $2 AND NOT (status = ANY($3::text[]))
            """,
            ride_id,
            user_id,
            list(INACTIVE_PAYMENT_STATUSES),
        )
        return self._row_to_payment(row) if row else None

    async def create(
        self,
        ride_id: str,
        user_id: str,
        amount: int,
        commission: int,
        driver_amount: int,
        currency: str,
        payment_method: PaymentMethod,
        status: str,
        is_paid: bool,
        gateway_payment_id: str | None = None,
        conn: Connection | None = None,
    ) -> Payment:
        """Создаёт запись платежа."""
        row = await self._q(conn).fetchrow(
            f"""
            INSERT INTO payments (
                ride_id, user_id, gateway_payment_id, amount, commission, driver_amount,
                currency, payment_method, status, is_paid
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
            RETURNING {_PAYMENT_COLUMNS}
            """,
            ride_id,
            user_id,
            gateway_payment_id,
            amount,
            commission,
            driver_amount,
            currency,
            payment_method.value,
            status,
            is_paid,
        )
        return self._row_to_payment(row)

    async def update_status(
        self,
        payment_id: str,
        status: str,
        is_paid: bool,
        conn: Connection | None = None,
    ) -> Optional[Payment]:
        """Обновляет статус и признак оплаты."""
        row = await self._q(conn).fetchrow(
            f"""
            UPDATE payments SET status = $2, is_paid = $3, updated_at = NOW()
            WHERE id = $1
            RETURNING {_PAYMENT_COLUMNS}
            """,
            payment_id,
            status,
            is_paid,
        )
        return self._row_to_payment(row) if row else None

    async def update_status_by_gateway_id(
        self,
        gateway_payment_id: str,
        status: str,
        is_paid: bool,
        conn: Connection | None = None,
    ) -> Optional[Payment]:
        """
        Обновляет платёж по ID шлюза.
        Повторное применение того же статуса ничего не меняет по сути.

        Returns:
            Платёж или None, если записи с таким ID нет
        """
        row = await self._q(conn).fetchrow(
            f"""
            UPDATE payments SET status = $2, is_paid = $3, updated_at = NOW()
            WHERE gateway_payment_id = $1
            RETURNING {_PAYMENT_COLUMNS}
            """,
            gateway_payment_id,
            status,
            is_paid,
        )
        return self._row_to_payment(row) if row else None

    async def any_paid_for_ride(self, ride_id: str, conn: Connection | None = None) -> bool:
        """Есть ли у поездки оплаченный платёж."""
        return bool(await self._q(conn).fetchval(
            "SELECT EXISTS (SELECT 1 FROM payments WHERE ride_id = $1 AND is_paid)",
            ride_id,
        ))

    async def list_by_ride(self, ride_id: str, conn: Connection | None = None) -> list[Payment]:
        """Платежи поездки."""
        rows = await self._q(conn).fetch(
            f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE ride_id = $1 ORDER BY created_at",
            ride_id,
        )
        return [self._row_to_payment(row) for row in rows]

    async def delete_by_ride(self, ride_id: str, conn: Connection | None = None) -> None:
        """Удаляет платежи поездки."""
        await self._q(conn).execute("DELETE FROM payments WHERE ride_id = $1", ride_id)

    async def list_by_user(self, user_id: str, limit: int, offset: int) -> list[PaymentHistoryItem]:
        """История платежей пользователя с маршрутом поездки."""
        rows = await self._db.fetch(
            """
            SELECT p.id, p.ride_id, p.user_id, p.gateway_payment_id, p.amount, p.commission,
                   p.driver_amount, p.currency, p.payment_method, p.status, p.is_paid,
                   p.created_at, p.updated_at, r.start_location, r.end_location
            FROM payments p
            LEFT JOIN rides r ON r.id = p.ride_id
            WHERE p.user_id = $1
            ORDER BY p.created_at DESC
            LIMIT $2 OFFSET $3
            """,
            user_id,
            limit,
            offset,
        )
        return [PaymentHistoryItem.model_validate(dict(row)) for row in rows]

    async def count_by_user(self, user_id: str) -> int:
        return await self._db.fetchval("SELECT COUNT(*) FROM payments WHERE user_id = $1", user_id)

    async def driver_earnings(self, driver_id: str, conn: Connection | None = None) -> int:
        """
        Заработок водителя: сумма driver_amount успешных оплаченных
        безналичных платежей по его поездкам.
        """
        total = await self._q(conn).fetchval(
            """
            SELECT COALESCE(SUM(p.driver_amount), 0)
            FROM payments p
            JOIN rides r ON r.id = p.ride_id
            WHERE r.driver_id = $1
              AND p.status = $2
              AND p.is_paid
              AND p.payment_method <> $3
            """,
            driver_id,
            PaymentStatus.SUCCEEDED.value,
            PaymentMethod.CASH.value,
        )
        return int(total)

    def _row_to_payment(self, row) -> Payment:
        return Payment.model_validate(dict(row))


class PayoutRepository(BaseRepository):
    """Репозиторий выплат."""

    async def create(
        self,
        user_id: str,
        gateway_payout_id: str,
        amount: int,
        currency: str,
        status: str,
        conn: Connection | None = None,
    ) -> Payout:
        """Создаёт запись выплаты."""
        row = await self._q(conn).fetchrow(
            f"""
            INSERT INTO payouts (user_id, gateway_payout_id, amount, currency, status)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING {_PAYOUT_COLUMNS}
            """,
            user_id,
            gateway_payout_id,
            amount,
            currency,
            status,
        )
        return Payout.model_validate(dict(row))

    async def update_status_by_gateway_id(
        self,
        gateway_payout_id: str,
        status: str,
        conn: Connection | None = None,
    ) -> Optional[Payout]:
        """Обновляет статус выплаты по ID шлюза. None, если записи нет."""
        row = await self._q(conn).fetchrow(
            f"""
            UPDATE payouts SET status = $2, updated_at = NOW()
            WHERE gateway_payout_id = $1
            RETURNING {_PAYOUT_COLUMNS}
            """,
            gateway_payout_id,
            status,
        )
        return Payout.model_validate(dict(row)) if row else None

    async def reserved_total(self, user_id: str, conn: Connection | None = None) -> int:
        """Сумма выплат водителя, кроме неуспешных и отменённых."""
        total = await self._q(conn).fetchval(
            """
            SELECT COALESCE(SUM(amount), 0) FROM payouts
            WHERE user_id = $1 AND NOT (status = ANY($2::text[]))
            """,
            user_id,
            list(VOID_PAYOUT_STATUSES),
        )
        return int(total)

    async def list_by_user(self, user_id: str, limit: int, offset: int) -> list[Payout]:
        """История выплат водителя."""
        rows = await self._db.fetch(
            f"""
            SELECT {_PAYOUT_COLUMNS} FROM payouts
            WHERE user_id = $1
            ORDER BY created_at DESC
            LIMIT $2 OFFSET $3
            """,
            user_id,
            limit,
            offset,
        )
        return [Payout.model_validate(dict(row)) for row in rows]

    async def count_by_user(self, user_id: str) -> int:
        return await self._db.fetchval("SELECT COUNT(*) FROM payouts WHERE user_id = $1", user_id)
