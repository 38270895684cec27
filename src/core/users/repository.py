# src/core/users/repository.py
"""
Репозиторий пользователей и их сохранённых способов оплаты.
"""

from __future__ import annotations

from typing import Optional

from asyncpg import Connection

from src.core.users.models import SavedPaymentMethod, UserProfile
from src.infra.database import BaseRepository

_USER_COLUMNS = """
    id, email, name, avatar, rating, is_active,
    gateway_customer_id, gateway_account_id
"""


class UserRepository(BaseRepository):
    """Репозиторий пользователей."""

    async def get_by_id(self, user_id: str, conn: Connection | None = None) -> Optional[UserProfile]:
        """
        Получает пользователя по ID.

        Args:
            user_id: ID пользователя
            conn: Соединение транзакции (необязательно)

        Returns:
            Пользователь или None
        """
        row = await self._q(conn).fetchrow(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = $1",
            user_id,
        )
        return self._row_to_user(row) if row else None

    async def get_for_update(self, user_id: str, conn: Connection) -> Optional[UserProfile]:
        """Получает пользователя с блокировкой строки до конца транзакции."""
        row = await conn.fetchrow(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = $1 FOR UPDATE",
            user_id,
        )
        return self._row_to_user(row) if row else None

    async def get_many(self, user_ids: list[str], conn: Connection | None = None) -> dict[str, UserProfile]:
        """Получает пользователей по списку ID одним запросом."""
        if not user_ids:
            return {}
        rows = await self._q(conn).fetch(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = ANY($1::text[])",
            list(set(user_ids)),
        )
        return {row["id"]: self._row_to_user(row) for row in rows}

    async def set_gateway_customer_id(
        self,
        user_id: str,
        customer_id: str,
        conn: Connection | None = None,
    ) -> str:
        """
        Сохраняет ID покупателя в шлюзе, если он ещё не задан.

        Returns:
            Сохранённый ID (существующий, если другой запрос успел раньше)
        """
        q = self._q(conn)
        await q.execute(
            """
            UPDATE users SET gateway_customer_id = $2
            WHERE id = $1 AND gateway_customer_id IS NULL
            """,
            user_id,
            customer_id,
        )
        return await q.fetchval("SELECT gateway_customer_id FROM users WHERE id = $1", user_id)

    async def set_gateway_account_id(
        self,
        user_id: str,
        account_id: str,
        conn: Connection | None = None,
    ) -> str:
        """Сохраняет ID аккаунта выплат, если он ещё не задан. Возвращает сохранённый ID."""
        q = self._q(conn)
        await q.execute(
            """
            UPDATE users SET gateway_account_id = $2
            WHERE id = $1 AND gateway_account_id IS NULL
            """,
            user_id,
            account_id,
        )
        return await q.fetchval("SELECT gateway_account_id FROM users WHERE id = $1", user_id)

    # =========================================================================
    # СПОСОБЫ ОПЛАТЫ
    # =========================================================================

    async def get_payment_method(
        self,
        method_id: str,
        conn: Connection | None = None,
    ) -> Optional[SavedPaymentMethod]:
        """Получает сохранённый способ оплаты по ID."""
        row = await self._q(conn).fetchrow(
            """
            SELECT id, user_id, gateway_payment_method_id, type, last4, brand, created_at
            FROM payment_methods
            WHERE id = $1
            """,
            method_id,
        )
        return SavedPaymentMethod.model_validate(dict(row)) if row else None

    async def list_payment_methods(self, user_id: str) -> list[SavedPaymentMethod]:
        """Список сохранённых способов оплаты пользователя (новые первыми)."""
        rows = await self._db.fetch(
            """
            SELECT id, user_id, gateway_payment_method_id, type, last4, brand, created_at
            FROM payment_methods
            WHERE user_id = $1
            ORDER BY created_at DESC
            """,
            user_id,
        )
        return [SavedPaymentMethod.model_validate(dict(row)) for row in rows]

    async def add_payment_method(
        self,
        user_id: str,
        gateway_payment_method_id: str,
        method_type: str,
        last4: str | None,
        brand: str | None,
    ) -> SavedPaymentMethod:
        """
        Сохраняет способ оплаты.
        Повторное добавление того же метода шлюза возвращает существующую запись.
        """
        row = await self._db.fetchrow(
            """
            INSERT INTO payment_methods (user_id, gateway_payment_method_id, type, last4, brand)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (gateway_payment_method_id) DO UPDATE
                SET last4 = EXCLUDED.last4, brand = EXCLUDED.brand
            RETURNING id, user_id, gateway_payment_method_id, type, last4, brand, created_at
            """,
            user_id,
            gateway_payment_method_id,
            method_type,
            last4,
            brand,
        )
        return SavedPaymentMethod.model_validate(dict(row))

    def _row_to_user(self, row) -> UserProfile:
        return UserProfile(
            id=row["id"],
            email=row["email"],
            name=row["name"],
            avatar=row["avatar"],
            rating=row["rating"],
            is_active=row["is_active"],
            gateway_customer_id=row["gateway_customer_id"],
            gateway_account_id=row["gateway_account_id"],
        )
