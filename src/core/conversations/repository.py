# src/core/conversations/repository.py
"""
Репозиторий диалогов.
Один диалог на пару участников в рамках поездки; участники хранятся
упорядоченными, поэтому диалог пользователя ищется по обоим слотам.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from asyncpg import Connection
from pydantic import BaseModel

from src.infra.database import BaseRepository


class Conversation(BaseModel):
    """Диалог двух пользователей."""

    id: str
    ride_id: Optional[str] = None
    participant_a: str
    participant_b: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    def other_participant(self, user_id: str) -> str:
        """Собеседник пользователя в этом диалоге."""
        return self.participant_b if user_id == self.participant_a else self.participant_a


def ordered_pair(first: str, second: str) -> tuple[str, str]:
    """Упорядочивает пару участников."""
    return (first, second) if first < second else (second, first)


class ConversationRepository(BaseRepository):
    """Репозиторий диалогов."""

    async def create_conversation(
        self,
        initiator_id: str,
        contact_id: str,
        ride_id: str | None = None,
        conn: Connection | None = None,
    ) -> str:
        """
        Создаёт диалог или возвращает существующий.

        Args:
            initiator_id: Кто открывает диалог
            contact_id: Собеседник
            ride_id: Поездка, в рамках которой открыт диалог

        Returns:
            ID диалога
        """
        if initiator_id == contact_id:
            raise ValueError("Диалог с самим собой невозможен")

        participant_a, participant_b = ordered_pair(initiator_id, contact_id)
        q = self._q(conn)

        conversation_id = await q.fetchval(
            """
            INSERT INTO conversations (ride_id, participant_a, participant_b)
            VALUES ($1, $2, $3)
            ON CONFLICT (COALESCE(ride_id, ''), participant_a, participant_b) DO NOTHING
            RETURNING id
            """,
            ride_id,
            participant_a,
            participant_b,
        )
        if conversation_id is not None:
            return conversation_id

        return await q.fetchval(
            """
            SELECT id FROM conversations
            WHERE COALESCE(ride_id, '') = COALESCE($1, '')
              AND participant_a = $2 AND participant_b = $3
            """,
            ride_id,
            participant_a,
            participant_b,
        )

    async def list_for_user(self, user_id: str) -> list[Conversation]:
        """Диалоги пользователя (в любом из слотов участника)."""
        rows = await self._db.fetch(
            """
            SELECT id, ride_id, participant_a, participant_b, created_at
            FROM conversations
            WHERE participant_a = $1 OR participant_b = $1
            ORDER BY created_at DESC
            """,
            user_id,
        )
        return [Conversation.model_validate(dict(row)) for row in rows]

    async def delete_by_ride(self, ride_id: str, conn: Connection | None = None) -> None:
        """Удаляет диалоги поездки."""
        await self._q(conn).execute("DELETE FROM conversations WHERE ride_id = $1", ride_id)
