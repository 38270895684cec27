# src/core/notifications/service.py
"""
Сервис уведомлений.
Ставит сообщения пользователям в очередь через шину событий.
Доставка (почта, чат) выполняется потребителем события вне ядра.
"""

from __future__ import annotations

from typing import Iterable

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info
from src.infra.event_bus import DomainEvent, EventBus, EventTypes


class NotificationService:
    """
    Сервис уведомлений.

    Отправка best-effort: ошибки логируются и не прерывают
    основную операцию.
    """

    def __init__(self, event_bus: EventBus) -> None:
        """
        Args:
            event_bus: Шина событий
        """
        self._event_bus = event_bus

    async def send_to_user(self, user_id: str, text: str) -> bool:
        """
        Отправляет уведомление пользователю.

        Returns:
            True если событие опубликовано
        """
        try:
            published = await self._event_bus.publish(DomainEvent(
                event_type=EventTypes.NOTIFICATION_SEND,
                payload={"user_id": user_id, "text": text},
            ))
        except Exception as e:
            await log_error(f"Ошибка отправки уведомления user={user_id}: {e}")
            return False

        if published:
            await log_info(f"Уведомление поставлено в очередь: user={user_id}", type_msg=TypeMsg.DEBUG)
        else:
            await log_info(f"Уведомление не отправлено: user={user_id}", type_msg=TypeMsg.WARNING)
        return published

    async def notify_users(self, user_ids: Iterable[str], text: str) -> int:
        """
        Отправляет одно сообщение нескольким пользователям.

        Returns:
            Количество успешно поставленных в очередь уведомлений
        """
        sent = 0
        for user_id in dict.fromkeys(user_ids):
            if await self.send_to_user(user_id, text):
                sent += 1
        return sent
