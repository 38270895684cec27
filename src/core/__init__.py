# src/core/__init__.py
"""
Доменный слой.

Пакеты:
- rides: жизненный цикл поездки, тарификация, поиск
- bookings: заявки на бронирование и распределение мест
- payments: платежи, выплаты водителям, вебхуки шлюза
- users, conversations: справочник пользователей и диалоги
- geo, notifications: внешние сервисы
"""
