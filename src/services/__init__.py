# src/services/__init__.py
"""
HTTP-сервисы (FastAPI).

Сервисы:
- rides: поездки, поиск, бронирования
- payments: платежи, выплаты, вебхуки платёжного шлюза

Оба сервиса являются тонкими адаптерами над доменным слоем src.core.
"""

__all__: list[str] = []
