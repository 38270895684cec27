# src/common/errors.py
"""
Типизированные ошибки домена.

Каждая ошибка несёт стабильный `kind` и HTTP статус,
которым её отображает транспортный слой.
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Базовая ошибка бизнес-логики."""

    kind: str = "domain_error"
    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Сериализует ошибку для ответа API."""
        return {
            "error_code": self.kind,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(DomainError):
    """Некорректные или выходящие за допустимые границы входные данные."""
    kind = "validation_error"
    status_code = 400


class NotFoundError(DomainError):
    """Поездка, заявка, платёж или пользователь не найдены."""
    kind = "not_found"
    status_code = 404


class AuthorizationError(DomainError):
    """У пользователя нет прав на сущность."""
    kind = "forbidden"
    status_code = 403


class BusinessRuleViolation(DomainError):
    """Входные данные корректны, но нарушают бизнес-правило."""
    kind = "business_rule_violation"
    status_code = 400


class UpstreamError(DomainError):
    """Ошибка внешнего сервиса (геокодер, платёжный шлюз)."""
    kind = "upstream_error"
    status_code = 502
