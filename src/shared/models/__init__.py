# src/shared/models/__init__.py
"""
Общие Pydantic-модели HTTP-сервисов.
"""

from src.shared.models.common import ErrorResponse, HealthStatus, PaginationParams

__all__ = [
    "ErrorResponse",
    "HealthStatus",
    "PaginationParams",
]
