# src/services/http.py
"""
Общее для HTTP-сервисов: аутентифицированный пользователь
и отображение ошибок домена в ответы API.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from src.common.constants import TypeMsg
from src.common.errors import DomainError
from src.common.logger import log_error, log_info
from src.shared.models.common import ErrorResponse


@dataclass(frozen=True)
class Principal:
    """Пользователь, от имени которого выполняется запрос."""
    user_id: str


async def get_principal(
    x_user_id: Annotated[str | None, Header(alias="X-User-Id")] = None,
) -> Principal:
    """
    Пользователь из заголовка X-User-Id.
    Заголовок выставляет шлюз аутентификации перед сервисом.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Требуется аутентификация")
    return Principal(user_id=x_user_id.strip())


def register_error_handlers(app: FastAPI) -> None:
    """Регистрирует обработчик DomainError -> ErrorResponse."""

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        if exc.status_code >= 500:
            await log_error(f"{request.method} {request.url.path}: {exc.kind}: {exc.message}")
        else:
            await log_info(
                f"{request.method} {request.url.path}: {exc.kind}: {exc.message}",
                type_msg=TypeMsg.WARNING,
            )
        body = ErrorResponse(error_code=exc.kind, message=exc.message, details=exc.details)
        return JSONResponse(status_code=exc.status_code, content=body.model_dump())
