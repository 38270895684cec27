# src/services/payments/app.py
"""
FastAPI приложение для Payments Service.

Endpoints:
- POST /api/v1/payments/setup-customer - создать покупателя в шлюзе
- POST /api/v1/payments/setup-driver - создать аккаунт выплат водителя
- POST /api/v1/payments/methods - сохранить способ оплаты
- GET /api/v1/payments/methods - способы оплаты пользователя
- POST /api/v1/payments - оплатить поездку
- POST /api/v1/payments/{id}/confirm-cash - подтвердить наличные
- GET /api/v1/payments/history - история платежей
- POST /api/v1/payouts - запросить выплату
- GET /api/v1/payouts/history - история выплат
- POST /api/v1/webhooks/gateway - вебхук платёжного шлюза
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Header, Request

from src.config import settings
from src.core.payments.models import (
    GatewayAccountResult,
    PaymentCreateDTO,
    PaymentHistory,
    PaymentMethodCreateDTO,
    PaymentResult,
    PayoutHistory,
    PayoutRequestDTO,
    PayoutResult,
    WebhookResult,
)
from src.core.payments.service import PaymentService
from src.core.users.models import SavedPaymentMethod
from src.services.http import Principal, get_principal, register_error_handlers
from src.services.payments.dependencies import (
    cleanup_dependencies,
    get_db,
    get_event_bus,
    get_payment_service,
    get_redis,
    init_dependencies,
)
from src.shared.models.common import ErrorResponse, HealthStatus, PaginationParams


# === LIFESPAN ===

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Жизненный цикл приложения."""
    from src.infra.database import close_db, init_db
    from src.infra.event_bus import close_event_bus, init_event_bus
    from src.infra.redis_client import close_redis, init_redis

    db = await init_db(apply_schema=False)
    redis = await init_redis()
    event_bus = await init_event_bus()
    await init_dependencies(db, redis, event_bus)

    yield

    await cleanup_dependencies()
    await close_event_bus()
    await close_redis()
    await close_db()


# === APP ===

app = FastAPI(
    title="Payments Service",
    description="Платежи за поездки, выплаты водителям и вебхуки платёжного шлюза.",
    version=settings.system.VERSION,
    lifespan=lifespan,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
register_error_handlers(app)

PrincipalDep = Annotated[Principal, Depends(get_principal)]
PaymentServiceDep = Annotated[PaymentService, Depends(get_payment_service)]


# === HEALTH CHECK ===

@app.get("/health", response_model=HealthStatus, tags=["Health"])
async def health_check() -> HealthStatus:
    """Проверка здоровья сервиса и его зависимостей."""
    dependencies: dict[str, str] = {}
    try:
        dependencies["postgres"] = "ok" if await get_db().health_check() else "error"
        dependencies["redis"] = "ok" if await get_redis().health_check() else "error"
        dependencies["rabbitmq"] = "ok" if await get_event_bus().health_check() else "error"
    except RuntimeError:
        dependencies["startup"] = "not_initialized"

    status = "healthy" if all(v == "ok" for v in dependencies.values()) else "degraded"
    return HealthStatus(
        service="payments_service",
        status=status,
        version=settings.system.VERSION,
        dependencies=dependencies,
    )


# === ACCOUNTS ===

@app.post("/api/v1/payments/setup-customer", response_model=GatewayAccountResult, tags=["Accounts"])
async def setup_customer(principal: PrincipalDep, service: PaymentServiceDep) -> GatewayAccountResult:
    """Создать покупателя в шлюзе (идемпотентно)."""
    return await service.setup_customer(principal.user_id)


@app.post("/api/v1/payments/setup-driver", response_model=GatewayAccountResult, tags=["Accounts"])
async def setup_driver(principal: PrincipalDep, service: PaymentServiceDep) -> GatewayAccountResult:
    """Создать аккаунт выплат водителя (идемпотентно)."""
    return await service.setup_driver_account(principal.user_id)


@app.post("/api/v1/payments/methods", response_model=SavedPaymentMethod, status_code=201, tags=["Accounts"])
async def add_payment_method(
    body: PaymentMethodCreateDTO,
    principal: PrincipalDep,
    service: PaymentServiceDep,
) -> SavedPaymentMethod:
    return await service.add_payment_method(principal.user_id, body.gateway_payment_method_id)


@app.get("/api/v1/payments/methods", response_model=list[SavedPaymentMethod], tags=["Accounts"])
async def list_payment_methods(principal: PrincipalDep, service: PaymentServiceDep) -> list[SavedPaymentMethod]:
    return await service.list_payment_methods(principal.user_id)


# === PAYMENTS ===

@app.post("/api/v1/payments", response_model=PaymentResult, status_code=201, tags=["Payments"])
async def create_payment(
    body: PaymentCreateDTO,
    principal: PrincipalDep,
    service: PaymentServiceDep,
) -> PaymentResult:
    """
    Оплатить поездку по принятой заявке.

    cash: платёж ждёт подтверждения водителем,
    google_pay / apple_pay: списание через шлюз.
    """
    return await service.create_payment(
        payer_id=principal.user_id,
        ride_id=body.ride_id,
        method=body.method,
        gateway_payment_method_id=body.gateway_payment_method_id,
    )


@app.post("/api/v1/payments/{payment_id}/confirm-cash", response_model=PaymentResult, tags=["Payments"])
async def confirm_cash_payment(
    payment_id: str,
    principal: PrincipalDep,
    service: PaymentServiceDep,
) -> PaymentResult:
    """Подтвердить получение наличных (водитель поездки)."""
    return await service.confirm_cash_payment(principal.user_id, payment_id)


@app.get("/api/v1/payments/history", response_model=PaymentHistory, tags=["Payments"])
async def payment_history(
    principal: PrincipalDep,
    service: PaymentServiceDep,
    pagination: Annotated[PaginationParams, Depends()],
) -> PaymentHistory:
    return await service.payment_history(principal.user_id, pagination.limit, pagination.offset)


# === PAYOUTS ===

@app.post("/api/v1/payouts", response_model=PayoutResult, status_code=201, tags=["Payouts"])
async def request_payout(
    body: PayoutRequestDTO,
    principal: PrincipalDep,
    service: PaymentServiceDep,
) -> PayoutResult:
    """Запросить выплату заработка (сумма в основных единицах валюты)."""
    return await service.request_payout(principal.user_id, body.amount, body.currency)


@app.get("/api/v1/payouts/history", response_model=PayoutHistory, tags=["Payouts"])
async def payout_history(
    principal: PrincipalDep,
    service: PaymentServiceDep,
    pagination: Annotated[PaginationParams, Depends()],
) -> PayoutHistory:
    return await service.payout_history(principal.user_id, pagination.limit, pagination.offset)


# === WEBHOOKS ===

@app.post("/api/v1/webhooks/gateway", response_model=WebhookResult, tags=["Webhooks"])
async def gateway_webhook(
    request: Request,
    service: PaymentServiceDep,
    gateway_signature: Annotated[str | None, Header(alias="Gateway-Signature")] = None,
) -> WebhookResult:
    """
    Вебхук платёжного шлюза.
    Подпись проверяется по сырому телу запроса.
    """
    raw_body = await request.body()
    return await service.handle_webhook(raw_body, gateway_signature)
