# src/services/rides/app.py
"""
FastAPI приложение для Rides Service.

Endpoints:
- POST /api/v1/rides - создать поездку
- POST /api/v1/rides/search - поиск поездок
- GET /api/v1/rides - поездки пользователя
- GET /api/v1/rides/{id} - получить поездку
- PUT /api/v1/rides/{id} - редактировать поездку
- PATCH /api/v1/rides/{id}/status - сменить статус
- DELETE /api/v1/rides/{id} - удалить поездку
- POST /api/v1/rides/{id}/book - забронировать места
- GET /api/v1/bookings - заявки пользователя
- POST /api/v1/bookings/{id}/accept - принять заявку
- POST /api/v1/bookings/{id}/reject - отклонить заявку
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI
from pydantic import BaseModel, Field

from src.config import settings
from src.core.bookings.models import BookingRequestList, BookingResult
from src.core.bookings.service import BookingService
from src.core.rides.models import (
    RideCreateDTO,
    RideList,
    RideResult,
    RideSearchDTO,
    RideSearchPage,
    RideUpdateDTO,
)
from src.core.rides.service import RideService
from src.services.http import Principal, get_principal, register_error_handlers
from src.services.rides.dependencies import (
    cleanup_dependencies,
    get_booking_service,
    get_db,
    get_event_bus,
    get_ride_service,
    init_dependencies,
)
from src.shared.models.common import ErrorResponse, HealthStatus


# === REQUEST MODELS ===

class RideStatusUpdate(BaseModel):
    """Новый статус поездки."""
    status: str


class BookRideRequest(BaseModel):
    """Запрос на бронирование."""
    passenger_count: int = Field(1, description="Количество мест")


# === LIFESPAN ===

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Жизненный цикл приложения."""
    from src.infra.database import close_db, init_db
    from src.infra.event_bus import close_event_bus, init_event_bus

    db = await init_db(apply_schema=False)
    event_bus = await init_event_bus()
    await init_dependencies(db, event_bus)

    yield

    await cleanup_dependencies()
    await close_event_bus()
    await close_db()


# === APP ===

app = FastAPI(
    title="Rides Service",
    description="Поездки, поиск и бронирование мест.",
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
RideServiceDep = Annotated[RideService, Depends(get_ride_service)]
BookingServiceDep = Annotated[BookingService, Depends(get_booking_service)]


# === HEALTH CHECK ===

@app.get("/health", response_model=HealthStatus, tags=["Health"])
async def health_check() -> HealthStatus:
    """Проверка здоровья сервиса и его зависимостей."""
    dependencies: dict[str, str] = {}
    try:
        dependencies["postgres"] = "ok" if await get_db().health_check() else "error"
        dependencies["rabbitmq"] = "ok" if await get_event_bus().health_check() else "error"
    except RuntimeError:
        dependencies["startup"] = "not_initialized"

    status = "healthy" if all(v == "ok" for v in dependencies.values()) else "degraded"
    return HealthStatus(
        service="rides_service",
        status=status,
        version=settings.system.VERSION,
        dependencies=dependencies,
    )


# === RIDES ===

@app.post("/api/v1/rides", response_model=RideResult, status_code=201, tags=["Rides"])
async def create_ride(
    request: RideCreateDTO,
    principal: PrincipalDep,
    service: RideServiceDep,
) -> RideResult:
    """Создать поездку. Водителем становится текущий пользователь."""
    return await service.create(request, principal.user_id)


@app.post("/api/v1/rides/search", response_model=RideSearchPage, tags=["Rides"])
async def search_rides(criteria: RideSearchDTO, service: RideServiceDep) -> RideSearchPage:
    """Поиск поездок по маршруту и дате."""
    return await service.search(criteria)


@app.get("/api/v1/rides", response_model=RideList, tags=["Rides"])
async def list_my_rides(principal: PrincipalDep, service: RideServiceDep) -> RideList:
    """Поездки текущего пользователя (водитель и пассажир)."""
    return await service.list_for_user(principal.user_id)


@app.get("/api/v1/rides/{ride_id}", response_model=RideResult, tags=["Rides"])
async def get_ride(ride_id: str, service: RideServiceDep) -> RideResult:
    return await service.get(ride_id)


@app.put("/api/v1/rides/{ride_id}", response_model=RideResult, tags=["Rides"])
async def update_ride(
    ride_id: str,
    changes: RideUpdateDTO,
    principal: PrincipalDep,
    service: RideServiceDep,
) -> RideResult:
    """Редактировать поездку (только водитель, не позднее чем за сутки)."""
    return await service.update(ride_id, changes, principal.user_id)


@app.patch("/api/v1/rides/{ride_id}/status", response_model=RideResult, tags=["Rides"])
async def update_ride_status(
    ride_id: str,
    body: RideStatusUpdate,
    principal: PrincipalDep,
    service: RideServiceDep,
) -> RideResult:
    return await service.update_status(ride_id, body.status, principal.user_id)


@app.delete("/api/v1/rides/{ride_id}", response_model=RideResult, tags=["Rides"])
async def delete_ride(ride_id: str, principal: PrincipalDep, service: RideServiceDep) -> RideResult:
    """Удалить поездку вместе с заявками, платежами и диалогами."""
    return await service.delete(ride_id, principal.user_id)


# === BOOKINGS ===

@app.post("/api/v1/rides/{ride_id}/book", response_model=BookingResult, status_code=201, tags=["Bookings"])
async def book_ride(
    ride_id: str,
    principal: PrincipalDep,
    service: BookingServiceDep,
    body: BookRideRequest | None = None,
) -> BookingResult:
    """Отправить заявку на места в поездке."""
    passenger_count = body.passenger_count if body is not None else 1
    return await service.book_ride(ride_id, principal.user_id, passenger_count)


@app.get("/api/v1/bookings", response_model=BookingRequestList, tags=["Bookings"])
async def list_bookings(principal: PrincipalDep, service: BookingServiceDep) -> BookingRequestList:
    return await service.list_booking_requests(principal.user_id)


@app.post("/api/v1/bookings/{request_id}/accept", response_model=BookingResult, tags=["Bookings"])
async def accept_booking(
    request_id: str,
    principal: PrincipalDep,
    service: BookingServiceDep,
) -> BookingResult:
    """Принять заявку (водитель поездки)."""
    return await service.accept(request_id, principal.user_id)


@app.post("/api/v1/bookings/{request_id}/reject", response_model=BookingResult, tags=["Bookings"])
async def reject_booking(
    request_id: str,
    principal: PrincipalDep,
    service: BookingServiceDep,
) -> BookingResult:
    """Отклонить заявку (водитель поездки)."""
    return await service.reject(request_id, principal.user_id)
