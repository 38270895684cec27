# src/core/rides/service.py
"""
Сервис жизненного цикла поездок.
Создание с геокодированием и расчётом стоимости, поиск, редактирование,
смена статуса и удаление.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from typing import Any, Optional

from asyncpg import Connection

from src.common.constants import (
    INACTIVE_PAYMENT_STATUSES,
    BookingStatus,
    PaymentMethod,
    PaymentType,
    RideStatus,
    TypeMsg,
)
from src.common.errors import AuthorizationError, BusinessRuleViolation, NotFoundError, ValidationError
from src.common.logger import log_info
from src.core.bookings.repository import BookingRepository
from src.core.conversations.repository import ConversationRepository
from src.core.geo.service import GeoService, Location
from src.core.notifications.service import NotificationService
from src.core.payments.repository import PaymentRepository
from src.core.rides.fare import FareCalculator
from src.core.rides.models import (
    Ride,
    RideCreateDTO,
    RideList,
    RideResult,
    RideSearchDTO,
    RideSearchPage,
    RideUpdateDTO,
)
from src.core.rides.proximity import ProximityMatcher
from src.core.rides.repository import RideRepository
from src.core.rides.state_machine import RideStateMachine
from src.core.users.models import UserSummary
from src.core.users.repository import UserRepository
from src.infra.database import DatabaseManager
from src.infra.event_bus import DomainEvent, EventBus, EventTypes

# Заявки, которые занимают места в поездке
SEAT_HOLDING_STATUSES = [BookingStatus.ACCEPTED, BookingStatus.CONFIRMED]

SEARCHABLE_STATUSES = [RideStatus.ACTIVE, RideStatus.BOOKED]


def as_utc(value: datetime) -> datetime:
    """Наивное время считается UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class RideService:
    """
    Сервис поездок.

    Все последовательности "прочитать-проверить-записать" выполняются
    в одной транзакции с блокировкой строки поездки.
    """

    def __init__(
        self,
        db: DatabaseManager,
        geo: GeoService,
        notifications: NotificationService,
        event_bus: EventBus | None = None,
        rides: RideRepository | None = None,
        bookings: BookingRepository | None = None,
        payments: PaymentRepository | None = None,
        users: UserRepository | None = None,
        conversations: ConversationRepository | None = None,
        fare_calculator: FareCalculator | None = None,
    ) -> None:
        """
        Args:
            db: Менеджер базы данных
            geo: Геокодер и расчёт маршрута
            notifications: Отправка уведомлений пассажирам
            event_bus: Шина доменных событий (необязательно)
        """
        from src.config import settings

        self._db = db
        self._geo = geo
        self._notifications = notifications
        self._event_bus = event_bus
        self._rides = rides or RideRepository(db)
        self._bookings = bookings or BookingRepository(db)
        self._payments = payments or PaymentRepository(db)
        self._users = users or UserRepository(db)
        self._conversations = conversations or ConversationRepository(db)
        self._fare_calculator = fare_calculator or FareCalculator()
        self._matcher = ProximityMatcher()
        self._search_settings = settings.search
        self._ride_settings = settings.rides

    # =========================================================================
    # СОЗДАНИЕ
    # =========================================================================

    async def create(self, dto: RideCreateDTO, driver_id: str) -> RideResult:
        """
        Создаёт поездку.

        Адреса геокодируются, расстояние и время берутся у геосервиса,
        стоимость считается по тарифам. Поездка сохраняется только если
        все шаги прошли успешно.

        Raises:
            NotFoundError: водитель не найден или адрес не распознан
            ValidationError: водитель неактивен, время в прошлом, места < 1, карта недействительна
            UpstreamError: геосервис недоступен
        """
        driver = await self._users.get_by_id(driver_id)
        if driver is None:
            raise NotFoundError(f"Пользователь {driver_id} не найден")
        if not driver.is_active:
            raise ValidationError("Аккаунт водителя неактивен")

        departure_time = as_utc(dto.departure_time)
        if departure_time <= datetime.now(timezone.utc):
            raise ValidationError("Время отправления должно быть в будущем")
        if dto.available_seats < 1:
            raise ValidationError("Количество мест должно быть не меньше 1")

        selected_card_id = await self._resolve_card(driver_id, dto.payment_type, dto.selected_card_id)

        start = await self._geo.geocode(dto.start_location)
        end = await self._geo.geocode(dto.end_location)
        route = await self._geo.route_distance(dto.start_location, dto.end_location)
        fare = self._fare_calculator.calculate(route.distance_km, route.duration_minutes)

        ride = await self._rides.create(
            driver_id=driver_id,
            start_location=dto.start_location,
            start_lat=start.latitude,
            start_lng=start.longitude,
            end_location=dto.end_location,
            end_lat=end.latitude,
            end_lng=end.longitude,
            departure_time=departure_time,
            available_seats=dto.available_seats,
            vehicle_type=dto.vehicle_type or self._ride_settings.DEFAULT_VEHICLE_TYPE,
            fare=fare,
            distance=route.distance_km,
            duration=route.duration_minutes,
            payment_type=dto.payment_type.value,
            selected_card_id=selected_card_id,
        )

        await log_info(
            f"Поездка {ride.id} создана водителем {driver_id}: {ride.route_label}, fare={fare}",
            type_msg=TypeMsg.INFO,
        )
        await self._publish(EventTypes.RIDE_CREATED, {"ride_id": ride.id, "driver_id": driver_id})
        return RideResult(ride=ride)

    # =========================================================================
    # ЧТЕНИЕ И ПОИСК
    # =========================================================================

    async def get(self, ride_id: str) -> RideResult:
        """Поездка с карточкой водителя."""
        ride = await self._rides.get_by_id(ride_id)
        if ride is None:
            raise NotFoundError(f"Поездка {ride_id} не найдена")

        driver = await self._users.get_by_id(ride.driver_id)
        if driver is not None:
            ride = ride.model_copy(update={"driver": UserSummary.from_profile(driver)})
        return RideResult(ride=ride)

    async def list_for_user(self, user_id: str) -> RideList:
        """Поездки пользователя как водителя и как пассажира с принятой заявкой."""
        driven = await self._rides.list_by_driver(user_id)
        booked = await self._rides.list_booked_by_passenger(user_id)

        rides: dict[str, Ride] = {}
        for ride in [*driven, *booked]:
            rides.setdefault(ride.id, ride)
        return RideList(rides=sorted(rides.values(), key=lambda r: r.departure_time))

    async def search(self, criteria: RideSearchDTO) -> RideSearchPage:
        """
        Поиск поездок.

        Пагинация применяется к запросу до фильтра по расстоянию,
        поэтому страница может содержать меньше limit результатов.
        total: количество поездок без фильтра по расстоянию.
        """
        if criteria.passengers < 1:
            raise ValidationError("Количество пассажиров должно быть не меньше 1")
        if criteria.offset < 0:
            raise ValidationError("offset не может быть отрицательным")

        limit = criteria.limit if criteria.limit is not None else self._search_settings.DEFAULT_LIMIT
        if limit < 1:
            raise ValidationError("limit должен быть не меньше 1")
        limit = min(limit, self._search_settings.MAX_LIMIT)

        date_range = (
            criteria.date_range if criteria.date_range is not None
            else self._search_settings.DEFAULT_DATE_RANGE_DAYS
        )
        if date_range < 0:
            raise ValidationError("Окно дат не может быть отрицательным")

        max_distance = (
            criteria.max_distance if criteria.max_distance is not None
            else self._search_settings.DEFAULT_MAX_DISTANCE_KM
        )

        start = await self._resolve_point(criteria.start_lat, criteria.start_lng, criteria.start_location, "start")
        end = await self._resolve_point(criteria.end_lat, criteria.end_lng, criteria.end_location, "end")

        day = datetime.combine(as_utc(criteria.departure_date).date(), time.min, tzinfo=timezone.utc)
        date_from = day - timedelta(days=date_range)
        date_to = day + timedelta(days=date_range + 1)

        candidates = await self._rides.search(
            SEARCHABLE_STATUSES, criteria.passengers, date_from, date_to, limit, criteria.offset,
        )
        total = await self._rides.count_search(SEARCHABLE_STATUSES, criteria.passengers, date_from, date_to)

        results = self._matcher.rank(candidates, start, end, max_distance)
        await log_info(
            f"Поиск поездок: кандидатов {len(candidates)}, после фильтра {len(results)}, всего {total}",
            type_msg=TypeMsg.DEBUG,
        )
        return RideSearchPage(rides=results, total=total)

    async def _resolve_point(
        self,
        lat: float | None,
        lng: float | None,
        address: str | None,
        label: str,
    ) -> Location:
        """Координаты точки поиска: переданные явно или по адресу."""
        if lat is not None and lng is not None:
            return Location(latitude=lat, longitude=lng, address=address or "")
        if address:
            return await self._geo.geocode(address)
        raise ValidationError(f"Не заданы адрес или координаты точки {label}")

    # =========================================================================
    # РЕДАКТИРОВАНИЕ
    # =========================================================================

    async def update(self, ride_id: str, dto: RideUpdateDTO, requester_id: str) -> RideResult:
        """
        Редактирует поездку.

        Разрешено водителю, пока поездка не завершена и до отправления
        больше EDIT_LOCK_HOURS. Смена адресов заново геокодирует маршрут
        и пересчитывает стоимость.
        """
        async with self._db.transaction() as conn:
            ride = await self._load_owned_for_update(ride_id, requester_id, conn)

            if ride.status == RideStatus.COMPLETED:
                raise BusinessRuleViolation("Завершённую поездку нельзя редактировать")

            lock_until = as_utc(ride.departure_time) - timedelta(hours=self._ride_settings.EDIT_LOCK_HOURS)
            if datetime.now(timezone.utc) >= lock_until:
                raise BusinessRuleViolation(
                    f"Поездку нельзя редактировать менее чем за {self._ride_settings.EDIT_LOCK_HOURS} ч до отправления"
                )

            fields = await self._collect_changes(ride, dto, conn)
            updated = await self._rides.update_fields(ride_id, fields, conn=conn)
            passengers = await self._accepted_passengers(ride_id, conn)

        await log_info(
            f"Поездка {ride_id} изменена водителем {requester_id}: {sorted(fields)}",
            type_msg=TypeMsg.INFO,
        )
        await self._notifications.notify_users(passengers, f"Ride {updated.route_label} has been updated")
        await self._publish(EventTypes.RIDE_UPDATED, {"ride_id": ride_id, "fields": sorted(fields)})
        return RideResult(ride=updated)

    async def _collect_changes(self, ride: Ride, dto: RideUpdateDTO, conn: Connection) -> dict[str, Any]:
        """Колонки, которые меняет запрос. Пустые значения пропускаются."""
        fields: dict[str, Any] = {}

        start_location = dto.start_location or ride.start_location
        end_location = dto.end_location or ride.end_location
        if start_location != ride.start_location or end_location != ride.end_location:
            start = await self._geo.geocode(start_location)
            end = await self._geo.geocode(end_location)
            route = await self._geo.route_distance(start_location, end_location)
            fields.update(
                start_location=start_location,
                start_lat=start.latitude,
                start_lng=start.longitude,
                end_location=end_location,
                end_lat=end.latitude,
                end_lng=end.longitude,
                distance=route.distance_km,
                duration=route.duration_minutes,
                fare=self._fare_calculator.calculate(route.distance_km, route.duration_minutes),
            )

        if dto.departure_time is not None:
            departure_time = as_utc(dto.departure_time)
            if departure_time <= datetime.now(timezone.utc):
                raise ValidationError("Время отправления должно быть в будущем")
            fields["departure_time"] = departure_time

        if dto.available_seats is not None:
            if dto.available_seats < 1:
                raise ValidationError("Количество мест должно быть не меньше 1")
            fields["available_seats"] = dto.available_seats
            if ride.status == RideStatus.BOOKED:
                fields["status"] = RideStatus.ACTIVE

        if dto.vehicle_type:
            fields["vehicle_type"] = dto.vehicle_type

        payment_type = dto.payment_type or ride.payment_type
        card_id = dto.selected_card_id or ride.selected_card_id
        resolved_card = await self._resolve_card(ride.driver_id, payment_type, card_id, conn=conn)
        if dto.payment_type is not None:
            fields["payment_type"] = payment_type
        if resolved_card != ride.selected_card_id:
            fields["selected_card_id"] = resolved_card

        return fields

    # =========================================================================
    # СТАТУС
    # =========================================================================

    async def update_status(self, ride_id: str, new_status: str, requester_id: str) -> RideResult:
        """
        Меняет статус поездки.

        Перевод в completed требует хотя бы одной принятой заявки и оплаты
        всех активных безналичных платежей принятых пассажиров.
        Наличные завершению не мешают.
        """
        try:
            target = RideStatus(new_status)
        except ValueError:
            raise ValidationError(f"Недопустимый статус поездки: {new_status}") from None

        async with self._db.transaction() as conn:
            ride = await self._load_owned_for_update(ride_id, requester_id, conn)

            if ride.status == RideStatus.COMPLETED:
                raise BusinessRuleViolation("Статус завершённой поездки изменить нельзя")
            if not RideStateMachine.can_transition(ride.status, target):
                raise BusinessRuleViolation(f"Переход {ride.status.value} → {target.value} недопустим")

            accepted = await self._bookings.list_by_ride(ride_id, SEAT_HOLDING_STATUSES, conn=conn)
            if target == RideStatus.COMPLETED:
                await self._check_completable(ride_id, {b.passenger_id for b in accepted}, conn)

            updated = await self._rides.set_status(ride_id, target, conn=conn)

        await log_info(
            f"Статус поездки {ride_id}: {ride.status.value} → {target.value}",
            type_msg=TypeMsg.INFO,
        )
        await self._notifications.notify_users(
            [b.passenger_id for b in accepted],
            f"Ride status changed to {target.value}",
        )
        await self._publish(
            EventTypes.RIDE_STATUS_CHANGED,
            {"ride_id": ride_id, "old_status": ride.status.value, "new_status": target.value},
        )
        return RideResult(ride=updated)

    async def _check_completable(self, ride_id: str, passenger_ids: set[str], conn: Connection) -> None:
        if not passenger_ids:
            raise BusinessRuleViolation("Нельзя завершить поездку без принятых заявок")

        payments = await self._payments.list_by_ride(ride_id, conn=conn)
        unpaid = [
            p for p in payments
            if p.user_id in passenger_ids
            and p.payment_method != PaymentMethod.CASH
            and p.status not in INACTIVE_PAYMENT_STATUSES
            and not p.is_paid
        ]
        if unpaid:
            await log_info(
                f"Поездка {ride_id} не может быть завершена: неоплаченных платежей {len(unpaid)}",
                type_msg=TypeMsg.WARNING,
            )
            raise BusinessRuleViolation(
                "Нельзя завершить поездку с неоплаченными безналичными платежами",
                details={"payment_ids": [p.id for p in unpaid]},
            )

    # =========================================================================
    # УДАЛЕНИЕ
    # =========================================================================

    async def delete(self, ride_id: str, requester_id: str) -> RideResult:
        """
        Удаляет поездку вместе с платежами, заявками и диалогами.

        Запрещено, если есть оплаченный платёж или принятая заявка.
        """
        async with self._db.transaction() as conn:
            ride = await self._load_owned_for_update(ride_id, requester_id, conn)

            if await self._payments.any_paid_for_ride(ride_id, conn=conn):
                raise BusinessRuleViolation("Нельзя удалить поездку с оплаченными платежами")

            bookings = await self._bookings.list_by_ride(ride_id, conn=conn)
            if any(b.status in SEAT_HOLDING_STATUSES for b in bookings):
                raise BusinessRuleViolation("Нельзя удалить поездку с принятыми заявками")

            await self._payments.delete_by_ride(ride_id, conn=conn)
            await self._bookings.delete_by_ride(ride_id, conn=conn)
            await self._conversations.delete_by_ride(ride_id, conn=conn)
            await self._rides.delete(ride_id, conn=conn)

        await log_info(f"Поездка {ride_id} удалена водителем {requester_id}", type_msg=TypeMsg.INFO)
        await self._notifications.notify_users(
            [b.passenger_id for b in bookings],
            f"Ride {ride.route_label} has been cancelled",
        )
        await self._publish(EventTypes.RIDE_DELETED, {"ride_id": ride_id, "driver_id": requester_id})
        return RideResult(ride=ride)

    # =========================================================================
    # ВСПОМОГАТЕЛЬНЫЕ
    # =========================================================================

    async def _load_owned_for_update(self, ride_id: str, requester_id: str, conn: Connection) -> Ride:
        ride = await self._rides.get_for_update(ride_id, conn)
        if ride is None:
            raise NotFoundError(f"Поездка {ride_id} не найдена")
        if ride.driver_id != requester_id:
            await log_info(
                f"Пользователь {requester_id} пытался изменить чужую поездку {ride_id}",
                type_msg=TypeMsg.WARNING,
            )
            raise AuthorizationError("Изменять поездку может только её водитель")
        return ride

    async def _accepted_passengers(self, ride_id: str, conn: Connection) -> list[str]:
        accepted = await self._bookings.list_by_ride(ride_id, SEAT_HOLDING_STATUSES, conn=conn)
        return [b.passenger_id for b in accepted]

    async def _resolve_card(
        self,
        driver_id: str,
        payment_type: PaymentType,
        card_id: Optional[str],
        conn: Connection | None = None,
    ) -> Optional[str]:
        """
        Проверяет карту водителя для типа оплаты.

        Returns:
            ID карты или None, если тип оплаты её не использует
        """
        if payment_type == PaymentType.CASH:
            return None
        if card_id is None:
            if payment_type == PaymentType.CARD:
                raise ValidationError("Для оплаты картой нужно выбрать карту")
            return None

        card = await self._users.get_payment_method(card_id, conn=conn)
        if card is None or card.user_id != driver_id:
            raise ValidationError("Выбранная карта не найдена среди способов оплаты водителя")
        return card_id

    async def _publish(self, event_type: str, payload: dict[str, Any]) -> None:
        if self._event_bus is not None:
            await self._event_bus.publish(DomainEvent(event_type=event_type, payload=payload))
