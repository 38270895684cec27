# src/core/bookings/service.py
"""
Сервис бронирования.
Заявки пассажиров, принятие и отклонение водителем, распределение мест.
"""

from __future__ import annotations

from typing import Any

import asyncpg
from asyncpg import Connection

from src.common.constants import BookingStatus, RideStatus, TypeMsg
from src.common.errors import AuthorizationError, BusinessRuleViolation, NotFoundError, ValidationError
from src.common.logger import log_info
from src.core.bookings.models import BookingRequest, BookingRequestList, BookingRequestView, BookingResult
from src.core.bookings.repository import BookingRepository
from src.core.conversations.repository import ConversationRepository
from src.core.notifications.service import NotificationService
from src.core.rides.models import Ride
from src.core.rides.repository import RideRepository
from src.core.users.models import UserSummary
from src.core.users.repository import UserRepository
from src.infra.database import DatabaseManager
from src.infra.event_bus import DomainEvent, EventBus, EventTypes


class BookingService:
    """
    Сервис бронирования.

    Места списываются при принятии заявки, а не при её создании.
    Принятие выполняется в транзакции с блокировкой поездки, затем заявки,
    и условным списанием мест, поэтому параллельные принятия
    не могут уйти в минус.
    """

    def __init__(
        self,
        db: DatabaseManager,
        notifications: NotificationService,
        event_bus: EventBus | None = None,
        rides: RideRepository | None = None,
        bookings: BookingRepository | None = None,
        users: UserRepository | None = None,
        conversations: ConversationRepository | None = None,
    ) -> None:
        self._db = db
        self._notifications = notifications
        self._event_bus = event_bus
        self._rides = rides or RideRepository(db)
        self._bookings = bookings or BookingRepository(db)
        self._users = users or UserRepository(db)
        self._conversations = conversations or ConversationRepository(db)

    # =========================================================================
    # ЗАЯВКА
    # =========================================================================

    async def book_ride(self, ride_id: str, passenger_id: str, passenger_count: int = 1) -> BookingResult:
        """
        Создаёт заявку на бронирование в статусе pending.

        Args:
            ride_id: ID поездки
            passenger_id: ID пассажира
            passenger_count: Количество мест

        Returns:
            Заявка с карточкой пассажира

        Raises:
            NotFoundError: поездка или пассажир не найдены
            BusinessRuleViolation: поездка неактивна, мест не хватает,
                водитель бронирует свою поездку, заявка уже есть
            ValidationError: passenger_count < 1
        """
        async with self._db.transaction() as conn:
            ride = await self._rides.get_for_update(ride_id, conn)
            if ride is None:
                raise NotFoundError(f"Поездка {ride_id} не найдена")
            if ride.status != RideStatus.ACTIVE:
                raise BusinessRuleViolation("Поездка недоступна для бронирования")
            if passenger_count < 1:
                raise ValidationError("Количество пассажиров должно быть не меньше 1")
            if ride.available_seats < passenger_count:
                raise BusinessRuleViolation(
                    f"Недостаточно мест: доступно {ride.available_seats}, запрошено {passenger_count}"
                )
            if ride.driver_id == passenger_id:
                raise BusinessRuleViolation("Водитель не может бронировать свою поездку")

            existing = await self._bookings.get_by_ride_and_passenger(ride_id, passenger_id, conn=conn)
            if existing is not None:
                raise BusinessRuleViolation("Заявка на эту поездку уже существует")

            passenger = await self._users.get_by_id(passenger_id, conn=conn)
            if passenger is None:
                raise NotFoundError(f"Пользователь {passenger_id} не найден")

            try:
                request = await self._bookings.create(ride_id, passenger_id, passenger_count, conn=conn)
            except asyncpg.UniqueViolationError:
                raise BusinessRuleViolation("Заявка на эту поездку уже существует") from None

        await log_info(
            f"Заявка {request.id}: пассажир {passenger_id} → поездка {ride_id}, мест {passenger_count}",
            type_msg=TypeMsg.INFO,
        )
        await self._notifications.send_to_user(
            ride.driver_id,
            f"New booking request for ride {ride.route_label}",
        )
        await self._publish(EventTypes.BOOKING_REQUESTED, {
            "booking_id": request.id,
            "ride_id": ride_id,
            "passenger_id": passenger_id,
            "passenger_count": passenger_count,
        })
        return BookingResult(
            booking=BookingRequestView.build(request, passenger=UserSummary.from_profile(passenger)),
        )

    # =========================================================================
    # ПРИНЯТИЕ И ОТКЛОНЕНИЕ
    # =========================================================================

    async def accept(self, request_id: str, driver_id: str) -> BookingResult:
        """
        Принимает заявку.

        Списывает passenger_count мест; при нуле мест поездка становится
        booked, а остальные ожидающие заявки отклоняются. Открывает диалоги
        водитель-пассажир и пассажир-ранее принятые пассажиры.
        """
        async with self._db.transaction() as conn:
            request, ride = await self._load_pending_for_driver(request_id, driver_id, conn)
            if ride.status not in (RideStatus.ACTIVE, RideStatus.BOOKED):
                raise BusinessRuleViolation("Поездка недоступна для бронирования")

            remaining = await self._rides.reserve_seats(ride.id, request.passenger_count, conn=conn)
            if remaining is None:
                raise BusinessRuleViolation("Недостаточно свободных мест в поездке")

            co_passengers = [
                b.passenger_id
                for b in await self._bookings.list_by_ride(
                    ride.id, [BookingStatus.ACCEPTED, BookingStatus.CONFIRMED], conn=conn,
                )
                if b.passenger_id != request.passenger_id
            ]
            accepted = await self._bookings.set_status(request.id, BookingStatus.ACCEPTED, conn=conn)

            auto_rejected: list[BookingRequest] = []
            if remaining == 0:
                auto_rejected = await self._bookings.reject_pending_for_ride(
                    ride.id, except_id=request.id, conn=conn,
                )

            await self._conversations.create_conversation(
                request.passenger_id, ride.driver_id, ride_id=ride.id, conn=conn,
            )
            for co_passenger in co_passengers:
                await self._conversations.create_conversation(
                    request.passenger_id, co_passenger, ride_id=ride.id, conn=conn,
                )

            passenger = await self._users.get_by_id(request.passenger_id, conn=conn)

        await log_info(
            f"Заявка {request.id} принята: поездка {ride.id}, осталось мест {remaining}, "
            f"автоотклонено {len(auto_rejected)}",
            type_msg=TypeMsg.INFO,
        )
        await self._notifications.send_to_user(
            request.passenger_id,
            f"Your booking request for ride {ride.route_label} was accepted",
        )
        await self._notifications.notify_users(
            [b.passenger_id for b in auto_rejected],
            f"Your booking request for ride {ride.route_label} was rejected",
        )
        await self._publish(EventTypes.BOOKING_ACCEPTED, {
            "booking_id": request.id,
            "ride_id": ride.id,
            "available_seats": remaining,
            "auto_rejected": [b.id for b in auto_rejected],
        })
        if remaining == 0:
            await self._publish(EventTypes.RIDE_STATUS_CHANGED, {
                "ride_id": ride.id,
                "old_status": ride.status.value,
                "new_status": RideStatus.BOOKED.value,
            })

        return BookingResult(
            booking=BookingRequestView.build(
                accepted,
                passenger=UserSummary.from_profile(passenger) if passenger else None,
            ),
            auto_rejected=[b.id for b in auto_rejected],
        )

    async def reject(self, request_id: str, driver_id: str) -> BookingResult:
        """Отклоняет ожидающую заявку. Места не меняются."""
        async with self._db.transaction() as conn:
            request, ride = await self._load_pending_for_driver(request_id, driver_id, conn)
            rejected = await self._bookings.set_status(request.id, BookingStatus.REJECTED, conn=conn)

        await log_info(f"Заявка {request.id} отклонена водителем {driver_id}", type_msg=TypeMsg.INFO)
        await self._notifications.send_to_user(
            request.passenger_id,
            f"Your booking request for ride {ride.route_label} was rejected",
        )
        await self._publish(EventTypes.BOOKING_REJECTED, {"booking_id": request.id, "ride_id": ride.id})
        return BookingResult(booking=BookingRequestView.build(rejected))

    async def _load_pending_for_driver(
        self,
        request_id: str,
        driver_id: str,
        conn: Connection,
    ) -> tuple[BookingRequest, Ride]:
        """
        Блокирует поездку, затем заявку, и проверяет права водителя и статус заявки.

        Порядок блокировок поездка -> заявка общий для всех операций,
        которые трогают обе строки (удаление поездки, смена статуса).
        """
        request = await self._bookings.get_by_id(request_id, conn=conn)
        if request is None:
            raise NotFoundError(f"Заявка {request_id} не найдена")

        ride = await self._rides.get_for_update(request.ride_id, conn)
        if ride is None:
            raise NotFoundError(f"Поездка {request.ride_id} не найдена")

        if ride.driver_id != driver_id:
            await log_info(
                f"Пользователь {driver_id} пытался обработать заявку {request_id} чужой поездки",
                type_msg=TypeMsg.WARNING,
            )
            raise AuthorizationError("Обрабатывать заявки может только водитель поездки")

        request = await self._bookings.get_for_update(request_id, conn)
        if request is None:
            raise NotFoundError(f"Заявка {request_id} не найдена")
        if request.status != BookingStatus.PENDING:
            raise BusinessRuleViolation(f"Заявка уже обработана: {request.status.value}")
        return request, ride

    # =========================================================================
    # СПИСОК
    # =========================================================================

    async def list_booking_requests(self, user_id: str) -> BookingRequestList:
        """
        Заявки пользователя.

        incoming: заявки на его поездки с карточкой пассажира,
        outgoing: его собственные заявки с карточкой водителя.
        """
        incoming = await self._bookings.list_for_driver(user_id)
        outgoing = await self._bookings.list_by_passenger(user_id)

        rides = {}
        for request in outgoing:
            if request.ride_id not in rides:
                rides[request.ride_id] = await self._rides.get_by_id(request.ride_id)

        user_ids = [r.passenger_id for r in incoming]
        user_ids += [ride.driver_id for ride in rides.values() if ride is not None]
        profiles = {
            uid: UserSummary.from_profile(profile)
            for uid, profile in (await self._users.get_many(user_ids)).items()
        }

        def driver_of(request: BookingRequest) -> UserSummary | None:
            ride = rides.get(request.ride_id)
            return profiles.get(ride.driver_id) if ride else None

        return BookingRequestList(
            incoming=[BookingRequestView.build(r, passenger=profiles.get(r.passenger_id)) for r in incoming],
            outgoing=[BookingRequestView.build(r, driver=driver_of(r)) for r in outgoing],
        )

    async def _publish(self, event_type: str, payload: dict[str, Any]) -> None:
        if self._event_bus is not None:
            await self._event_bus.publish(DomainEvent(event_type=event_type, payload=payload))
