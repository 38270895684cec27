# tests/fakes.py
"""
In-memory репозитории для тестов сервисов.

Повторяют контракты репозиториев поверх общего FakeStore.
FakeDatabase.transaction() сериализует транзакции и откатывает
хранилище при исключении, как это делает PostgreSQL.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, AsyncIterator, Optional

from src.common.constants import (
    INACTIVE_PAYMENT_STATUSES,
    VOID_PAYOUT_STATUSES,
    BookingStatus,
    PaymentMethod,
    PaymentStatus,
    RideStatus,
)
from src.core.bookings.models import BookingRequest
from src.core.conversations.repository import Conversation, ordered_pair
from src.core.payments.models import Payment, PaymentHistoryItem, Payout
from src.core.rides.models import Ride
from src.core.users.models import SavedPaymentMethod, UserProfile

SEAT_HOLDING = (BookingStatus.ACCEPTED, BookingStatus.CONFIRMED)

FAKE_CONN = object()


class FakeStore:
    """Таблицы в памяти."""

    def __init__(self) -> None:
        self.users: dict[str, UserProfile] = {}
        self.payment_methods: dict[str, SavedPaymentMethod] = {}
        self.rides: dict[str, Ride] = {}
        self.bookings: dict[str, BookingRequest] = {}
        self.payments: dict[str, Payment] = {}
        self.payouts: dict[str, Payout] = {}
        self.conversations: dict[str, Conversation] = {}
        self._ids = itertools.count(1)

    def next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy({k: v for k, v in self.__dict__.items() if k != "_ids"})

    def restore(self, snapshot: dict[str, Any]) -> None:
        self.__dict__.update(snapshot)

    # === СИДЫ ===

    def add_user(self, user_id: str, **fields: Any) -> UserProfile:
        data = {"email": f"{user_id}@example.com", "name": user_id.title(), **fields}
        user = UserProfile(id=user_id, **data)
        self.users[user_id] = user
        return user

    def add_ride(self, driver_id: str, departure_time: datetime, **fields: Any) -> Ride:
        data = {
            "start_location": "Kyiv",
            "start_lat": 50.4501,
            "start_lng": 30.5234,
            "end_location": "Lviv",
            "end_lat": 49.8397,
            "end_lng": 24.0297,
            "available_seats": 3,
            "fare": Decimal("59.00"),
            "distance": 100.0,
            "duration": 90,
            **fields,
        }
        ride = Ride(
            id=data.pop("id", None) or self.next_id("ride"),
            driver_id=driver_id,
            departure_time=departure_time,
            **data,
        )
        self.rides[ride.id] = ride
        return ride

    def add_booking(
        self,
        ride_id: str,
        passenger_id: str,
        passenger_count: int = 1,
        status: BookingStatus = BookingStatus.PENDING,
    ) -> BookingRequest:
        booking = BookingRequest(
            id=self.next_id("booking"),
            ride_id=ride_id,
            passenger_id=passenger_id,
            passenger_count=passenger_count,
            status=status,
            created_at=datetime.now(timezone.utc),
        )
        self.bookings[booking.id] = booking
        return booking

    def add_payment(
        self,
        ride_id: str,
        user_id: str,
        payment_method: PaymentMethod = PaymentMethod.GOOGLE_PAY,
        status: str = PaymentStatus.SUCCEEDED.value,
        is_paid: bool = True,
        amount: int = 5900,
        commission: int = 885,
        gateway_payment_id: str | None = None,
    ) -> Payment:
        payment = Payment(
            id=self.next_id("payment"),
            ride_id=ride_id,
            user_id=user_id,
            gateway_payment_id=gateway_payment_id,
            amount=amount,
            commission=commission,
            driver_amount=amount - commission,
            currency="uah",
            payment_method=payment_method,
            status=status,
            is_paid=is_paid,
            created_at=datetime.now(timezone.utc),
        )
        self.payments[payment.id] = payment
        return payment


class FakeDatabase:
    """Транзакции поверх FakeStore."""

    def __init__(self, store: FakeStore) -> None:
        self.store = store
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[object]:
        async with self._lock:
            snapshot = self.store.snapshot()
            try:
                yield FAKE_CONN
            except BaseException:
                self.store.restore(snapshot)
                raise

    @property
    def in_transaction(self) -> bool:
        return self._lock.locked()

    async def health_check(self) -> bool:
        return True


class _FakeRepository:
    def __init__(self, store: FakeStore) -> None:
        self.store = store


# =============================================================================
# ПОЛЬЗОВАТЕЛИ
# =============================================================================

class FakeUserRepository(_FakeRepository):

    async def get_by_id(self, user_id: str, conn: Any = None) -> Optional[UserProfile]:
        user = self.store.users.get(user_id)
        return user.model_copy() if user else None

    async def get_for_update(self, user_id: str, conn: Any) -> Optional[UserProfile]:
        return await self.get_by_id(user_id)

    async def get_many(self, user_ids: list[str], conn: Any = None) -> dict[str, UserProfile]:
        return {uid: self.store.users[uid].model_copy() for uid in set(user_ids) if uid in self.store.users}

    async def set_gateway_customer_id(self, user_id: str, customer_id: str, conn: Any = None) -> str:
        user = self.store.users[user_id]
        if user.gateway_customer_id is None:
            self.store.users[user_id] = user.model_copy(update={"gateway_customer_id": customer_id})
        return self.store.users[user_id].gateway_customer_id

    async def set_gateway_account_id(self, user_id: str, account_id: str, conn: Any = None) -> str:
        user = self.store.users[user_id]
        if user.gateway_account_id is None:
            self.store.users[user_id] = user.model_copy(update={"gateway_account_id": account_id})
        return self.store.users[user_id].gateway_account_id

    async def get_payment_method(self, method_id: str, conn: Any = None) -> Optional[SavedPaymentMethod]:
        return self.store.payment_methods.get(method_id)

    async def list_payment_methods(self, user_id: str) -> list[SavedPaymentMethod]:
        return [m for m in self.store.payment_methods.values() if m.user_id == user_id]

    async def add_payment_method(
        self,
        user_id: str,
        gateway_payment_method_id: str,
        method_type: str,
        last4: str | None,
        brand: str | None,
    ) -> SavedPaymentMethod:
        for method in self.store.payment_methods.values():
            if method.user_id == user_id and method.gateway_payment_method_id == gateway_payment_method_id:
                return method
        method = SavedPaymentMethod(
            id=self.store.next_id("card"),
            user_id=user_id,
            gateway_payment_method_id=gateway_payment_method_id,
            type=method_type,
            last4=last4,
            brand=brand,
        )
        self.store.payment_methods[method.id] = method
        return method


# =============================================================================
# ПОЕЗДКИ
# =============================================================================

class FakeRideRepository(_FakeRepository):

    async def get_by_id(self, ride_id: str, conn: Any = None) -> Optional[Ride]:
        ride = self.store.rides.get(ride_id)
        return ride.model_copy() if ride else None

    async def get_for_update(self, ride_id: str, conn: Any) -> Optional[Ride]:
        await asyncio.sleep(0)
        return await self.get_by_id(ride_id)

    async def create(self, conn: Any = None, **fields: Any) -> Ride:
        now = datetime.now(timezone.utc)
        ride = Ride(
            id=self.store.next_id("ride"),
            status=RideStatus.ACTIVE,
            created_at=now,
            updated_at=now,
            **fields,
        )
        self.store.rides[ride.id] = ride
        return ride.model_copy()

    async def update_fields(self, ride_id: str, fields: dict[str, Any], conn: Any = None) -> Optional[Ride]:
        ride = self.store.rides.get(ride_id)
        if ride is None:
            return None
        data = {**ride.model_dump(), **fields, "updated_at": datetime.now(timezone.utc)}
        self.store.rides[ride_id] = Ride.model_validate(data)
        return self.store.rides[ride_id].model_copy()

    async def set_status(self, ride_id: str, status: RideStatus, conn: Any = None) -> Optional[Ride]:
        return await self.update_fields(ride_id, {"status": status})

    async def reserve_seats(self, ride_id: str, seats: int, conn: Any = None) -> Optional[int]:
        await asyncio.sleep(0)
        ride = self.store.rides.get(ride_id)
        if ride is None or ride.available_seats < seats:
            return None
        remaining = ride.available_seats - seats
        fields: dict[str, Any] = {"available_seats": remaining}
        if remaining == 0:
            fields["status"] = RideStatus.BOOKED
        self.store.rides[ride_id] = ride.model_copy(update=fields)
        return remaining

    def _matching(self, statuses, min_seats, date_from, date_to) -> list[Ride]:
        rides = [
            r for r in self.store.rides.values()
            if r.status in statuses
            and r.available_seats >= min_seats
            and date_from <= r.departure_time < date_to
        ]
        return sorted(rides, key=lambda r: (r.departure_time, r.id))

    async def search(self, statuses, min_seats, date_from, date_to, limit, offset) -> list[Ride]:
        return self._matching(statuses, min_seats, date_from, date_to)[offset:offset + limit]

    async def count_search(self, statuses, min_seats, date_from, date_to) -> int:
        return len(self._matching(statuses, min_seats, date_from, date_to))

    async def list_by_driver(self, driver_id: str) -> list[Ride]:
        rides = [r for r in self.store.rides.values() if r.driver_id == driver_id]
        return sorted(rides, key=lambda r: r.departure_time)

    async def list_booked_by_passenger(self, passenger_id: str) -> list[Ride]:
        ride_ids = {
            b.ride_id for b in self.store.bookings.values()
            if b.passenger_id == passenger_id and b.status in SEAT_HOLDING
        }
        return sorted((self.store.rides[i] for i in ride_ids if i in self.store.rides),
                      key=lambda r: r.departure_time)

    async def delete(self, ride_id: str, conn: Any = None) -> None:
        self.store.rides.pop(ride_id, None)


# =============================================================================
# ЗАЯВКИ
# =============================================================================

class FakeBookingRepository(_FakeRepository):

    async def get_by_id(self, request_id: str, conn: Any = None) -> Optional[BookingRequest]:
        booking = self.store.bookings.get(request_id)
        return booking.model_copy() if booking else None

    async def get_for_update(self, request_id: str, conn: Any) -> Optional[BookingRequest]:
        await asyncio.sleep(0)
        return await self.get_by_id(request_id)

    async def get_by_ride_and_passenger(
        self, ride_id: str, passenger_id: str, conn: Any = None,
    ) -> Optional[BookingRequest]:
        for booking in self.store.bookings.values():
            if booking.ride_id == ride_id and booking.passenger_id == passenger_id:
                return booking.model_copy()
        return None

    async def get_accepted_for_update(self, ride_id: str, passenger_id: str, conn: Any) -> Optional[BookingRequest]:
        booking = await self.get_by_ride_and_passenger(ride_id, passenger_id)
        return booking if booking and booking.status in SEAT_HOLDING else None

    async def create(self, ride_id: str, passenger_id: str, passenger_count: int, conn: Any = None) -> BookingRequest:
        return self.store.add_booking(ride_id, passenger_id, passenger_count).model_copy()

    async def set_status(self, request_id: str, status: BookingStatus, conn: Any = None) -> Optional[BookingRequest]:
        booking = self.store.bookings.get(request_id)
        if booking is None:
            return None
        self.store.bookings[request_id] = booking.model_copy(update={"status": status})
        return self.store.bookings[request_id].model_copy()

    async def reject_pending_for_ride(
        self, ride_id: str, except_id: str | None = None, conn: Any = None,
    ) -> list[BookingRequest]:
        rejected = []
        for booking in list(self.store.bookings.values()):
            if booking.ride_id == ride_id and booking.status == BookingStatus.PENDING and booking.id != except_id:
                rejected.append(await self.set_status(booking.id, BookingStatus.REJECTED))
        return rejected

    async def list_by_ride(
        self, ride_id: str, statuses: list[BookingStatus] | None = None, conn: Any = None,
    ) -> list[BookingRequest]:
        return [
            b.model_copy() for b in self.store.bookings.values()
            if b.ride_id == ride_id and (statuses is None or b.status in statuses)
        ]

    async def list_for_driver(self, driver_id: str) -> list[BookingRequest]:
        driver_rides = {r.id for r in self.store.rides.values() if r.driver_id == driver_id}
        return [b.model_copy() for b in self.store.bookings.values() if b.ride_id in driver_rides]

    async def list_by_passenger(self, passenger_id: str) -> list[BookingRequest]:
        return [b.model_copy() for b in self.store.bookings.values() if b.passenger_id == passenger_id]

    async def delete_by_ride(self, ride_id: str, conn: Any = None) -> None:
        for booking_id in [b.id for b in self.store.bookings.values() if b.ride_id == ride_id]:
            del self.store.bookings[booking_id]


# =============================================================================
# ПЛАТЕЖИ И ВЫПЛАТЫ
# =============================================================================

class FakePaymentRepository(_FakeRepository):

    async def get_by_id(self, payment_id: str, conn: Any = None) -> Optional[Payment]:
        payment = self.store.payments.get(payment_id)
        return payment.model_copy() if payment else None

    async def get_for_update(self, payment_id: str, conn: Any) -> Optional[Payment]:
        return await self.get_by_id(payment_id)

    async def get_by_gateway_id(self, gateway_payment_id: str, conn: Any = None) -> Optional[Payment]:
        for payment in self.store.payments.values():
            if payment.gateway_payment_id == gateway_payment_id:
                return payment.model_copy()
        return None

    async def find_active(self, ride_id: str, user_id: str, conn: Any = None) -> Optional[Payment]:
        for payment in self.store.payments.values():
            if (
                payment.ride_id == ride_id
                and payment.user_id == user_id
                and payment.status not in INACTIVE_PAYMENT_STATUSES
            ):
                return payment.model_copy()
        return None

    async def create(
        self,
        ride_id: str,
        user_id: str,
        amount: int,
        commission: int,
        driver_amount: int,
        currency: str,
        payment_method: PaymentMethod,
        status: str,
        is_paid: bool,
        gateway_payment_id: str | None = None,
        conn: Any = None,
    ) -> Payment:
        payment = Payment(
            id=self.store.next_id("payment"),
            ride_id=ride_id,
            user_id=user_id,
            gateway_payment_id=gateway_payment_id,
            amount=amount,
            commission=commission,
            driver_amount=driver_amount,
            currency=currency,
            payment_method=payment_method,
            status=status,
            is_paid=is_paid,
            created_at=datetime.now(timezone.utc),
        )
        self.store.payments[payment.id] = payment
        return payment.model_copy()

    async def update_status(self, payment_id: str, status: str, is_paid: bool, conn: Any = None) -> Optional[Payment]:
        payment = self.store.payments.get(payment_id)
        if payment is None:
            return None
        self.store.payments[payment_id] = payment.model_copy(update={"status": status, "is_paid": is_paid})
        return self.store.payments[payment_id].model_copy()

    async def update_status_by_gateway_id(
        self, gateway_payment_id: str, status: str, is_paid: bool, conn: Any = None,
    ) -> Optional[Payment]:
        payment = await self.get_by_gateway_id(gateway_payment_id)
        if payment is None:
            return None
        return await self.update_status(payment.id, status, is_paid)

    async def any_paid_for_ride(self, ride_id: str, conn: Any = None) -> bool:
        return any(p.ride_id == ride_id and p.is_paid for p in self.store.payments.values())

    async def list_by_ride(self, ride_id: str, conn: Any = None) -> list[Payment]:
        return [p.model_copy() for p in self.store.payments.values() if p.ride_id == ride_id]

    async def delete_by_ride(self, ride_id: str, conn: Any = None) -> None:
        for payment_id in [p.id for p in self.store.payments.values() if p.ride_id == ride_id]:
            del self.store.payments[payment_id]

    async def list_by_user(self, user_id: str, limit: int, offset: int) -> list[PaymentHistoryItem]:
        items = []
        for payment in self.store.payments.values():
            if payment.user_id != user_id:
                continue
            ride = self.store.rides.get(payment.ride_id)
            items.append(PaymentHistoryItem(
                **payment.model_dump(),
                start_location=ride.start_location if ride else None,
                end_location=ride.end_location if ride else None,
            ))
        return items[offset:offset + limit]

    async def count_by_user(self, user_id: str) -> int:
        return sum(1 for p in self.store.payments.values() if p.user_id == user_id)

    async def driver_earnings(self, driver_id: str, conn: Any = None) -> int:
        driver_rides = {r.id for r in self.store.rides.values() if r.driver_id == driver_id}
        return sum(
            p.driver_amount for p in self.store.payments.values()
            if p.ride_id in driver_rides
            and p.status == PaymentStatus.SUCCEEDED.value
            and p.is_paid
            and p.payment_method != PaymentMethod.CASH
        )


class FakePayoutRepository(_FakeRepository):

    async def create(
        self,
        user_id: str,
        gateway_payout_id: str,
        amount: int,
        currency: str,
        status: str,
        conn: Any = None,
    ) -> Payout:
        payout = Payout(
            id=self.store.next_id("payout"),
            user_id=user_id,
            gateway_payout_id=gateway_payout_id,
            amount=amount,
            currency=currency,
            status=status,
            created_at=datetime.now(timezone.utc),
        )
        self.store.payouts[payout.id] = payout
        return payout.model_copy()

    async def update_status_by_gateway_id(self, gateway_payout_id: str, status: str, conn: Any = None) -> Optional[Payout]:
        for payout in self.store.payouts.values():
            if payout.gateway_payout_id == gateway_payout_id:
                self.store.payouts[payout.id] = payout.model_copy(update={"status": status})
                return self.store.payouts[payout.id].model_copy()
        return None

    async def reserved_total(self, user_id: str, conn: Any = None) -> int:
        return sum(
            p.amount for p in self.store.payouts.values()
            if p.user_id == user_id and p.status not in VOID_PAYOUT_STATUSES
        )

    async def list_by_user(self, user_id: str, limit: int, offset: int) -> list[Payout]:
        return [p for p in self.store.payouts.values() if p.user_id == user_id][offset:offset + limit]

    async def count_by_user(self, user_id: str) -> int:
        return sum(1 for p in self.store.payouts.values() if p.user_id == user_id)


# =============================================================================
# ДИАЛОГИ
# =============================================================================

class FakeConversationRepository(_FakeRepository):

    async def create_conversation(
        self, initiator_id: str, contact_id: str, ride_id: str | None = None, conn: Any = None,
    ) -> str:
        if initiator_id == contact_id:
            raise ValueError("Нельзя создать диалог с самим собой")
        participant_a, participant_b = ordered_pair(initiator_id, contact_id)
        for conversation in self.store.conversations.values():
            if (conversation.ride_id, conversation.participant_a, conversation.participant_b) == (
                ride_id, participant_a, participant_b,
            ):
                return conversation.id
        conversation = Conversation(
            id=self.store.next_id("conversation"),
            ride_id=ride_id,
            participant_a=participant_a,
            participant_b=participant_b,
        )
        self.store.conversations[conversation.id] = conversation
        return conversation.id

    async def list_for_user(self, user_id: str) -> list[Conversation]:
        return [
            c for c in self.store.conversations.values()
            if user_id in (c.participant_a, c.participant_b)
        ]

    async def delete_by_ride(self, ride_id: str, conn: Any = None) -> None:
        for conversation_id in [c.id for c in self.store.conversations.values() if c.ride_id == ride_id]:
            del self.store.conversations[conversation_id]


def repositories(store: FakeStore) -> dict[str, Any]:
    """Набор фейковых репозиториев для конструкторов сервисов."""
    return {
        "rides": FakeRideRepository(store),
        "bookings": FakeBookingRepository(store),
        "users": FakeUserRepository(store),
        "conversations": FakeConversationRepository(store),
    }


__all__ = [
    "FAKE_CONN",
    "FakeBookingRepository",
    "FakeConversationRepository",
    "FakeDatabase",
    "FakeStore",
    "FakePaymentRepository",
    "FakePayoutRepository",
    "FakeRideRepository",
    "FakeUserRepository",
    "repositories",
]
