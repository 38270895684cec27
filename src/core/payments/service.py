# src/core/payments/service.py
"""
Сервис расчётов.
Платежи за поездки (наличные и через шлюз), подтверждение наличных,
выплаты водителям и сверка статусов по вебхукам шлюза.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

import asyncpg

from src.common.constants import BookingStatus, PaymentMethod, PaymentStatus, TypeMsg
from src.common.errors import (
    AuthorizationError,
    BusinessRuleViolation,
    NotFoundError,
    ValidationError,
)
from src.common.logger import log_error, log_info
from src.core.bookings.repository import BookingRepository
from src.core.payments.gateway import GatewayEvent, PaymentGateway
from src.core.payments.models import (
    GatewayAccountResult,
    Payment,
    PaymentHistory,
    PaymentResult,
    PayoutHistory,
    PayoutResult,
    WebhookResult,
    split_amount,
    to_minor_units,
)
from src.core.payments.repository import PaymentRepository, PayoutRepository
from src.core.rides.repository import RideRepository
from src.core.users.models import SavedPaymentMethod, UserProfile
from src.core.users.repository import UserRepository
from src.infra.database import DatabaseManager
from src.infra.event_bus import DomainEvent, EventBus, EventTypes
from src.infra.redis_client import RedisClient

# Событие шлюза -> (статус платежа, оплачен ли)
PAYMENT_EVENT_STATUSES: dict[str, tuple[PaymentStatus, bool]] = {
    "payment_intent.succeeded": (PaymentStatus.SUCCEEDED, True),
    "payment_intent.payment_failed": (PaymentStatus.FAILED, False),
    "payment_intent.canceled": (PaymentStatus.CANCELED, False),
    "charge.refunded": (PaymentStatus.REFUNDED, False),
}


class PaymentService:
    """
    Сервис расчётов.

    Ответственности:
    - Создание платежей (наличные или списание через шлюз)
    - Подтверждение наличной оплаты водителем
    - Выплаты водителям в пределах заработка
    - Идемпотентная обработка вебхуков шлюза
    """

    def __init__(
        self,
        db: DatabaseManager,
        gateway: PaymentGateway,
        redis: RedisClient | None = None,
        event_bus: EventBus | None = None,
        payments: PaymentRepository | None = None,
        payouts: PayoutRepository | None = None,
        rides: RideRepository | None = None,
        bookings: BookingRepository | None = None,
        users: UserRepository | None = None,
        commission_rate: float | None = None,
        currency: str | None = None,
    ) -> None:
        from src.config import settings

        self._db = db
        self._gateway = gateway
        self._redis = redis
        self._event_bus = event_bus
        self._payments = payments or PaymentRepository(db)
        self._payouts = payouts or PayoutRepository(db)
        self._rides = rides or RideRepository(db)
        self._bookings = bookings or BookingRepository(db)
        self._users = users or UserRepository(db)
        self._commission_rate = (
            commission_rate if commission_rate is not None else settings.payments.PLATFORM_COMMISSION_RATE
        )
        self._currency = currency or settings.payments.CURRENCY
        self._webhook_ttl = settings.redis_ttl.WEBHOOK_EVENT_TTL

    # =========================================================================
    # АККАУНТЫ ШЛЮЗА
    # =========================================================================

    async def setup_customer(self, user_id: str) -> GatewayAccountResult:
        """Создаёт покупателя в шлюзе, если его ещё нет."""
        user = await self._get_user(user_id)
        existing = user.gateway_customer_id
        customer_id = await self._ensure_customer(user)
        return GatewayAccountResult(gateway_id=customer_id, created=existing is None)

    async def setup_driver_account(self, user_id: str) -> GatewayAccountResult:
        """Создаёт аккаунт выплат водителя, если его ещё нет."""
        user = await self._get_user(user_id)
        existing = user.gateway_account_id
        account_id = await self._ensure_account(user)
        return GatewayAccountResult(gateway_id=account_id, created=existing is None)

    async def add_payment_method(self, user_id: str, gateway_payment_method_id: str) -> SavedPaymentMethod:
        """Привязывает способ оплаты к покупателю и сохраняет его."""
        user = await self._get_user(user_id)
        customer_id = await self._ensure_customer(user)
        card = await self._gateway.attach_payment_method(gateway_payment_method_id, customer_id)
        saved = await self._users.add_payment_method(user_id, card.id, card.type, card.last4, card.brand)
        await log_info(f"Способ оплаты {saved.id} сохранён для {user_id}", type_msg=TypeMsg.INFO)
        return saved

    async def list_payment_methods(self, user_id: str) -> list[SavedPaymentMethod]:
        return await self._users.list_payment_methods(user_id)

    async def _get_user(self, user_id: str) -> UserProfile:
        user = await self._users.get_by_id(user_id)
        if user is None:
            raise NotFoundError(f"Пользователь {user_id} не найден")
        return user

    async def _ensure_customer(self, user: UserProfile) -> str:
        """
        ID покупателя в шлюзе, создаётся при первом обращении.
        Сохраняется вне транзакции вызывающей операции.
        """
        if user.gateway_customer_id:
            return user.gateway_customer_id
        created = await self._gateway.create_customer(user.email, user.name)
        return await self._users.set_gateway_customer_id(user.id, created)

    async def _ensure_account(self, user: UserProfile) -> str:
        """ID аккаунта выплат водителя, создаётся при первом обращении."""
        if user.gateway_account_id:
            return user.gateway_account_id
        created = await self._gateway.create_connected_account(user.email)
        return await self._users.set_gateway_account_id(user.id, created)

    async def _prepare_gateway_parties(self, payer_id: str, ride_id: str) -> tuple[str, str]:
        """
        Покупатель пассажира и аккаунт водителя для безналичного платежа.
        Выполняется до открытия транзакции платежа; проверки
        повторяются внутри транзакции под блокировкой.
        """
        ride = await self._rides.get_by_id(ride_id)
        if ride is None:
            raise NotFoundError(f"Поездка {ride_id} не найдена")

        booking = await self._bookings.get_by_ride_and_passenger(ride_id, payer_id)
        if booking is None or booking.status not in (BookingStatus.ACCEPTED, BookingStatus.CONFIRMED):
            raise BusinessRuleViolation("Оплата доступна только по принятой заявке")

        payer = await self._get_user(payer_id)
        driver = await self._get_user(ride.driver_id)
        return await self._ensure_customer(payer), await self._ensure_account(driver)

    # =========================================================================
    # ПЛАТЕЖИ
    # =========================================================================

    async def create_payment(
        self,
        payer_id: str,
        ride_id: str,
        method: str,
        gateway_payment_method_id: str | None = None,
    ) -> PaymentResult:
        """
        Создаёт платёж за поездку.

        Наличные: платёж pending, не оплачен, шлюз не вызывается.
        Безналичные: списание через шлюз с удержанием комиссии;
        ошибка шлюза откатывает транзакцию.

        Raises:
            BusinessRuleViolation: неизвестный способ, нет токена, нет стоимости,
                нет принятой заявки, уже есть активный платёж
            NotFoundError: поездка не найдена
            UpstreamError: ошибка шлюза
        """
        try:
            payment_method = PaymentMethod(method)
        except ValueError:
            raise BusinessRuleViolation(f"Неизвестный способ оплаты: {method}") from None

        customer_id: str | None = None
        account_id: str | None = None
        if payment_method.is_digital:
            if not gateway_payment_method_id:
                raise BusinessRuleViolation("Не передан способ оплаты шлюза")
            customer_id, account_id = await self._prepare_gateway_parties(payer_id, ride_id)

        async with self._db.transaction() as conn:
            ride = await self._rides.get_by_id(ride_id, conn=conn)
            if ride is None:
                raise NotFoundError(f"Поездка {ride_id} не найдена")
            if ride.fare is None:
                raise BusinessRuleViolation("Стоимость поездки не рассчитана")

            booking = await self._bookings.get_accepted_for_update(ride_id, payer_id, conn)
            if booking is None:
                raise BusinessRuleViolation("Оплата доступна только по принятой заявке")

            if await self._payments.find_active(ride_id, payer_id, conn=conn) is not None:
                raise BusinessRuleViolation("По этой поездке уже есть активный платёж")

            split = split_amount(ride.fare, self._commission_rate)
            charge_id: str | None = None

            if payment_method.is_digital:
                charge = await self._gateway.charge(
                    amount=split.amount,
                    currency=self._currency,
                    customer_id=customer_id,
                    payment_method_id=gateway_payment_method_id,
                    destination_account_id=account_id,
                    application_fee=split.commission,
                )
                charge_id = charge.id
                status = charge.status
            else:
                status = PaymentStatus.PENDING.value

            try:
                payment = await self._payments.create(
                    ride_id=ride_id,
                    user_id=payer_id,
                    amount=split.amount,
                    commission=split.commission,
                    driver_amount=split.driver_amount,
                    currency=self._currency,
                    payment_method=payment_method,
                    status=status,
                    is_paid=status == PaymentStatus.SUCCEEDED.value,
                    gateway_payment_id=charge_id,
                    conn=conn,
                )
            except asyncpg.UniqueViolationError:
                raise BusinessRuleViolation("По этой поездке уже есть активный платёж") from None

        await log_info(
            f"Платёж {payment.id}: {payment_method.value}, ride={ride_id}, payer={payer_id}, "
            f"amount={payment.amount}, status={payment.status}",
            type_msg=TypeMsg.INFO,
        )
        await self._publish(EventTypes.PAYMENT_CREATED, {
            "payment_id": payment.id,
            "ride_id": ride_id,
            "user_id": payer_id,
            "amount": payment.amount,
            "status": payment.status,
        })
        return PaymentResult(payment=payment)

    async def confirm_cash_payment(self, driver_id: str, payment_id: str) -> PaymentResult:
        """Водитель подтверждает получение наличных."""
        async with self._db.transaction() as conn:
            payment = await self._payments.get_for_update(payment_id, conn)
            if payment is None:
                raise NotFoundError(f"Платёж {payment_id} не найден")
            if payment.payment_method != PaymentMethod.CASH:
                raise BusinessRuleViolation("Подтвердить можно только оплату наличными")

            ride = await self._rides.get_by_id(payment.ride_id, conn=conn)
            if ride is None:
                raise NotFoundError(f"Поездка {payment.ride_id} не найдена")
            if ride.driver_id != driver_id:
                await log_info(
                    f"Пользователь {driver_id} пытался подтвердить платёж {payment_id} чужой поездки",
                    type_msg=TypeMsg.WARNING,
                )
                raise AuthorizationError("Подтвердить оплату может только водитель поездки")
            if payment.is_paid:
                raise BusinessRuleViolation("Платёж уже подтверждён")

            updated = await self._payments.update_status(
                payment_id, PaymentStatus.SUCCEEDED.value, True, conn=conn,
            )

        await log_info(f"Наличная оплата {payment_id} подтверждена водителем {driver_id}", type_msg=TypeMsg.INFO)
        await self._publish(EventTypes.PAYMENT_STATUS_CHANGED, {
            "payment_id": payment_id,
            "status": updated.status,
            "is_paid": True,
        })
        return PaymentResult(payment=updated)

    # =========================================================================
    # ВЫПЛАТЫ
    # =========================================================================

    async def get_balance(self, driver_id: str, conn: asyncpg.Connection | None = None) -> int:
        """
        Доступный баланс водителя в минимальных единицах:
        заработок по оплаченным безналичным платежам минус
        выплаты, кроме неуспешных и отменённых.
        """
        earnings = await self._payments.driver_earnings(driver_id, conn=conn)
        reserved = await self._payouts.reserved_total(driver_id, conn=conn)
        return earnings - reserved

    async def request_payout(
        self,
        driver_id: str,
        amount: Decimal,
        currency: Optional[str] = None,
    ) -> PayoutResult:
        """
        Выплата водителю.

        Args:
            driver_id: ID водителя
            amount: Сумма в основных единицах
            currency: Валюта (по умолчанию из конфига)

        Raises:
            ValidationError: сумма не положительная
            NotFoundError: водитель или его аккаунт выплат не найдены
            BusinessRuleViolation: сумма больше баланса
            UpstreamError: ошибка шлюза
        """
        amount_minor = to_minor_units(Decimal(amount))
        if amount_minor <= 0:
            raise ValidationError("Сумма выплаты должна быть больше нуля")
        currency = currency or self._currency

        async with self._db.transaction() as conn:
            driver = await self._users.get_for_update(driver_id, conn)
            if driver is None:
                raise NotFoundError(f"Пользователь {driver_id} не найден")
            if not driver.gateway_account_id:
                raise NotFoundError("У водителя нет аккаунта для выплат")

            balance = await self.get_balance(driver_id, conn=conn)
            if amount_minor > balance:
                await log_info(
                    f"Выплата отклонена: driver={driver_id}, запрошено {amount_minor}, баланс {balance}",
                    type_msg=TypeMsg.WARNING,
                )
                raise BusinessRuleViolation(
                    "Сумма выплаты превышает доступный баланс",
                    details={"requested": amount_minor, "balance": balance},
                )

            gateway_payout = await self._gateway.payout(amount_minor, currency, driver.gateway_account_id)
            payout = await self._payouts.create(
                user_id=driver_id,
                gateway_payout_id=gateway_payout.id,
                amount=amount_minor,
                currency=currency,
                status=gateway_payout.status,
                conn=conn,
            )

        await log_info(
            f"Выплата {payout.id}: driver={driver_id}, amount={amount_minor} {currency}, status={payout.status}",
            type_msg=TypeMsg.INFO,
        )
        await self._publish(EventTypes.PAYOUT_REQUESTED, {
            "payout_id": payout.id,
            "user_id": driver_id,
            "amount": amount_minor,
            "status": payout.status,
        })
        return PayoutResult(payout=payout, balance=balance - amount_minor)

    # =========================================================================
    # ВЕБХУКИ
    # =========================================================================

    async def handle_webhook(self, raw_body: bytes, signature: str | None) -> WebhookResult:
        """
        Применяет событие шлюза.

        Подпись проверяется до любых изменений. Обновление идёт
        поиском по ID шлюза, поэтому повторная доставка безопасна.
        Неизвестные типы событий игнорируются.

        Raises:
            ValidationError: подпись не прошла проверку
            NotFoundError: нет записи с ID из события (шлюз повторит доставку)
        """
        event = self._gateway.verify_webhook(raw_body, signature)

        if await self._already_processed(event.id):
            await log_info(f"Вебхук {event.id} уже обработан, пропуск", type_msg=TypeMsg.DEBUG)
            return WebhookResult(event_id=event.id, event_type=event.type, handled=False)

        if event.type in PAYMENT_EVENT_STATUSES:
            await self._apply_payment_event(event)
        elif event.type.startswith("payout."):
            await self._apply_payout_event(event)
        else:
            await log_info(f"Вебхук {event.id}: тип {event.type} не обрабатывается", type_msg=TypeMsg.DEBUG)
            return WebhookResult(event_id=event.id, event_type=event.type, handled=False)

        await self._mark_processed(event.id)
        return WebhookResult(event_id=event.id, event_type=event.type, handled=True)

    async def _apply_payment_event(self, event: GatewayEvent) -> Payment:
        status, is_paid = PAYMENT_EVENT_STATUSES[event.type]
        gateway_id = event.data.get("payment_intent") if event.type == "charge.refunded" else event.data.get("id")
        if not gateway_id:
            raise ValidationError(f"Вебхук {event.id} не содержит ID платежа")

        payment = await self._payments.update_status_by_gateway_id(gateway_id, status.value, is_paid)
        if payment is None:
            await log_error(f"Вебхук {event.id}: платёж {gateway_id} не найден")
            raise NotFoundError(f"Платёж {gateway_id} не найден")

        await log_info(
            f"Вебхук {event.type}: платёж {payment.id} → {status.value}",
            type_msg=TypeMsg.INFO,
        )
        await self._publish(EventTypes.PAYMENT_STATUS_CHANGED, {
            "payment_id": payment.id,
            "status": status.value,
            "is_paid": is_paid,
        })
        return payment

    async def _apply_payout_event(self, event: GatewayEvent) -> None:
        gateway_id = event.data.get("id")
        status = event.data.get("status")
        if not gateway_id or not status:
            raise ValidationError(f"Вебхук {event.id} не содержит ID или статус выплаты")

        payout = await self._payouts.update_status_by_gateway_id(gateway_id, status)
        if payout is None:
            await log_error(f"Вебхук {event.id}: выплата {gateway_id} не найдена")
            raise NotFoundError(f"Выплата {gateway_id} не найдена")

        await log_info(f"Вебхук {event.type}: выплата {payout.id} → {status}", type_msg=TypeMsg.INFO)
        await self._publish(EventTypes.PAYOUT_STATUS_CHANGED, {"payout_id": payout.id, "status": status})

    async def _already_processed(self, event_id: str) -> bool:
        if self._redis is None:
            return False
        try:
            return await self._redis.exists(f"webhook:{event_id}")
        except Exception as e:
            await log_error(f"Redis недоступен при проверке вебхука {event_id}: {e}")
            return False

    async def _mark_processed(self, event_id: str) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.set_if_absent(f"webhook:{event_id}", "1", ttl=self._webhook_ttl)
        except Exception as e:
            await log_error(f"Не удалось запомнить вебхук {event_id}: {e}")

    # =========================================================================
    # ИСТОРИЯ
    # =========================================================================

    async def payment_history(self, user_id: str, limit: int = 10, offset: int = 0) -> PaymentHistory:
        """Платежи пользователя с маршрутом поездки."""
        payments = await self._payments.list_by_user(user_id, limit, offset)
        total = await self._payments.count_by_user(user_id)
        return PaymentHistory(payments=payments, total=total)

    async def payout_history(self, user_id: str, limit: int = 10, offset: int = 0) -> PayoutHistory:
        """Выплаты водителя."""
        payouts = await self._payouts.list_by_user(user_id, limit, offset)
        total = await self._payouts.count_by_user(user_id)
        return PayoutHistory(payouts=payouts, total=total)

    async def _publish(self, event_type: str, payload: dict[str, Any]) -> None:
        if self._event_bus is not None:
            await self._event_bus.publish(DomainEvent(event_type=event_type, payload=payload))
