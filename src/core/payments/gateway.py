# src/core/payments/gateway.py
"""
Клиент платёжного шлюза (Stripe-совместимый REST API).

Покупатели, аккаунты выплат водителей, списания с удержанием комиссии,
выплаты и проверка подписи вебхуков.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from src.common.constants import TypeMsg
from src.common.errors import UpstreamError, ValidationError
from src.common.logger import log_error, log_info


@dataclass
class GatewayCharge:
    """Результат списания."""
    id: str
    status: str


@dataclass
class GatewayPayout:
    """Результат выплаты."""
    id: str
    status: str


@dataclass
class GatewayCard:
    """Привязанный способ оплаты."""
    id: str
    type: str
    last4: str | None = None
    brand: str | None = None


@dataclass
class GatewayEvent:
    """Проверенное событие вебхука."""
    id: str
    type: str
    data: dict[str, Any] = field(default_factory=dict)


class PaymentGateway:
    """
    HTTP клиент платёжного шлюза.

    Ошибки сети и ответы с ошибкой превращаются в UpstreamError
    без повторов: повторную отправку решает вызывающая сторона.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        webhook_secret: str | None = None,
        webhook_tolerance: int | None = None,
        timeout: float | None = None,
    ) -> None:
        from src.config import settings

        payment_settings = settings.payments
        self._api_key = api_key if api_key is not None else payment_settings.GATEWAY_API_KEY
        self._webhook_secret = (
            webhook_secret if webhook_secret is not None else payment_settings.WEBHOOK_SECRET
        )
        self._webhook_tolerance = (
            webhook_tolerance if webhook_tolerance is not None else payment_settings.WEBHOOK_TOLERANCE_SECONDS
        )
        self._client = httpx.AsyncClient(
            base_url=base_url or payment_settings.GATEWAY_BASE_URL,
            timeout=timeout or payment_settings.GATEWAY_TIMEOUT,
        )

    async def close(self) -> None:
        """Закрывает HTTP клиент."""
        await self._client.aclose()

    async def _post(
        self,
        path: str,
        data: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """POST запрос в шлюз с form-кодированием."""
        if not self._api_key:
            await log_error("Ключ платёжного шлюза не настроен")
            raise UpstreamError("Платёжный шлюз не настроен")

        try:
            response = await self._client.post(
                path,
                data={k: str(v) for k, v in data.items() if v is not None},
                headers={"Authorization": f"Bearer {self._api_key}", **(headers or {})},
            )
        except httpx.HTTPError as e:
            await log_error(f"Платёжный шлюз недоступен ({path}): {e}")
            raise UpstreamError("Платёжный шлюз недоступен") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400:
            message = body.get("error", {}).get("message") if isinstance(body, dict) else None
            await log_error(f"Платёжный шлюз вернул {response.status_code} ({path}): {message}")
            raise UpstreamError(
                message or "Ошибка платёжного шлюза",
                details={"status_code": response.status_code},
            )
        return body

    # =========================================================================
    # АККАУНТЫ
    # =========================================================================

    async def create_customer(self, email: str, name: str) -> str:
        """Создаёт покупателя. Возвращает его ID."""
        body = await self._post("/customers", {"email": email, "name": name})
        await log_info(f"Создан покупатель в шлюзе: {body['id']}", type_msg=TypeMsg.INFO)
        return body["id"]

    async def create_connected_account(self, email: str) -> str:
        """Создаёт аккаунт выплат водителя. Возвращает его ID."""
        body = await self._post("/accounts", {
            "type": "express",
            "email": email,
            "capabilities[transfers][requested]": "true",
        })
        await log_info(f"Создан аккаунт выплат в шлюзе: {body['id']}", type_msg=TypeMsg.INFO)
        return body["id"]

    async def attach_payment_method(self, payment_method_id: str, customer_id: str) -> GatewayCard:
        """Привязывает способ оплаты к покупателю."""
        body = await self._post(
            f"/payment_methods/{payment_method_id}/attach",
            {"customer": customer_id},
        )
        card = body.get("card") or {}
        return GatewayCard(
            id=body["id"],
            type=body.get("type", "card"),
            last4=card.get("last4"),
            brand=card.get("brand"),
        )

    # =========================================================================
    # ДЕНЬГИ
    # =========================================================================

    async def charge(
        self,
        amount: int,
        currency: str,
        customer_id: str,
        payment_method_id: str,
        destination_account_id: str,
        application_fee: int,
    ) -> GatewayCharge:
        """
        Списание без участия пользователя (off-session).
        Комиссия удерживается как application fee, остаток уходит на аккаунт водителя.
        """
        body = await self._post("/payment_intents", {
            "amount": amount,
            "currency": currency,
            "customer": customer_id,
            "payment_method": payment_method_id,
            "off_session": "true",
            "confirm": "true",
            "application_fee_amount": application_fee,
            "transfer_data[destination]": destination_account_id,
        })
        return GatewayCharge(id=body["id"], status=body.get("status", "processing"))

    async def payout(self, amount: int, currency: str, destination_account_id: str) -> GatewayPayout:
        """Выплата с аккаунта водителя на его внешний счёт."""
        body = await self._post(
            "/payouts",
            {"amount": amount, "currency": currency},
            headers={"Stripe-Account": destination_account_id},
        )
        return GatewayPayout(id=body["id"], status=body.get("status", "pending"))

    # =========================================================================
    # ВЕБХУКИ
    # =========================================================================

    def verify_webhook(self, raw_body: bytes, signature_header: str | None) -> GatewayEvent:
        """
        Проверяет подпись вебхука и разбирает событие.

        Заголовок имеет вид "t=<unix>,v1=<hex>", подпись HMAC-SHA256
        считается от "<t>.<тело>" общим секретом.

        Raises:
            ValidationError: подпись отсутствует, неверна или устарела
        """
        if not self._webhook_secret:
            raise ValidationError("Секрет вебхука не настроен")
        if not signature_header:
            raise ValidationError("Отсутствует подпись вебхука")

        timestamp: str | None = None
        signatures: list[str] = []
        for part in signature_header.split(","):
            key, _, value = part.strip().partition("=")
            if key == "t":
                timestamp = value
            elif key == "v1":
                signatures.append(value)

        if timestamp is None or not signatures:
            raise ValidationError("Некорректный заголовок подписи вебхука")

        try:
            signed_at = int(timestamp)
        except ValueError:
            raise ValidationError("Некорректная метка времени вебхука") from None

        expected = hmac.new(
            self._webhook_secret.encode(),
            f"{timestamp}.".encode() + raw_body,
            hashlib.sha256,
        ).hexdigest()

        if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
            raise ValidationError("Невалидная подпись вебхука")

        if abs(time.time() - signed_at) > self._webhook_tolerance:
            raise ValidationError("Подпись вебхука устарела")

        try:
            payload = json.loads(raw_body)
            event = GatewayEvent(
                id=payload["id"],
                type=payload["type"],
                data=payload.get("data", {}).get("object", {}),
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise ValidationError("Некорректное тело вебхука") from e

        if not isinstance(event.data, dict):
            raise ValidationError("Объект события вебхука должен быть JSON-объектом")
        return event


def sign_webhook_payload(raw_body: bytes, secret: str, timestamp: int | None = None) -> str:
    """Формирует заголовок подписи для тела вебхука (локальная отладка и тесты)."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signature = hmac.new(secret.encode(), f"{timestamp}.".encode() + raw_body, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"
