# tests/services/test_payments_app.py
"""
Тесты HTTP слоя Payments Service.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from src.common.constants import PaymentMethod
from src.common.errors import BusinessRuleViolation, UpstreamError, ValidationError
from src.core.payments.models import (
    GatewayAccountResult,
    Payment,
    PaymentHistory,
    PaymentResult,
    Payout,
    PayoutResult,
    WebhookResult,
)
from src.services.payments.app import app
from src.services.payments.dependencies import get_payment_service

USER = {"X-User-Id": "alice"}


def make_payment(**fields) -> Payment:
    data = {
        "id": "pay-1",
        "ride_id": "ride-1",
        "user_id": "alice",
        "amount": 5900,
        "commission": 885,
        "driver_amount": 5015,
        "currency": "uah",
        "payment_method": PaymentMethod.CASH,
        "status": "pending",
        **fields,
    }
    return Payment(**data)


@pytest.fixture
def service() -> MagicMock:
    service = MagicMock()
    service.setup_customer = AsyncMock(return_value=GatewayAccountResult(gateway_id="cus_1", created=True))
    service.create_payment = AsyncMock(return_value=PaymentResult(payment=make_payment()))
    service.confirm_cash_payment = AsyncMock(
        return_value=PaymentResult(payment=make_payment(status="succeeded", is_paid=True))
    )
    service.payment_history = AsyncMock(return_value=PaymentHistory(payments=[], total=0))
    service.request_payout = AsyncMock(return_value=PayoutResult(
        payout=Payout(id="payout-1", user_id="driver", gateway_payout_id="po_1", amount=3000, currency="uah", status="pending"),
        balance=2015,
    ))
    service.handle_webhook = AsyncMock(return_value=WebhookResult(
        event_id="evt_1", event_type="payment_intent.succeeded", handled=True,
    ))
    return service


@pytest.fixture
def client(service: MagicMock) -> TestClient:
    app.dependency_overrides[get_payment_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealth:
    def test_not_initialized(self) -> None:
        response = TestClient(app).get("/health")

        assert response.json()["service"] == "payments_service"
        assert response.json()["status"] == "degraded"


class TestPaymentRoutes:
    """Тесты маршрутов платежей."""

    def test_requires_user(self, client: TestClient) -> None:
        response = client.post("/api/v1/payments", json={"ride_id": "ride-1", "method": "cash"})

        assert response.status_code == 401

    def test_setup_customer(self, client: TestClient, service: MagicMock) -> None:
        response = client.post("/api/v1/payments/setup-customer", headers=USER)

        assert response.json() == {"success": True, "gateway_id": "cus_1", "created": True}
        service.setup_customer.assert_awaited_once_with("alice")

    def test_create_payment(self, client: TestClient, service: MagicMock) -> None:
        response = client.post(
            "/api/v1/payments",
            json={"ride_id": "ride-1", "method": "google_pay", "gateway_payment_method_id": "pm_1"},
            headers=USER,
        )

        assert response.status_code == 201
        service.create_payment.assert_awaited_once_with(
            payer_id="alice",
            ride_id="ride-1",
            method="google_pay",
            gateway_payment_method_id="pm_1",
        )

    def test_unsupported_method(self, client: TestClient, service: MagicMock) -> None:
        service.create_payment.side_effect = ValidationError("Неподдерживаемый способ оплаты: bitcoin")

        response = client.post("/api/v1/payments", json={"ride_id": "ride-1", "method": "bitcoin"}, headers=USER)

        assert response.status_code == 400
        assert response.json()["error_code"] == "validation_error"

    def test_gateway_failure(self, client: TestClient, service: MagicMock) -> None:
        """Проверяет ответ 502 при ошибке шлюза."""
        service.create_payment.side_effect = UpstreamError("Your card was declined.", details={"status_code": 402})

        response = client.post("/api/v1/payments", json={"ride_id": "ride-1", "method": "apple_pay"}, headers=USER)

        assert response.status_code == 502
        assert response.json() == {
            "error_code": "upstream_error",
            "message": "Your card was declined.",
            "details": {"status_code": 402},
        }

    def test_confirm_cash(self, client: TestClient, service: MagicMock) -> None:
        response = client.post("/api/v1/payments/pay-1/confirm-cash", headers={"X-User-Id": "driver"})

        assert response.json()["payment"]["is_paid"] is True
        service.confirm_cash_payment.assert_awaited_once_with("driver", "pay-1")

    def test_history_pagination(self, client: TestClient, service: MagicMock) -> None:
        client.get("/api/v1/payments/history?limit=5&offset=10", headers=USER)

        service.payment_history.assert_awaited_once_with("alice", 5, 10)

    def test_history_limit_bounds(self, client: TestClient) -> None:
        response = client.get("/api/v1/payments/history?limit=0", headers=USER)

        assert response.status_code == 422


class TestPayoutRoutes:
    def test_request_payout(self, client: TestClient, service: MagicMock) -> None:
        response = client.post("/api/v1/payouts", json={"amount": "30.00"}, headers={"X-User-Id": "driver"})

        assert response.status_code == 201
        assert response.json()["balance"] == 2015
        service.request_payout.assert_awaited_once_with("driver", Decimal("30.00"), None)

    def test_insufficient_balance(self, client: TestClient, service: MagicMock) -> None:
        service.request_payout.side_effect = BusinessRuleViolation(
            "Недостаточно средств", details={"requested": 6000, "balance": 5015},
        )

        response = client.post("/api/v1/payouts", json={"amount": "60.00"}, headers={"X-User-Id": "driver"})

        assert response.status_code == 400
        assert response.json()["details"] == {"requested": 6000, "balance": 5015}


class TestWebhookRoute:
    """Тесты вебхука шлюза."""

    def test_passes_raw_body_and_signature(self, client: TestClient, service: MagicMock) -> None:
        body = b'{"id": "evt_1", "type": "payment_intent.succeeded"}'

        response = client.post(
            "/api/v1/webhooks/gateway",
            content=body,
            headers={"Gateway-Signature": "t=1,v1=abc", "Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json()["handled"] is True
        service.handle_webhook.assert_awaited_once_with(body, "t=1,v1=abc")

    def test_no_user_header_needed(self, client: TestClient, service: MagicMock) -> None:
        service.handle_webhook.side_effect = ValidationError("Неверная подпись вебхука")

        response = client.post("/api/v1/webhooks/gateway", content=b"{}")

        assert response.status_code == 400
        service.handle_webhook.assert_awaited_once_with(b"{}", None)
