"""Integration tests for the pickup token endpoints."""

from __future__ import annotations

from datetime import timedelta

import pytest
from django.core import mail
from django.utils import timezone
from freezegun import freeze_time

from helpers import make_order_dto
from modules.orders.constants import OrderStatus
from modules.orders.models import Order

pytestmark = pytest.mark.integration

# Mid-morning in the canteen, well away from civil midnight
FROZEN_NOW = "2024-03-01T09:30:00+05:30"


@pytest.fixture(autouse=True)
def frozen_clock():
    with freeze_time(FROZEN_NOW):
        yield


def _ready(order_service, order, now):
    order_service.transition(order.id, OrderStatus.PREPARING, now=now)
    return order_service.transition(order.id, OrderStatus.READY, now=now)


@pytest.fixture()
def ready_order(order_service):
    now = timezone.now()
    order, _ = order_service.create_order(make_order_dto("pay_ready"), now=now)
    return _ready(order_service, order, now)


class TestTokenLookup:
    def test_public_lookup_with_queue_position(self, api_client, order_service):
        now = timezone.now()
        order_service.create_order(make_order_dto("pay_a"), now=now - timedelta(seconds=2))
        second, _ = order_service.create_order(make_order_dto("pay_b"), now=now)

        response = api_client.get(f"/api/v1/tokens/{second.token}/")
        assert response.status_code == 200
        data = response.json()
        assert data["token"] == "T-002"
        assert data["status"] == "pending"
        assert data["queue_position"] == 2
        assert "customer_email" not in data

    def test_unknown_token(self, api_client):
        response = api_client.get("/api/v1/tokens/T-404/")
        assert response.status_code == 404

    def test_yesterdays_token(self, api_client, order_service):
        order, _ = order_service.create_order(
            make_order_dto(), now=timezone.now() - timedelta(days=1)
        )
        response = api_client.get(f"/api/v1/tokens/{order.token}/")
        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "token_expired"


class TestFindToken:
    def test_find_by_email(self, api_client, ready_order):
        response = api_client.post(
            "/api/v1/tokens/find/", {"email": "aarav@example.com"}, format="json"
        )
        assert response.status_code == 200
        assert response.json()["token"] == ready_order.token

    def test_requires_email_or_phone(self, api_client):
        response = api_client.post("/api/v1/tokens/find/", {}, format="json")
        assert response.status_code == 400
        assert response.json()["type"] == "validation_error"

    def test_nothing_found(self, api_client):
        response = api_client.post("/api/v1/tokens/find/", {"phone": "9000000000"}, format="json")
        assert response.status_code == 404


class TestRedeem:
    def test_staff_redeems_ready_token(self, staff_client, ready_order):
        response = staff_client.post(f"/api/v1/tokens/{ready_order.token}/redeem/")
        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert Order.objects.get(id=ready_order.id).status == OrderStatus.COMPLETED

    def test_redeem_sends_receipt(self, staff_client, ready_order):
        staff_client.post(f"/api/v1/tokens/{ready_order.token}/redeem/")
        assert [message.subject for message in mail.outbox] == [
            f"Picked up: token {ready_order.token}"
        ]

    def test_second_scan_is_409(self, staff_client, ready_order):
        staff_client.post(f"/api/v1/tokens/{ready_order.token}/redeem/")
        response = staff_client.post(f"/api/v1/tokens/{ready_order.token}/redeem/")
        assert response.status_code == 409
        assert response.json()["errors"][0]["code"] == "already_redeemed"

    def test_not_ready_is_409(self, staff_client, order_service):
        order, _ = order_service.create_order(make_order_dto(), now=timezone.now())
        response = staff_client.post(f"/api/v1/tokens/{order.token}/redeem/")
        assert response.status_code == 409
        assert response.json()["errors"][0]["code"] == "not_ready"

    def test_stale_pickup_is_400(self, staff_client, order_service):
        yesterday = timezone.now() - timedelta(days=1)
        order, _ = order_service.create_order(make_order_dto(), now=yesterday)
        order = _ready(order_service, order, yesterday)

        response = staff_client.post(f"/api/v1/tokens/{order.token}/redeem/")
        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "token_expired"
        assert Order.objects.get(id=order.id).status == OrderStatus.READY

    def test_customers_cannot_redeem(self, api_client, ready_order):
        response = api_client.post(f"/api/v1/tokens/{ready_order.token}/redeem/")
        assert response.status_code == 401


class TestValidateToken:
    def test_ready_token_is_redeemable(self, api_client, ready_order):
        response = api_client.get(f"/api/v1/tokens/{ready_order.token}/validate/")
        assert response.status_code == 200
        data = response.json()
        assert data["redeemable"] is True
        assert data["status"] == "ready"
        assert "customer_email" not in data

    def test_check_does_not_redeem(self, api_client, ready_order):
        api_client.get(f"/api/v1/tokens/{ready_order.token}/validate/")
        api_client.get(f"/api/v1/tokens/{ready_order.token}/validate/")
        assert Order.objects.get(id=ready_order.id).status == OrderStatus.READY
        assert mail.outbox == []

    def test_pending_token_is_not_ready(self, api_client, order_service):
        order, _ = order_service.create_order(make_order_dto(), now=timezone.now())
        response = api_client.get(f"/api/v1/tokens/{order.token}/validate/")
        assert response.status_code == 409
        assert response.json()["errors"][0]["code"] == "not_ready"

    def test_redeemed_token(self, api_client, staff_client, ready_order):
        staff_client.post(f"/api/v1/tokens/{ready_order.token}/redeem/")
        response = api_client.get(f"/api/v1/tokens/{ready_order.token}/validate/")
        assert response.status_code == 409
        assert response.json()["errors"][0]["code"] == "already_redeemed"

    def test_yesterdays_token(self, api_client, order_service):
        yesterday = timezone.now() - timedelta(days=1)
        order, _ = order_service.create_order(make_order_dto(), now=yesterday)
        _ready(order_service, order, yesterday)
        response = api_client.get(f"/api/v1/tokens/{order.token}/validate/")
        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "token_expired"

    def test_unknown_token(self, api_client):
        response = api_client.get("/api/v1/tokens/T-999/validate/")
        assert response.status_code == 404
