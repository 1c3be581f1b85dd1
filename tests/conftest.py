from unittest.mock import patch

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from helpers import IST, FakePaymentGateway, InMemoryDailyCounterRepository
from modules.core.authentication import CustomerIdentity
from modules.orders.lifecycle import OrderLifecycleGuard
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.tokens.allocator import TokenAllocator


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


@pytest.fixture()
def staff_user():
    return get_user_model().objects.create_user(
        username="counter", password="testpass123", is_staff=True
    )


@pytest.fixture()
def staff_client(staff_user):
    """APIClient force-authenticated as canteen counter staff."""
    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client


@pytest.fixture()
def customer_client():
    """APIClient authenticated as an identity-provider customer."""
    client = APIClient()
    identity = CustomerIdentity(
        {"sub": "google-oauth2|42", "email": "diya@example.com", "name": "Diya Patel"}
    )
    client.force_authenticate(user=identity)
    return client


@pytest.fixture()
def counter_repository():
    return InMemoryDailyCounterRepository()


@pytest.fixture()
def order_repository():
    return OrderDjangoRepository()


@pytest.fixture()
def order_service(order_repository, counter_repository):
    """Order service on the real ORM with an in-memory token counter."""
    return OrderService(
        order_repository=order_repository,
        token_allocator=TokenAllocator(counter_repository, prefix="T", tz=IST),
        guard=OrderLifecycleGuard(IST),
    )


@pytest.fixture()
def payment_gateway():
    """Fake gateway wired into every checkout service built during the test."""
    gateway = FakePaymentGateway()
    with patch("modules.payments.services.build_gateway_client", return_value=gateway):
        yield gateway
