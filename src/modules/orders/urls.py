"""Order and token URL configuration."""

from __future__ import annotations

from rest_framework.routers import DefaultRouter

from modules.orders.views import CustomerOrderViewSet, OrderViewSet, TokenViewSet

router = DefaultRouter(trailing_slash=True)
router.register("orders", OrderViewSet, basename="order")
router.register("tokens", TokenViewSet, basename="token")
router.register("my-orders", CustomerOrderViewSet, basename="my-order")

urlpatterns = router.urls
