"""Order and pickup-token API views.

Exposes the ``OrderService`` via HTTP using DRF ViewSets.  Domain
exceptions propagate to ``api_exception_handler``, which maps each one to
its HTTP status; the views never catch them.
"""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import (
    AllowAny,
    BasePermission,
    IsAdminUser,
    IsAuthenticated,
)
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.core.authentication import (
    CustomerIdentity,
    IdentityProviderAuthentication,
    identity_from_user,
)
from modules.core.pagination import StandardResultsSetPagination
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.serializers import (
    FindTokenSerializer,
    OrderListSerializer,
    OrderSerializer,
    StatusUpdateSerializer,
    TokenStatusSerializer,
    TokenValidationSerializer,
)
from modules.orders.services import build_order_service


def _actor(request: Request) -> str:
    user = request.user
    if user and user.is_authenticated and hasattr(user, "get_username"):
        return user.get_username()
    return "staff"


class OrderViewSet(GenericViewSet):
    """Staff view of the order book.

    Does **not** extend ``ModelViewSet``: every status change goes through
    the service so the lifecycle guard always runs.
    """

    queryset = Order.objects.all()
    permission_classes = [IsAdminUser]
    filterset_class = OrderFilter
    search_fields = ["token", "customer_name", "customer_email"]
    ordering_fields = ["created_at", "civil_date", "status", "total_amount"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = build_order_service()

    def get_queryset(self):
        return self._service.list_orders()

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/

        Filtering (status, token, civil date, date range) is handled by
        ``OrderFilter``.  Results are paginated.
        """
        queryset = self.filter_queryset(self.get_queryset())

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request)
        serializer = OrderListSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        order = self._service.get_order(pk)
        return Response(OrderSerializer(order).data)

    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/orders/{pk}/

        Moves the order along the state machine.  Completion is accepted
        only for orders created today.
        """
        serializer = StatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = self._service.transition(
            pk,
            serializer.validated_data["status"],
            actor=_actor(request),
            notes=serializer.validated_data["notes"],
        )
        return Response(OrderSerializer(order).data)


class TokenViewSet(GenericViewSet):
    """Pickup token endpoints.

    Customers look up their own token; the counter staff redeem it.
    """

    queryset = Order.objects.all()
    lookup_field = "token"
    lookup_value_regex = "[^/]+"

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = build_order_service()

    def get_permissions(self) -> list[BasePermission]:
        if self.action == "redeem":
            return [IsAdminUser()]
        return [AllowAny()]

    def get_throttles(self) -> list[BaseThrottle]:
        self.throttle_scope = (
            "token_lookup" if self.action in {"retrieve", "find", "validate_token"} else None
        )
        return super().get_throttles()

    def retrieve(self, request: Request, token: str | None = None) -> Response:
        """GET /api/v1/tokens/{token}/

        Today's order for the token with its position in the queue.
        """
        lookup = self._service.lookup_token(token)
        serializer = TokenStatusSerializer(
            lookup.order, context={"queue_position": lookup.queue_position}
        )
        return Response(serializer.data)

    @action(detail=True, methods=["get"], url_path="validate", url_name="validate")
    def validate_token(self, request: Request, token: str | None = None) -> Response:
        """GET /api/v1/tokens/{token}/validate/

        Answers whether the token could be redeemed right now, without
        redeeming it.  A token that cannot be redeemed gets the same error
        a pickup scan would.
        """
        order = self._service.check_token(token)
        return Response(TokenValidationSerializer(order).data)

    @action(detail=True, methods=["post"])
    def redeem(self, request: Request, token: str | None = None) -> Response:
        """POST /api/v1/tokens/{token}/redeem/

        Pickup scan: completes today's ready order holding the token.
        """
        order = self._service.redeem_by_token(token, actor=_actor(request))
        return Response(OrderSerializer(order).data, status=status.HTTP_200_OK)

    @action(detail=False, methods=["post"])
    def find(self, request: Request) -> Response:
        """POST /api/v1/tokens/find/

        "Find my token" by e-mail or phone number.
        """
        serializer = FindTokenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = self._service.find_active_order(
            email=serializer.validated_data.get("email") or None,
            phone=serializer.validated_data.get("phone") or None,
        )
        return Response(TokenStatusSerializer(order).data)


def _customer(request: Request) -> CustomerIdentity:
    identity = identity_from_user(request.user)
    if identity is None:
        raise PermissionDenied("Order history is available to signed-in customers.")
    return identity


class CustomerOrderViewSet(GenericViewSet):
    """A signed-in customer's own orders, newest first."""

    queryset = Order.objects.all()
    authentication_classes = [IdentityProviderAuthentication]
    permission_classes = [IsAuthenticated]
    filterset_class = OrderFilter
    ordering_fields = ["created_at", "status", "total_amount"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = build_order_service()

    def get_queryset(self):
        return self._service.list_customer_orders(_customer(self.request).email)

    def list(self, request: Request) -> Response:
        """GET /api/v1/my-orders/"""
        queryset = self.filter_queryset(self.get_queryset())

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request)
        serializer = OrderListSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/my-orders/{pk}/"""
        order = self._service.get_customer_order(pk, _customer(request).email)
        return Response(OrderSerializer(order).data)
