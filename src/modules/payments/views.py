"""Checkout and payment completion endpoints.

``POST /api/v1/payments/checkout/`` prices the cart and opens a gateway
order; ``POST /api/v1/payments/verify/`` is the only way an order comes
into existence: the customer forwards the gateway receipt, the signature
and the captured amount are checked, and the order service allocates the
pickup token.
"""

from __future__ import annotations

import structlog
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.core.authentication import (
    CustomerIdentity,
    IdentityProviderAuthentication,
    identity_from_user,
)
from modules.orders.serializers import OrderSerializer
from modules.payments.serializers import (
    ChargeIntentSerializer,
    CheckoutSerializer,
    VerifyPaymentSerializer,
)
from modules.payments.services import build_checkout_service

logger = structlog.get_logger(__name__)


def _customer(request: Request) -> CustomerIdentity:
    identity = identity_from_user(request.user)
    if identity is None:
        raise PermissionDenied("Orders are placed by signed-in customers.")
    return identity


class CheckoutView(APIView):
    authentication_classes = [IdentityProviderAuthentication]
    permission_classes = [IsAuthenticated]
    throttle_scope = "payment_checkout"

    @extend_schema(request=CheckoutSerializer, responses={201: ChargeIntentSerializer})
    def post(self, request: Request) -> Response:
        """Price the cart and open a gateway order to pay against."""
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        intent = build_checkout_service().start_checkout(
            _customer(request),
            items=[
                {
                    "name": item["name"],
                    "unit_price": item["price"],
                    "quantity": item["quantity"],
                }
                for item in data["items"]
            ],
            phone=data.get("phone", ""),
        )
        return Response(ChargeIntentSerializer(intent).data, status=status.HTTP_201_CREATED)


class VerifyPaymentView(APIView):
    authentication_classes = [IdentityProviderAuthentication]
    permission_classes = [IsAuthenticated]
    throttle_scope = "payment_verify"

    @extend_schema(request=VerifyPaymentSerializer, responses={201: OrderSerializer})
    def post(self, request: Request) -> Response:
        """Verify a gateway receipt and create the paid order.

        Returns 201 with the new order, or 200 with the existing one when
        the payment was already processed.
        """
        serializer = VerifyPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order, created = build_checkout_service().complete_payment(
            _customer(request),
            gateway_order_id=data["gateway_order_id"],
            payment_id=data["payment_id"],
            signature=data["signature"],
        )
        logger.info(
            "payment.order_completed",
            order_id=str(order.id),
            token=order.token,
            created=created,
        )
        return Response(
            OrderSerializer(order).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )
