"""Checkout service layer.

Two steps, mirroring the gateway's flow:

1. ``start_checkout`` prices the cart on the server, opens a gateway order
   for that amount and records a ``ChargeIntent`` with the cart snapshot.
2. ``complete_payment`` verifies the receipt signature, loads the
   customer's intent, asks the gateway what was actually paid, and hands
   the intent's items plus the gateway amount to ``OrderService``.

Nothing the browser sends back after checkout (amounts, items) is trusted.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import structlog
import uuid6
from django.conf import settings

from modules.orders.dtos import CreateOrderDTO, OrderItemDTO, PaymentReferenceDTO
from modules.payments.constants import RECEIPT_PREFIX
from modules.payments.exceptions import (
    ChargeIntentNotFound,
    InvalidChargeAmount,
    PaymentNotCaptured,
)
from modules.payments.gateway import IPaymentGateway, build_gateway_client
from modules.payments.verification import PaymentReceiptVerifier

if TYPE_CHECKING:
    from modules.core.authentication import CustomerIdentity
    from modules.orders.models import Order
    from modules.orders.services import OrderService
    from modules.payments.models import ChargeIntent
    from modules.payments.repositories.interfaces import IChargeIntentRepository

logger = structlog.get_logger(__name__)


class CheckoutService:
    """Application service for checkout and payment completion."""

    def __init__(
        self,
        gateway: IPaymentGateway,
        verifier: PaymentReceiptVerifier,
        intent_repository: IChargeIntentRepository,
        order_service: OrderService,
        currency: str = "INR",
    ) -> None:
        self._gateway = gateway
        self._verifier = verifier
        self._intent_repo = intent_repository
        self._order_service = order_service
        self._currency = currency

    def start_checkout(
        self,
        identity: CustomerIdentity,
        items: List[Dict[str, Any]],
        phone: str = "",
    ) -> ChargeIntent:
        """Open a gateway order for the server-priced cart.

        ``items`` are dicts with ``name``, ``unit_price`` and ``quantity``.

        Raises:
            InvalidChargeAmount: the cart totals to zero.
            PaymentGatewayUnavailable: the gateway order could not be opened.
        """
        snapshot = [
            OrderItemDTO(
                name=item["name"],
                unit_price=item["unit_price"],
                quantity=item["quantity"],
            )
            for item in items
        ]
        amount = sum((item.subtotal for item in snapshot), Decimal("0.00"))
        if amount <= 0:
            raise InvalidChargeAmount()

        receipt = f"{RECEIPT_PREFIX}{uuid6.uuid7().hex}"
        gateway_order = self._gateway.create_order(
            amount,
            self._currency,
            receipt,
            notes={
                "customer_email": identity.email,
                "item_count": len(snapshot),
                "order_type": "canteen_token",
            },
        )
        intent = self._intent_repo.create(
            {
                "gateway_order_id": gateway_order.id,
                "receipt": receipt,
                "customer_name": identity.name,
                "customer_email": identity.email,
                "customer_phone": phone or "",
                "amount": amount,
                "currency": self._currency,
                "items": [
                    {
                        "name": item.name,
                        "unit_price": str(item.unit_price),
                        "quantity": item.quantity,
                    }
                    for item in snapshot
                ],
            }
        )
        logger.info(
            "payment.checkout_started",
            gateway_order_id=gateway_order.id,
            amount=str(amount),
        )
        return intent

    def complete_payment(
        self,
        identity: CustomerIdentity,
        gateway_order_id: str,
        payment_id: str,
        signature: str,
        now: Optional[datetime] = None,
    ) -> tuple[Order, bool]:
        """Turn a paid checkout into an order with a pickup token.

        Returns ``(order, created)`` like ``OrderService.create_order``.

        Raises:
            InvalidPaymentSignature: the receipt is not authentic.
            ChargeIntentNotFound: no checkout of this customer matches.
            PaymentGatewayUnavailable: the payment could not be fetched.
            PaymentNotCaptured: the payment is not captured, or was made
                against another gateway order.
            PaymentAmountMismatch: the captured amount disagrees with the cart.
        """
        log = logger.bind(gateway_order_id=gateway_order_id, payment_id=payment_id)
        self._verifier.verify(gateway_order_id, payment_id, signature)

        intent = self._intent_repo.get_for_customer(gateway_order_id, identity.email)
        if intent is None:
            log.warning("payment.checkout_not_found")
            raise ChargeIntentNotFound()

        payment = self._gateway.fetch_payment(payment_id)
        if payment.order_id != gateway_order_id:
            log.warning("payment.order_mismatch", paid_order_id=payment.order_id)
            raise PaymentNotCaptured("Payment was made against a different order.")
        if not payment.captured:
            log.warning("payment.not_captured", gateway_status=payment.status)
            raise PaymentNotCaptured()

        dto = CreateOrderDTO(
            customer_name=intent.customer_name,
            customer_email=intent.customer_email,
            customer_phone=intent.customer_phone,
            items=[OrderItemDTO(**item) for item in intent.items],
            total_amount=payment.amount,
            payment=PaymentReferenceDTO(
                payment_id=payment_id,
                signature=signature,
                gateway_order_id=gateway_order_id,
            ),
        )
        order, created = self._order_service.create_order(dto, now)
        if self._intent_repo.mark_paid(intent.id, payment_id):
            log.info("payment.checkout_paid", order_id=str(order.id))
        return order, created


def build_checkout_service() -> CheckoutService:
    """Wire the production collaborators from Django settings."""
    from modules.orders.services import build_order_service
    from modules.payments.repositories.django_repository import (
        ChargeIntentDjangoRepository,
    )

    return CheckoutService(
        gateway=build_gateway_client(),
        verifier=PaymentReceiptVerifier(settings.PAYMENT_GATEWAY_KEY_SECRET),
        intent_repository=ChargeIntentDjangoRepository(),
        order_service=build_order_service(),
        currency=settings.PAYMENT_CURRENCY,
    )

