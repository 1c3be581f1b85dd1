"""Payment gateway REST client.

Talks to the gateway's Orders and Payments APIs over HTTPS, authenticated
with the merchant key pair (HTTP basic auth).  Amounts travel as integers in
paise and are converted to rupees at this boundary, so the rest of the
code only sees ``Decimal`` rupees.

The paid amount used for an order always comes from ``fetch_payment``,
never from the browser.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

import requests
import structlog
from django.conf import settings
from requests.auth import HTTPBasicAuth

from modules.payments.constants import CAPTURED, MINOR_UNITS_PER_RUPEE
from modules.payments.exceptions import PaymentGatewayUnavailable

logger = structlog.get_logger(__name__)

COMMON_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}


def to_minor_units(amount: Decimal) -> int:
    return int((amount * MINOR_UNITS_PER_RUPEE).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor_units(value: Any) -> Decimal:
    return (Decimal(value) / MINOR_UNITS_PER_RUPEE).quantize(Decimal("0.01"))


@dataclass(frozen=True)
class GatewayOrder:
    id: str
    amount: Decimal
    currency: str
    receipt: str


@dataclass(frozen=True)
class GatewayPayment:
    id: str
    order_id: str
    amount: Decimal
    currency: str
    status: str

    @property
    def captured(self) -> bool:
        return self.status == CAPTURED


class IPaymentGateway(ABC):
    """What checkout needs from the gateway."""

    @abstractmethod
    def create_order(
        self,
        amount: Decimal,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, Any]] = None,
    ) -> GatewayOrder:
        """Open a gateway order the customer will pay against."""

    @abstractmethod
    def fetch_payment(self, payment_id: str) -> GatewayPayment:
        """The gateway's own record of a payment.

        Raises:
            PaymentGatewayUnavailable: the gateway could not be queried.
        """


class PaymentGatewayClient(IPaymentGateway):
    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str,
        timeout: int = 10,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not key_id or not key_secret:
            raise ValueError("Payment gateway credentials are not configured.")
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.auth = HTTPBasicAuth(key_id, key_secret)

    def create_order(
        self,
        amount: Decimal,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, Any]] = None,
    ) -> GatewayOrder:
        body = self._request(
            "POST",
            "/orders",
            json={
                "amount": to_minor_units(amount),
                "currency": currency,
                "receipt": receipt,
                "notes": notes or {},
            },
        )
        order = GatewayOrder(
            id=body["id"],
            amount=from_minor_units(body["amount"]),
            currency=body.get("currency", currency),
            receipt=body.get("receipt", receipt),
        )
        logger.info("payment.gateway_order_created", gateway_order_id=order.id)
        return order

    def fetch_payment(self, payment_id: str) -> GatewayPayment:
        body = self._request("GET", f"/payments/{payment_id}")
        return GatewayPayment(
            id=body["id"],
            order_id=body.get("order_id") or "",
            amount=from_minor_units(body["amount"]),
            currency=body.get("currency", ""),
            status=body.get("status", ""),
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._session.request(
                method,
                f"{self._base_url}{path}",
                headers=COMMON_HEADERS,
                timeout=self._timeout,
                **kwargs,
            )
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            logger.error(
                "payment.gateway_request_failed",
                method=method,
                path=path,
                error=str(exc),
            )
            raise PaymentGatewayUnavailable(
                f"Payment gateway request failed: {method} {path}"
            ) from exc


def build_gateway_client() -> PaymentGatewayClient:
    """Gateway client configured from Django settings."""
    return PaymentGatewayClient(
        key_id=settings.PAYMENT_GATEWAY_KEY_ID,
        key_secret=settings.PAYMENT_GATEWAY_KEY_SECRET,
        base_url=settings.PAYMENT_GATEWAY_API_URL,
        timeout=settings.PAYMENT_GATEWAY_TIMEOUT,
    )
