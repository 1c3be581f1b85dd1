"""Gateway receipt verification.

The payment gateway signs ``"<gateway_order_id>|<payment_id>"`` with the
merchant key secret (HMAC-SHA256, hex digest).  A receipt is trusted only
when the signature recomputed here matches the one the client forwarded.
"""

from __future__ import annotations

import hashlib
import hmac

import structlog

from modules.payments.exceptions import InvalidPaymentSignature

logger = structlog.get_logger(__name__)


class PaymentReceiptVerifier:
    def __init__(self, key_secret: str) -> None:
        if not key_secret:
            raise ValueError("Payment gateway key secret is not configured.")
        self._key_secret = key_secret.encode()

    def expected_signature(self, gateway_order_id: str, payment_id: str) -> str:
        message = f"{gateway_order_id}|{payment_id}".encode()
        return hmac.new(self._key_secret, message, hashlib.sha256).hexdigest()

    def verify(self, gateway_order_id: str, payment_id: str, signature: str) -> None:
        """Raise ``InvalidPaymentSignature`` unless *signature* is authentic."""
        expected = self.expected_signature(gateway_order_id, payment_id)
        if not hmac.compare_digest(expected, signature or ""):
            logger.warning(
                "payment.signature_invalid",
                payment_id=payment_id,
                gateway_order_id=gateway_order_id,
            )
            raise InvalidPaymentSignature()
        logger.info("payment.signature_verified", payment_id=payment_id)
