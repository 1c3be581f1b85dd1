"""Payment domain exceptions."""

from __future__ import annotations

from rest_framework import status

from modules.core.exceptions import DomainError


class InvalidPaymentSignature(DomainError):
    """Payment verification failed: invalid signature."""

    code = "invalid_payment_signature"
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidChargeAmount(DomainError):
    """Order total must be positive."""

    code = "invalid_charge_amount"
    status_code = status.HTTP_400_BAD_REQUEST


class ChargeIntentNotFound(DomainError):
    """No checkout found for this payment."""

    code = "checkout_not_found"
    status_code = status.HTTP_404_NOT_FOUND


class PaymentNotCaptured(DomainError):
    """Payment was not captured by the gateway."""

    code = "payment_not_captured"
    status_code = status.HTTP_400_BAD_REQUEST


class PaymentGatewayUnavailable(DomainError):
    """Payment gateway could not be reached."""

    code = "payment_gateway_unavailable"
    status_code = status.HTTP_502_BAD_GATEWAY
