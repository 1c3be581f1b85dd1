"""Payment domain constants."""

from decimal import Decimal

from django.db import models


class ChargeIntentStatus(models.TextChoices):
    OPEN = "open", "Awaiting payment"
    PAID = "paid", "Paid"


# Gateway payment state after a successful charge.
CAPTURED = "captured"

# Gateway amounts are integers in the smallest currency unit (paise).
MINOR_UNITS_PER_RUPEE = Decimal("100")

# Gateway receipts are capped at 40 characters.
RECEIPT_PREFIX = "canteen_"
