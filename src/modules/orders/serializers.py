"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.constants import OrderStatus
from modules.orders.models import Order, OrderItem, OrderStatusHistory

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class StatusUpdateSerializer(serializers.Serializer):
    """Validates a staff status change request."""

    status = serializers.ChoiceField(choices=OrderStatus.choices)
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class FindTokenSerializer(serializers.Serializer):
    """Either an e-mail address or a phone number identifies the customer."""

    email = serializers.EmailField(required=False, allow_blank=True)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=20)

    def validate(self, attrs):
        if not attrs.get("email") and not attrs.get("phone"):
            raise serializers.ValidationError("Provide email or phone number.")
        return attrs


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderItemSerializer(serializers.ModelSerializer):
    """Read serializer for the paid item snapshot."""

    class Meta:
        model = OrderItem
        fields = ["name", "quantity", "unit_price", "subtotal"]
        read_only_fields = fields


class StatusHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderStatusHistory
        fields = ["old_status", "new_status", "actor", "notes", "created_at"]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders with nested items and history."""

    items = OrderItemSerializer(many=True, read_only=True)
    status_history = StatusHistorySerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "token",
            "civil_date",
            "token_is_sequential",
            "status",
            "total_amount",
            "customer_name",
            "customer_email",
            "customer_phone",
            "payment_id",
            "created_at",
            "updated_at",
            "items",
            "status_history",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for the kitchen queue (no nested relations)."""

    class Meta:
        model = Order
        fields = [
            "id",
            "token",
            "civil_date",
            "status",
            "total_amount",
            "customer_name",
            "created_at",
        ]
        read_only_fields = fields


class TokenStatusSerializer(serializers.ModelSerializer):
    """Public view of an order looked up by its pickup token."""

    items = OrderItemSerializer(many=True, read_only=True)
    queue_position = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "token",
            "civil_date",
            "status",
            "total_amount",
            "customer_name",
            "created_at",
            "items",
            "queue_position",
        ]
        read_only_fields = fields

    def get_queue_position(self, obj) -> int | None:
        return self.context.get("queue_position")


class TokenValidationSerializer(serializers.ModelSerializer):
    """Pickup pre-check: only ever rendered for a redeemable token."""

    items = OrderItemSerializer(many=True, read_only=True)
    redeemable = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "token",
            "civil_date",
            "status",
            "total_amount",
            "customer_name",
            "created_at",
            "items",
            "redeemable",
        ]
        read_only_fields = fields

    def get_redeemable(self, obj) -> bool:
        return True
