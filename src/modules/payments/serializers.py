"""Checkout and payment verification serializers."""

from __future__ import annotations

from django.conf import settings
from rest_framework import serializers

from modules.payments.models import ChargeIntent


class CartItemSerializer(serializers.Serializer):
    """One line of the cart the customer is about to pay for."""

    name = serializers.CharField(max_length=200)
    price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    quantity = serializers.IntegerField(min_value=1)


class CheckoutSerializer(serializers.Serializer):
    phone = serializers.CharField(required=False, allow_blank=True, max_length=20)
    items = CartItemSerializer(many=True, allow_empty=False)


class VerifyPaymentSerializer(serializers.Serializer):
    """Gateway receipt; amounts and items come from the stored checkout."""

    gateway_order_id = serializers.CharField(max_length=100)
    payment_id = serializers.CharField(max_length=100)
    signature = serializers.CharField(max_length=256)


class ChargeIntentSerializer(serializers.ModelSerializer):
    """What the browser needs to open the gateway's payment widget."""

    key_id = serializers.SerializerMethodField()

    class Meta:
        model = ChargeIntent
        fields = [
            "gateway_order_id",
            "receipt",
            "amount",
            "currency",
            "items",
            "key_id",
        ]
        read_only_fields = fields

    def get_key_id(self, obj) -> str:
        return settings.PAYMENT_GATEWAY_KEY_ID
