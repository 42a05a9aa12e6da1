"""DRF serializers for orders and checkout.

Money is exposed in integer cents, exactly as stored.
"""

from rest_framework import serializers

from .models import Order, OrderItem


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product_id",
            "quantity",
            "option_ids",
            "unit_price_cents",
            "line_total_cents",
            "artwork",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "number",
            "status",
            "payment_status",
            "email",
            "currency",
            "subtotal_cents",
            "discount_cents",
            "shipping_cents",
            "tax_cents",
            "tax_source",
            "total_cents",
            "shipping",
            "placed_at",
            "created_at",
            "items",
        ]
        read_only_fields = fields


class CheckoutAddressSerializer(serializers.Serializer):
    country = serializers.CharField(max_length=2)
    state = serializers.CharField(max_length=64, required=False, allow_blank=True)
    zip = serializers.CharField(max_length=16, required=False, allow_blank=True)
    city = serializers.CharField(max_length=128, required=False, allow_blank=True)
    line1 = serializers.CharField(max_length=255, required=False, allow_blank=True)

    def validate_country(self, value: str) -> str:
        return value.strip().upper()


class CheckoutSessionRequestSerializer(serializers.Serializer):
    address = CheckoutAddressSerializer(required=False)


class CheckoutSessionSerializer(serializers.Serializer):
    cart_id = serializers.IntegerField()
    payment_intent_id = serializers.CharField()
    client_secret = serializers.CharField(allow_null=True)
    currency = serializers.CharField()
    subtotal_cents = serializers.IntegerField()
    discount_cents = serializers.IntegerField()
    shipping_cents = serializers.IntegerField()
    tax_cents = serializers.IntegerField()
    tax_calculation_id = serializers.CharField(allow_null=True)
    amount_cents = serializers.IntegerField()
