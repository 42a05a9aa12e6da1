"""Cart serializers for read and write operations."""

from rest_framework import serializers

from common.choices import Currency, Market

from .models import Cart, CartCredit, CartLine
from .selectors import cart_totals, line_total_cents


class CartLineReadSerializer(serializers.ModelSerializer):
    line_total_cents = serializers.SerializerMethodField()

    class Meta:
        model = CartLine
        fields = [
            "id",
            "product_id",
            "quantity",
            "option_ids",
            "unit_price_cents",
            "line_total_cents",
            "currency",
            "artwork",
        ]

    def get_line_total_cents(self, obj: CartLine) -> int:
        return line_total_cents(obj)


class CartCreditSerializer(serializers.ModelSerializer):
    class Meta:
        model = CartCredit
        fields = ["reason", "amount_cents", "points"]


class CartReadSerializer(serializers.Serializer):
    """Cart summary with lines, credits and totals in cents."""

    id = serializers.IntegerField()
    status = serializers.CharField()
    market = serializers.CharField()
    currency = serializers.CharField()
    lines = CartLineReadSerializer(many=True)
    credits = CartCreditSerializer(many=True)
    selected_shipping = serializers.JSONField(allow_null=True)
    subtotal_cents = serializers.IntegerField()
    discount_cents = serializers.IntegerField()
    shipping_cents = serializers.IntegerField()
    total_before_tax_cents = serializers.IntegerField()

    @classmethod
    def from_cart(cls, *, cart: Cart):
        totals = cart_totals(cart=cart)
        return cls(
            {
                "id": cart.id,
                "status": cart.status,
                "market": cart.market,
                "currency": cart.currency,
                "lines": list(cart.lines.all()),
                "credits": list(cart.credits.all()),
                "selected_shipping": cart.selected_shipping,
                "subtotal_cents": totals.subtotal_cents,
                "discount_cents": totals.discount_cents,
                "shipping_cents": totals.shipping_cents,
                "total_before_tax_cents": totals.pre_tax_total_cents,
            }
        )


class AddLineSerializer(serializers.Serializer):
    product_id = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1)
    option_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)
    artwork = serializers.JSONField(required=False, allow_null=True)
    market = serializers.ChoiceField(choices=Market.choices, required=False)


class UpdateLineSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1, required=False)
    option_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False, required=False)

    def validate(self, attrs):
        if "quantity" not in attrs and "option_ids" not in attrs:
            raise serializers.ValidationError("Provide quantity and/or option_ids.")
        return attrs


class DestinationSerializer(serializers.Serializer):
    country = serializers.CharField(max_length=2)
    state = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    zip = serializers.CharField(max_length=16, required=False, allow_blank=True, default="")


class ChooseShippingSerializer(DestinationSerializer):
    carrier = serializers.CharField(max_length=64)
    method = serializers.CharField(max_length=128)
    cost = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    days = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    currency = serializers.ChoiceField(choices=Currency.choices, required=False, allow_null=True)
    country = serializers.CharField(max_length=2, required=False, allow_blank=True, default="")


class ShippingRateSerializer(serializers.Serializer):
    carrier = serializers.CharField()
    service_code = serializers.CharField()
    service_name = serializers.CharField()
    amount_cents = serializers.IntegerField()
    currency = serializers.CharField()
    days = serializers.IntegerField(allow_null=True)
    eta = serializers.CharField(allow_null=True)


class ClaimSerializer(serializers.Serializer):
    session_id = serializers.CharField(max_length=128, required=False)
