"""Pricing serializers."""

from rest_framework import serializers

from common.choices import Market


class QuoteRequestSerializer(serializers.Serializer):
    """Input for pricing one product configuration."""

    quantity = serializers.IntegerField(min_value=1, default=1)
    option_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)
    market = serializers.ChoiceField(choices=Market.choices, default=Market.US)


class QuoteSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    market = serializers.CharField()
    currency = serializers.CharField()
    quantity = serializers.IntegerField()
    option_ids = serializers.ListField(child=serializers.IntegerField())
    by_group = serializers.DictField(child=serializers.IntegerField())
    unit_price_cents = serializers.IntegerField()
    line_total_cents = serializers.IntegerField()
    defaulted_groups = serializers.ListField(child=serializers.CharField())


class VendorOptionSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    group = serializers.CharField()
    name = serializers.CharField(allow_blank=True)
