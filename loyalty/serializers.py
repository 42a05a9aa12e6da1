"""Loyalty serializers."""

from django.contrib.auth import get_user_model
from rest_framework import serializers

from .models import LoyaltyTransaction


class WalletSnapshotSerializer(serializers.Serializer):
    balance = serializers.IntegerField()
    tier = serializers.CharField()
    next_tier = serializers.CharField(allow_null=True)
    next_tier_at = serializers.IntegerField(allow_null=True)
    points_to_next = serializers.IntegerField()
    lifetime_earned = serializers.IntegerField()
    lifetime_redeemed = serializers.IntegerField()


class LoyaltyTransactionSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source="order.number", read_only=True, default=None)

    class Meta:
        model = LoyaltyTransaction
        fields = ["id", "points", "type", "source", "order", "order_number", "note", "created_at"]
        read_only_fields = fields


class AdjustSerializer(serializers.Serializer):
    """Staff adjustment of a customer's balance."""

    user_id = serializers.PrimaryKeyRelatedField(queryset=get_user_model().objects.all(), source="customer")
    points = serializers.IntegerField(min_value=-1_000_000, max_value=1_000_000)
    note = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=500)

    def validate_points(self, value):
        if value == 0:
            raise serializers.ValidationError("Points must be non-zero.")
        return value


class ApplyCreditSerializer(serializers.Serializer):
    points = serializers.IntegerField(min_value=0)
