from django_filters import rest_framework as filters

from .models import Order


class OrderFilterSet(filters.FilterSet):
    """``start``/``end`` bound ``created_at`` (inclusive, ISO date or datetime)."""

    status = filters.ChoiceFilter(choices=Order.STATUS_CHOICES)
    number = filters.CharFilter(field_name="number")
    start = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    end = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = Order
        fields = ["status", "number", "start", "end"]
