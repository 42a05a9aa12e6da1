from typing import Optional

from common.principal import Principal
from django.db.models import QuerySet

from .models import Order


def orders_for_principal(principal: Principal) -> QuerySet:
    """Orders the caller may see: their own when signed in, else those of their guest session."""
    qs = Order.objects.prefetch_related("items").order_by("-id")
    if principal.user is not None:
        return qs.filter(user=principal.user)
    if principal.session_id:
        return qs.filter(user__isnull=True, owner_ref=principal.session_id)
    return qs.none()


def get_order_for_principal(principal: Principal, order_id) -> Optional[Order]:
    try:
        return orders_for_principal(principal).filter(id=int(order_id)).first()
    except (TypeError, ValueError):
        return None
