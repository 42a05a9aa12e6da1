"""Admin registration for cart models.

Carts show their lines and credits inline so support can see exactly what a
customer was about to pay for.
"""

from django.contrib import admin, messages

from .models import Cart, CartCredit, CartLine
from .services import CartError, abandon_cart


class CartLineInline(admin.TabularInline):
    model = CartLine
    extra = 0
    fields = ("product_id", "quantity", "option_ids", "unit_price_cents", "line_total_cents", "currency")
    readonly_fields = fields


class CartCreditInline(admin.TabularInline):
    model = CartCredit
    extra = 0
    readonly_fields = ("reason", "amount_cents", "points")


class OwnerTypeFilter(admin.SimpleListFilter):
    title = "owner type"
    parameter_name = "owner_type"

    def lookups(self, request, model_admin):
        return (
            ("user", "User carts"),
            ("guest", "Guest carts"),
        )

    def queryset(self, request, queryset):
        value = self.value()
        if value == "user":
            return queryset.filter(user__isnull=False)
        if value == "guest":
            return queryset.filter(user__isnull=True)
        return queryset


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "session_id", "status", "market", "currency", "updated_at")
    list_filter = ("status", "market", OwnerTypeFilter)
    search_fields = ("session_id", "user__username", "user__email")
    ordering = ("-updated_at",)
    readonly_fields = ("created_at", "updated_at", "selected_shipping")
    inlines = [CartLineInline, CartCreditInline]
    list_select_related = ("user",)
    actions = ["action_abandon_cart"]

    @admin.action(description="Abandon cart (refund loyalty credit, mark abandoned)")
    def action_abandon_cart(self, request, queryset):
        successes = 0
        failures = 0
        for cart in queryset:
            try:
                abandon_cart(cart=cart)
                successes += 1
            except CartError:
                failures += 1
        if successes:
            messages.success(request, f"Abandoned {successes} cart(s).")
        if failures:
            messages.error(request, f"Skipped {failures} cart(s) that are no longer open.")
