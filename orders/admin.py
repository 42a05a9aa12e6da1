from django.contrib import admin

from .models import IdempotencyKey, Order, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    readonly_fields = ("product_id", "quantity", "option_ids", "unit_price_cents", "line_total_cents", "artwork")


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "number", "status", "owner_ref", "email", "total_cents", "tax_source", "placed_at")
    list_filter = ("status", "provider", "tax_source", "currency", "created_at")
    search_fields = ("number", "email", "provider_id", "owner_ref")
    date_hierarchy = "created_at"
    inlines = [OrderItemInline]
    readonly_fields = (
        "provider",
        "provider_id",
        "checkout_session_id",
        "cart",
        "subtotal_cents",
        "discount_cents",
        "credits_cents",
        "shipping_cents",
        "tax_cents",
        "total_cents",
        "charged_total_cents",
        "total_mismatch_cents",
    )


@admin.register(IdempotencyKey)
class IdempotencyKeyAdmin(admin.ModelAdmin):
    list_display = ("id", "key", "scope", "path", "method", "response_code", "created_at")
    list_filter = ("method", "response_code", "created_at")
    search_fields = ("key", "scope", "path")
    date_hierarchy = "created_at"
