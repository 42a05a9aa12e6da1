from django.contrib import admin

from .models import LoyaltyTransaction, LoyaltyWallet


class LoyaltyTransactionInline(admin.TabularInline):
    model = LoyaltyTransaction
    extra = 0
    can_delete = False
    fields = ("created_at", "type", "points", "source", "order", "note")
    readonly_fields = fields


@admin.register(LoyaltyWallet)
class LoyaltyWalletAdmin(admin.ModelAdmin):
    list_display = ("id", "customer", "points_balance", "lifetime_earned", "lifetime_redeemed", "updated_at")
    search_fields = ("customer__username", "customer__email")
    readonly_fields = ("points_balance", "lifetime_earned", "lifetime_redeemed", "created_at", "updated_at")
    raw_id_fields = ("customer",)
    inlines = [LoyaltyTransactionInline]


@admin.register(LoyaltyTransaction)
class LoyaltyTransactionAdmin(admin.ModelAdmin):
    list_display = ("id", "customer", "type", "points", "source", "order", "created_at")
    list_filter = ("type", "created_at")
    search_fields = ("customer__email", "note")
    raw_id_fields = ("customer", "wallet", "order", "cart")
    date_hierarchy = "created_at"
