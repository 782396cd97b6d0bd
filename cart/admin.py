"""Admin registration for cart models.

Provides admin interfaces for `Cart`, `CartItem` and `CartHistory`, with
inline items on the cart page for support staff.
"""

from django.contrib import admin, messages

from .models import Cart, CartHistory, CartItem
from .services import CartError, clear_cart


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0
    fields = ("cart_item_id", "product", "name", "price", "original_price", "quantity", "added_at")
    readonly_fields = ("cart_item_id", "added_at")
    raw_id_fields = ("product",)


class CouponFilter(admin.SimpleListFilter):
    title = "coupon"
    parameter_name = "has_coupon"

    def lookups(self, request, model_admin):
        return (
            ("yes", "With coupon"),
            ("no", "Without coupon"),
        )

    def queryset(self, request, queryset):
        value = self.value()
        if value == "yes":
            return queryset.exclude(coupon_code="")
        if value == "no":
            return queryset.filter(coupon_code="")
        return queryset


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "total_items", "total_price", "coupon_code", "is_abandoned", "last_updated")
    list_filter = ("is_abandoned", CouponFilter)
    search_fields = ("user__username", "user__email", "coupon_code")
    ordering = ("-last_updated",)
    readonly_fields = ("total_items", "total_price", "total_original_price", "total_savings", "created_at", "updated_at")
    inlines = [CartItemInline]
    list_select_related = ("user",)

    @admin.action(description="Clear cart (remove items and coupon)")
    def action_clear_cart(self, request, queryset):
        successes = 0
        failures = 0
        for cart in queryset.select_related("user"):
            try:
                clear_cart(user=cart.user)
                successes += 1
            except CartError:
                failures += 1
        if successes:
            messages.success(request, f"Cleared {successes} cart(s).")
        if failures:
            messages.error(request, f"Failed to clear {failures} cart(s).")

    actions = ["action_clear_cart"]


@admin.register(CartItem)
class CartItemAdmin(admin.ModelAdmin):
    list_display = ("id", "cart", "cart_item_id", "name", "quantity", "price", "added_at")
    search_fields = ("cart_item_id", "name", "cart__user__email")
    ordering = ("id",)
    raw_id_fields = ("cart", "product")


@admin.register(CartHistory)
class CartHistoryAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "action", "timestamp")
    list_filter = ("action",)
    search_fields = ("user__username", "user__email")
    date_hierarchy = "timestamp"
    readonly_fields = ("user", "items", "action", "timestamp", "cart_snapshot", "session_id")
