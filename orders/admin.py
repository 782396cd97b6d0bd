from django.contrib import admin

from .models import IdempotencyKey, Order, OrderItem, OrderStatusHistory, ShippingAddress


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    raw_id_fields = ("product",)


class ShippingAddressInline(admin.StackedInline):
    model = ShippingAddress
    extra = 0


class OrderStatusHistoryInline(admin.TabularInline):
    model = OrderStatusHistory
    extra = 0
    readonly_fields = ("status", "timestamp", "updated_by", "notes")


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "number", "status", "user", "payment_method", "total_price", "is_paid", "created_at")
    list_filter = ("status", "payment_method", "is_paid", "created_at")
    search_fields = ("number", "tracking_number", "shipping_address__email")
    date_hierarchy = "created_at"
    inlines = [OrderItemInline, ShippingAddressInline, OrderStatusHistoryInline]


@admin.register(OrderItem)
class OrderItemAdmin(admin.ModelAdmin):
    list_display = ("id", "order", "product", "quantity", "price")
    list_filter = ("order",)
    search_fields = ("product_name",)


@admin.register(IdempotencyKey)
class IdempotencyKeyAdmin(admin.ModelAdmin):
    list_display = ("id", "key", "scope", "path", "method", "response_code", "created_at")
    list_filter = ("method", "response_code", "created_at")
    search_fields = ("key", "scope", "path")
    date_hierarchy = "created_at"
