"""Cart serializers for read and write operations."""

from decimal import Decimal

from common.choices import PaymentMethod
from orders.serializers import ShippingAddressSerializer
from rest_framework import serializers

from .models import Cart, CartHistory, CartItem


class CartItemReadSerializer(serializers.ModelSerializer):
    """Read serializer for a cart line."""

    product_id = serializers.IntegerField(read_only=True)
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = CartItem
        fields = [
            "cart_item_id",
            "product_id",
            "name",
            "brand",
            "price",
            "original_price",
            "quantity",
            "selected_color",
            "selected_size",
            "images",
            "product_snapshot",
            "added_at",
            "line_total",
        ]
        read_only_fields = fields


class CartReadSerializer(serializers.ModelSerializer):
    """Read serializer for the cart with its lines, totals and coupon."""

    items = CartItemReadSerializer(many=True, read_only=True)
    coupon = serializers.SerializerMethodField()
    summary = serializers.SerializerMethodField()

    class Meta:
        model = Cart
        fields = [
            "id",
            "items",
            "total_items",
            "total_price",
            "total_original_price",
            "total_savings",
            "coupon",
            "summary",
            "last_updated",
            "last_sync_time",
            "expires_at",
        ]
        read_only_fields = fields

    def get_coupon(self, obj: Cart):
        return obj.coupon_snapshot()

    def get_summary(self, obj: Cart) -> dict:
        return {k: (str(v) if isinstance(v, Decimal) else v) for k, v in obj.summary.items()}


def cart_payload(cart: Cart, **extra) -> dict:
    """Structured success body carrying the serialized cart."""

    return {"success": True, "cart": CartReadSerializer(cart).data, **extra}


class AddItemSerializer(serializers.Serializer):
    """Write serializer for adding an item to the cart."""

    product_id = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1, default=1)
    selected_color = serializers.CharField(max_length=64, required=False, allow_blank=True, allow_null=True)
    selected_size = serializers.CharField(max_length=64, required=False, allow_blank=True, allow_null=True)


class UpdateItemQuantitySerializer(serializers.Serializer):
    """Quantity zero or below removes the line."""

    quantity = serializers.IntegerField()


class ReplaceCartSerializer(serializers.Serializer):
    # Lines are normalised by the service; malformed entries are dropped there.
    items = serializers.ListField(child=serializers.JSONField(allow_null=True), allow_empty=True)


class SyncCartSerializer(ReplaceCartSerializer):
    last_sync_time = serializers.JSONField(required=False, allow_null=True, default=None)


class CouponSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=32)


class TotalsRequestSerializer(serializers.Serializer):
    coupon_code = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")


class CheckoutSerializer(serializers.Serializer):
    shipping_address = ShippingAddressSerializer()
    payment_method = serializers.ChoiceField(
        choices=[c for c in PaymentMethod.choices if c[0] != PaymentMethod.ONLINE],
    )


class CheckoutTotalsSerializer(serializers.Serializer):
    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2)
    original_total = serializers.DecimalField(max_digits=12, decimal_places=2)
    savings = serializers.DecimalField(max_digits=12, decimal_places=2)
    shipping = serializers.DecimalField(max_digits=12, decimal_places=2)
    tax = serializers.DecimalField(max_digits=12, decimal_places=2)
    coupon_code = serializers.CharField(allow_null=True)
    coupon_discount = serializers.DecimalField(max_digits=12, decimal_places=2)
    total = serializers.DecimalField(max_digits=12, decimal_places=2)


class CartHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = CartHistory
        fields = ["id", "action", "items", "cart_snapshot", "session_id", "timestamp"]
        read_only_fields = fields
