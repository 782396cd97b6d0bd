"""DRF serializers for Orders.

Read serializers expose the stored order with its frozen lines, address and
status history. Write serializers only check request shape; business rules
live in ``orders.services``.
"""

from decimal import Decimal

from common.choices import PaymentMethod
from rest_framework import serializers

from .models import Order, OrderItem, OrderStatusHistory, ShippingAddress
from .services import SHIPPING_ADDRESS_FIELDS


class ShippingAddressSerializer(serializers.ModelSerializer):
    class Meta:
        model = ShippingAddress
        fields = list(SHIPPING_ADDRESS_FIELDS)

    def validate_email(self, value: str) -> str:
        return value.strip().lower()


class OrderItemSerializer(serializers.ModelSerializer):
    """API representation of an order line item with computed line_total."""

    product_id = serializers.IntegerField(read_only=True)
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product_id",
            "product_name",
            "quantity",
            "price",
            "selected_color",
            "selected_size",
            "line_total",
        ]
        read_only_fields = fields


class OrderStatusHistorySerializer(serializers.ModelSerializer):
    updated_by = serializers.IntegerField(source="updated_by_id", read_only=True)

    class Meta:
        model = OrderStatusHistory
        fields = ["status", "timestamp", "updated_by", "notes"]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """API representation for an order owner."""

    items = OrderItemSerializer(many=True, read_only=True)
    shipping_address = ShippingAddressSerializer(read_only=True)
    status_history = OrderStatusHistorySerializer(many=True, read_only=True)
    summary = serializers.SerializerMethodField()
    can_be_cancelled = serializers.SerializerMethodField()
    can_be_returned = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "number",
            "status",
            "payment_method",
            "total_price",
            "is_paid",
            "paid_at",
            "is_delivered",
            "delivered_at",
            "cancelled_at",
            "payment_result",
            "tracking_number",
            "shipping_carrier",
            "order_notes",
            "tax_amount",
            "discount_amount",
            "shipping_cost",
            "items",
            "shipping_address",
            "status_history",
            "summary",
            "can_be_cancelled",
            "can_be_returned",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_summary(self, obj: Order) -> dict:
        return {k: (str(v) if isinstance(v, Decimal) else v) for k, v in obj.summary().items()}

    def get_can_be_cancelled(self, obj: Order) -> bool:
        return obj.can_be_cancelled()

    def get_can_be_returned(self, obj: Order) -> bool:
        return obj.can_be_returned()


class AdminOrderSerializer(OrderSerializer):
    user = serializers.IntegerField(source="user_id", read_only=True)

    class Meta(OrderSerializer.Meta):
        fields = OrderSerializer.Meta.fields + ["user", "admin_notes"]
        read_only_fields = fields


class OrderItemInputSerializer(serializers.Serializer):
    product_id = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1)
    selected_color = serializers.CharField(max_length=64, required=False, allow_blank=True, allow_null=True)
    selected_size = serializers.CharField(max_length=64, required=False, allow_blank=True, allow_null=True)


class OrderRequestSerializer(serializers.Serializer):
    order_items = OrderItemInputSerializer(many=True, allow_empty=False)
    shipping_address = ShippingAddressSerializer()
    total_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"))
    order_notes = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class OrderCreateSerializer(OrderRequestSerializer):
    """Direct placement; online payments go through payment verification."""

    payment_method = serializers.ChoiceField(
        choices=[c for c in PaymentMethod.choices if c[0] != PaymentMethod.ONLINE],
    )


class PaymentVerifySerializer(serializers.Serializer):
    gateway_order_id = serializers.CharField(max_length=128)
    payment_id = serializers.CharField(max_length=128)
    signature = serializers.CharField(max_length=256, allow_blank=True)
    order = OrderRequestSerializer()


class OrderStatusUpdateSerializer(serializers.Serializer):
    status = serializers.CharField(max_length=16)
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")
    tracking_number = serializers.CharField(max_length=64, required=False, allow_blank=True)
    shipping_carrier = serializers.CharField(max_length=64, required=False, allow_blank=True)


class OrderCancelSerializer(serializers.Serializer):
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")
