"""Staff-only order management endpoints.

Listing supports django-filter on `status`, `payment_method` and `is_paid`.
Lifecycle actions call the order services and render the structured result.
"""

from common.choices import OrderStatus, PaymentMethod
from common.exceptions import ServiceError, error_response
from django_filters import rest_framework as filters
from drf_spectacular.utils import extend_schema, extend_schema_view
from rest_framework import filters as drf_filters
from rest_framework import permissions, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from .models import Order
from .serializers import AdminOrderSerializer, OrderCancelSerializer, OrderStatusUpdateSerializer
from .services import cancel_order, mark_order_as_delivered, mark_order_as_paid, update_order_status
from .views import DefaultPagination


class OrderFilterSet(filters.FilterSet):
    status = filters.ChoiceFilter(choices=OrderStatus.choices)
    payment_method = filters.ChoiceFilter(choices=PaymentMethod.choices)
    is_paid = filters.BooleanFilter()
    created_from = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    created_to = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = Order
        fields = ["status", "payment_method", "is_paid", "user"]


@extend_schema_view(
    list=extend_schema(tags=["Admin Endpoints"], summary="List orders (admin)"),
    retrieve=extend_schema(tags=["Admin Endpoints"], summary="Get order (admin)"),
)
class AdminOrderViewSet(viewsets.ReadOnlyModelViewSet):
    permission_classes = [permissions.IsAdminUser]
    throttle_scope = "orders_admin"
    serializer_class = AdminOrderSerializer
    pagination_class = DefaultPagination
    filterset_class = OrderFilterSet
    filter_backends = [filters.DjangoFilterBackend, drf_filters.OrderingFilter, drf_filters.SearchFilter]
    ordering_fields = ["created_at", "total_price", "status"]
    search_fields = ["number", "tracking_number", "shipping_address__email", "shipping_address__phone"]

    def get_queryset(self):
        return (
            Order.objects.select_related("shipping_address")
            .prefetch_related("items", "status_history")
            .order_by("-created_at", "-id")
        )

    def _result(self, order_id) -> Response:
        order = self.get_queryset().get(pk=order_id)
        return Response({"success": True, "order": AdminOrderSerializer(order).data})

    @extend_schema(
        tags=["Admin Endpoints"],
        summary="Update order status",
        description="Sets the order status. `cancelled` goes through the cancellation rules and restores stock.",
        request=OrderStatusUpdateSerializer,
        responses={200: AdminOrderSerializer},
    )
    @action(detail=True, methods=["patch"], url_path="status")
    def set_status(self, request, pk=None):
        serializer = OrderStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            order = update_order_status(
                order_id=pk,
                status=data["status"],
                updated_by=request.user,
                notes=data.get("notes", ""),
                tracking_number=data.get("tracking_number"),
                shipping_carrier=data.get("shipping_carrier"),
            )
        except ServiceError as exc:
            return error_response(exc)
        return self._result(order.id)

    @extend_schema(tags=["Admin Endpoints"], summary="Mark order as paid", request=None)
    @action(detail=True, methods=["post"], url_path="pay")
    def pay(self, request, pk=None):
        try:
            order = mark_order_as_paid(order_id=pk, updated_by=request.user)
        except ServiceError as exc:
            return error_response(exc)
        return self._result(order.id)

    @extend_schema(tags=["Admin Endpoints"], summary="Mark order as delivered", request=None)
    @action(detail=True, methods=["post"], url_path="deliver")
    def deliver(self, request, pk=None):
        try:
            order = mark_order_as_delivered(order_id=pk, updated_by=request.user)
        except ServiceError as exc:
            return error_response(exc)
        return self._result(order.id)

    @extend_schema(tags=["Admin Endpoints"], summary="Cancel order (admin)", request=OrderCancelSerializer)
    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, pk=None):
        serializer = OrderCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            order = cancel_order(order_id=pk, user=request.user, notes=serializer.validated_data["notes"])
        except ServiceError as exc:
            return error_response(exc)
        return self._result(order.id)
