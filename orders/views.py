"""Orders API endpoints for customers.

Placement, cancellation and payment verification honour an optional
`Idempotency-Key` header: a retried request with the same key replays the
stored response instead of running twice.
"""

from common.exceptions import ServiceError, error_response, failure_body
from drf_spectacular.utils import OpenApiExample, OpenApiParameter, extend_schema
from rest_framework import generics, status
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .payments import verify_payment
from .serializers import (
    OrderCancelSerializer,
    OrderCreateSerializer,
    OrderSerializer,
    PaymentVerifySerializer,
)
from .services import (
    cancel_order,
    compute_request_hash,
    get_order_for_user,
    list_orders_for_user,
    place_order,
    with_idempotency,
)

IDEMPOTENCY_HEADER = OpenApiParameter(
    name="Idempotency-Key",
    location=OpenApiParameter.HEADER,
    required=False,
    description="Makes the request idempotent within scope+path+method",
    type=str,
)


def idempotent_response(request, handler) -> Response:
    """Run ``handler`` once per Idempotency-Key, replaying stored responses."""

    idem_key = request.headers.get("Idempotency-Key")
    if idem_key:
        body, code = with_idempotency(
            key=idem_key,
            user=request.user,
            path=str(request.path),
            method=str(request.method),
            request_hash=compute_request_hash(getattr(request, "data", None)),
            handler=handler,
        )
        return Response(body, status=code)
    body, code = handler()
    return Response(body, status=code)


class DefaultPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = "page_size"
    max_page_size = 100


class OrderListCreateView(generics.ListAPIView):
    """List the authenticated user's orders, or place a new one."""

    permission_classes = [IsAuthenticated]
    serializer_class = OrderSerializer
    pagination_class = DefaultPagination
    throttle_scope = "orders"
    write_throttle_scope = "orders_write"

    def get_queryset(self):
        return list_orders_for_user(
            user=self.request.user, status=self.request.query_params.get("status")
        ).prefetch_related("status_history")

    @extend_schema(
        tags=["Orders"],
        summary="List orders",
        description="List current user's orders, newest first, with an optional status filter.",
        parameters=[
            OpenApiParameter(name="status", description="Order status filter", required=False, type=str),
            OpenApiParameter(name="page", description="Page number", required=False, type=int),
            OpenApiParameter(name="page_size", description="Items per page", required=False, type=int),
        ],
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @extend_schema(
        tags=["Orders"],
        summary="Place order",
        description=(
            "Validates stock for every line and places the order. Stock is decremented for all lines or none.\n"
            "Idempotent when Idempotency-Key header is set."
        ),
        request=OrderCreateSerializer,
        parameters=[IDEMPOTENCY_HEADER],
        responses={201: OrderSerializer},
        examples=[
            OpenApiExample(
                "Out of stock",
                value={
                    "success": False,
                    "detail": "Insufficient stock for Studio Monitor. Available: 1, Requested: 2",
                    "code": "insufficient_stock",
                    "product_id": 7,
                    "available_quantity": 1,
                    "requested_quantity": 2,
                },
                response_only=True,
                status_codes=["400"],
            )
        ],
    )
    def post(self, request):
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        def _handler():
            try:
                order = place_order(
                    user=request.user,
                    order_items=data["order_items"],
                    shipping_address=data["shipping_address"],
                    payment_method=data["payment_method"],
                    total_price=data["total_price"],
                    order_notes=data.get("order_notes", ""),
                )
            except ServiceError as exc:
                return failure_body(exc)
            order = get_order_for_user(order_id=order.id, user=request.user)
            return {"success": True, "order": OrderSerializer(order).data}, status.HTTP_201_CREATED

        return idempotent_response(request, _handler)


class OrderDetailView(APIView):
    """Retrieve a single order owned by the caller (staff may read any)."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "orders"

    @extend_schema(tags=["Orders"], summary="Get order detail", responses={200: OrderSerializer})
    def get(self, request, order_id: int):
        try:
            order = get_order_for_user(order_id=order_id, user=request.user)
        except ServiceError as exc:
            return error_response(exc)
        return Response({"success": True, "order": OrderSerializer(order).data})


class OrderCancelView(APIView):
    """Cancel an order for the authenticated owner and restore its stock."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "orders_write"

    @extend_schema(
        tags=["Orders"],
        summary="Cancel order",
        description=(
            "Cancels a pending or processing order and puts its stock back.\n"
            "Idempotent when Idempotency-Key header is set."
        ),
        request=OrderCancelSerializer,
        parameters=[IDEMPOTENCY_HEADER],
        responses={200: OrderSerializer},
        examples=[
            OpenApiExample("Cancelled", value={"success": True, "order": {"id": 1, "status": "cancelled"}}),
        ],
    )
    def post(self, request, order_id: int):
        serializer = OrderCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        def _handler():
            try:
                cancel_order(order_id=order_id, user=request.user, notes=serializer.validated_data["notes"])
                order = get_order_for_user(order_id=order_id, user=request.user)
            except ServiceError as exc:
                return failure_body(exc)
            return {"success": True, "order": OrderSerializer(order).data}, status.HTTP_200_OK

        return idempotent_response(request, _handler)


class PaymentVerifyView(APIView):
    """Verify a gateway payment signature and place the paid order."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "orders_write"

    @extend_schema(
        tags=["Orders"],
        summary="Verify payment and place order",
        description=(
            "Checks the HMAC-SHA256 signature over `gateway_order_id|payment_id` and, when valid, places an "
            "`online` order marked as paid with the gateway ids stored in `payment_result`."
        ),
        request=PaymentVerifySerializer,
        parameters=[IDEMPOTENCY_HEADER],
        responses={201: OrderSerializer},
    )
    def post(self, request):
        serializer = PaymentVerifySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        def _handler():
            try:
                payment_result = verify_payment(
                    gateway_order_id=data["gateway_order_id"],
                    payment_id=data["payment_id"],
                    signature=data["signature"],
                )
                order = place_order(
                    user=request.user,
                    order_items=data["order"]["order_items"],
                    shipping_address=data["order"]["shipping_address"],
                    payment_method="online",
                    total_price=data["order"]["total_price"],
                    is_paid=True,
                    payment_result=payment_result,
                    order_notes=data["order"].get("order_notes", ""),
                )
            except ServiceError as exc:
                return failure_body(exc)
            order = get_order_for_user(order_id=order.id, user=request.user)
            return {"success": True, "order": OrderSerializer(order).data}, status.HTTP_201_CREATED

        return idempotent_response(request, _handler)
