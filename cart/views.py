"""DRF views for cart operations.

All endpoints act on the authenticated user's own cart. Service errors are
rendered as structured failures; request shape errors are DRF 400s.
"""

from common.exceptions import ServiceError, error_response, failure_body
from drf_spectacular.utils import OpenApiExample, extend_schema
from orders.serializers import OrderSerializer
from orders.services import get_order_for_user
from orders.views import IDEMPOTENCY_HEADER, DefaultPagination, idempotent_response
from rest_framework import generics, status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .selectors import get_cart_for_user, list_cart_history
from .serializers import (
    AddItemSerializer,
    CartHistorySerializer,
    CartReadSerializer,
    CheckoutSerializer,
    CheckoutTotalsSerializer,
    CouponSerializer,
    ReplaceCartSerializer,
    SyncCartSerializer,
    TotalsRequestSerializer,
    UpdateItemQuantitySerializer,
    cart_payload,
)
from .services import (
    CartNotFound,
    add_item,
    apply_coupon,
    checkout_cart,
    checkout_totals,
    clear_cart,
    reconcile_cart,
    remove_coupon,
    remove_item,
    replace_cart,
    sync_cart,
    update_item_quantity,
    validate_cart,
)

CART_EXAMPLE = {
    "success": True,
    "cart": {
        "id": 1,
        "items": [
            {
                "cart_item_id": "7_Black_default",
                "product_id": 7,
                "name": "Studio Monitor",
                "price": "4999.00",
                "original_price": "5999.00",
                "quantity": 2,
                "line_total": "9998.00",
            }
        ],
        "total_items": 2,
        "total_price": "9998.00",
        "total_original_price": "11998.00",
        "total_savings": "2000.00",
        "coupon": None,
    },
}


class CartDetailView(APIView):
    """Return or replace the authenticated user's cart."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "cart"
    write_throttle_scope = "cart_write"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Get cart",
        description=(
            "Returns the user's cart, created if missing. Lines are reconciled against the catalog first: "
            "lines for removed products are dropped and prices follow the catalog."
        ),
        responses={200: CartReadSerializer},
        examples=[OpenApiExample("Cart", value=CART_EXAMPLE)],
    )
    def get(self, request):
        cart = reconcile_cart(user=request.user)
        return Response(cart_payload(cart))

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Replace cart",
        description="Replaces every line with the given items. Malformed lines are dropped, duplicates merged.",
        request=ReplaceCartSerializer,
        responses={200: CartReadSerializer},
    )
    def put(self, request):
        serializer = ReplaceCartSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        cart = replace_cart(user=request.user, items=serializer.validated_data["items"])
        return Response(cart_payload(cart))


class CartAddItemView(APIView):
    """Add an item to the cart."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "cart_write"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Add item to cart",
        description="Adds a product (with optional color/size) to the cart, merging with an existing line.",
        request=AddItemSerializer,
        responses={201: CartReadSerializer},
        examples=[
            OpenApiExample("Add", value={"product_id": 7, "quantity": 2, "selected_color": "Black"}, request_only=True),
            OpenApiExample(
                "Out of stock",
                value={
                    "success": False,
                    "detail": "Only 1 items available.",
                    "code": "insufficient_stock",
                    "product_id": 7,
                    "available_quantity": 1,
                    "requested_quantity": 2,
                },
                response_only=True,
                status_codes=["400"],
            ),
        ],
    )
    def post(self, request):
        serializer = AddItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            cart = add_item(user=request.user, **serializer.validated_data)
        except ServiceError as exc:
            return error_response(exc)
        return Response(cart_payload(cart), status=status.HTTP_201_CREATED)


class CartItemDetailView(APIView):
    """Update or remove a single cart line by its cart item id."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "cart_write"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Update cart item quantity",
        description="Sets the line quantity; zero or below removes the line.",
        request=UpdateItemQuantitySerializer,
        responses={200: CartReadSerializer},
    )
    def patch(self, request, cart_item_id: str):
        serializer = UpdateItemQuantitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            cart = update_item_quantity(
                user=request.user, cart_item_id=cart_item_id, quantity=serializer.validated_data["quantity"]
            )
        except ServiceError as exc:
            return error_response(exc)
        return Response(cart_payload(cart))

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Remove cart item",
        description="Removes a line. Removing a line that is not in the cart is not an error.",
        responses={200: CartReadSerializer},
    )
    def delete(self, request, cart_item_id: str):
        try:
            cart = remove_item(user=request.user, cart_item_id=cart_item_id)
        except ServiceError as exc:
            return error_response(exc)
        return Response(cart_payload(cart))


class CartClearView(APIView):
    """Empty the cart and drop the applied coupon."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "cart_write"

    @extend_schema(tags=["Cart Endpoints"], summary="Clear cart", request=None, responses={200: CartReadSerializer})
    def post(self, request):
        try:
            cart = clear_cart(user=request.user)
        except ServiceError as exc:
            return error_response(exc)
        return Response(cart_payload(cart))


class CartSyncView(APIView):
    """Replace the cart from a client copy unless the server copy is newer."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "cart_write"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Sync cart",
        description=(
            "Replaces the cart with the client items. When the server copy was synced more recently than "
            "`last_sync_time`, nothing changes and the server cart is returned with `conflict: true`."
        ),
        request=SyncCartSerializer,
        responses={200: CartReadSerializer},
        examples=[
            OpenApiExample(
                "Conflict",
                value={"success": True, "conflict": True, "message": "Server cart is newer", "cart": {"id": 1}},
                response_only=True,
            )
        ],
    )
    def post(self, request):
        serializer = SyncCartSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        result = sync_cart(user=request.user, items=data["items"], last_sync_time=data.get("last_sync_time"))
        if result.conflict:
            return Response(cart_payload(result.cart, conflict=True, message="Server cart is newer"))
        return Response(cart_payload(result.cart, conflict=False))


class CartValidateView(APIView):
    """Reconcile the cart with the catalog and report per-line issues."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "cart_write"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Validate cart",
        request=None,
        examples=[
            OpenApiExample(
                "Issues",
                value={
                    "success": True,
                    "valid": False,
                    "issues": [
                        {
                            "cart_item_id": "7_default_default",
                            "issue": "insufficient_stock",
                            "message": "Only 1 items available",
                            "available_quantity": 1,
                        }
                    ],
                    "cart": {"id": 1},
                },
                response_only=True,
            )
        ],
    )
    def post(self, request):
        try:
            cart, issues = validate_cart(user=request.user)
        except ServiceError as exc:
            return error_response(exc)
        return Response(cart_payload(cart, valid=not issues, issues=[issue.as_dict() for issue in issues]))


class CartCouponView(APIView):
    """Apply or remove the cart coupon."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "cart_write"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Apply coupon",
        description="Attaches a coupon to the cart. The discount is applied at checkout.",
        request=CouponSerializer,
        responses={200: CartReadSerializer},
        examples=[
            OpenApiExample(
                "Minimum not met",
                value={
                    "success": False,
                    "detail": "Minimum order amount 5,000 required.",
                    "code": "minimum_not_met",
                    "min_order": "5000",
                },
                response_only=True,
                status_codes=["400"],
            )
        ],
    )
    def post(self, request):
        serializer = CouponSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            cart = apply_coupon(user=request.user, code=serializer.validated_data["code"])
        except ServiceError as exc:
            return error_response(exc)
        return Response(cart_payload(cart))

    @extend_schema(tags=["Cart Endpoints"], summary="Remove coupon", responses={200: CartReadSerializer})
    def delete(self, request):
        try:
            cart = remove_coupon(user=request.user)
        except ServiceError as exc:
            return error_response(exc)
        return Response(cart_payload(cart))


class CartTotalsView(APIView):
    """Checkout totals, optionally previewing a different coupon."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "cart"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Cart totals",
        description="Subtotal, savings, shipping, tax, coupon discount and total. `coupon_code` is not stored.",
        request=TotalsRequestSerializer,
        responses={200: CheckoutTotalsSerializer},
    )
    def post(self, request):
        serializer = TotalsRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        cart = get_cart_for_user(user=request.user)
        if cart is None:
            return error_response(CartNotFound())
        totals = checkout_totals(cart, coupon_code=serializer.validated_data["coupon_code"] or None)
        return Response({"success": True, "totals": CheckoutTotalsSerializer(totals).data})


class CartCheckoutView(APIView):
    """Place an order from the cart and empty it."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "cart_write"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Checkout cart",
        description=(
            "Places an order for every cart line and empties the cart in one transaction. "
            "If any line is short on stock, nothing changes. "
            "If catalog prices changed or products were removed, the cart is updated and 409 cart_changed "
            "lists the issues.\n"
            "Idempotent when Idempotency-Key header is set."
        ),
        request=CheckoutSerializer,
        parameters=[IDEMPOTENCY_HEADER],
        responses={201: OrderSerializer},
    )
    def post(self, request):
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        def _checkout_handler():
            try:
                order = checkout_cart(
                    user=request.user,
                    shipping_address=data["shipping_address"],
                    payment_method=data["payment_method"],
                )
            except ServiceError as exc:
                return failure_body(exc)
            order = get_order_for_user(order_id=order.id, user=request.user)
            return {"success": True, "order": OrderSerializer(order).data}, status.HTTP_201_CREATED

        return idempotent_response(request, _checkout_handler)


class CartHistoryView(generics.ListAPIView):
    """Paginated audit trail of the user's cart mutations, newest first."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "cart"
    serializer_class = CartHistorySerializer
    pagination_class = DefaultPagination

    def get_queryset(self):
        return list_cart_history(user=self.request.user)

    @extend_schema(tags=["Cart Endpoints"], summary="Cart history")
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)
