"""Cart URL routes (v1)."""

from django.urls import path

from .views import (
    CartAddItemView,
    CartCheckoutView,
    CartClearView,
    CartCouponView,
    CartDetailView,
    CartHistoryView,
    CartItemDetailView,
    CartSyncView,
    CartTotalsView,
    CartValidateView,
)

app_name = "cart"

urlpatterns = [
    path("", CartDetailView.as_view(), name="cart-detail"),
    path("items/", CartAddItemView.as_view(), name="cart-add-item"),
    path("items/<str:cart_item_id>/", CartItemDetailView.as_view(), name="cart-item"),
    path("clear/", CartClearView.as_view(), name="cart-clear"),
    path("sync/", CartSyncView.as_view(), name="cart-sync"),
    path("validate/", CartValidateView.as_view(), name="cart-validate"),
    path("coupon/", CartCouponView.as_view(), name="cart-coupon"),
    path("totals/", CartTotalsView.as_view(), name="cart-totals"),
    path("checkout/", CartCheckoutView.as_view(), name="cart-checkout"),
    path("history/", CartHistoryView.as_view(), name="cart-history"),
]
