"""Admin router for order management endpoints."""

from django.urls import include, path
from rest_framework.routers import SimpleRouter

from .admin_views import AdminOrderViewSet

router = SimpleRouter()
router.register(r"orders", AdminOrderViewSet, basename="admin-order")

urlpatterns = [path("", include(router.urls))]
