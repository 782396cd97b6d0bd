"""Django app configuration for the Cart app."""

from django.apps import AppConfig


class CartConfig(AppConfig):
    """Per-user carts, coupons and the cart audit trail."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "cart"
