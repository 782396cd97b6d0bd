"""Admin registration for catalog models."""

from django.contrib import admin

from .models import Product


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "brand", "category", "price", "quantity", "is_active")
    search_fields = ("name", "brand", "sku")
    list_filter = ("is_active", "category")
    list_editable = ("quantity", "is_active")
