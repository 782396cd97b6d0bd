"""Serializers for the catalog app (read-only)."""

from rest_framework import serializers

from .models import Product


class ProductListSerializer(serializers.ModelSerializer):
    in_stock = serializers.SerializerMethodField()
    primary_image = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = [
            "id",
            "name",
            "brand",
            "category",
            "price",
            "original_price",
            "in_stock",
            "primary_image",
        ]

    def get_in_stock(self, obj) -> bool:
        return obj.quantity > 0

    def get_primary_image(self, obj):
        return obj.images[0] if obj.images else None


class ProductDetailSerializer(serializers.ModelSerializer):
    class Meta:
        model = Product
        fields = [
            "id",
            "name",
            "brand",
            "category",
            "sku",
            "price",
            "original_price",
            "quantity",
            "images",
            "colors",
            "sizes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields
