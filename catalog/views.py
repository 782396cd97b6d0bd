"""Read-only viewsets for catalog products."""

from django_filters import rest_framework as filters
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema, extend_schema_view
from rest_framework import filters as drf_filters
from rest_framework import viewsets
from rest_framework.permissions import AllowAny

from . import selectors
from .models import Product
from .serializers import ProductDetailSerializer, ProductListSerializer


class ProductFilterSet(filters.FilterSet):
    category = filters.CharFilter(field_name="category", lookup_expr="iexact")
    brand = filters.CharFilter(field_name="brand", lookup_expr="iexact")

    class Meta:
        model = Product
        fields = ["category", "brand"]


@extend_schema_view(
    list=extend_schema(
        summary="List products",
        description=(
            "Returns active products. Supports filtering by `category` and `brand`, ordering by `name`, "
            "`price` or `created_at`, and search via `search`."
        ),
        tags=["Catalog Endpoints"],
        parameters=[
            OpenApiParameter("category", OpenApiTypes.STR, location="query", description="Filter by category"),
            OpenApiParameter("brand", OpenApiTypes.STR, location="query", description="Filter by brand"),
            OpenApiParameter("search", OpenApiTypes.STR, location="query", description="Search name and brand"),
        ],
    ),
    retrieve=extend_schema(
        summary="Get product",
        description="Returns an active product with images, colors, sizes and stock.",
        tags=["Catalog Endpoints"],
    ),
)
class ProductViewSet(viewsets.ReadOnlyModelViewSet):
    permission_classes = [AllowAny]
    filterset_class = ProductFilterSet
    throttle_scope = "catalog"
    filter_backends = [
        filters.DjangoFilterBackend,
        drf_filters.OrderingFilter,
        drf_filters.SearchFilter,
    ]
    ordering_fields = ["name", "price", "created_at"]
    search_fields = ["name", "brand"]

    def get_queryset(self):
        return selectors.list_products()

    def get_serializer_class(self):
        return ProductDetailSerializer if self.action == "retrieve" else ProductListSerializer
