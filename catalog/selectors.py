"""Selectors for the catalog domain.

Read-only query helpers shared by the catalog API and the cart/order
services. They return querysets or model instances and have no side effects.
"""

from typing import Iterable, Optional

from django.db.models import Q, QuerySet

from .models import Product


def find_by_id(product_id) -> Optional[Product]:
    """Return the product with the given id, or None when it does not exist."""

    try:
        return Product.objects.get(id=product_id)
    except (Product.DoesNotExist, ValueError, TypeError):
        return None


def find_many(product_ids: Iterable[int]) -> dict[int, Product]:
    """Return a mapping of id -> product for the ids that exist."""

    return {p.id: p for p in Product.objects.filter(id__in=set(product_ids))}


def list_products(
    *,
    category: Optional[str] = None,
    brand: Optional[str] = None,
    search: Optional[str] = None,
) -> QuerySet[Product]:
    """Return active products with the common storefront filters applied."""

    qs = Product.objects.filter(is_active=True)
    if category:
        qs = qs.filter(category=category.lower())
    if brand:
        qs = qs.filter(brand__iexact=brand)
    if search:
        qs = qs.filter(Q(name__icontains=search) | Q(brand__icontains=search))
    return qs.order_by("name")
