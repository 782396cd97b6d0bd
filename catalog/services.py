"""Catalog services: transactional stock movements.

Stock is a single counter on ``Product.quantity``. Decrements use a
conditional ``UPDATE ... WHERE quantity >= n`` so the counter can never go
negative even when two checkouts race on the same row.
"""

import logging
from collections import OrderedDict
from typing import Iterable, Tuple

from common.exceptions import ServiceError
from django.db import transaction
from django.db.models import F
from django.utils import timezone
from rest_framework import status

from .models import Product

logger = logging.getLogger("storefront.catalog")


class CatalogError(ServiceError):
    code = "catalog_error"


class ProductNotFound(CatalogError):
    code = "product_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Product not found."


class InsufficientStock(CatalogError):
    code = "insufficient_stock"
    default_message = "Insufficient stock."


def _aggregate(lines: Iterable[Tuple[int, int]]) -> "OrderedDict[int, int]":
    totals: OrderedDict[int, int] = OrderedDict()
    for product_id, quantity in lines:
        totals[int(product_id)] = totals.get(int(product_id), 0) + int(quantity)
    return totals


@transaction.atomic
def reserve_stock_for_items(lines: Iterable[Tuple[int, int]]) -> dict[int, Product]:
    """Decrement stock for every (product_id, quantity) line, all or nothing.

    All referenced rows are locked and checked before any of them is written,
    and quantities for the same product are summed first. Any failure raises
    and rolls the surrounding transaction back, so no partial decrement is
    ever kept. Inactive products count as missing. Returns the locked
    products keyed by id, as read before the decrement.
    """

    requested = _aggregate(lines)
    products = {
        p.id: p for p in Product.objects.select_for_update().filter(id__in=list(requested)).order_by("id")
    }

    for product_id, quantity in requested.items():
        product = products.get(product_id)
        if product is None or not product.is_active:
            raise ProductNotFound(f"Product not found: {product_id}", product_id=product_id)
        if product.quantity < quantity:
            raise InsufficientStock(
                f"Insufficient stock for {product.name}. Available: {product.quantity}, Requested: {quantity}",
                product_id=product_id,
                available_quantity=product.quantity,
                requested_quantity=quantity,
            )

    for product_id, quantity in requested.items():
        decrement_stock(product_id, quantity)
    return products


@transaction.atomic
def decrement_stock(product_id: int, amount: int) -> None:
    """Remove ``amount`` units from a product, refusing to go below zero."""

    if amount <= 0:
        return
    updated = Product.objects.filter(id=product_id, quantity__gte=amount).update(
        quantity=F("quantity") - amount, updated_at=timezone.now()
    )
    if updated == 0:
        if not Product.objects.filter(id=product_id).exists():
            raise ProductNotFound(f"Product not found: {product_id}", product_id=product_id)
        raise InsufficientStock(product_id=product_id, requested_quantity=amount)
    logger.info(
        "catalog.stock_decremented",
        extra={"event": "catalog.stock_decremented", "product_id": product_id, "quantity": amount},
    )


@transaction.atomic
def restore_stock(product_id: int, amount: int) -> bool:
    """Put ``amount`` units back on a product.

    Returns False when the product no longer exists; the units are dropped.
    """

    if amount <= 0:
        return True
    updated = Product.objects.filter(id=product_id).update(
        quantity=F("quantity") + amount, updated_at=timezone.now()
    )
    if not updated:
        logger.warning(
            "catalog.restore_skipped",
            extra={"event": "catalog.restore_skipped", "product_id": product_id, "quantity": amount},
        )
        return False
    logger.info(
        "catalog.stock_restored",
        extra={"event": "catalog.stock_restored", "product_id": product_id, "quantity": amount},
    )
    return True
