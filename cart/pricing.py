"""Pure pricing helpers for carts.

Nothing here touches the database; callers pass line items (anything with
``price``, ``original_price`` and ``quantity`` attributes) and coupons.
"""

from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from common.choices import CouponType

from .coupons import Coupon

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class CartTotals:
    total_items: int = 0
    total_price: Decimal = ZERO
    total_original_price: Decimal = ZERO
    total_savings: Decimal = ZERO


@dataclass(frozen=True)
class CheckoutTotals:
    subtotal: Decimal
    original_total: Decimal
    savings: Decimal
    shipping: Decimal
    tax: Decimal
    coupon_code: Optional[str]
    coupon_discount: Decimal
    total: Decimal

    def as_dict(self) -> dict:
        return asdict(self)


def compute_totals(items: Iterable) -> CartTotals:
    """Derive cart totals from line items.

    ``total_original_price`` falls back to the selling price for lines with no
    original price, so savings are never negative for well-formed lines.
    """

    total_items = 0
    total_price = ZERO
    total_original = ZERO
    for item in items:
        quantity = int(item.quantity)
        price = to_money(item.price)
        original = to_money(item.original_price) if item.original_price is not None else price
        total_items += quantity
        total_price += price * quantity
        total_original += original * quantity
    total_price = to_money(total_price)
    total_original = to_money(total_original)
    return CartTotals(
        total_items=total_items,
        total_price=total_price,
        total_original_price=total_original,
        total_savings=total_original - total_price,
    )


def coupon_discount(subtotal, coupon: Optional[Coupon]) -> Decimal:
    """Discount a coupon grants on ``subtotal``, never more than the subtotal."""

    if coupon is None:
        return ZERO
    subtotal = to_money(subtotal)
    if subtotal <= 0:
        return ZERO
    if coupon.type == CouponType.PERCENTAGE:
        discount = to_money(subtotal * coupon.discount / Decimal(100))
    else:
        discount = to_money(coupon.discount)
    return min(discount, subtotal)


def checkout_summary(totals: CartTotals, coupon: Optional[Coupon]) -> CheckoutTotals:
    shipping = ZERO
    tax = ZERO
    discount = coupon_discount(totals.total_price, coupon)
    return CheckoutTotals(
        subtotal=totals.total_price,
        original_total=totals.total_original_price,
        savings=totals.total_savings,
        shipping=shipping,
        tax=tax,
        coupon_code=coupon.code if coupon else None,
        coupon_discount=discount,
        total=totals.total_price - discount + shipping + tax,
    )
