"""Coupon book.

Coupons are static configuration (``settings.CART_COUPONS``), loaded into an
immutable ``CouponBook`` that callers pass to the cart services.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping, Optional

from common.choices import CouponType
from django.conf import settings


@dataclass(frozen=True)
class Coupon:
    code: str
    discount: Decimal
    type: str
    min_order: Decimal = Decimal("0")


class CouponBook:
    """Case-insensitive lookup over a fixed set of coupons."""

    def __init__(self, coupons: Iterable[Coupon] = ()):
        self._coupons = {c.code.upper(): c for c in coupons}

    def __len__(self) -> int:
        return len(self._coupons)

    def __contains__(self, code) -> bool:
        return self.get(code) is not None

    def get(self, code) -> Optional[Coupon]:
        if not code:
            return None
        return self._coupons.get(str(code).strip().upper())

    @classmethod
    def from_mapping(cls, table: Mapping[str, Mapping]) -> "CouponBook":
        coupons = []
        for code, entry in table.items():
            coupon_type = entry.get("type", CouponType.PERCENTAGE)
            if coupon_type not in CouponType.values:
                raise ValueError(f"Unknown coupon type for {code}: {coupon_type}")
            coupons.append(
                Coupon(
                    code=code.upper(),
                    discount=Decimal(str(entry["discount"])),
                    type=coupon_type,
                    min_order=Decimal(str(entry.get("min_order", 0))),
                )
            )
        return cls(coupons)

    @classmethod
    def from_settings(cls) -> "CouponBook":
        return cls.from_mapping(getattr(settings, "CART_COUPONS", {}))
