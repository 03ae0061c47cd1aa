"""Static catalog of products sold through PayFast."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

PREMIUM_PRODUCT_ID = "premium"
CREDITS_PRODUCT_PREFIX = "credits_"


@dataclass(frozen=True)
class ProductDefinition:
    """Describes a purchasable product and how PayFast should bill it."""

    product_id: str
    display_name: str
    description: str
    price_cents: int
    credits: int = 0
    recurring: bool = False

    @property
    def amount(self) -> str:
        """Price formatted the way PayFast expects, e.g. ``"499.00"``."""
        return f"{self.price_cents // 100}.{self.price_cents % 100:02d}"


PRODUCT_CATALOG: Dict[str, ProductDefinition] = {
    PREMIUM_PRODUCT_ID: ProductDefinition(
        product_id=PREMIUM_PRODUCT_ID,
        display_name="Premium Plan",
        description="Monthly subscription",
        price_cents=49900,
        recurring=True,
    ),
    "credits_5": ProductDefinition(
        product_id="credits_5",
        display_name="5 Job Credits",
        description="One-time purchase",
        price_cents=15000,
        credits=5,
    ),
    "credits_10": ProductDefinition(
        product_id="credits_10",
        display_name="10 Job Credits",
        description="One-time purchase",
        price_cents=25000,
        credits=10,
    ),
    "credits_25": ProductDefinition(
        product_id="credits_25",
        display_name="25 Job Credits",
        description="One-time purchase",
        price_cents=50000,
        credits=25,
    ),
}


def get_product(product_id: str) -> Optional[ProductDefinition]:
    return PRODUCT_CATALOG.get(product_id)


__all__ = [
    "CREDITS_PRODUCT_PREFIX",
    "PREMIUM_PRODUCT_ID",
    "PRODUCT_CATALOG",
    "ProductDefinition",
    "get_product",
]
