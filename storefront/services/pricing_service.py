"""Pricing Service - tiered, time-windowed unit price resolution.

Pure functions: no I/O, no hidden state. The same product, quantity and
promo flag always resolve to the same price.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple

from storefront.models.product import PriceTier

REGULAR = 'regular'
PROMO = 'promo'


@dataclass(frozen=True)
class PriceResolution:
    """Outcome of a price lookup for one product and quantity."""

    unit_price: Decimal
    taxable_rate: Optional[Decimal]
    tier: Optional[PriceTier]
    regime: str


def tier_table(product, promo_active: bool) -> Tuple[PriceTier, ...]:
    """Configured tiers of the active regime, lowest threshold first."""
    tiers = product.promo_tiers if promo_active else product.bulk_tiers
    return tuple(sorted(
        (tier for tier in tiers if tier.is_configured),
        key=lambda tier: tier.threshold_qty
    ))


def active_tier(product, quantity: int, promo_active: bool) -> Optional[PriceTier]:
    """Highest-threshold tier of the active regime that the quantity reaches."""
    if quantity <= 0:
        raise ValueError('Quantity must be greater than 0')

    winner = None
    for tier in tier_table(product, promo_active):
        if tier.threshold_qty <= quantity:
            winner = tier
    return winner


def single_unit_price(product, promo_active: bool) -> Decimal:
    """Price when no tier qualifies: promo single price if set, else base price."""
    promo_single = product.promo_single_unit_price
    if promo_active and promo_single is not None and promo_single > 0:
        return promo_single
    return product.base_price


def resolve_price(product, quantity: int, promo_active: bool) -> PriceResolution:
    """
    Resolve the unit price (and taxable rate) for a quantity.

    Regime isolation: when promo is active only promo tiers and the promo
    single price are read; otherwise only regular tiers and the base price.

    Taxable rate:
    - a winning tier's own taxable rate, when the catalog sets one
    - the product-level taxable rate, when the regular base price applies
    - None otherwise (tax is then inferred from the tax percent)

    Raises:
        ValueError: if quantity is not positive.
    """
    tier = active_tier(product, quantity, promo_active)
    regime = PROMO if promo_active else REGULAR

    if tier is not None:
        return PriceResolution(
            unit_price=tier.price_per_unit,
            taxable_rate=tier.taxable_rate if tier.taxable_rate and tier.taxable_rate > 0 else None,
            tier=tier,
            regime=regime,
        )

    price = single_unit_price(product, promo_active)
    taxable_rate = None
    if price == product.base_price and product.taxable_rate_per_unit and product.taxable_rate_per_unit > 0:
        taxable_rate = product.taxable_rate_per_unit

    return PriceResolution(unit_price=price, taxable_rate=taxable_rate, tier=None, regime=regime)


def resolve_unit_price(product, quantity: int, promo_active: bool) -> Decimal:
    """Unit price for ``quantity`` units under the given regime."""
    return resolve_price(product, quantity, promo_active).unit_price
