"""Catalog product model (read-only, supplied by the catalog service)."""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Tuple

from storefront.utils.number_format import to_decimal


def variant_signature(variant: Optional[Mapping[str, Any]]) -> str:
    """
    Canonical signature of a variant selection.

    Axes are sorted by name and values are stringified, so
    {'size': '1kg', 'pack': 2} and {'pack': '2', 'size': '1kg'} give the
    same signature: "pack=2|size=1kg".
    """
    if not variant:
        return ''
    return '|'.join(
        f"{str(name).strip()}={str(value).strip()}"
        for name, value in sorted(variant.items(), key=lambda item: str(item[0]).strip())
    )


@dataclass(frozen=True)
class PriceTier:
    """A (threshold quantity, price per unit) bulk tier."""

    threshold_qty: int
    price_per_unit: Decimal
    taxable_rate: Optional[Decimal] = None

    @property
    def is_configured(self) -> bool:
        # Catalog uses 0 for "tier not set"
        return self.threshold_qty > 0 and self.price_per_unit > 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PriceTier":
        return cls(
            threshold_qty=int(data.get('quantity', data.get('threshold_qty', 0)) or 0),
            price_per_unit=to_decimal(data.get('pricePerUnit', data.get('price_per_unit')), Decimal('0')),
            taxable_rate=to_decimal(data.get('taxableRate', data.get('taxable_rate'))),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'threshold_qty': self.threshold_qty,
            'price_per_unit': str(self.price_per_unit),
            'taxable_rate': str(self.taxable_rate) if self.taxable_rate is not None else None,
        }


def _tiers_from_pricing(pricing: Optional[Mapping[str, Any]]) -> Tuple[PriceTier, ...]:
    """Read bulkRate1..N entries from a catalog pricing block."""
    if not pricing:
        return ()
    tiers = []
    index = 1
    while f'bulkRate{index}' in pricing:
        entry = pricing.get(f'bulkRate{index}') or {}
        tiers.append(PriceTier.from_dict(entry))
        index += 1
    return tuple(tiers)


@dataclass(frozen=True)
class VariantAxis:
    """One selectable product option, e.g. size or pack."""

    name: str
    options: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PricingSnapshot:
    """
    Pricing fields of a product captured when a cart line is written.

    Carries the same attribute names the price resolver reads on a
    Product, so a line can be re-priced later without the catalog.
    """

    base_price: Decimal
    original_price: Optional[Decimal] = None
    tax_percent: Decimal = Decimal('0')
    taxable_rate_per_unit: Optional[Decimal] = None
    bulk_tiers: Tuple[PriceTier, ...] = ()
    promo_tiers: Tuple[PriceTier, ...] = ()
    promo_single_unit_price: Optional[Decimal] = None

    @classmethod
    def from_product(cls, product) -> "PricingSnapshot":
        return cls(
            base_price=product.base_price,
            original_price=product.original_price,
            tax_percent=product.tax_percent,
            taxable_rate_per_unit=product.taxable_rate_per_unit,
            bulk_tiers=tuple(product.bulk_tiers),
            promo_tiers=tuple(product.promo_tiers),
            promo_single_unit_price=product.promo_single_unit_price,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'base_price': str(self.base_price),
            'original_price': str(self.original_price) if self.original_price is not None else None,
            'tax_percent': str(self.tax_percent),
            'taxable_rate_per_unit': (
                str(self.taxable_rate_per_unit) if self.taxable_rate_per_unit is not None else None
            ),
            'bulk_tiers': [tier.to_dict() for tier in self.bulk_tiers],
            'promo_tiers': [tier.to_dict() for tier in self.promo_tiers],
            'promo_single_unit_price': (
                str(self.promo_single_unit_price) if self.promo_single_unit_price is not None else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PricingSnapshot":
        return cls(
            base_price=to_decimal(data.get('base_price'), Decimal('0')),
            original_price=to_decimal(data.get('original_price')),
            tax_percent=to_decimal(data.get('tax_percent'), Decimal('0')),
            taxable_rate_per_unit=to_decimal(data.get('taxable_rate_per_unit')),
            bulk_tiers=tuple(PriceTier.from_dict(t) for t in data.get('bulk_tiers') or ()),
            promo_tiers=tuple(PriceTier.from_dict(t) for t in data.get('promo_tiers') or ()),
            promo_single_unit_price=to_decimal(data.get('promo_single_unit_price')),
        )


@dataclass(frozen=True)
class Product:
    """Product as published by the catalog. Never modified by the cart."""

    id: Any
    base_price: Decimal
    title: str = ''
    unit: Optional[str] = None
    stock: int = 0
    min_order_quantity: int = 1
    original_price: Optional[Decimal] = None
    tax_percent: Decimal = Decimal('0')
    taxable_rate_per_unit: Optional[Decimal] = None
    bulk_tiers: Tuple[PriceTier, ...] = ()
    promo_tiers: Tuple[PriceTier, ...] = ()
    promo_single_unit_price: Optional[Decimal] = None
    variant_axes: Tuple[VariantAxis, ...] = ()
    variant_stock: Mapping[str, int] = field(default_factory=dict, compare=False)

    def __repr__(self):
        return f"<Product(id={self.id!r}, title='{self.title}', base_price={self.base_price})>"

    @property
    def has_variants(self) -> bool:
        return len(self.variant_axes) > 0

    def variant_selection(self, variant: Optional[Mapping[str, Any]]) -> Dict[str, str]:
        """Selection restricted to this product's axes, with names and values stripped."""
        axis_names = {axis.name for axis in self.variant_axes}
        selected = {}
        for name, value in (variant or {}).items():
            name = str(name).strip()
            if name not in axis_names or value is None:
                continue
            value = str(value).strip()
            if value:
                selected[name] = value
        return selected

    def missing_axes(self, variant: Optional[Mapping[str, Any]]) -> Tuple[str, ...]:
        """
        Names of variant axes the selection leaves unset or sets to a value
        outside the axis options (axes without declared options accept any
        value).
        """
        selected = self.variant_selection(variant)
        missing = []
        for axis in self.variant_axes:
            value = selected.get(axis.name)
            if value is None:
                missing.append(axis.name)
            elif axis.options and value not in {str(option).strip() for option in axis.options}:
                missing.append(axis.name)
        return tuple(missing)

    def stock_for(self, variant: Optional[Mapping[str, Any]] = None) -> int:
        """Stock ceiling for a variant selection, falling back to product stock."""
        signature = variant_signature(self.variant_selection(variant))
        if signature and signature in self.variant_stock:
            return int(self.variant_stock[signature])
        return int(self.stock)

    def pricing_snapshot(self) -> PricingSnapshot:
        return PricingSnapshot.from_product(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Product":
        """
        Build a Product from a catalog payload.

        Accepts the catalog's camelCase document shape:
            {"_id": ..., "title": ..., "unit": "kg", "stock": 40,
             "minOrderQuantity": 1, "taxPercent": 5, "taxableRate": 361.9,
             "prices": {"price": 380, "originalPrice": 400},
             "bulkPricing": {"bulkRate1": {"quantity": 12, "pricePerUnit": 370}},
             "promoPricing": {"singleUnit": 350, "bulkRate1": {...}},
             "variantAxes": [{"name": "size", "options": ["1kg", "5kg"]}],
             "variantStock": {"size=5kg": 10}}
        """
        prices = data.get('prices') or {}
        promo = data.get('promoPricing') or {}
        title = data.get('title', '')
        if isinstance(title, Mapping):
            # Translated titles: prefer English, else the first language present
            title = title.get('en') or next(iter(title.values()), '')

        promo_single = to_decimal(promo.get('singleUnit'))
        if promo_single is not None and promo_single <= 0:
            promo_single = None
        taxable_rate = to_decimal(data.get('taxableRate'))
        if taxable_rate is not None and taxable_rate <= 0:
            taxable_rate = None

        return cls(
            id=data.get('_id', data.get('id')),
            title=title,
            unit=data.get('unit'),
            stock=int(data.get('stock', 0) or 0),
            min_order_quantity=max(1, int(data.get('minOrderQuantity', 1) or 1)),
            base_price=to_decimal(prices.get('price', data.get('price')), Decimal('0')),
            original_price=to_decimal(prices.get('originalPrice', data.get('originalPrice'))),
            tax_percent=to_decimal(data.get('taxPercent'), Decimal('0')),
            taxable_rate_per_unit=taxable_rate,
            bulk_tiers=_tiers_from_pricing(data.get('bulkPricing')),
            promo_tiers=_tiers_from_pricing(promo),
            promo_single_unit_price=promo_single,
            variant_axes=tuple(
                VariantAxis(name=axis['name'], options=tuple(axis.get('options') or ()))
                for axis in data.get('variantAxes') or ()
            ),
            variant_stock=dict(data.get('variantStock') or {}),
        )
