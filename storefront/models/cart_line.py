"""Cart line model - one product+variant entry of a cart."""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Tuple

from storefront.models.product import PricingSnapshot
from storefront.utils.number_format import to_decimal


@dataclass(frozen=True)
class CartLine:
    """
    Cart Line - Individual item in the cart.

    Instances are immutable: quantity and unit price are always written
    together by replacing the whole line, so a reader never sees a
    quantity paired with a price resolved for another quantity.
    """

    line_id: str
    product_id: Any
    quantity: int
    unit_price: Decimal
    snapshot: PricingSnapshot
    stock_ceiling: int
    min_order_quantity: int = 1
    taxable_rate: Optional[Decimal] = None
    title: str = ''
    unit: Optional[str] = None
    variant: Tuple[Tuple[str, str], ...] = ()

    def __repr__(self):
        return f"<CartLine(line_id='{self.line_id}', qty={self.quantity}, unit_price={self.unit_price})>"

    @property
    def gross_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def tax_percent(self) -> Decimal:
        return self.snapshot.tax_percent

    @property
    def original_price(self) -> Optional[Decimal]:
        return self.snapshot.original_price

    def to_dict(self) -> Dict[str, Any]:
        return {
            'line_id': self.line_id,
            'product_id': self.product_id,
            'title': self.title,
            'unit': self.unit,
            'quantity': self.quantity,
            'unit_price': str(self.unit_price),
            'taxable_rate': str(self.taxable_rate) if self.taxable_rate is not None else None,
            'stock_ceiling': self.stock_ceiling,
            'min_order_quantity': self.min_order_quantity,
            'variant': dict(self.variant),
            'snapshot': self.snapshot.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CartLine":
        return cls(
            line_id=str(data['line_id']),
            product_id=data.get('product_id'),
            title=data.get('title') or '',
            unit=data.get('unit'),
            quantity=int(data['quantity']),
            unit_price=to_decimal(data['unit_price']),
            taxable_rate=to_decimal(data.get('taxable_rate')),
            stock_ceiling=int(data.get('stock_ceiling', 0)),
            min_order_quantity=max(1, int(data.get('min_order_quantity', 1) or 1)),
            variant=tuple(sorted((str(k), str(v)) for k, v in (data.get('variant') or {}).items())),
            snapshot=PricingSnapshot.from_dict(data.get('snapshot') or {}),
        )
