"""Order Total Service - checkout totals with tax reverse-derived from gross prices.

Pure aggregation over cart lines: nothing here mutates the cart, so two
calls over the same lines return equal results.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional, Tuple

from storefront.exceptions import CouponNotApplicableError
from storefront.models.cart_line import CartLine
from storefront.utils.number_format import quantize_money, to_decimal

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')
HUNDRED = Decimal('100')
FIXED = 'fixed'
PERCENTAGE = 'percentage'


@dataclass(frozen=True)
class DeliveryPolicy:
    """
    Delivery charge rule supplied by the shipping policy.

    ``always_free`` waives the charge on every order; otherwise
    ``free_threshold`` (when set) waives it from that gross subtotal up.
    The standard charge is still reported so it can be shown struck through.
    """

    standard_charge: Decimal = Decimal('30')
    always_free: bool = True
    free_threshold: Optional[Decimal] = None

    def is_free(self, gross_subtotal: Decimal) -> bool:
        if self.always_free:
            return True
        return self.free_threshold is not None and gross_subtotal >= self.free_threshold

    def charge_for(self, gross_subtotal: Decimal) -> Decimal:
        return ZERO if self.is_free(gross_subtotal) else quantize_money(self.standard_charge)


@dataclass(frozen=True)
class Coupon:
    """Coupon as published by the coupon engine."""

    code: str
    discount_type: str
    value: Decimal
    minimum_amount: Decimal = ZERO

    @classmethod
    def from_dict(cls, data) -> "Coupon":
        discount = data.get('discountType') or {}
        return cls(
            code=data.get('couponCode', data.get('code', '')),
            discount_type=discount.get('type', data.get('discount_type', FIXED)),
            value=to_decimal(discount.get('value', data.get('value')), ZERO),
            minimum_amount=to_decimal(data.get('minimumAmount', data.get('minimum_amount')), ZERO),
        )


@dataclass(frozen=True)
class LineBreakdown:
    """Tax split of one cart line."""

    line_id: str
    quantity: int
    unit_price: Decimal
    gross_amount: Decimal
    taxable_amount: Decimal
    gst_amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            'line_id': self.line_id,
            'quantity': self.quantity,
            'unit_price': str(self.unit_price),
            'gross_amount': str(self.gross_amount),
            'taxable_amount': str(self.taxable_amount),
            'gst_amount': str(self.gst_amount),
        }


@dataclass(frozen=True)
class PricingBreakdown:
    """Checkout totals. Derived on demand, never stored."""

    taxable_subtotal: Decimal
    gst_total: Decimal
    delivery_charge: Decimal
    standard_delivery_charge: Decimal
    is_free_delivery: bool
    discount: Decimal
    total: Decimal
    gross_subtotal: Decimal
    original_total: Decimal
    savings: Decimal
    lines: Tuple[LineBreakdown, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'taxable_subtotal': str(self.taxable_subtotal),
            'gst_total': str(self.gst_total),
            'delivery_charge': str(self.delivery_charge),
            'standard_delivery_charge': str(self.standard_delivery_charge),
            'is_free_delivery': self.is_free_delivery,
            'discount': str(self.discount),
            'total': str(self.total),
            'gross_subtotal': str(self.gross_subtotal),
            'original_total': str(self.original_total),
            'savings': str(self.savings),
            'lines': [line.to_dict() for line in self.lines],
        }


def line_breakdown(line: CartLine) -> LineBreakdown:
    """
    Split a line's gross amount into taxable amount and GST.

    With a known per-unit taxable rate the taxable amount is rate x qty;
    otherwise it is inferred as gross / (1 + tax% / 100). GST is always
    the remainder, so taxable + gst equals the rounded gross exactly.
    """
    gross = quantize_money(line.unit_price * line.quantity)

    if line.taxable_rate is not None and line.taxable_rate > 0:
        taxable = quantize_money(line.taxable_rate * line.quantity)
    else:
        tax_percent = line.tax_percent or Decimal('0')
        taxable = quantize_money(line.unit_price * line.quantity / (1 + tax_percent / HUNDRED))

    return LineBreakdown(
        line_id=line.line_id,
        quantity=line.quantity,
        unit_price=line.unit_price,
        gross_amount=gross,
        taxable_amount=taxable,
        gst_amount=gross - taxable,
    )


def _original_amount(line: CartLine) -> Decimal:
    """Undiscounted gross for savings: original price, else base price, never below current."""
    candidates = [line.unit_price]
    if line.original_price is not None and line.original_price > 0:
        candidates.append(line.original_price)
    else:
        candidates.append(line.snapshot.base_price)
    return max(candidates) * line.quantity


def calculate_order_totals(
    lines: Iterable[CartLine],
    discount=ZERO,
    delivery_policy: Optional[DeliveryPolicy] = None,
) -> PricingBreakdown:
    """
    Aggregate cart lines into the checkout total.

    total = taxable_subtotal + gst_total + delivery_charge - discount,
    floored at zero when the discount exceeds everything else.
    """
    policy = delivery_policy or DeliveryPolicy()
    discount = quantize_money(to_decimal(discount, ZERO))
    if discount < 0:
        discount = ZERO

    lines = tuple(lines)
    breakdowns = tuple(line_breakdown(line) for line in lines)

    taxable_subtotal = sum((b.taxable_amount for b in breakdowns), ZERO)
    gst_total = sum((b.gst_amount for b in breakdowns), ZERO)
    gross_subtotal = taxable_subtotal + gst_total

    delivery_charge = policy.charge_for(gross_subtotal)
    is_free = policy.is_free(gross_subtotal)
    standard_charge = quantize_money(policy.standard_charge)

    total = taxable_subtotal + gst_total + delivery_charge - discount
    if total < 0:
        logger.info(f"[TOTALS] Discount {discount} exceeds order value, total floored at 0")
        total = ZERO

    original_total, savings = _savings(lines, gross_subtotal, standard_charge if is_free else ZERO)

    return PricingBreakdown(
        taxable_subtotal=taxable_subtotal,
        gst_total=gst_total,
        delivery_charge=delivery_charge,
        standard_delivery_charge=standard_charge,
        is_free_delivery=is_free,
        discount=discount,
        total=total,
        gross_subtotal=gross_subtotal,
        original_total=original_total,
        savings=savings,
        lines=breakdowns,
    )


def _savings(lines: Tuple[CartLine, ...], gross_subtotal: Decimal,
             waived_delivery: Decimal) -> Tuple[Decimal, Decimal]:
    """
    Original (undiscounted) gross total and total savings shown to the user.

    Savings are product savings (original vs resolved price) plus the
    waived standard delivery charge.
    """
    original_total = quantize_money(sum((_original_amount(line) for line in lines), ZERO))
    product_savings = max(ZERO, original_total - gross_subtotal)
    return original_total, product_savings + waived_delivery


def coupon_discount(coupon: Coupon, breakdown: PricingBreakdown) -> Decimal:
    """
    Discount a coupon grants on an order.

    The minimum amount is checked against the line-level order value
    (gross subtotal plus delivery), the same figure shown at checkout.

    Raises:
        CouponNotApplicableError: if the order is below the coupon minimum.
    """
    order_value = breakdown.gross_subtotal + breakdown.delivery_charge
    if order_value < coupon.minimum_amount:
        raise CouponNotApplicableError(coupon.code, coupon.minimum_amount)

    if coupon.discount_type == PERCENTAGE:
        amount = breakdown.gross_subtotal * coupon.value / HUNDRED
    else:
        amount = coupon.value

    return quantize_money(min(max(amount, ZERO), breakdown.gross_subtotal))


def build_order_payload(lines: Iterable[CartLine], breakdown: PricingBreakdown) -> Dict[str, Any]:
    """Lines and totals in the shape the order submission service expects."""
    return {
        'cart': [line.to_dict() for line in lines],
        'sub_total': str(breakdown.gross_subtotal),
        'shipping_cost': str(breakdown.delivery_charge),
        'discount': str(breakdown.discount),
        'total': str(breakdown.total),
        'pricing': breakdown.to_dict(),
    }
