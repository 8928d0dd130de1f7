"""Cart Service - authoritative in-memory cart line store.

Every mutation (add, set_quantity, remove, clear, reprice_all) runs inside
one critical section, and a line's quantity and unit price are always
written together by replacing the whole CartLine.
"""

import logging
import re
import threading
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from storefront.exceptions import Advisory, InvalidQuantityInputError, VariantIncompleteError
from storefront.models.cart_line import CartLine
from storefront.models.product import Product, variant_signature
from storefront.services.pricing_service import resolve_price
from storefront.utils.number_format import parse_quantity_input

logger = logging.getLogger(__name__)

DEFAULT_PRICE_TOLERANCE = Decimal('0.01')
SERIALIZATION_VERSION = 1

VARIANT_SEPARATOR = '::'
# Ids written by the storefront's bulk "Add 12" shortcuts: "<product id>-bulk1"
LEGACY_BULK_SUFFIX = re.compile(r'^(?P<base>.+?)-bulk\d+$')
LEGACY_SIGNATURE_SPLIT = re.compile(r'[|,;]')


def canonical_line_id(product: Product, variant: Optional[Mapping[str, Any]] = None) -> str:
    """
    Line id for a product and variant selection.

    Raises:
        VariantIncompleteError: if the product has variant axes and the
            selection leaves one of them unset or picks a value outside
            its options.
    """
    base = str(product.id).strip()
    if not product.has_variants:
        return base

    missing = product.missing_axes(variant)
    if missing:
        raise VariantIncompleteError(product.id, missing)

    return f"{base}{VARIANT_SEPARATOR}{variant_signature(product.variant_selection(variant))}"


def normalize_line_id(line_id: Any) -> str:
    """
    Map any identifier shape used for a line onto its canonical form.

    Handles non-string ids (42 vs "42"), bulk shortcut suffixes
    ("42-bulk1") and variant signatures written in another axis order or
    with other separators ("42::size=1kg,pack=2").
    """
    raw = str(line_id).strip()
    base, sep, signature = raw.partition(VARIANT_SEPARATOR)

    match = LEGACY_BULK_SUFFIX.match(base)
    if match:
        base = match.group('base')

    if not sep:
        return base

    pairs = {}
    for chunk in LEGACY_SIGNATURE_SPLIT.split(signature):
        name, eq, value = chunk.partition('=')
        if eq:
            pairs[name.strip()] = value.strip()
    return f"{base}{VARIANT_SEPARATOR}{variant_signature(pairs)}"


@dataclass(frozen=True)
class CartMutationResult:
    """What a cart mutation did, plus the advisories it emitted."""

    line_id: Optional[str]
    line: Optional[CartLine] = None
    advisories: Tuple[Advisory, ...] = ()
    removed: bool = False
    rejected: bool = False

    @property
    def ok(self) -> bool:
        return not self.rejected

    def to_dict(self) -> Dict[str, Any]:
        return {
            'line_id': self.line_id,
            'line': self.line.to_dict() if self.line else None,
            'advisories': [a.to_dict() for a in self.advisories],
            'removed': self.removed,
            'rejected': self.rejected,
        }


def _log_advisory(advisory: Advisory) -> None:
    logger.info(f"[CART] Advisory {advisory.kind.value} for line {advisory.line_id}: {advisory.message}")


def clamp_quantity(total: int, stock_ceiling: int, min_order_quantity: int,
                   line_id: Optional[str] = None) -> Tuple[int, List[Advisory]]:
    """
    Bring a requested total inside [min_order_quantity, stock_ceiling].

    A total of 0 or less means "remove". When the minimum order quantity
    exceeds the available stock the line cannot exist at all, so the
    result is 0 with a stock advisory.
    """
    advisories = []
    if total <= 0:
        return 0, advisories

    if total > stock_ceiling:
        total = max(0, stock_ceiling)
        advisories.append(Advisory.stock_insufficient(line_id))

    if 0 < total < min_order_quantity:
        if min_order_quantity > stock_ceiling:
            if not advisories:
                advisories.append(Advisory.stock_insufficient(line_id))
            return 0, advisories
        total = min_order_quantity
        advisories.append(Advisory.below_minimum_order(min_order_quantity, line_id))

    return total, advisories


class CartLineStore:
    """
    Cart line map for one user session.

    Holds at most one CartLine per line id. Quantities stay within
    [min_order_quantity, stock_ceiling]; prices come from the tier
    resolver under the promo state read from ``clock`` at write time.
    """

    def __init__(self, clock=None, notifier: Optional[Callable[[Advisory], None]] = None,
                 price_tolerance: Decimal = DEFAULT_PRICE_TOLERANCE):
        self.clock = clock
        self.notifier = notifier or _log_advisory
        self.price_tolerance = price_tolerance
        self._lines: Dict[str, CartLine] = {}
        self._lock = threading.RLock()

    # ---- reads ---------------------------------------------------------

    def __len__(self) -> int:
        return len(self._lines)

    def __contains__(self, line_id) -> bool:
        return self.get(line_id) is not None

    def promo_active(self) -> bool:
        return bool(self.clock.is_active) if self.clock is not None else False

    def get(self, line_id) -> Optional[CartLine]:
        """Line stored under ``line_id`` or any legacy alias of it."""
        with self._lock:
            line = self._lines.get(str(line_id).strip())
            if line is not None:
                return line
            canonical = normalize_line_id(line_id)
            for key, candidate in self._lines.items():
                if normalize_line_id(key) == canonical:
                    return candidate
            return None

    def lines(self) -> Tuple[CartLine, ...]:
        """Snapshot of all lines in insertion order."""
        with self._lock:
            return tuple(self._lines.values())

    def total_items(self) -> int:
        with self._lock:
            return sum(line.quantity for line in self._lines.values())

    def items_below_minimum(self) -> Tuple[CartLine, ...]:
        """Lines under their minimum order quantity; checkout must not proceed."""
        with self._lock:
            return tuple(
                line for line in self._lines.values()
                if line.min_order_quantity > 1 and line.quantity < line.min_order_quantity
            )

    # ---- internals (caller holds the lock) -----------------------------

    def _reconcile(self, canonical_id: str) -> Optional[CartLine]:
        """Fold every legacy alias of ``canonical_id`` into one canonical line."""
        aliases = [key for key in self._lines if key != canonical_id and normalize_line_id(key) == canonical_id]
        if not aliases:
            return self._lines.get(canonical_id)

        merged = self._lines.get(canonical_id)
        for key in aliases:
            legacy = self._lines.pop(key)
            if merged is None:
                merged = replace(legacy, line_id=canonical_id)
            else:
                merged = replace(merged, quantity=merged.quantity + legacy.quantity)
            logger.info(f"[CART] Merged legacy line '{key}' into '{canonical_id}'")

        self._lines[canonical_id] = merged
        return merged

    def _emit(self, advisories) -> None:
        for advisory in advisories:
            self.notifier(advisory)

    def _write(self, line_id: str, existing: Optional[CartLine], total: int,
               builder: Optional["_LineBuilder"], advisories: List[Advisory]) -> CartMutationResult:
        """Resolve the price for ``total`` and store quantity and price as one line."""
        if total == 0:
            removed = self._lines.pop(line_id, None) is not None
            self._emit(advisories)
            return CartMutationResult(line_id, None, tuple(advisories), removed=removed)

        promo_active = self.promo_active()
        if existing is None:
            line = builder.build(total, promo_active)
        else:
            snapshot = builder.snapshot if builder is not None else existing.snapshot
            resolution = resolve_price(snapshot, total, promo_active)
            if abs(resolution.unit_price - existing.unit_price) <= self.price_tolerance:
                line = replace(existing, quantity=total)
            else:
                line = replace(existing, quantity=total, unit_price=resolution.unit_price,
                               taxable_rate=resolution.taxable_rate)
            if builder is not None:
                line = builder.refresh(line)

        self._lines[line_id] = line
        self._emit(advisories)
        return CartMutationResult(line_id, line, tuple(advisories))

    # ---- mutations -----------------------------------------------------

    def add(self, product: Product, requested_qty=1, additive: bool = True,
            variant: Optional[Mapping[str, Any]] = None) -> CartMutationResult:
        """
        Add ``requested_qty`` units of a product (or set the line to it when
        ``additive`` is False).

        Never raises for user-driven failures: an incomplete variant
        selection or a non-numeric quantity rejects the call without side
        effects, stock and minimum-order violations are clamped. Each case
        is reported through the returned advisories and the notifier.
        """
        selection = product.variant_selection(variant)
        try:
            line_id = canonical_line_id(product, selection)
        except VariantIncompleteError as e:
            advisory = Advisory.variant_incomplete(str(product.id))
            logger.info(f"[CART] Add rejected for product {product.id}: unset or unknown {list(e.missing_axes)}")
            self._emit([advisory])
            return CartMutationResult(None, None, (advisory,), rejected=True)

        if not isinstance(requested_qty, int) or isinstance(requested_qty, bool):
            try:
                requested_qty = parse_quantity_input(requested_qty)
            except InvalidQuantityInputError:
                advisory = Advisory.invalid_quantity_input(line_id)
                self._emit([advisory])
                return CartMutationResult(line_id, self.get(line_id), (advisory,), rejected=True)

        builder = _LineBuilder(product, line_id, selection)

        with self._lock:
            existing = self._reconcile(line_id)
            total = (existing.quantity if existing and additive else 0) + requested_qty
            ceiling = builder.stock_ceiling
            total, advisories = clamp_quantity(total, ceiling, product.min_order_quantity, line_id)
            result = self._write(line_id, existing, total, builder, advisories)

        logger.debug(f"[CART] add {line_id}: qty={total}")
        return result

    def set_quantity(self, line_id, new_qty: int) -> CartMutationResult:
        """
        Set a line's quantity with the same clamping and repricing as add.

        Uses the line's own pricing snapshot, stock ceiling and minimum.
        ``new_qty == 0`` removes the line; unknown lines are left alone.
        """
        canonical = normalize_line_id(line_id)
        with self._lock:
            existing = self._reconcile(canonical)
            if existing is None:
                return CartMutationResult(canonical, None, (), removed=False)
            total, advisories = clamp_quantity(new_qty, existing.stock_ceiling,
                                               existing.min_order_quantity, canonical)
            return self._write(canonical, existing, total, None, advisories)

    def set_quantity_from_input(self, line_id, raw_value) -> CartMutationResult:
        """
        Apply a quantity typed directly by the user.

        Non-numeric input leaves the line untouched (the input reverts to
        the last valid quantity) and emits an invalid-quantity advisory.
        """
        try:
            new_qty = parse_quantity_input(raw_value)
        except InvalidQuantityInputError:
            canonical = normalize_line_id(line_id)
            advisory = Advisory.invalid_quantity_input(canonical)
            self._emit([advisory])
            return CartMutationResult(canonical, self.get(canonical), (advisory,), rejected=True)
        return self.set_quantity(line_id, new_qty)

    def increment(self, line_id) -> CartMutationResult:
        with self._lock:
            line = self.get(line_id)
            if line is None:
                return CartMutationResult(normalize_line_id(line_id))
            return self.set_quantity(line_id, line.quantity + 1)

    def decrement(self, line_id) -> CartMutationResult:
        """Step down one unit; at the minimum order quantity the line is removed."""
        with self._lock:
            line = self.get(line_id)
            if line is None:
                return CartMutationResult(normalize_line_id(line_id))
            if line.quantity <= line.min_order_quantity:
                return self.remove(line_id)
            return self.set_quantity(line_id, line.quantity - 1)

    def remove(self, line_id) -> CartMutationResult:
        """Delete a line (and any legacy alias). Always succeeds."""
        canonical = normalize_line_id(line_id)
        with self._lock:
            keys = [key for key in self._lines if key == str(line_id).strip() or normalize_line_id(key) == canonical]
            for key in keys:
                del self._lines[key]
        if keys:
            logger.debug(f"[CART] removed {canonical}")
        return CartMutationResult(canonical, None, (), removed=bool(keys))

    def clear(self) -> None:
        with self._lock:
            self._lines.clear()
        logger.info("[CART] Cart cleared")

    def reprice_all(self, promo_active: Optional[bool] = None) -> int:
        """
        Re-resolve every line's price from its snapshot, keeping quantities.

        Returns:
            Number of lines whose price changed.
        """
        with self._lock:
            if promo_active is None:
                promo_active = self.promo_active()
            changed = 0
            for key, line in list(self._lines.items()):
                resolution = resolve_price(line.snapshot, line.quantity, promo_active)
                if resolution.unit_price != line.unit_price or resolution.taxable_rate != line.taxable_rate:
                    logger.debug(
                        f"[CART] Stale line '{key}': {line.unit_price} -> {resolution.unit_price} "
                        f"(promo={promo_active})"
                    )
                    self._lines[key] = replace(line, unit_price=resolution.unit_price,
                                               taxable_rate=resolution.taxable_rate)
                    changed += 1
            return changed

    # ---- persistence surface -------------------------------------------

    def serialize(self) -> Dict[str, Any]:
        """JSON-safe representation of the line map (Decimals as strings)."""
        with self._lock:
            return {
                'version': SERIALIZATION_VERSION,
                'lines': [line.to_dict() for line in self._lines.values()],
            }

    @classmethod
    def deserialize(cls, data: Optional[Mapping[str, Any]], clock=None,
                    notifier: Optional[Callable[[Advisory], None]] = None,
                    price_tolerance: Decimal = DEFAULT_PRICE_TOLERANCE) -> "CartLineStore":
        """
        Rebuild a store from ``serialize()`` output.

        Lines keep the ids they were saved under; legacy ids are folded
        into their canonical line on the next mutation that touches them.
        Prices are restored as saved and may be stale until the next sync.
        """
        store = cls(clock=clock, notifier=notifier, price_tolerance=price_tolerance)
        for entry in (data or {}).get('lines') or ():
            try:
                line = CartLine.from_dict(entry)
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"[CART] Skipping unreadable saved line {entry!r}: {e}")
                continue
            if line.quantity <= 0:
                continue
            store._lines[line.line_id] = line
        return store


class _LineBuilder:
    """Builds and refreshes lines from a catalog product."""

    def __init__(self, product: Product, line_id: str, selection: Mapping[str, str]):
        self.product = product
        self.line_id = line_id
        self.variant = tuple(sorted(selection.items()))
        self.snapshot = product.pricing_snapshot()
        self.stock_ceiling = product.stock_for(selection)

    def build(self, quantity: int, promo_active: bool) -> CartLine:
        resolution = resolve_price(self.product, quantity, promo_active)
        return CartLine(
            line_id=self.line_id,
            product_id=self.product.id,
            title=self.product.title,
            unit=self.product.unit,
            quantity=quantity,
            unit_price=resolution.unit_price,
            taxable_rate=resolution.taxable_rate,
            snapshot=self.snapshot,
            stock_ceiling=self.stock_ceiling,
            min_order_quantity=self.product.min_order_quantity,
            variant=self.variant,
        )

    def refresh(self, line: CartLine) -> CartLine:
        """Carry the latest catalog data onto an existing line."""
        return replace(
            line,
            title=self.product.title,
            unit=self.product.unit,
            snapshot=self.snapshot,
            stock_ceiling=self.stock_ceiling,
            min_order_quantity=self.product.min_order_quantity,
            variant=self.variant,
        )
