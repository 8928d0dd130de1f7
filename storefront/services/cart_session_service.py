"""Cart Session Service - wires store, scheduler and totals for one shopper."""

import logging
import threading
import time
from collections import OrderedDict
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from storefront.exceptions import Advisory, BusinessLogicError
from storefront.services.cart_service import CartLineStore, DEFAULT_PRICE_TOLERANCE
from storefront.services.cart_sync_service import CartSyncScheduler
from storefront.services.order_total_service import (
    Coupon, DeliveryPolicy, PricingBreakdown, build_order_payload, calculate_order_totals, coupon_discount
)

logger = logging.getLogger(__name__)

DEFAULT_SESSION_LIMIT = 1000
DEFAULT_IDLE_SECONDS = 1800


class CartSession:
    """
    One shopper's cart: line store, price sync and totals.

    Advisories emitted by the store are buffered here until the caller
    drains them for the notification (toast) collaborator.
    """

    def __init__(self, cart_id: str, clock, delivery_policy: Optional[DeliveryPolicy] = None,
                 price_tolerance: Decimal = DEFAULT_PRICE_TOLERANCE,
                 saved_payload: Optional[Dict[str, Any]] = None,
                 notifier: Optional[Callable[[Advisory], None]] = None):
        self.cart_id = cart_id
        self.clock = clock
        self.delivery_policy = delivery_policy or DeliveryPolicy()
        self._pending: List[Advisory] = []
        self._external_notifier = notifier
        if saved_payload:
            self.store = CartLineStore.deserialize(saved_payload, clock=clock, notifier=self._notify,
                                                   price_tolerance=price_tolerance)
        else:
            self.store = CartLineStore(clock=clock, notifier=self._notify, price_tolerance=price_tolerance)
        self.scheduler = CartSyncScheduler(self.store, clock)

    def _notify(self, advisory: Advisory) -> None:
        self._pending.append(advisory)
        if self._external_notifier is not None:
            self._external_notifier(advisory)

    def drain_advisories(self) -> List[Advisory]:
        pending, self._pending = self._pending, []
        return pending

    @property
    def is_closed(self) -> bool:
        return self.scheduler.is_stopped

    def inspect(self):
        """Self-healing read of the cart lines (cart opened)."""
        return self.scheduler.inspect()

    def breakdown(self, discount=Decimal('0')) -> PricingBreakdown:
        return calculate_order_totals(self.store.lines(), discount, self.delivery_policy)

    def discount_for(self, coupon: Coupon) -> Decimal:
        """
        Discount ``coupon`` grants on the cart as currently priced.

        Raises:
            CouponNotApplicableError: if the order is below the coupon minimum.
        """
        self.inspect()
        discount = coupon_discount(coupon, self.breakdown())
        logger.info(f"[TOTALS] Coupon {coupon.code} on cart {self.cart_id}: discount {discount}")
        return discount

    def checkout_payload(self, discount=Decimal('0'), coupon: Optional[Coupon] = None) -> Dict[str, Any]:
        """
        Lines and totals handed to the order submission collaborator.

        A ``coupon`` replaces ``discount`` with the amount it grants on the
        line-level totals.

        Raises:
            BusinessLogicError: if the cart is empty or a line is below its
                minimum order quantity.
            CouponNotApplicableError: if the order is below the coupon minimum.
        """
        lines = self.inspect()
        if not lines:
            raise BusinessLogicError('Your cart is empty.')

        below_minimum = self.store.items_below_minimum()
        if below_minimum:
            raise BusinessLogicError(
                'Some items are below their minimum order quantity.',
                payload={'line_ids': [line.line_id for line in below_minimum]}
            )

        if coupon is not None:
            discount = coupon_discount(coupon, calculate_order_totals(lines, Decimal('0'), self.delivery_policy))
        breakdown = calculate_order_totals(lines, discount, self.delivery_policy)
        payload = build_order_payload(lines, breakdown)
        payload['cart_id'] = self.cart_id
        payload['coupon_code'] = coupon.code if coupon is not None else None
        payload['promo_active'] = self.store.promo_active()
        return payload

    def complete_checkout(self) -> None:
        """Order placed: empty the cart and stop re-pricing it."""
        self.store.clear()
        self.close()
        logger.info(f"[CART] Checkout completed for cart {self.cart_id}")

    def close(self) -> None:
        self.scheduler.stop()


class CartSessionRegistry:
    """
    Live cart sessions by cart id, sharing one promo clock.

    Sessions unused for ``idle_seconds`` and the least recently used ones
    beyond ``max_sessions`` are closed, which also detaches them from the
    clock. An evicted cart is rebuilt from its saved snapshot the next time
    it is requested.
    """

    def __init__(self, clock, delivery_policy: Optional[DeliveryPolicy] = None,
                 price_tolerance: Decimal = DEFAULT_PRICE_TOLERANCE,
                 max_sessions: Optional[int] = DEFAULT_SESSION_LIMIT,
                 idle_seconds: Optional[float] = DEFAULT_IDLE_SECONDS,
                 time_source: Callable[[], float] = time.monotonic):
        self.clock = clock
        self.delivery_policy = delivery_policy or DeliveryPolicy()
        self.price_tolerance = price_tolerance
        self.max_sessions = max_sessions
        self.idle_seconds = idle_seconds
        self._time_source = time_source
        # Least recently used first
        self._sessions: "OrderedDict[str, CartSession]" = OrderedDict()
        self._last_used: Dict[str, float] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, cart_id) -> bool:
        return cart_id in self._sessions

    def _touch(self, cart_id: str, now: float) -> None:
        self._sessions.move_to_end(cart_id)
        self._last_used[cart_id] = now

    def _pop(self, cart_id: str) -> Optional[CartSession]:
        self._last_used.pop(cart_id, None)
        return self._sessions.pop(cart_id, None)

    def _expired(self, now: float) -> List[CartSession]:
        """Pop idle sessions, then the oldest ones over the limit (caller holds the lock)."""
        evicted = []
        if self.idle_seconds:
            while self._sessions:
                oldest = next(iter(self._sessions))
                if now - self._last_used[oldest] < self.idle_seconds:
                    break
                evicted.append(self._pop(oldest))
        if self.max_sessions:
            while len(self._sessions) > self.max_sessions:
                evicted.append(self._pop(next(iter(self._sessions))))
        return evicted

    def get_or_create(self, cart_id: str,
                      loader: Optional[Callable[[str], Optional[Dict[str, Any]]]] = None) -> CartSession:
        """Live session for ``cart_id``, restored from ``loader`` on first use."""
        saved = None
        with self._lock:
            now = self._time_source()
            cart = self._sessions.get(cart_id)
            if cart is None or cart.is_closed:
                saved = loader(cart_id) if loader is not None else None
                cart = CartSession(cart_id, self.clock, self.delivery_policy, self.price_tolerance,
                                   saved_payload=saved)
                self._sessions[cart_id] = cart
            self._touch(cart_id, now)
            evicted = self._expired(now)

        for stale in evicted:
            stale.close()
            logger.info(f"[CART] Evicted cart {stale.cart_id} from live sessions")
        if saved:
            logger.info(f"[CART] Restored cart {cart_id} with {len(cart.store)} lines")
        return cart

    def discard(self, cart_id: str) -> None:
        with self._lock:
            cart = self._pop(cart_id)
        if cart is not None:
            cart.close()

    def close_all(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self._last_used.clear()
        for cart in sessions:
            cart.close()
