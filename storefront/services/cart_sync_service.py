"""Cart Sync Service - keeps stored line prices on the current promo regime."""

import logging
import threading
from typing import Optional, Tuple

from storefront.models.cart_line import CartLine

logger = logging.getLogger(__name__)


class CartSyncScheduler:
    """
    Re-prices every cart line when the promo window opens or closes.

    Also runs on demand through ``inspect()`` (cart opened, checkout
    rendered) so staleness between clock polls heals itself.
    """

    def __init__(self, store, clock, owns_clock: bool = False):
        self.store = store
        self.clock = clock
        self.owns_clock = owns_clock
        self._stopped = threading.Event()
        self._unsubscribe = clock.subscribe(self._on_transition)
        self.last_changed = 0

    @property
    def is_stopped(self) -> bool:
        return self._stopped.is_set()

    def _on_transition(self, promo_active: bool) -> None:
        if self.is_stopped:
            return
        logger.info(f"[SYNC] Promo window {'opened' if promo_active else 'closed'}, re-pricing cart")
        self.sync(promo_active)

    def sync(self, promo_active: Optional[bool] = None) -> int:
        """
        Re-resolve every line price under ``promo_active`` (default: clock state).

        Returns:
            Number of lines whose price changed. Always 0 once stopped.
        """
        if self.is_stopped:
            return 0
        if promo_active is None:
            promo_active = self.clock.is_active
        changed = self.store.reprice_all(promo_active)
        self.last_changed = changed
        if changed:
            logger.info(f"[SYNC] Cart price sync complete: {changed} lines updated (promo={promo_active})")
        return changed

    def inspect(self) -> Tuple[CartLine, ...]:
        """Poll the clock, sync, and return the current lines."""
        if not self.is_stopped:
            # A transition found here already synced through the subscription
            if not self.clock.poll():
                self.sync()
        return self.store.lines()

    def stop(self) -> None:
        """Detach from the clock; later transitions no longer touch the cart."""
        if self.is_stopped:
            return
        self._stopped.set()
        self._unsubscribe()
        if self.owns_clock:
            self.clock.stop()
        logger.info("[SYNC] Scheduler stopped")
