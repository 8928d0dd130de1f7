"""
Promo Window Clock.
Tracks whether the daily promo window (18:00-09:00 by default) is open and
notifies subscribers when it opens or closes.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_START_HOUR = 18
DEFAULT_END_HOUR = 9
DEFAULT_POLL_INTERVAL = 60  # seconds


def is_promo_hour(hour: int, start_hour: int = DEFAULT_START_HOUR, end_hour: int = DEFAULT_END_HOUR) -> bool:
    """True when ``hour`` falls inside a window that may wrap past midnight."""
    if start_hour == end_hour:
        return False
    if start_hour > end_hour:
        return hour >= start_hour or hour < end_hour
    return start_hour <= hour < end_hour


class PromoWindowClock:
    """
    Two-state clock (ACTIVE / INACTIVE) driven by the hour of day.

    State only changes on ``poll()``; between polls the value may be up
    to one poll interval stale. ``start()`` runs ``poll()`` on a daemon
    thread every ``poll_interval`` seconds until ``stop()``.
    """

    def __init__(
        self,
        start_hour: int = DEFAULT_START_HOUR,
        end_hour: int = DEFAULT_END_HOUR,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        time_source: Optional[Callable[[], datetime]] = None,
        test_hour: Optional[int] = None,
    ):
        self.start_hour = start_hour
        self.end_hour = end_hour
        self.poll_interval = poll_interval
        self._time_source = time_source or datetime.now
        self._test_hour = test_hour
        self._subscribers: List[Callable[[bool], None]] = []
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._active = self._compute()

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def current_hour(self) -> int:
        if self._test_hour is not None:
            return self._test_hour
        return self._time_source().hour

    def set_test_hour(self, hour: Optional[int]) -> None:
        """Override the hour of day (None restores the time source)."""
        self._test_hour = hour

    def _compute(self) -> bool:
        return is_promo_hour(self.current_hour(), self.start_hour, self.end_hour)

    def subscribe(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        """Register a transition callback; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def poll(self) -> bool:
        """
        Recompute the promo state.

        Returns:
            True if the state changed (subscribers were notified).
        """
        new_state = self._compute()
        with self._lock:
            if new_state == self._active:
                return False
            self._active = new_state
            subscribers = list(self._subscribers)

        logger.info(f"[PROMO] Window {'opened' if new_state else 'closed'} (hour={self.current_hour()})")
        for callback in subscribers:
            try:
                callback(new_state)
            except Exception as e:
                # Keep notifying the remaining subscribers
                logger.error(f"[PROMO] Subscriber {callback!r} failed: {e}")
        return True

    def time_remaining(self, now: Optional[datetime] = None) -> timedelta:
        """Time until the current regime ends (promo closes or opens)."""
        now = now or self._time_source()
        if self._test_hour is not None:
            now = now.replace(hour=self._test_hour)
        active = is_promo_hour(now.hour, self.start_hour, self.end_hour)
        boundary_hour = self.end_hour if active else self.start_hour
        boundary = now.replace(hour=boundary_hour, minute=0, second=0, microsecond=0)
        if boundary <= now:
            boundary += timedelta(days=1)
        return boundary - now

    def _run(self) -> None:
        while not self._stop_event.wait(self.poll_interval):
            self.poll()

    def start(self) -> None:
        """Start polling on a background thread (no-op if already running)."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name='promo-window-clock', daemon=True)
        self._thread.start()
        logger.info(f"[PROMO] Clock started (interval={self.poll_interval}s, active={self._active})")

    def stop(self) -> None:
        """Cancel the polling thread. Safe to call more than once."""
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1)
            logger.info("[PROMO] Clock stopped")
