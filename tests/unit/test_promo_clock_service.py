"""
Unit tests for the promo window clock.
"""

import threading
from datetime import datetime, timedelta

import pytest

from storefront.services.promo_clock_service import PromoWindowClock, is_promo_hour


class TestPromoHours:
    """Tests for the window boundaries."""

    @pytest.mark.parametrize('hour', [18, 19, 23, 0, 5, 8])
    def test_active_hours(self, hour):
        assert is_promo_hour(hour) is True

    @pytest.mark.parametrize('hour', [9, 10, 12, 17])
    def test_inactive_hours(self, hour):
        assert is_promo_hour(hour) is False

    def test_non_wrapping_window(self):
        assert is_promo_hour(10, start_hour=9, end_hour=17) is True
        assert is_promo_hour(17, start_hour=9, end_hour=17) is False

    def test_empty_window(self):
        assert is_promo_hour(12, start_hour=12, end_hour=12) is False


class TestPolling:
    """Tests for state changes on poll."""

    def test_initial_state_from_time_source(self, clock):
        assert clock.is_active is False

    def test_no_transition_between_polls(self, clock, time_source):
        """Test that crossing the boundary does nothing until the next poll."""
        time_source.set_hour(18)
        assert clock.is_active is False
        assert clock.poll() is True
        assert clock.is_active is True

    def test_poll_without_change_returns_false(self, clock):
        assert clock.poll() is False

    def test_subscribers_notified_on_transition_only(self, clock, time_source):
        seen = []
        clock.subscribe(seen.append)

        clock.poll()
        time_source.set_hour(20)
        clock.poll()
        clock.poll()
        time_source.set_hour(9)
        clock.poll()

        assert seen == [True, False]

    def test_unsubscribe(self, clock, time_source):
        seen = []
        unsubscribe = clock.subscribe(seen.append)
        unsubscribe()
        unsubscribe()

        time_source.set_hour(19)
        clock.poll()
        assert seen == []

    def test_failing_subscriber_does_not_block_others(self, clock, time_source):
        def broken(_state):
            raise RuntimeError('boom')

        seen = []
        clock.subscribe(broken)
        clock.subscribe(seen.append)

        time_source.set_hour(22)
        assert clock.poll() is True
        assert seen == [True]

    def test_test_hour_override(self, time_source):
        clock = PromoWindowClock(time_source=time_source, test_hour=21)
        assert clock.is_active is True
        assert clock.current_hour() == 21

        clock.set_test_hour(None)
        assert clock.current_hour() == 12
        clock.poll()
        assert clock.is_active is False


class TestTimeRemaining:
    """Tests for the promo countdown."""

    def test_until_promo_opens(self, clock):
        now = datetime(2024, 1, 15, 12, 30, 0)
        assert clock.time_remaining(now) == timedelta(hours=5, minutes=30)

    def test_until_promo_closes_after_midnight(self, clock):
        now = datetime(2024, 1, 15, 20, 0, 0)
        assert clock.time_remaining(now) == timedelta(hours=13)

    def test_until_promo_closes_early_morning(self, clock):
        now = datetime(2024, 1, 16, 8, 59, 0)
        assert clock.time_remaining(now) == timedelta(minutes=1)


class TestBackgroundPolling:
    """Tests for the polling thread."""

    def test_start_polls_and_stop_cancels(self, time_source):
        clock = PromoWindowClock(time_source=time_source, poll_interval=0.01)
        transitioned = threading.Event()
        clock.subscribe(lambda state: transitioned.set())

        clock.start()
        assert clock.is_running
        time_source.set_hour(19)
        assert transitioned.wait(timeout=2)

        clock.stop()
        clock.stop()
        assert not clock.is_running
        assert clock.is_active is True

    def test_start_is_idempotent(self, time_source):
        clock = PromoWindowClock(time_source=time_source, poll_interval=5)
        clock.start()
        first = clock._thread
        clock.start()
        assert clock._thread is first
        clock.stop()
