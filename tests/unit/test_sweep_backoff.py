"""
Tests for sweep retry backoff.

Formula: delay = min(base * multiplier ** retry_count, cap)
"""

from app.services.payments.sweep_coordinator import calculate_retry_delay


class TestCalculateRetryDelay:
    """Backoff schedule."""

    def test_first_retry_uses_base_delay(self, payments_config):
        """No previous failures -> base delay."""
        assert calculate_retry_delay(0, payments_config) == 5

    def test_exponential_growth(self, payments_config):
        """Each failure doubles the delay."""
        delays = [calculate_retry_delay(n, payments_config) for n in range(4)]

        assert delays == [5, 10, 20, 40]

    def test_monotonic_and_capped(self, payments_config):
        """Delay never decreases and never exceeds the cap."""
        delays = [calculate_retry_delay(n, payments_config) for n in range(20)]

        assert all(a <= b for a, b in zip(delays, delays[1:]))
        assert max(delays) == payments_config.sweep_max_delay_seconds

    def test_cap_reached(self, payments_config):
        """Large retry counts return exactly the cap."""
        assert calculate_retry_delay(50, payments_config) == 3600
