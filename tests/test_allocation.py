from datetime import date

from practice_analytics.analytics.allocation import (
    allocate,
    monthly_base,
    period_revenue,
    round_half_up,
    round_percent,
    split_claims_funnel,
)
from practice_analytics.analytics.clock import FixedClock
from practice_analytics.analytics.filters import resolve
from practice_analytics.analytics.parameters import CanonicalParameters


class TestRounding:
    def test_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(3.5) == 4
        assert round_half_up(-2.5) == -3
        assert round_half_up(1_592_499.5) == 1_592_500

    def test_percent_one_decimal(self):
        assert round_percent(32.45) == 32.5
        assert round_percent(99.99) == 100.0


class TestAllocate:
    def test_aging_example(self):
        assert allocate(500_000, [0.55, 0.25, 0.12, 0.08]) == [275_000, 125_000, 60_000, 40_000]

    def test_always_sums_to_total(self):
        weights = [32.4, 18.7, 15.2, 12.8, 8.9, 7.3, 4.7]
        for total in (0, 1, 7, 999, 123_457, 2_450_001):
            parts = allocate(total, weights)
            assert sum(parts) == total
            assert len(parts) == len(weights)

    def test_even_remainder_spread(self):
        parts = allocate(10, [1, 1, 1])
        assert sum(parts) == 10
        assert max(parts) - min(parts) == 1

    def test_negative_total(self):
        parts = allocate(-100, [1, 3])
        assert parts == [-25, -75]

    def test_zero_weights_split_evenly(self):
        assert allocate(9, [0, 0, 0]) == [3, 3, 3]

    def test_empty_weights(self):
        assert allocate(100, []) == []


class TestClaimsFunnelSplit:
    def test_backward_from_paid(self):
        funnel = split_claims_funnel(1_960_000, 0.80, 0.14, 0.06)
        assert funnel == {
            "Submitted": 2_450_000,
            "Paid": 1_960_000,
            "Pending": 343_000,
            "Denied": 147_000,
        }

    def test_remainder_lands_on_paid(self):
        for paid in (1, 13, 9_999, 1_234_567, 588_001):
            funnel = split_claims_funnel(paid, 0.80, 0.14, 0.06)
            assert funnel["Paid"] + funnel["Pending"] + funnel["Denied"] == funnel["Submitted"]
            assert funnel["Pending"] == round_half_up(funnel["Submitted"] * 0.14)
            assert funnel["Denied"] == round_half_up(funnel["Submitted"] * 0.06)


class TestLinearScaling:
    def test_location_base_example(self):
        assert monthly_base(2_450_000, 0.65) == 1_592_500

    def test_period_revenue_is_linear(self):
        params = CanonicalParameters()
        clock = FixedClock(date(2025, 8, 3))
        for location_id in ("all", "fresno-ca", "zzz"):
            one = period_revenue(params, resolve(params, location_id, "1M", clock=clock))
            three = period_revenue(params, resolve(params, location_id, "3M", clock=clock))
            year = period_revenue(params, resolve(params, location_id, "1Y", clock=clock))
            assert three == 3 * one
            assert year == 12 * one
