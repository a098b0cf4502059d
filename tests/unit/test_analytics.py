"""
test_analytics.py - Unit tests for vectorized analytics

Tests:
- unlock_curve agrees with the exact unlock formula
- report_returns / cumulative_yield / annualized_yield
"""

import numpy as np
import pytest
from datetime import datetime, timedelta

from yieldvault import (
    LockupInfo, ReportResult, calculate_unlocked_shares,
    unlock_curve, report_returns, cumulative_yield, annualized_yield,
)


T0 = datetime(2025, 1, 1)


def days(n):
    return timedelta(days=n)


class TestUnlockCurve:

    def test_rage_quit_curve(self):
        info = LockupInfo(T0, T0 + days(90), 10_000, is_rage_quit=True)
        times = [T0, T0 + days(45), T0 + days(90), T0 + days(100)]
        curve = unlock_curve(info, 10_000, times)
        np.testing.assert_allclose(curve, [0.0, 5_000.0, 10_000.0, 10_000.0])

    def test_locked_curve_steps_at_unlock(self):
        info = LockupInfo(T0, T0 + days(90), 500)
        curve = unlock_curve(info, 500, [T0, T0 + days(89), T0 + days(90)])
        np.testing.assert_allclose(curve, [0.0, 0.0, 500.0])

    def test_no_lock_is_flat(self):
        curve = unlock_curve(LockupInfo(), 42, [T0, T0 + days(1)])
        np.testing.assert_allclose(curve, [42.0, 42.0])

    def test_matches_exact_formula_within_one_share(self):
        info = LockupInfo(T0, T0 + days(90), 7_777, is_rage_quit=True)
        balance = 6_000
        times = [T0 + timedelta(hours=h) for h in range(0, 90 * 24, 37)]
        curve = unlock_curve(info, balance, times)
        exact = np.array([calculate_unlocked_shares(info, balance, t) for t in times])
        assert np.all(curve >= exact - 1e-6)
        assert np.all(curve - exact < 1.0)

    def test_curve_is_non_decreasing(self):
        info = LockupInfo(T0, T0 + days(30), 1_000, is_rage_quit=True)
        times = [T0 + days(d) for d in range(0, 40)]
        curve = unlock_curve(info, 1_000, times)
        assert np.all(np.diff(curve) >= 0)


class TestReportStatistics:

    def test_report_returns(self):
        reports = [
            ReportResult(profit=100, loss=0, total_assets=1_100),
            ReportResult(profit=0, loss=110, total_assets=990),
        ]
        np.testing.assert_allclose(report_returns(reports), [0.1, -0.1])

    def test_report_returns_empty_pool(self):
        reports = [ReportResult(profit=0, loss=0, total_assets=0)]
        np.testing.assert_allclose(report_returns(reports), [0.0])

    def test_report_returns_no_reports(self):
        assert report_returns([]).shape == (0,)

    def test_cumulative_yield(self):
        reports = [
            ReportResult(profit=100, loss=0, total_assets=1_100),
            ReportResult(profit=0, loss=30, total_assets=1_070),
            ReportResult(profit=50, loss=0, total_assets=1_120),
        ]
        np.testing.assert_allclose(cumulative_yield(reports), [100.0, 70.0, 120.0])

    def test_annualized_yield_one_year(self):
        reports = [
            ReportResult(profit=0, loss=0, total_assets=1_000, timestamp=T0),
            ReportResult(profit=50, loss=0, total_assets=1_050, timestamp=T0 + days(365)),
        ]
        assert annualized_yield(reports) == pytest.approx(0.05)

    def test_annualized_yield_with_start(self):
        reports = [
            ReportResult(profit=50, loss=0, total_assets=1_050, timestamp=T0 + days(365)),
        ]
        assert annualized_yield(reports, since=T0) == pytest.approx(0.05)

    def test_annualized_yield_compounds(self):
        half = days(365 / 2)
        reports = [
            ReportResult(profit=100, loss=0, total_assets=1_100, timestamp=T0 + half),
            ReportResult(profit=110, loss=0, total_assets=1_210, timestamp=T0 + days(365)),
        ]
        assert annualized_yield(reports, since=T0) == pytest.approx(0.21)

    def test_annualized_yield_needs_period(self):
        with pytest.raises(ValueError):
            annualized_yield([ReportResult(profit=0, loss=0, timestamp=T0)])
        with pytest.raises(ValueError):
            annualized_yield([ReportResult(profit=1, loss=0, total_assets=2)], since=T0)
