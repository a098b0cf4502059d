"""
analytics.py - Vectorized Lockup and Yield Analytics

Float projections for reporting and dashboards. The accounting itself is
exact integer arithmetic in lockup.py and report.py; these helpers never feed
back into vault state.

Provides:
- unlock_curve: unlocked shares of a lockup record over many timestamps
- report_returns: per-report returns on principal (yield-donating reports)
- cumulative_yield: running net yield over a report history
- annualized_yield: compound annual yield over a report history
"""

from datetime import datetime
from typing import Optional, Sequence

import numpy as np

from .core import LockupInfo, ReportResult


SECONDS_PER_YEAR = 365.0 * 24 * 60 * 60


def _seconds_since(origin: datetime, times: Sequence[datetime]) -> np.ndarray:
    return np.array([(t - origin).total_seconds() for t in times], dtype=float)


def unlock_curve(info: LockupInfo, balance: int, times: Sequence[datetime]) -> np.ndarray:
    """
    Unlocked shares of balance at each timestamp in times.

    Mirrors calculate_unlocked_shares without integer flooring, so values
    can exceed the exact figure by less than one share.

    Args:
        info: Holder's lockup record
        balance: Holder's share balance (held fixed across times)
        times: Timestamps to evaluate

    Returns:
        Float array with one entry per timestamp, within [0, balance]
    """
    if info.unlock_time is None:
        return np.full(len(times), float(balance))

    until_unlock = _seconds_since(info.unlock_time, times)
    unlocked = np.where(until_unlock >= 0, float(balance), 0.0)
    if not info.is_rage_quit:
        return unlocked

    window = (info.unlock_time - info.lockup_start).total_seconds()
    if window <= 0:
        return unlocked

    elapsed = _seconds_since(info.lockup_start, times)
    portion = elapsed * info.locked_shares / window - (info.locked_shares - balance)
    linear = np.clip(portion, 0.0, float(balance))
    return np.where(until_unlock >= 0, float(balance), linear)


def report_returns(reports: Sequence[ReportResult]) -> np.ndarray:
    """
    Net return of each report on the principal it started from.

    The starting principal is total_assets - profit + loss, so the figures
    are only meaningful for asset-denominated (yield-donating) reports.
    Reports starting from an empty pool return 0.
    """
    if not reports:
        return np.zeros(0)
    net = np.array([r.profit - r.loss for r in reports], dtype=float)
    base = np.array([r.total_assets - r.profit + r.loss for r in reports], dtype=float)
    return np.divide(net, base, out=np.zeros_like(net), where=base > 0)


def cumulative_yield(reports: Sequence[ReportResult]) -> np.ndarray:
    """Running sum of profit minus loss across reports."""
    return np.cumsum([r.profit - r.loss for r in reports], dtype=float)


def annualized_yield(reports: Sequence[ReportResult], since: Optional[datetime] = None) -> float:
    """
    Compound annual yield implied by a report history.

    Args:
        reports: Reports in chronological order, each carrying a timestamp
        since: Start of the measured period (default: first report's
            timestamp, whose return is then excluded)

    Returns:
        Annualized yield as a float (0.05 = 5%)

    Raises:
        ValueError: If the period is empty or a report has no timestamp
    """
    if any(r.timestamp is None for r in reports):
        raise ValueError("Every report needs a timestamp")
    if since is None:
        if len(reports) < 2:
            raise ValueError("Need at least two reports to annualize without a start time")
        since = reports[0].timestamp
        reports = reports[1:]
    if not reports:
        raise ValueError("No reports to annualize")

    years = (reports[-1].timestamp - since).total_seconds() / SECONDS_PER_YEAR
    if years <= 0:
        raise ValueError(f"Period must be positive, got {years} years")

    growth = float(np.prod(1.0 + report_returns(reports)))
    if growth <= 0:
        return -1.0
    return growth ** (1.0 / years) - 1.0
