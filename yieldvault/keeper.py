"""
keeper.py - Report Keeper

Drives a vault's report cadence over a timeline.

Execution order each step():
1. Advance vault time
2. Report if the last report is at least max_report_delay old
3. Raise an alert for any unrecovered loss the report surfaced

The vault's operation_log is the audit trail; the keeper only keeps the
results it produced.
"""

from __future__ import annotations
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from .core import ReportResult
from .vault import TokenizedVault


DEFAULT_MAX_REPORT_DELAY = timedelta(days=1)


class Keeper:
    """
    Periodic reporter for one vault.

    Features:
    - Time-based report cadence (max_report_delay)
    - Collected ReportResults for every report it triggered
    - Alerts for unrecovered losses, which the vault never absorbs silently
    """

    def __init__(
        self,
        vault: TokenizedVault,
        caller: str,
        max_report_delay: timedelta = DEFAULT_MAX_REPORT_DELAY,
    ):
        """
        Initialize keeper.

        Args:
            vault: The vault to report on
            caller: Identity holding the keeper (or management) role
            max_report_delay: Maximum age of the last report before a new one is due
        """
        if max_report_delay <= timedelta(0):
            raise ValueError(f"max_report_delay must be positive, got {max_report_delay}")
        self.vault = vault
        self.caller = caller
        self.max_report_delay = max_report_delay
        self.results: List[ReportResult] = []
        self.alerts: List[ReportResult] = []
        self.verbose = vault.verbose

    def report_due(self) -> bool:
        """True once max_report_delay has elapsed since the vault's last report."""
        return self.vault.current_time - self.vault.last_report >= self.max_report_delay

    def step(self, timestamp: datetime, force: bool = False) -> Optional[ReportResult]:
        """
        Advance the vault to timestamp and report if due.

        Args:
            timestamp: New vault time
            force: Report even if the cadence says it is not due

        Returns:
            The ReportResult, or None if no report was made
        """
        self.vault.advance_time(timestamp)
        if not (force or self.report_due()):
            return None

        result = self.vault.report(self.caller)
        self.results.append(result)
        if result.unrecovered_loss:
            self.alerts.append(result)
            if self.verbose:
                print(f"[KEEPER] Unrecovered loss {result.unrecovered_loss} at {timestamp}")
        return result

    def run(
        self,
        timestamps: List[datetime],
        before_step: Optional[Callable[[datetime], None]] = None,
    ) -> List[ReportResult]:
        """
        Run the keeper through a sequence of timestamps.

        Args:
            timestamps: Timestamps to process, in order
            before_step: Optional hook called with each timestamp before its
                step (e.g. to accrue simulated yield)

        Returns:
            Results of the reports made during this run
        """
        produced: List[ReportResult] = []

        for timestamp in timestamps:
            if before_step is not None:
                before_step(timestamp)
            result = self.step(timestamp)
            if result is not None:
                produced.append(result)

        return produced
