"""
adapters.py - Reference collaborators for a TokenizedVault

Concrete implementations of the protocols declared in core, usable in
simulations and tests.

Classes:
- RoleRegistry: Authorizer backed by an in-memory role map
- IdleYieldSource: YieldSource that holds deployed funds and lets a
  simulation apply gains, losses, illiquidity and deposit/withdraw caps
- StaticRateOracle: ExchangeRateOracle with a settable rate
- TimeSeriesRateOracle: ExchangeRateOracle replaying a rate path against a clock

Rates are integers scaled by the oracle's own decimals (e.g. 1.05 with 18
decimals is 1_050_000_000_000_000_000).
"""

from bisect import bisect_right
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from .core import MAX_UINT256, require_amount


class RoleRegistry:
    """
    Authorizer backed by a mapping of identity to granted roles.

    Example:
        roles = RoleRegistry({"ops": {ROLE_MANAGEMENT, ROLE_KEEPER}})
        roles.grant("bot", ROLE_KEEPER)
        roles.has_role("bot", ROLE_KEEPER)  # True
    """

    def __init__(self, roles: Optional[Dict[str, Iterable[str]]] = None):
        self.roles: Dict[str, Set[str]] = {}
        for identity, granted in (roles or {}).items():
            self.roles[identity] = set(granted)

    def has_role(self, identity: str, role: str) -> bool:
        return role in self.roles.get(identity, ())

    def grant(self, identity: str, role: str) -> None:
        self.roles.setdefault(identity, set()).add(role)

    def revoke(self, identity: str, role: str) -> None:
        granted = self.roles.get(identity)
        if granted is not None:
            granted.discard(role)

    def __repr__(self):
        return f"RoleRegistry({len(self.roles)} identities)"


class IdleYieldSource:
    """
    Yield source that simply holds what it is given.

    The simulation moves value with accrue() (gain) and realize_loss()
    (loss). A liquid fraction below 1 models positions that cannot be fully
    unwound on demand: free_funds() then releases at most that share of the
    deployed balance, and the vault books the shortfall as a withdrawal loss.

    Attributes:
        deployed: Asset units currently held by the source
        deposit_limit: Cap reported by available_deposit_limit()
        withdraw_limit: Cap reported by available_withdraw_limit()
        liquid_bps: Fraction of deployed funds releasable per free_funds() call
    """

    def __init__(
        self,
        deposit_limit: int = MAX_UINT256,
        withdraw_limit: int = MAX_UINT256,
        liquid_bps: int = 10_000,
    ):
        if not 0 <= liquid_bps <= 10_000:
            raise ValueError(f"liquid_bps must be within [0, 10000], got {liquid_bps}")
        self.deployed: int = 0
        self.deposit_limit = require_amount(deposit_limit, "deposit_limit")
        self.withdraw_limit = require_amount(withdraw_limit, "withdraw_limit")
        self.liquid_bps = liquid_bps
        self.harvests: int = 0

    def deploy_funds(self, amount: int) -> None:
        self.deployed += require_amount(amount)

    def free_funds(self, amount: int) -> int:
        """Release up to amount, limited by the deployed balance and liquidity."""
        require_amount(amount)
        liquid = self.deployed * self.liquid_bps // 10_000
        freed = min(amount, liquid)
        self.deployed -= freed
        return freed

    def harvest_and_report(self) -> int:
        self.harvests += 1
        return self.deployed

    def available_deposit_limit(self, owner: str) -> int:
        return self.deposit_limit

    def available_withdraw_limit(self, owner: str) -> int:
        return self.withdraw_limit

    # ========================================================================
    # SIMULATION CONTROLS
    # ========================================================================

    def accrue(self, amount: int) -> None:
        """Add yield to the deployed position."""
        self.deployed += require_amount(amount)

    def realize_loss(self, amount: int) -> None:
        """Remove value from the deployed position (floored at zero)."""
        self.deployed = max(self.deployed - require_amount(amount), 0)

    def set_liquidity(self, liquid_bps: int) -> None:
        if not 0 <= liquid_bps <= 10_000:
            raise ValueError(f"liquid_bps must be within [0, 10000], got {liquid_bps}")
        self.liquid_bps = liquid_bps

    def __repr__(self):
        return f"IdleYieldSource(deployed={self.deployed}, liquid_bps={self.liquid_bps})"


class StaticRateOracle:
    """Exchange rate oracle with a fixed (but updatable) rate."""

    def __init__(self, rate: int, decimals: int = 18):
        self.rate = require_amount(rate, "rate")
        self.decimals = decimals
        self.reads: int = 0

    def get_current_exchange_rate(self) -> int:
        self.reads += 1
        return self.rate

    def decimals_of_exchange_rate(self) -> int:
        return self.decimals

    def update_rate(self, rate: int) -> None:
        self.rate = require_amount(rate, "rate")

    def __repr__(self):
        return f"StaticRateOracle(rate={self.rate}, decimals={self.decimals})"


class TimeSeriesRateOracle:
    """
    Exchange rate oracle replaying a rate path.

    Returns the most recent rate at or before the clock's current time. The
    clock is any zero-argument callable returning a datetime, typically
    ``lambda: vault.current_time``.

    Example:
        oracle = TimeSeriesRateOracle(
            [(t0, 10**18), (t0 + timedelta(days=30), 1_010_000_000_000_000_000)],
            clock=lambda: vault.current_time,
        )
    """

    def __init__(
        self,
        rate_path: Optional[List[Tuple[datetime, int]]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        decimals: int = 18,
    ):
        self.decimals = decimals
        self.clock = clock
        # Sort by timestamp to ensure chronological order
        self.rate_history: List[Tuple[datetime, int]] = sorted(
            rate_path or [], key=lambda x: x[0]
        )

    def add_rate(self, timestamp: datetime, rate: int) -> None:
        self.rate_history.append((timestamp, require_amount(rate, "rate")))
        self.rate_history.sort(key=lambda x: x[0])

    def rate_at(self, timestamp: datetime) -> int:
        """
        Rate at or before timestamp.

        Raises:
            ValueError: If no rate is known at or before timestamp
        """
        timestamps = [ts for ts, _ in self.rate_history]
        idx = bisect_right(timestamps, timestamp)
        if idx == 0:
            raise ValueError(f"No exchange rate at or before {timestamp}")
        return self.rate_history[idx - 1][1]

    def get_current_exchange_rate(self) -> int:
        if self.clock is None:
            raise ValueError("TimeSeriesRateOracle needs a clock to read the current rate")
        return self.rate_at(self.clock())

    def decimals_of_exchange_rate(self) -> int:
        return self.decimals

    def __repr__(self):
        return f"TimeSeriesRateOracle({len(self.rate_history)} rates, decimals={self.decimals})"
