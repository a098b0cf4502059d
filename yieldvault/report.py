"""
report.py - Settlement Policies (Report Engine)

A settlement policy turns a freshly harvested total-asset figure into a
ReportResult describing what the vault must apply: shares to mint to or burn
from the dragon router and the new total_assets. Policies are pure: they read
a PoolView and return a plan; the vault executes it atomically.

Each policy also owns the share/asset conversion rule for its mode, since the
two modes price shares differently.

Policies:
- YieldDonatingPolicy: principal-preserving. Profit is minted to the dragon
  router at the current ratio; losses are burned from the dragon router first.
- YieldSkimmingPolicy: exchange-rate tracking for appreciating wrapped
  assets. Shares are value-denominated; surplus value over outstanding debt
  is minted to the dragon router and shortfalls are absorbed by burning its
  shares. An unabsorbed shortfall leaves the pool insolvent.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

from .core import (
    ReportResult, SkimmingAccounts, Rounding,
    MODE_YIELD_DONATING, MODE_YIELD_SKIMMING,
)
from .conversion import (
    convert_to_shares, convert_to_assets, assets_to_value, value_to_assets,
)
from .solvency import is_insolvent


@dataclass(frozen=True, slots=True)
class PoolView:
    """
    Read-only pool figures captured once per operation.

    Attributes:
        total_supply: Share supply
        total_assets: Principal basis (asset units)
        asset_decimals: Native decimals of the asset
        share_decimals: Decimals of the claim token
        rate_ray: RAY-scaled exchange rate (skimming only)
        accounts: Debt buckets (skimming only)
    """
    total_supply: int
    total_assets: int
    asset_decimals: int = 18
    share_decimals: int = 18
    rate_ray: Optional[int] = None
    accounts: Optional[SkimmingAccounts] = None

    @property
    def insolvent(self) -> bool:
        if self.rate_ray is None or self.accounts is None:
            return False
        return is_insolvent(self.total_assets, self.rate_ray, self.accounts)


class SettlementPolicy(Protocol):
    """Contract shared by both report policies."""

    mode: str
    uses_exchange_rate: bool

    def to_shares(self, pool: PoolView, assets: int, rounding: Rounding) -> int:
        ...

    def to_assets(self, pool: PoolView, shares: int, rounding: Rounding) -> int:
        ...

    def settle(
        self,
        pool: PoolView,
        new_total_assets: int,
        dragon_balance: int,
        enable_burning: bool,
        now: datetime,
    ) -> ReportResult:
        ...


class YieldDonatingPolicy:
    """
    Principal-preserving settlement.

    Conversions use the supply-weighted ratio, which is exactly 1:1 while
    total_assets == total_supply. Only an unrecovered loss moves it.
    """

    mode = MODE_YIELD_DONATING
    uses_exchange_rate = False

    def to_shares(self, pool: PoolView, assets: int, rounding: Rounding) -> int:
        return convert_to_shares(
            assets, pool.total_supply, pool.total_assets, rounding,
            pool.asset_decimals, pool.share_decimals,
        )

    def to_assets(self, pool: PoolView, shares: int, rounding: Rounding) -> int:
        return convert_to_assets(
            shares, pool.total_supply, pool.total_assets, rounding,
            pool.asset_decimals, pool.share_decimals,
        )

    def settle(
        self,
        pool: PoolView,
        new_total_assets: int,
        dragon_balance: int,
        enable_burning: bool,
        now: datetime,
    ) -> ReportResult:
        """
        Reconcile new_total_assets against the stored principal.

        Profit and loss are priced against the pre-report pool.

        Returns:
            ReportResult with shares to mint/burn for the dragon router and
            the loss the dragon router could not absorb
        """
        old_total_assets = pool.total_assets

        if new_total_assets > old_total_assets:
            profit = new_total_assets - old_total_assets
            minted = self.to_shares(pool, profit, Rounding.FLOOR)
            return ReportResult(
                profit=profit, loss=0, shares_minted=minted,
                total_assets=new_total_assets, timestamp=now,
            )

        if new_total_assets < old_total_assets:
            loss = old_total_assets - new_total_assets
            burned = 0
            covered = 0
            if enable_burning and dragon_balance > 0:
                to_burn = self.to_shares(pool, loss, Rounding.CEIL)
                burned = min(to_burn, dragon_balance)
                if burned == to_burn:
                    covered = loss
                else:
                    covered = min(self.to_assets(pool, burned, Rounding.FLOOR), loss)
            return ReportResult(
                profit=0, loss=loss, unrecovered_loss=loss - covered,
                shares_burned=burned, total_assets=new_total_assets, timestamp=now,
            )

        return ReportResult(profit=0, loss=0, total_assets=new_total_assets, timestamp=now)


class YieldSkimmingPolicy:
    """
    Exchange-rate settlement for appreciating wrapped assets.

    While solvent one share is worth one unit of value (assets * rate / RAY).
    While insolvent shares are priced pro rata against total_assets so the
    remaining value is shared evenly among holders.
    """

    mode = MODE_YIELD_SKIMMING
    uses_exchange_rate = True

    def to_shares(self, pool: PoolView, assets: int, rounding: Rounding) -> int:
        if pool.total_supply > 0 and pool.insolvent:
            return convert_to_shares(assets, pool.total_supply, pool.total_assets, rounding)
        return assets_to_value(assets, pool.rate_ray or 0, rounding)

    def to_assets(self, pool: PoolView, shares: int, rounding: Rounding) -> int:
        if pool.total_supply > 0 and pool.insolvent:
            return convert_to_assets(shares, pool.total_supply, pool.total_assets, rounding)
        return value_to_assets(shares, pool.rate_ray or 0, rounding)

    def settle(
        self,
        pool: PoolView,
        new_total_assets: int,
        dragon_balance: int,
        enable_burning: bool,
        now: datetime,
    ) -> ReportResult:
        """
        Compare the pool's current value against outstanding debt.

        profit and loss are in value units. The dragon router's shares are the
        first loss-absorption layer; depositor debt is never written down.
        """
        rate = pool.rate_ray or 0
        accounts = pool.accounts or SkimmingAccounts()
        current_value = assets_to_value(new_total_assets, rate, Rounding.FLOOR)
        total_debt = accounts.total_debt

        if current_value > total_debt:
            profit = current_value - total_debt
            return ReportResult(
                profit=profit, loss=0, shares_minted=profit,
                total_assets=new_total_assets, rate=rate, timestamp=now,
            )

        if current_value < total_debt:
            loss = total_debt - current_value
            burned = min(loss, dragon_balance) if enable_burning else 0
            return ReportResult(
                profit=0, loss=loss, unrecovered_loss=loss - burned,
                shares_burned=burned, total_assets=new_total_assets,
                rate=rate, timestamp=now,
            )

        return ReportResult(
            profit=0, loss=0, total_assets=new_total_assets, rate=rate, timestamp=now,
        )
