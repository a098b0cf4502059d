"""
solvency.py - Debt Tracking and Insolvency Gating (yield-skimming)

In the yield-skimming variant shares are denominated in asset value: one
share is minted per unit of value deposited, so debt moves one-for-one with
shares. Value owed is split into two buckets:

    total_user_debt       value owed to ordinary depositors
    dragon_router_debt    value owed to the dragon router (first loss buffer)

Solvency condition (exact, no rounding):
    total_assets * rate >= (total_user_debt + dragon_router_debt) * RAY

Insolvency is a detectable state, not a fatal one. While it lasts the dragon
router may not deposit, mint, withdraw, redeem or transfer, and nobody may
deposit or mint. Depositors can always exit.
"""

from __future__ import annotations
from dataclasses import replace

from .core import RAY, SkimmingAccounts, Insolvent


def is_insolvent(total_assets: int, rate_ray: int, accounts: SkimmingAccounts) -> bool:
    """True iff debts are outstanding and the pool's value cannot cover them."""
    total_debt = accounts.total_debt
    if total_debt == 0:
        return False
    return total_assets * rate_ray < total_debt * RAY


def solvency_surplus(total_assets: int, rate_ray: int, accounts: SkimmingAccounts) -> int:
    """Pool value minus total debt, floored to whole value units (negative when short)."""
    return (total_assets * rate_ray) // RAY - accounts.total_debt


class SolvencyGuard:
    """
    Debt bookkeeping and dragon-router gating for one skimming vault.

    Example:
        guard = SolvencyGuard("dragon")
        guard.record_mint("alice", 1_000)
        guard.require_solvent(total_assets, rate, "deposit")
    """

    def __init__(self, dragon_router: str):
        self.dragon_router = dragon_router
        self.accounts = SkimmingAccounts()

    # ========================================================================
    # CHECKS
    # ========================================================================

    def is_insolvent(self, total_assets: int, rate_ray: int) -> bool:
        return is_insolvent(total_assets, rate_ray, self.accounts)

    def require_solvent(self, total_assets: int, rate_ray: int, action: str) -> None:
        """
        Raises:
            Insolvent: If the pool is insolvent
        """
        if self.is_insolvent(total_assets, rate_ray):
            raise Insolvent(f"{action} blocked: pool is insolvent")

    def check_dragon(self, total_assets: int, rate_ray: int, action: str, *accounts: str) -> None:
        """
        Block the operation if it touches the dragon router while insolvent.

        Ordinary depositors pass regardless of solvency.

        Raises:
            Insolvent: If any of accounts is the dragon router and the pool is insolvent
        """
        if self.dragon_router in accounts:
            self.require_solvent(total_assets, rate_ray, f"dragon router {action}")

    # ========================================================================
    # DEBT BOOKKEEPING
    # ========================================================================

    def record_mint(self, receiver: str, value: int) -> None:
        if receiver == self.dragon_router:
            self.accounts = replace(
                self.accounts, dragon_router_debt=self.accounts.dragon_router_debt + value
            )
        else:
            self.accounts = replace(
                self.accounts, total_user_debt=self.accounts.total_user_debt + value
            )

    def record_burn(self, owner: str, value: int) -> None:
        """
        Retire value from the owner's bucket.

        Raises:
            ValueError: If value exceeds the bucket (debt and shares out of step)
        """
        if owner == self.dragon_router:
            bucket, remaining = "dragon_router_debt", self.accounts.dragon_router_debt - value
        else:
            bucket, remaining = "total_user_debt", self.accounts.total_user_debt - value
        if remaining < 0:
            raise ValueError(f"Burn of {value} from {owner} would drive {bucket} negative")
        self.accounts = replace(self.accounts, **{bucket: remaining})

    def record_transfer(self, source: str, dest: str, value: int) -> None:
        """Move debt between buckets when shares cross the dragon router boundary."""
        if source == dest:
            return
        if source == self.dragon_router:
            self.record_burn(source, value)
            self.record_mint(dest, value)
        elif dest == self.dragon_router:
            self.record_burn(source, value)
            self.record_mint(dest, value)

    def record_rate(self, rate_ray: int) -> None:
        self.accounts = replace(self.accounts, last_reported_rate=rate_ray)

    def change_dragon_router(self, new_router: str, old_balance: int, new_balance: int) -> None:
        """
        Re-bucket debt when the dragon router identity changes.

        The old router's shares become ordinary depositor debt; shares the new
        router already holds become dragon router debt.
        """
        accounts = self.accounts
        dragon_debt = max(accounts.dragon_router_debt - old_balance, 0)
        user_debt = max(accounts.total_user_debt + old_balance - new_balance, 0)
        self.accounts = replace(
            accounts,
            total_user_debt=user_debt,
            dragon_router_debt=dragon_debt + new_balance,
        )
        self.dragon_router = new_router

    def clone(self) -> SolvencyGuard:
        cloned = SolvencyGuard(self.dragon_router)
        cloned.accounts = self.accounts
        return cloned
