"""
lockup.py - Share Lockups and Rage Quit

This module implements voluntary share lockups using a pure function
architecture with explicit inputs, plus two stateful managers.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASSES (explicit inputs, from core):
   - LockupInfo: per-holder lock record (linear variant)
   - CustodyInfo: per-holder custodied shares (custody variant)

2. PURE CALCULATION FUNCTIONS (calculate_*):
   - Take all inputs explicitly as parameters
   - Return a new LockupInfo or an amount, never mutate
   - Example: calculate_unlocked_shares(info, balance, now) -> int

3. MANAGERS:
   - LinearLockupManager: lock on deposit, irreversible rage quit that turns
     the remaining lock into a linear unlock window
   - CustodyLockupManager: no deposit locks; withdrawals require a matured
     rage-quit custody, which may be cancelled

State machine (linear variant):
    UNLOCKED --deposit with duration--> LOCKED
    LOCKED --initiate_rage_quit--> RAGE_QUITTING
    RAGE_QUITTING --time elapses / full withdrawal--> UNLOCKED

Key Formula (rage quitting, before unlock_time):
    unlocked_portion = elapsed * locked_shares / (unlock_time - lockup_start)
    already_withdrawn = locked_shares - balance
    unlocked = min(max(unlocked_portion - already_withdrawn, 0), balance)
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Dict, Optional, Protocol, Union

from .core import (
    LockupInfo, CustodyInfo, LockupStatus,
    DEFAULT_MIN_LOCKUP_DURATION, DEFAULT_RAGE_QUIT_COOLDOWN,
    LockupViolation, SharesStillLocked, ExceedsCustodiedAmount,
    RageQuitAlreadyInitiated, NoActiveRageQuit, InsufficientLockupDuration,
    SharesAlreadyUnlocked, NoSharesToRageQuit,
    require_amount,
)


_ONE_SECOND = timedelta(seconds=1)


def _seconds(delta: timedelta) -> int:
    """Whole seconds in a timedelta (exact integer division)."""
    return delta // _ONE_SECOND


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def has_active_lock(info: LockupInfo, now: datetime) -> bool:
    return info.unlock_time is not None and info.unlock_time > now


def lockup_status(info: LockupInfo, now: datetime) -> LockupStatus:
    """Classify a lockup record at time now."""
    if not has_active_lock(info, now):
        return LockupStatus.UNLOCKED
    if info.is_rage_quit:
        return LockupStatus.RAGE_QUITTING
    return LockupStatus.LOCKED


def calculate_unlocked_shares(info: LockupInfo, balance: int, now: datetime) -> int:
    """
    Shares of balance that may currently be withdrawn or transferred.

    Non-decreasing in now for a fixed record and balance. Clamped to balance
    so balance changes from other causes (transfers in or out) are tolerated.

    Args:
        info: Holder's lockup record
        balance: Holder's current share balance
        now: Current vault time

    Returns:
        Unlocked share amount
    """
    if not has_active_lock(info, now):
        return balance
    if not info.is_rage_quit:
        return 0

    window = _seconds(info.unlock_time - info.lockup_start)
    if window <= 0:
        # Sub-second window: nothing unlocks until unlock_time
        return 0
    elapsed = _seconds(now - info.lockup_start)
    unlocked_portion = elapsed * info.locked_shares // window
    already_withdrawn = info.locked_shares - balance
    available = unlocked_portion - already_withdrawn
    if available <= 0:
        return 0
    return min(available, balance)


def calculate_deposit_lockup(
    info: LockupInfo,
    new_balance: int,
    duration: timedelta,
    now: datetime,
    min_lockup_duration: timedelta,
) -> LockupInfo:
    """
    Lockup record after a deposit that brings the holder to new_balance.

    - No active lock, duration 0: funds stay liquid (empty record).
    - No active lock, duration > 0: new lock from now, at least the minimum.
    - Active lock: duration extends the existing unlock_time; the remaining
      time must still satisfy the minimum. locked_shares always tracks the
      new balance.

    Raises:
        RageQuitAlreadyInitiated: If the holder is mid rage quit
        InsufficientLockupDuration: If the resulting lock is too short
    """
    if duration < timedelta(0):
        raise ValueError(f"Lockup duration cannot be negative: {duration}")

    if not has_active_lock(info, now):
        if duration == timedelta(0):
            return LockupInfo()
        if duration < min_lockup_duration:
            raise InsufficientLockupDuration(
                f"Lockup {duration} shorter than minimum {min_lockup_duration}"
            )
        return LockupInfo(
            lockup_start=now,
            unlock_time=now + duration,
            locked_shares=new_balance,
            is_rage_quit=False,
        )

    if info.is_rage_quit:
        raise RageQuitAlreadyInitiated("Cannot deposit while rage quitting")

    if duration == timedelta(0):
        return replace(info, locked_shares=new_balance)

    new_unlock_time = info.unlock_time + duration
    if new_unlock_time - now < min_lockup_duration:
        raise InsufficientLockupDuration(
            f"Remaining lockup {new_unlock_time - now} shorter than minimum {min_lockup_duration}"
        )
    return replace(info, unlock_time=new_unlock_time, locked_shares=new_balance)


def calculate_rage_quit(
    info: LockupInfo,
    balance: int,
    now: datetime,
    cooldown: timedelta,
) -> LockupInfo:
    """
    Lockup record after the holder initiates a rage quit.

    The new unlock_time is min(existing unlock_time, now + cooldown): a rage
    quit never extends a lock. lockup_start is pinned to now as the start of
    the linear window.

    Raises:
        NoSharesToRageQuit: If balance is 0
        SharesAlreadyUnlocked: If there is no active lock
        RageQuitAlreadyInitiated: If the holder already rage quit
    """
    if balance <= 0:
        raise NoSharesToRageQuit("No shares to rage quit")
    if not has_active_lock(info, now):
        raise SharesAlreadyUnlocked("Shares are already unlocked")
    if info.is_rage_quit:
        raise RageQuitAlreadyInitiated("Rage quit already initiated")

    return LockupInfo(
        lockup_start=now,
        unlock_time=min(info.unlock_time, now + cooldown),
        locked_shares=balance,
        is_rage_quit=True,
    )


def calculate_custody_withdrawable(custody: CustodyInfo, balance: int, now: datetime) -> int:
    """Custodied shares that have matured and may be withdrawn."""
    if not custody.is_active() or now < custody.unlock_time:
        return 0
    return min(custody.locked_shares, balance)


# ============================================================================
# MANAGERS
# ============================================================================

class LockupManager(Protocol):
    """Interface the vault uses to gate withdrawals and transfers."""

    rage_quit_cooldown: timedelta

    def get_user_lockup_info(self, holder: str) -> Union[LockupInfo, CustodyInfo]:
        ...

    def status(self, holder: str, now: datetime) -> LockupStatus:
        ...

    def unlocked_shares(self, holder: str, balance: int, now: datetime) -> int:
        ...

    def check_withdraw(self, holder: str, shares: int, balance: int, now: datetime) -> None:
        ...

    def check_transfer(self, holder: str, shares: int, balance: int, now: datetime) -> None:
        ...

    def on_deposit(self, holder: str, new_balance: int, duration: timedelta, now: datetime) -> None:
        ...

    def on_withdraw(self, holder: str, shares: int, new_balance: int) -> None:
        ...

    def on_transfer_out(self, holder: str, shares: int, new_balance: int) -> None:
        ...

    def initiate_rage_quit(
        self, holder: str, balance: int, now: datetime, shares: Optional[int] = None
    ) -> None:
        ...

    def cancel_rage_quit(self, holder: str) -> None:
        ...

    def clone(self) -> 'LockupManager':
        ...


class LinearLockupManager:
    """
    Per-holder lockups with an irreversible, linearly unlocking rage quit.

    Deposits into a rage-quitting account are rejected, including plain
    deposits with no duration.
    """

    def __init__(
        self,
        min_lockup_duration: timedelta = DEFAULT_MIN_LOCKUP_DURATION,
        rage_quit_cooldown: timedelta = DEFAULT_RAGE_QUIT_COOLDOWN,
    ):
        self.min_lockup_duration = min_lockup_duration
        self.rage_quit_cooldown = rage_quit_cooldown
        self._lockups: Dict[str, LockupInfo] = {}

    def get_user_lockup_info(self, holder: str) -> LockupInfo:
        return self._lockups.get(holder, LockupInfo())

    def status(self, holder: str, now: datetime) -> LockupStatus:
        return lockup_status(self.get_user_lockup_info(holder), now)

    def unlocked_shares(self, holder: str, balance: int, now: datetime) -> int:
        return calculate_unlocked_shares(self.get_user_lockup_info(holder), balance, now)

    def check_withdraw(self, holder: str, shares: int, balance: int, now: datetime) -> None:
        """
        Raises:
            SharesStillLocked: If shares exceeds the holder's unlocked shares
        """
        unlocked = self.unlocked_shares(holder, balance, now)
        if shares > unlocked:
            raise SharesStillLocked(f"{holder}: {shares} requested, {unlocked} unlocked")

    def check_transfer(self, holder: str, shares: int, balance: int, now: datetime) -> None:
        self.check_withdraw(holder, shares, balance, now)

    def on_deposit(self, holder: str, new_balance: int, duration: timedelta, now: datetime) -> None:
        updated = calculate_deposit_lockup(
            self.get_user_lockup_info(holder), new_balance, duration, now,
            self.min_lockup_duration,
        )
        self._store(holder, updated)

    def on_withdraw(self, holder: str, shares: int, new_balance: int) -> None:
        if new_balance == 0:
            self._lockups.pop(holder, None)

    def on_transfer_out(self, holder: str, shares: int, new_balance: int) -> None:
        if new_balance == 0:
            self._lockups.pop(holder, None)

    def initiate_rage_quit(
        self, holder: str, balance: int, now: datetime, shares: Optional[int] = None
    ) -> None:
        if shares is not None and shares != balance:
            raise ValueError("Linear lockups rage quit the whole position")
        updated = calculate_rage_quit(
            self.get_user_lockup_info(holder), balance, now, self.rage_quit_cooldown
        )
        self._store(holder, updated)

    def cancel_rage_quit(self, holder: str) -> None:
        raise LockupViolation("Rage quit is irreversible for linear lockups")

    def _store(self, holder: str, info: LockupInfo) -> None:
        if info.is_empty():
            self._lockups.pop(holder, None)
        else:
            self._lockups[holder] = info

    def clone(self) -> LinearLockupManager:
        cloned = LinearLockupManager(self.min_lockup_duration, self.rage_quit_cooldown)
        cloned._lockups = dict(self._lockups)
        return cloned


class CustodyLockupManager:
    """
    Custody-based rage quit with an explicit cancel.

    Deposits never lock and are accepted while custody is active, leaving the
    custody untouched. Every withdrawal needs a matured custody covering it;
    custodied shares cannot be transferred.
    """

    def __init__(self, rage_quit_cooldown: timedelta = DEFAULT_RAGE_QUIT_COOLDOWN):
        self.rage_quit_cooldown = rage_quit_cooldown
        self._custody: Dict[str, CustodyInfo] = {}

    def get_user_lockup_info(self, holder: str) -> CustodyInfo:
        return self._custody.get(holder, CustodyInfo())

    def status(self, holder: str, now: datetime) -> LockupStatus:
        custody = self.get_user_lockup_info(holder)
        if custody.is_active() and now < custody.unlock_time:
            return LockupStatus.RAGE_QUITTING
        return LockupStatus.UNLOCKED

    def unlocked_shares(self, holder: str, balance: int, now: datetime) -> int:
        return calculate_custody_withdrawable(self.get_user_lockup_info(holder), balance, now)

    def check_withdraw(self, holder: str, shares: int, balance: int, now: datetime) -> None:
        """
        Raises:
            NoActiveRageQuit: If the holder has no custody
            SharesStillLocked: If the custody has not matured
            ExceedsCustodiedAmount: If shares exceeds the custodied amount
        """
        custody = self.get_user_lockup_info(holder)
        if not custody.is_active():
            raise NoActiveRageQuit(f"{holder}: withdrawals require an initiated rage quit")
        if now < custody.unlock_time:
            raise SharesStillLocked(f"{holder}: custody unlocks at {custody.unlock_time}")
        if shares > custody.locked_shares:
            raise ExceedsCustodiedAmount(
                f"{holder}: {shares} requested, {custody.locked_shares} custodied"
            )

    def check_transfer(self, holder: str, shares: int, balance: int, now: datetime) -> None:
        free = balance - self.get_user_lockup_info(holder).locked_shares
        if shares > free:
            raise SharesStillLocked(f"{holder}: {shares} requested, {max(free, 0)} not in custody")

    def on_deposit(self, holder: str, new_balance: int, duration: timedelta, now: datetime) -> None:
        if duration != timedelta(0):
            raise LockupViolation("Custody lockups do not take a deposit duration")

    def on_withdraw(self, holder: str, shares: int, new_balance: int) -> None:
        custody = self.get_user_lockup_info(holder)
        remaining = min(custody.locked_shares - shares, new_balance)
        if remaining <= 0:
            self._custody.pop(holder, None)
        else:
            self._custody[holder] = replace(custody, locked_shares=remaining)

    def on_transfer_out(self, holder: str, shares: int, new_balance: int) -> None:
        pass

    def initiate_rage_quit(
        self, holder: str, balance: int, now: datetime, shares: Optional[int] = None
    ) -> None:
        """
        Place shares in custody until now + rage_quit_cooldown.

        Raises:
            NoSharesToRageQuit: If shares (default: the full balance) is 0
            ExceedsCustodiedAmount: If shares exceeds the balance
            RageQuitAlreadyInitiated: If custody is already active
        """
        amount = balance if shares is None else require_amount(shares, "shares")
        if amount == 0:
            raise NoSharesToRageQuit("No shares to rage quit")
        if amount > balance:
            raise ExceedsCustodiedAmount(f"{holder}: custody {amount} > balance {balance}")
        if self.get_user_lockup_info(holder).is_active():
            raise RageQuitAlreadyInitiated("Rage quit already initiated")
        self._custody[holder] = CustodyInfo(
            locked_shares=amount, unlock_time=now + self.rage_quit_cooldown
        )

    def cancel_rage_quit(self, holder: str) -> None:
        if not self.get_user_lockup_info(holder).is_active():
            raise NoActiveRageQuit(f"{holder}: no rage quit to cancel")
        del self._custody[holder]

    def clone(self) -> CustodyLockupManager:
        cloned = CustodyLockupManager(self.rage_quit_cooldown)
        cloned._custody = dict(self._custody)
        return cloned
