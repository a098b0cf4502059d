"""
test_lockup.py - Unit tests for linear lockups and rage quit

Tests:
- Pure functions: status, unlocked shares, deposit lockup, rage quit
- LinearLockupManager: gating, record clearing, irreversibility
"""

import pytest
from datetime import datetime, timedelta

from yieldvault import (
    LockupInfo, LockupStatus, LockupViolation,
    SharesStillLocked, RageQuitAlreadyInitiated, InsufficientLockupDuration,
    SharesAlreadyUnlocked, NoSharesToRageQuit,
    lockup_status, has_active_lock, calculate_unlocked_shares,
    calculate_deposit_lockup, calculate_rage_quit, LinearLockupManager,
)


T0 = datetime(2025, 1, 1)
MIN = timedelta(days=90)
COOLDOWN = timedelta(days=90)


def days(n):
    return timedelta(days=n)


# =============================================================================
# PURE FUNCTIONS
# =============================================================================

class TestLockupStatus:

    def test_empty_record_is_unlocked(self):
        assert lockup_status(LockupInfo(), T0) == LockupStatus.UNLOCKED

    def test_locked_before_unlock_time(self):
        info = LockupInfo(T0, T0 + days(180), 100)
        assert lockup_status(info, T0 + days(10)) == LockupStatus.LOCKED

    def test_rage_quitting(self):
        info = LockupInfo(T0, T0 + days(90), 100, is_rage_quit=True)
        assert lockup_status(info, T0 + days(10)) == LockupStatus.RAGE_QUITTING

    def test_unlocked_at_unlock_time(self):
        info = LockupInfo(T0, T0 + days(90), 100)
        assert not has_active_lock(info, T0 + days(90))
        assert lockup_status(info, T0 + days(90)) == LockupStatus.UNLOCKED


class TestCalculateUnlockedShares:
    """Tests for the linear unlock formula."""

    def test_no_record_returns_balance(self):
        assert calculate_unlocked_shares(LockupInfo(), 500, T0) == 500

    def test_locked_returns_zero(self):
        info = LockupInfo(T0, T0 + days(180), 500)
        assert calculate_unlocked_shares(info, 500, T0 + days(179)) == 0

    def test_after_unlock_returns_balance(self):
        info = LockupInfo(T0, T0 + days(180), 500)
        assert calculate_unlocked_shares(info, 500, T0 + days(180)) == 500

    def test_rage_quit_linear_midpoint(self):
        info = LockupInfo(T0, T0 + days(90), 10_000, is_rage_quit=True)
        assert calculate_unlocked_shares(info, 10_000, T0 + days(45)) == 5_000

    def test_rage_quit_floors(self):
        info = LockupInfo(T0, T0 + timedelta(seconds=3), 10, is_rage_quit=True)
        assert calculate_unlocked_shares(info, 10, T0 + timedelta(seconds=1)) == 3

    def test_withdrawn_shares_are_subtracted(self):
        info = LockupInfo(T0, T0 + days(90), 10_000, is_rage_quit=True)
        # 5,000 unlocked at day 45; 3,000 already withdrawn
        assert calculate_unlocked_shares(info, 7_000, T0 + days(45)) == 2_000

    def test_over_withdrawn_returns_zero(self):
        info = LockupInfo(T0, T0 + days(90), 10_000, is_rage_quit=True)
        assert calculate_unlocked_shares(info, 4_000, T0 + days(45)) == 0

    def test_clamped_to_balance(self):
        info = LockupInfo(T0, T0 + days(90), 10_000, is_rage_quit=True)
        assert calculate_unlocked_shares(info, 10_000, T0 + days(89)) <= 10_000

    def test_zero_width_window(self):
        info = LockupInfo(T0, T0 + timedelta(microseconds=500), 10, is_rage_quit=True)
        assert calculate_unlocked_shares(info, 10, T0) == 0


class TestCalculateDepositLockup:

    def test_zero_duration_without_lock_is_liquid(self):
        assert calculate_deposit_lockup(LockupInfo(), 100, days(0), T0, MIN).is_empty()

    def test_new_lock(self):
        info = calculate_deposit_lockup(LockupInfo(), 100, days(120), T0, MIN)
        assert info == LockupInfo(T0, T0 + days(120), 100, False)

    def test_new_lock_below_minimum(self):
        with pytest.raises(InsufficientLockupDuration):
            calculate_deposit_lockup(LockupInfo(), 100, days(30), T0, MIN)

    def test_negative_duration(self):
        with pytest.raises(ValueError):
            calculate_deposit_lockup(LockupInfo(), 100, days(-1), T0, MIN)

    def test_extension_adds_to_unlock_time(self):
        info = LockupInfo(T0, T0 + days(180), 100)
        updated = calculate_deposit_lockup(info, 150, days(10), T0 + days(100), MIN)
        assert updated.unlock_time == T0 + days(190)
        assert updated.lockup_start == T0
        assert updated.locked_shares == 150

    def test_extension_remaining_below_minimum(self):
        info = LockupInfo(T0, T0 + days(180), 100)
        with pytest.raises(InsufficientLockupDuration):
            calculate_deposit_lockup(info, 150, days(5), T0 + days(100), MIN)

    def test_zero_duration_refreshes_locked_shares(self):
        info = LockupInfo(T0, T0 + days(180), 100)
        updated = calculate_deposit_lockup(info, 150, days(0), T0 + days(100), MIN)
        assert updated.unlock_time == T0 + days(180)
        assert updated.locked_shares == 150

    def test_rage_quitting_rejects_deposit(self):
        info = LockupInfo(T0, T0 + days(90), 100, is_rage_quit=True)
        with pytest.raises(RageQuitAlreadyInitiated):
            calculate_deposit_lockup(info, 150, days(0), T0 + days(1), MIN)


class TestCalculateRageQuit:

    def test_cooldown_shortens_long_lock(self):
        info = LockupInfo(T0, T0 + days(365), 100)
        updated = calculate_rage_quit(info, 100, T0 + days(10), COOLDOWN)
        assert updated == LockupInfo(T0 + days(10), T0 + days(100), 100, True)

    def test_never_extends_lock(self):
        info = LockupInfo(T0, T0 + days(100), 100)
        updated = calculate_rage_quit(info, 100, T0 + days(50), COOLDOWN)
        assert updated.unlock_time == T0 + days(100)
        assert updated.lockup_start == T0 + days(50)

    def test_no_shares(self):
        with pytest.raises(NoSharesToRageQuit):
            calculate_rage_quit(LockupInfo(T0, T0 + days(100), 0), 0, T0, COOLDOWN)

    def test_already_unlocked(self):
        with pytest.raises(SharesAlreadyUnlocked):
            calculate_rage_quit(LockupInfo(), 100, T0, COOLDOWN)

    def test_twice(self):
        info = LockupInfo(T0, T0 + days(90), 100, is_rage_quit=True)
        with pytest.raises(RageQuitAlreadyInitiated):
            calculate_rage_quit(info, 100, T0 + days(1), COOLDOWN)


# =============================================================================
# MANAGER
# =============================================================================

class TestLinearLockupManager:
    """Tests for the stateful linear manager."""

    @pytest.fixture
    def manager(self):
        manager = LinearLockupManager(MIN, COOLDOWN)
        manager.on_deposit("alice", 10_000, days(180), T0)
        return manager

    def test_check_withdraw_locked(self, manager):
        with pytest.raises(SharesStillLocked):
            manager.check_withdraw("alice", 1, 10_000, T0 + days(1))

    def test_check_transfer_locked(self, manager):
        with pytest.raises(SharesStillLocked):
            manager.check_transfer("alice", 1, 10_000, T0 + days(1))

    def test_unlocked_holder_passes(self, manager):
        manager.check_withdraw("bob", 50, 50, T0)

    def test_rage_quit_then_partial_unlock(self, manager):
        manager.initiate_rage_quit("alice", 10_000, T0 + days(45))
        assert manager.status("alice", T0 + days(46)) == LockupStatus.RAGE_QUITTING
        assert manager.unlocked_shares("alice", 10_000, T0 + days(90)) == 5_000

    def test_rage_quit_partial_amount_rejected(self, manager):
        with pytest.raises(ValueError):
            manager.initiate_rage_quit("alice", 10_000, T0 + days(1), shares=5_000)

    def test_cancel_is_not_supported(self, manager):
        manager.initiate_rage_quit("alice", 10_000, T0 + days(1))
        with pytest.raises(LockupViolation):
            manager.cancel_rage_quit("alice")

    def test_record_cleared_at_zero_balance(self, manager):
        manager.on_withdraw("alice", 10_000, 0)
        assert manager.get_user_lockup_info("alice") == LockupInfo()

    def test_transfer_out_to_zero_clears(self, manager):
        manager.on_transfer_out("alice", 10_000, 0)
        assert manager.get_user_lockup_info("alice").is_empty()

    def test_clone_is_independent(self, manager):
        cloned = manager.clone()
        cloned.initiate_rage_quit("alice", 10_000, T0 + days(1))
        assert not manager.get_user_lockup_info("alice").is_rage_quit
        assert cloned.get_user_lockup_info("alice").is_rage_quit
