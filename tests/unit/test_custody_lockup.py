"""
test_custody_lockup.py - Unit tests for custody-based rage quit

Tests:
- Withdrawals require a matured custody covering the amount
- Transfers limited to the non-custodied balance
- Cancel, deposits during custody, custody shrinking on withdrawal
"""

import pytest
from datetime import datetime, timedelta

from yieldvault import (
    CustodyInfo, CustodyLockupManager, LockupStatus, LockupViolation,
    SharesStillLocked, ExceedsCustodiedAmount, RageQuitAlreadyInitiated,
    NoActiveRageQuit, NoSharesToRageQuit,
)


T0 = datetime(2025, 1, 1)
WEEK = timedelta(days=7)


@pytest.fixture
def manager():
    manager = CustodyLockupManager(WEEK)
    manager.initiate_rage_quit("alice", 10_000, T0, shares=4_000)
    return manager


class TestCustodyInitiate:

    def test_custody_recorded(self, manager):
        assert manager.get_user_lockup_info("alice") == CustodyInfo(4_000, T0 + WEEK)
        assert manager.status("alice", T0) == LockupStatus.RAGE_QUITTING

    def test_defaults_to_full_balance(self):
        manager = CustodyLockupManager(WEEK)
        manager.initiate_rage_quit("bob", 500, T0)
        assert manager.get_user_lockup_info("bob").locked_shares == 500

    def test_more_than_balance(self):
        manager = CustodyLockupManager(WEEK)
        with pytest.raises(ExceedsCustodiedAmount):
            manager.initiate_rage_quit("bob", 500, T0, shares=501)

    def test_zero_shares(self):
        manager = CustodyLockupManager(WEEK)
        with pytest.raises(NoSharesToRageQuit):
            manager.initiate_rage_quit("bob", 0, T0)

    def test_twice(self, manager):
        with pytest.raises(RageQuitAlreadyInitiated):
            manager.initiate_rage_quit("alice", 10_000, T0 + timedelta(days=1), shares=1)


class TestCustodyWithdraw:

    def test_without_custody(self, manager):
        with pytest.raises(NoActiveRageQuit):
            manager.check_withdraw("bob", 1, 100, T0 + WEEK)

    def test_before_maturity(self, manager):
        with pytest.raises(SharesStillLocked):
            manager.check_withdraw("alice", 1, 10_000, T0 + timedelta(days=3))

    def test_exceeds_custody(self, manager):
        with pytest.raises(ExceedsCustodiedAmount):
            manager.check_withdraw("alice", 4_001, 10_000, T0 + WEEK)

    def test_matured_withdrawal_shrinks_custody(self, manager):
        manager.check_withdraw("alice", 1_500, 10_000, T0 + WEEK)
        manager.on_withdraw("alice", 1_500, 8_500)
        assert manager.get_user_lockup_info("alice").locked_shares == 2_500
        assert manager.unlocked_shares("alice", 8_500, T0 + WEEK) == 2_500

    def test_full_withdrawal_clears_custody(self, manager):
        manager.on_withdraw("alice", 4_000, 6_000)
        assert not manager.get_user_lockup_info("alice").is_active()

    def test_unlocked_shares_zero_before_maturity(self, manager):
        assert manager.unlocked_shares("alice", 10_000, T0) == 0


class TestCustodyTransfersAndDeposits:

    def test_free_balance_transferable(self, manager):
        manager.check_transfer("alice", 6_000, 10_000, T0)

    def test_custodied_shares_not_transferable(self, manager):
        with pytest.raises(SharesStillLocked):
            manager.check_transfer("alice", 6_001, 10_000, T0)

    def test_deposit_leaves_custody_untouched(self, manager):
        manager.on_deposit("alice", 11_000, timedelta(0), T0)
        assert manager.get_user_lockup_info("alice") == CustodyInfo(4_000, T0 + WEEK)

    def test_deposit_duration_rejected(self, manager):
        with pytest.raises(LockupViolation):
            manager.on_deposit("alice", 11_000, timedelta(days=90), T0)


class TestCustodyCancel:

    def test_cancel(self, manager):
        manager.cancel_rage_quit("alice")
        assert manager.get_user_lockup_info("alice") == CustodyInfo()

    def test_cancel_without_custody(self, manager):
        with pytest.raises(NoActiveRageQuit):
            manager.cancel_rage_quit("bob")
