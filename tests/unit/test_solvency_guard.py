"""
test_solvency_guard.py - Unit tests for debt tracking and insolvency gating

Tests:
- is_insolvent: exact comparison, zero debt
- SolvencyGuard bookkeeping: mint, burn, transfer across the dragon boundary
- Dragon gating and dragon router change re-bucketing
"""

import pytest

from yieldvault import (
    SolvencyGuard, SkimmingAccounts, Insolvent, RAY,
    is_insolvent, solvency_surplus,
)


RATE_0_9 = RAY * 9 // 10


class TestIsInsolvent:

    def test_no_debt_is_solvent(self):
        assert not is_insolvent(0, 0, SkimmingAccounts())

    def test_exact_cover_is_solvent(self):
        assert not is_insolvent(1_000, RAY, SkimmingAccounts(900, 100))

    def test_one_unit_short_is_insolvent(self):
        assert is_insolvent(999, RAY, SkimmingAccounts(900, 100))

    def test_rate_drop(self):
        assert is_insolvent(1_000, RATE_0_9, SkimmingAccounts(1_000, 0))

    def test_surplus(self):
        assert solvency_surplus(1_000, RAY * 11 // 10, SkimmingAccounts(1_000, 0)) == 100
        assert solvency_surplus(1_000, RATE_0_9, SkimmingAccounts(1_000, 0)) == -100


class TestDebtBookkeeping:

    @pytest.fixture
    def guard(self):
        guard = SolvencyGuard("dragon")
        guard.record_mint("alice", 1_000)
        guard.record_mint("dragon", 100)
        return guard

    def test_mints_split_by_bucket(self, guard):
        assert guard.accounts == SkimmingAccounts(1_000, 100, 0)

    def test_burns_reduce_bucket(self, guard):
        guard.record_burn("alice", 400)
        guard.record_burn("dragon", 30)
        assert guard.accounts.total_user_debt == 600
        assert guard.accounts.dragon_router_debt == 70

    def test_burn_beyond_bucket_raises(self, guard):
        with pytest.raises(ValueError, match="dragon_router_debt"):
            guard.record_burn("dragon", 101)
        assert guard.accounts.dragon_router_debt == 100

    def test_burn_whole_bucket(self, guard):
        guard.record_burn("alice", 1_000)
        assert guard.accounts.total_user_debt == 0

    def test_transfer_from_dragon_moves_debt(self, guard):
        guard.record_transfer("dragon", "bob", 40)
        assert guard.accounts == SkimmingAccounts(1_040, 60, 0)

    def test_transfer_to_dragon_moves_debt(self, guard):
        guard.record_transfer("alice", "dragon", 200)
        assert guard.accounts == SkimmingAccounts(800, 300, 0)

    def test_transfer_between_users_no_change(self, guard):
        guard.record_transfer("alice", "bob", 200)
        assert guard.accounts == SkimmingAccounts(1_000, 100, 0)

    def test_record_rate(self, guard):
        guard.record_rate(RAY)
        assert guard.accounts.last_reported_rate == RAY

    def test_change_dragon_router(self, guard):
        # alice (1,000 shares) becomes the dragon router; old dragon held 100
        guard.change_dragon_router("alice", old_balance=100, new_balance=1_000)
        assert guard.dragon_router == "alice"
        assert guard.accounts.dragon_router_debt == 1_000
        assert guard.accounts.total_user_debt == 100

    def test_clone_is_independent(self, guard):
        cloned = guard.clone()
        cloned.record_mint("bob", 5)
        assert guard.accounts.total_user_debt == 1_000


class TestGating:

    @pytest.fixture
    def guard(self):
        guard = SolvencyGuard("dragon")
        guard.record_mint("alice", 1_000)
        return guard

    def test_require_solvent_raises_when_insolvent(self, guard):
        with pytest.raises(Insolvent):
            guard.require_solvent(1_000, RATE_0_9, "deposit")

    def test_require_solvent_passes(self, guard):
        guard.require_solvent(1_000, RAY, "deposit")

    def test_depositors_pass_while_insolvent(self, guard):
        guard.check_dragon(1_000, RATE_0_9, "transfer", "alice", "bob")

    def test_dragon_blocked_while_insolvent(self, guard):
        with pytest.raises(Insolvent):
            guard.check_dragon(1_000, RATE_0_9, "transfer", "alice", "dragon")
