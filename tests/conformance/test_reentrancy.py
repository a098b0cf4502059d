"""
Reentrancy Conformance Tests

INVARIANT: No operation observes or produces an intermediate state.

    ∀ operation O running on vault V:
        any mutating call into V issued from inside O raises ReentrantCall

Read-only views stay available to collaborators during an operation. The vault
clock counts as state: it cannot move while an operation is running.
"""

import threading

import pytest

from yieldvault import ReentrantCall

from tests.fakes import make_vault, vault_state, CallbackYieldSource, T0, days


@pytest.fixture
def hooked():
    source = CallbackYieldSource()
    return make_vault(source=source), source


class TestReentrancy:

    def test_nested_deposit_rejected(self, hooked):
        vault, source = hooked
        source.callback = lambda: vault.deposit(1, "mallory")

        assert vault.deposit(100, "alice") == 100
        assert len(source.errors) == 1
        assert isinstance(source.errors[0], ReentrantCall)
        assert vault.balance_of("mallory") == 0
        assert vault.total_supply() == 100

    @pytest.mark.parametrize("attack", [
        lambda v: v.redeem(50, "alice", "alice"),
        lambda v: v.transfer("alice", "mallory", 50),
        lambda v: v.report("keeper"),
        lambda v: v.initiate_rage_quit("alice"),
        lambda v: v.approve("alice", "mallory", 50),
    ])
    def test_every_mutation_is_guarded(self, hooked, attack):
        vault, source = hooked
        vault.deposit(100, "alice")
        source.callback = lambda: attack(vault)

        vault.deposit(10, "bob")
        assert [type(e) for e in source.errors] == [ReentrantCall]
        assert vault.balance_of("alice") == 100
        assert vault.allowance("alice", "mallory") == 0

    def test_propagated_reentrancy_rolls_back_outer(self):
        source = CallbackYieldSource(swallow=False)
        vault = make_vault(source=source)
        vault.deposit(100, "alice")
        before = vault_state(vault)

        source.callback = lambda: vault.deposit(1, "mallory")
        with pytest.raises(ReentrantCall):
            vault.deposit(100, "bob")
        assert vault_state(vault) == before

    def test_views_available_during_operation(self, hooked):
        vault, source = hooked
        seen = []
        source.callback = lambda: seen.append(
            (vault.total_supply(), vault.total_assets(), vault.balance_of("alice"))
        )
        vault.deposit(100, "alice")
        assert seen == [(100, 100, 100)]
        assert source.errors == []

    def test_vault_usable_after_rejection(self, hooked):
        vault, source = hooked
        source.callback = lambda: vault.deposit(1, "mallory")
        vault.deposit(100, "alice")
        source.callback = None
        assert vault.deposit(1, "mallory") == 1


class TestYieldSourceBoundary:
    """Funds handed to the yield source by a rejected operation come back."""

    def test_rolled_back_deposit_leaves_nothing_deployed(self):
        source = CallbackYieldSource(swallow=False)
        vault = make_vault(source=source)
        vault.deposit(100, "alice")

        source.callback = lambda: vault.deposit(1, "mallory")
        with pytest.raises(ReentrantCall):
            vault.deposit(100, "bob")
        assert source.deployed == 100
        assert vault.idle == 0

        source.callback = None
        result = vault.report("keeper")
        assert result.profit == 0
        assert result.shares_minted == 0
        assert vault.balance_of("dragon") == 0
        assert vault.total_assets() == 100


class TestClock:
    """Each operation observes a single vault time."""

    def test_advance_time_rejected_mid_operation(self, hooked):
        vault, source = hooked
        source.callback = lambda: vault.advance_time(T0 + days(30))

        vault.deposit_with_lockup(100, "alice", days(90))
        assert [type(e) for e in source.errors] == [ReentrantCall]
        assert vault.current_time == T0
        assert vault.get_user_lockup_info("alice").lockup_start == T0
        assert vault.operation_log[-1].timestamp == T0

    def test_advance_time_waits_for_other_thread(self, hooked):
        vault, source = hooked
        mover = threading.Thread(target=vault.advance_time, args=(T0 + days(30),))

        def start_mover():
            mover.start()
            mover.join(timeout=0.2)
            assert mover.is_alive()

        source.callback = start_mover
        vault.deposit(100, "alice")
        mover.join()

        assert source.errors == []
        assert vault.operation_log[-1].timestamp == T0
        assert vault.current_time == T0 + days(30)
