"""
conftest.py - Shared pytest fixtures for vault tests

Provides common fixtures used across unit and functional tests:
- Collaborators (yield source, rate oracle, role registry)
- Vaults in each settlement mode and lockup variant
- Funded vaults with depositors already in place
"""

import pytest

from yieldvault import (
    IdleYieldSource, StaticRateOracle, CustodyLockupManager,
    MODE_YIELD_SKIMMING,
)

from tests.fakes import make_vault, default_roles, days, ONE


# =============================================================================
# COLLABORATOR FIXTURES
# =============================================================================

@pytest.fixture
def source():
    """Fully liquid yield source with no limits."""
    return IdleYieldSource()


@pytest.fixture
def oracle():
    """Exchange rate oracle at 1.0 (18 decimals)."""
    return StaticRateOracle(ONE)


@pytest.fixture
def roles():
    return default_roles()


# =============================================================================
# VAULT FIXTURES
# =============================================================================

@pytest.fixture
def vault(source):
    """Empty yield-donating vault (6 decimals, linear lockups)."""
    return make_vault(source=source)


@pytest.fixture
def funded_vault(vault):
    """Donating vault with alice holding 10,000 liquid shares."""
    vault.deposit(10_000, "alice")
    return vault


@pytest.fixture
def custody_vault(source):
    """Donating vault using custody rage quits with a 7-day cooldown."""
    return make_vault(source=source, lockup_manager=CustodyLockupManager(days(7)))


@pytest.fixture
def skimming_vault(source, oracle):
    """Empty yield-skimming vault (18 decimals) priced by oracle."""
    return make_vault(mode=MODE_YIELD_SKIMMING, source=source, oracle=oracle)


@pytest.fixture
def funded_skimming_vault(skimming_vault):
    """Skimming vault with alice holding 1,000 shares at rate 1.0."""
    skimming_vault.deposit(1_000, "alice")
    return skimming_vault
