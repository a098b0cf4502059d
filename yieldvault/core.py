"""
Core types for the vault accounting engine.

This module provides the foundational data structures and protocols:
1. Constants: fixed-point scales, limits, role names, cooldown bounds
2. Configuration: VaultConfig with validated defaults
3. Exceptions: VaultError and the domain-specific error taxonomy
4. Protocols: Authorizer, YieldSource, ExchangeRateOracle
5. Immutable records: LockupInfo, CustodyInfo, PoolState, SkimmingAccounts,
   ReportResult, VaultOperation

Token amounts are plain ints in base units. No function in this module
mutates vault state.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Any, Protocol, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================

# The zero identity. Minting to or burning from it is rejected.
ZERO_ADDRESS = ""

# Fixed-point scales
WAD = 10 ** 18
RAY = 10 ** 27

# Basis points denominator for loss tolerances.
MAX_BPS = 10_000

# Sentinel for unlimited limits and allowances.
MAX_UINT256 = 2 ** 256 - 1

# Role names (strings, not enum, matching the external role registry).
ROLE_MANAGEMENT = "MANAGEMENT"
ROLE_KEEPER = "KEEPER"
ROLE_EMERGENCY_ADMIN = "EMERGENCY_ADMIN"

# Lockup defaults and bounds
DEFAULT_MIN_LOCKUP_DURATION = timedelta(days=90)
DEFAULT_RAGE_QUIT_COOLDOWN = timedelta(days=90)
MIN_COOLDOWN = timedelta(days=1)
MAX_COOLDOWN = timedelta(days=365)

# Delay before a proposed governance change may be finalized.
CONFIG_CHANGE_DELAY = timedelta(days=14)
DRAGON_ROUTER_COOLDOWN = timedelta(days=14)

# Settlement modes
MODE_YIELD_DONATING = "YIELD_DONATING"
MODE_YIELD_SKIMMING = "YIELD_SKIMMING"

# Operation kinds recorded in the audit log
OP_DEPOSIT = "DEPOSIT"
OP_WITHDRAW = "WITHDRAW"
OP_TRANSFER = "TRANSFER"
OP_APPROVE = "APPROVE"
OP_REPORT = "REPORT"
OP_RAGE_QUIT = "RAGE_QUIT"
OP_CANCEL_RAGE_QUIT = "CANCEL_RAGE_QUIT"
OP_GOVERNANCE = "GOVERNANCE"
OP_SHUTDOWN = "SHUTDOWN"
OP_EMERGENCY_WITHDRAW = "EMERGENCY_WITHDRAW"


# ============================================================================
# ENUMS
# ============================================================================

class Rounding(Enum):
    """
    Rounding direction for share/asset conversions.

    FLOOR: used when crediting an account (deposit shares, redeem assets).
    CEIL: used when debiting an account (mint cost, withdraw shares).
    """
    FLOOR = "floor"
    CEIL = "ceil"


class LockupStatus(Enum):
    """Lockup state of a single holder at a point in time."""
    UNLOCKED = "unlocked"
    LOCKED = "locked"
    RAGE_QUITTING = "rage_quitting"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class VaultError(Exception):
    """Base exception for all vault-related errors."""
    pass


class Unauthorized(VaultError):
    """Raised when the caller lacks the role an operation requires."""
    pass


class ZeroValue(VaultError):
    """Raised when a non-zero input converts to zero shares or assets."""
    pass


class ZeroShares(ZeroValue):
    pass


class ZeroAssets(ZeroValue):
    pass


class LimitExceeded(VaultError):
    """Raised when a deposit, mint, withdraw or redeem exceeds its computed maximum."""
    pass


class LockupViolation(VaultError):
    """Base class for lockup and rage-quit rule violations."""
    pass


class SharesStillLocked(LockupViolation):
    """Raised when moving more shares than are currently unlocked."""
    pass


class ExceedsCustodiedAmount(LockupViolation):
    """Raised when withdrawing more than the custodied rage-quit amount."""
    pass


class RageQuitAlreadyInitiated(LockupViolation):
    pass


class NoActiveRageQuit(LockupViolation):
    pass


class InsufficientLockupDuration(LockupViolation):
    """Raised when a new or extended lockup is shorter than the configured minimum."""
    pass


class SharesAlreadyUnlocked(LockupViolation):
    pass


class NoSharesToRageQuit(LockupViolation):
    pass


class Insolvent(VaultError):
    """Raised when an operation is blocked because the pool cannot cover its debts."""
    pass


class TooMuchLoss(VaultError):
    """Raised when the loss realized on a withdrawal exceeds the caller's tolerance."""
    pass


class InvalidAccount(VaultError):
    """Raised when minting to, burning from, or transferring to a forbidden identity."""
    pass


class InsufficientBalance(VaultError):
    pass


class InsufficientAllowance(VaultError):
    pass


class ReentrantCall(VaultError):
    """Raised when an operation re-enters a vault that is already mid-operation."""
    pass


class VaultShutdown(VaultError):
    pass


class ConfigError(VaultError):
    """Raised for invalid configuration values or premature governance actions."""
    pass


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class Authorizer(Protocol):
    """
    Capability check against an external role system.

    The vault depends only on this interface; the concrete registry
    (hat-based, multisig, etc.) lives outside the engine.
    """

    def has_role(self, identity: str, role: str) -> bool:
        ...


@runtime_checkable
class YieldSource(Protocol):
    """
    Adapter that deploys idle assets into a yield-generating position.

    Amounts are in asset base units. harvest_and_report() returns the
    realizable value of the funds currently deployed (idle funds held by the
    vault are added by the vault itself).
    """

    def deploy_funds(self, amount: int) -> None:
        """
        Take custody of amount. A call that raises is treated as having taken
        it: the vault asks for it back with free_funds() when it rolls back.
        """
        ...

    def free_funds(self, amount: int) -> int:
        """Release up to amount back to the vault and return what was actually freed."""
        ...

    def harvest_and_report(self) -> int:
        ...

    def available_deposit_limit(self, owner: str) -> int:
        ...

    def available_withdraw_limit(self, owner: str) -> int:
        ...


@runtime_checkable
class ExchangeRateOracle(Protocol):
    """Exchange rate of an appreciating wrapped asset, in its own decimals."""

    def get_current_exchange_rate(self) -> int:
        ...

    def decimals_of_exchange_rate(self) -> int:
        ...


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class VaultConfig:
    """
    Immutable vault parameters fixed at construction.

    Attributes:
        name: Vault identifier, also used as the vault's own address
        asset: Symbol of the underlying asset
        dragon_router: Identity receiving harvested yield
        mode: MODE_YIELD_DONATING or MODE_YIELD_SKIMMING
        asset_decimals: Native decimals of the asset
        share_decimals: Decimals of the claim token (None = same as asset)
        min_lockup_duration: Minimum lockup for a new or extended lock
        rage_quit_cooldown: Length of the rage-quit unlock window
        enable_burning: Burn dragon router shares to absorb losses
    """
    name: str
    asset: str
    dragon_router: str
    mode: str = MODE_YIELD_DONATING
    asset_decimals: int = 18
    share_decimals: Optional[int] = None
    min_lockup_duration: timedelta = DEFAULT_MIN_LOCKUP_DURATION
    rage_quit_cooldown: timedelta = DEFAULT_RAGE_QUIT_COOLDOWN
    enable_burning: bool = True

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Vault name cannot be empty")
        if not self.asset or not self.asset.strip():
            raise ValueError("Vault asset cannot be empty")
        if self.dragon_router == ZERO_ADDRESS:
            raise ValueError("Dragon router cannot be the zero identity")
        if self.mode not in (MODE_YIELD_DONATING, MODE_YIELD_SKIMMING):
            raise ValueError(f"Unknown settlement mode: {self.mode}")
        if not 0 <= self.asset_decimals <= 36:
            raise ValueError(f"asset_decimals out of range: {self.asset_decimals}")
        if self.share_decimals is None:
            object.__setattr__(self, 'share_decimals', self.asset_decimals)
        elif not 0 <= self.share_decimals <= 36:
            raise ValueError(f"share_decimals out of range: {self.share_decimals}")
        validate_cooldown(self.min_lockup_duration, "min_lockup_duration")
        validate_cooldown(self.rage_quit_cooldown, "rage_quit_cooldown")


def validate_cooldown(value: timedelta, label: str) -> None:
    """Raise ConfigError unless MIN_COOLDOWN <= value <= MAX_COOLDOWN."""
    if not isinstance(value, timedelta):
        raise ConfigError(f"{label} must be a timedelta, got {type(value)}")
    if value < MIN_COOLDOWN or value > MAX_COOLDOWN:
        raise ConfigError(
            f"{label} {value} outside [{MIN_COOLDOWN}, {MAX_COOLDOWN}]"
        )


def require_amount(value: int, label: str = "amount") -> int:
    """Validate an amount in base units: a non-negative int (bool rejected)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{label} must be int base units, got {type(value)}")
    if value < 0:
        raise ValueError(f"{label} cannot be negative: {value}")
    return value


# ============================================================================
# IMMUTABLE RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class LockupInfo:
    """
    Per-holder lockup record for the linear rage-quit variant.

    Each state change creates a NEW instance (value semantics).

    Attributes:
        lockup_start: Start of the lock, re-pinned to the rage-quit time
        unlock_time: When all shares become liquid
        locked_shares: Balance snapshot the linear unlock is measured against
        is_rage_quit: True once the holder elected to rage quit (irreversible)
    """
    lockup_start: Optional[datetime] = None
    unlock_time: Optional[datetime] = None
    locked_shares: int = 0
    is_rage_quit: bool = False

    def __post_init__(self):
        if (self.lockup_start is not None and self.unlock_time is not None
                and self.lockup_start > self.unlock_time):
            raise ValueError("lockup_start must not be after unlock_time")
        require_amount(self.locked_shares, "locked_shares")

    def is_empty(self) -> bool:
        return self.unlock_time is None and self.locked_shares == 0 and not self.is_rage_quit


@dataclass(frozen=True, slots=True)
class CustodyInfo:
    """Shares held in rage-quit custody (custody variant) and when they unlock."""
    locked_shares: int = 0
    unlock_time: Optional[datetime] = None

    def is_active(self) -> bool:
        return self.locked_shares > 0


@dataclass(frozen=True, slots=True)
class PoolState:
    """Snapshot of pool-level accounting."""
    total_supply: int
    total_assets: int
    decimals: int
    last_report: datetime

    @property
    def price_per_share(self) -> Decimal:
        """Assets per share as a Decimal (1 for an empty pool)."""
        if self.total_supply == 0:
            return Decimal(1)
        return Decimal(self.total_assets) / Decimal(self.total_supply)


@dataclass(frozen=True, slots=True)
class SkimmingAccounts:
    """
    Debt buckets of the yield-skimming variant, in asset-value units.

    Attributes:
        total_user_debt: Value owed to ordinary depositors
        dragon_router_debt: Value owed to the dragon router (loss buffer)
        last_reported_rate: RAY-scaled exchange rate at the last report
    """
    total_user_debt: int = 0
    dragon_router_debt: int = 0
    last_reported_rate: int = 0

    @property
    def total_debt(self) -> int:
        return self.total_user_debt + self.dragon_router_debt


@dataclass(frozen=True, slots=True)
class ReportResult:
    """
    Outcome of a report.

    profit and loss are in asset units (donating) or asset-value units
    (skimming). unrecovered_loss is the part of the loss the dragon router
    buffer could not absorb; keepers are expected to alert on it.
    """
    profit: int
    loss: int
    unrecovered_loss: int = 0
    shares_minted: int = 0
    shares_burned: int = 0
    total_assets: int = 0
    rate: Optional[int] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class VaultOperation:
    """
    Audit record of an applied vault operation - represents FACT.

    Attributes:
        kind: Operation kind (OP_* constant)
        caller: Identity that invoked the operation
        timestamp: Vault time when the operation was applied
        sequence_number: Monotonic sequence within the vault
        account: Primary account affected (receiver, owner, holder)
        assets: Asset amount involved (0 if none)
        shares: Share amount involved (0 if none)
        details: Extra operation-specific fields
    """
    kind: str
    caller: str
    timestamp: datetime
    sequence_number: int
    account: str = ZERO_ADDRESS
    assets: int = 0
    shares: int = 0
    details: Dict[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        w = 100  # Inner content width
        bar = "─" * w

        def pad(text: str) -> str:
            """Pad or truncate text to exactly w characters."""
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Operation: ' + self.kind + ' #' + str(self.sequence_number))}│",
            f"├{bar}┤",
            f"│{pad('   caller    : ' + self.caller)}│",
            f"│{pad('   account   : ' + (self.account or '-'))}│",
            f"│{pad('   timestamp : ' + str(self.timestamp))}│",
            f"│{pad('   assets    : ' + str(self.assets))}│",
            f"│{pad('   shares    : ' + str(self.shares))}│",
        ]
        if self.details:
            lines.append(f"├{bar}┤")
            for key in sorted(self.details):
                lines.append(f"│{pad(f'   {key}: {self.details[key]!r}')}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)
