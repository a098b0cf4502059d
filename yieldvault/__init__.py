"""
yieldvault - Tokenized Vault Accounting Engine

Share accounting for pooled-asset vaults with yield separation, voluntary
lockups and rage quit.

Usage:
    from datetime import timedelta
    from yieldvault import (
        TokenizedVault, VaultConfig, IdleYieldSource, RoleRegistry, ROLE_KEEPER,
    )

    source = IdleYieldSource()
    vault = TokenizedVault(
        VaultConfig(name="vault", asset="USDC", dragon_router="dragon", asset_decimals=6),
        yield_source=source,
        authorizer=RoleRegistry({"keeper": {ROLE_KEEPER}}),
    )

    # Lock alice's shares for 180 days
    vault.deposit_with_lockup(10_000, "alice", timedelta(days=180))

    # Yield accrues to the dragon router, never to depositors
    source.accrue(500)
    result = vault.report("keeper")
"""

# Core types
from .core import (
    VaultConfig,
    PoolState,
    LockupInfo,
    CustodyInfo,
    SkimmingAccounts,
    ReportResult,
    VaultOperation,
    Rounding,
    LockupStatus,
    Authorizer,
    YieldSource,
    ExchangeRateOracle,
    VaultError,
    Unauthorized,
    ZeroValue,
    ZeroShares,
    ZeroAssets,
    LimitExceeded,
    LockupViolation,
    SharesStillLocked,
    ExceedsCustodiedAmount,
    RageQuitAlreadyInitiated,
    NoActiveRageQuit,
    InsufficientLockupDuration,
    SharesAlreadyUnlocked,
    NoSharesToRageQuit,
    Insolvent,
    TooMuchLoss,
    InvalidAccount,
    InsufficientBalance,
    InsufficientAllowance,
    ReentrantCall,
    VaultShutdown,
    ConfigError,
    ZERO_ADDRESS,
    WAD,
    RAY,
    MAX_BPS,
    MAX_UINT256,
    ROLE_MANAGEMENT,
    ROLE_KEEPER,
    ROLE_EMERGENCY_ADMIN,
    DEFAULT_MIN_LOCKUP_DURATION,
    DEFAULT_RAGE_QUIT_COOLDOWN,
    MIN_COOLDOWN,
    MAX_COOLDOWN,
    CONFIG_CHANGE_DELAY,
    DRAGON_ROUTER_COOLDOWN,
    MODE_YIELD_DONATING,
    MODE_YIELD_SKIMMING,
    OP_DEPOSIT,
    OP_WITHDRAW,
    OP_TRANSFER,
    OP_APPROVE,
    OP_REPORT,
    OP_RAGE_QUIT,
    OP_CANCEL_RAGE_QUIT,
    OP_GOVERNANCE,
    OP_SHUTDOWN,
    OP_EMERGENCY_WITHDRAW,
    validate_cooldown,
    require_amount,
)

# Conversion
from .conversion import (
    mul_div,
    scale_decimals,
    convert_to_shares,
    convert_to_assets,
    normalize_rate_to_ray,
    assets_to_value,
    value_to_assets,
)

# Share ledger
from .shares import ShareLedger

# Lockups - Pure Function Architecture
from .lockup import (
    has_active_lock,
    lockup_status,
    calculate_unlocked_shares,
    calculate_deposit_lockup,
    calculate_rage_quit,
    calculate_custody_withdrawable,
    LockupManager,
    LinearLockupManager,
    CustodyLockupManager,
)

# Solvency
from .solvency import (
    is_insolvent,
    solvency_surplus,
    SolvencyGuard,
)

# Settlement policies
from .report import (
    PoolView,
    SettlementPolicy,
    YieldDonatingPolicy,
    YieldSkimmingPolicy,
)

# Vault
from .vault import TokenizedVault

# Keeper
from .keeper import Keeper, DEFAULT_MAX_REPORT_DELAY

# Adapters
from .adapters import (
    RoleRegistry,
    IdleYieldSource,
    StaticRateOracle,
    TimeSeriesRateOracle,
)

# Analytics
from .analytics import (
    unlock_curve,
    report_returns,
    cumulative_yield,
    annualized_yield,
)

__all__ = [
    # Core
    'VaultConfig', 'PoolState', 'LockupInfo', 'CustodyInfo', 'SkimmingAccounts',
    'ReportResult', 'VaultOperation', 'Rounding', 'LockupStatus',
    'Authorizer', 'YieldSource', 'ExchangeRateOracle',
    'VaultError', 'Unauthorized', 'ZeroValue', 'ZeroShares', 'ZeroAssets',
    'LimitExceeded', 'LockupViolation', 'SharesStillLocked', 'ExceedsCustodiedAmount',
    'RageQuitAlreadyInitiated', 'NoActiveRageQuit', 'InsufficientLockupDuration',
    'SharesAlreadyUnlocked', 'NoSharesToRageQuit', 'Insolvent', 'TooMuchLoss',
    'InvalidAccount', 'InsufficientBalance', 'InsufficientAllowance',
    'ReentrantCall', 'VaultShutdown', 'ConfigError',
    'ZERO_ADDRESS', 'WAD', 'RAY', 'MAX_BPS', 'MAX_UINT256',
    'ROLE_MANAGEMENT', 'ROLE_KEEPER', 'ROLE_EMERGENCY_ADMIN',
    'DEFAULT_MIN_LOCKUP_DURATION', 'DEFAULT_RAGE_QUIT_COOLDOWN',
    'MIN_COOLDOWN', 'MAX_COOLDOWN', 'CONFIG_CHANGE_DELAY', 'DRAGON_ROUTER_COOLDOWN',
    'MODE_YIELD_DONATING', 'MODE_YIELD_SKIMMING',
    'OP_DEPOSIT', 'OP_WITHDRAW', 'OP_TRANSFER', 'OP_APPROVE', 'OP_REPORT',
    'OP_RAGE_QUIT', 'OP_CANCEL_RAGE_QUIT', 'OP_GOVERNANCE', 'OP_SHUTDOWN',
    'OP_EMERGENCY_WITHDRAW',
    'validate_cooldown', 'require_amount',
    # Conversion
    'mul_div', 'scale_decimals', 'convert_to_shares', 'convert_to_assets',
    'normalize_rate_to_ray', 'assets_to_value', 'value_to_assets',
    # Shares
    'ShareLedger',
    # Lockups
    'has_active_lock', 'lockup_status', 'calculate_unlocked_shares',
    'calculate_deposit_lockup', 'calculate_rage_quit', 'calculate_custody_withdrawable',
    'LockupManager', 'LinearLockupManager', 'CustodyLockupManager',
    # Solvency
    'is_insolvent', 'solvency_surplus', 'SolvencyGuard',
    # Settlement
    'PoolView', 'SettlementPolicy', 'YieldDonatingPolicy', 'YieldSkimmingPolicy',
    # Vault
    'TokenizedVault',
    # Keeper
    'Keeper', 'DEFAULT_MAX_REPORT_DELAY',
    # Adapters
    'RoleRegistry', 'IdleYieldSource', 'StaticRateOracle', 'TimeSeriesRateOracle',
    # Analytics
    'unlock_curve', 'report_returns', 'cumulative_yield', 'annualized_yield',
]

__version__ = '1.0.0'
