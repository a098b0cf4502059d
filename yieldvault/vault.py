"""
vault.py - Tokenized Vault Accounting Engine

The TokenizedVault is the central state manager of the engine. It composes
the accounting components and is the only module that mutates vault state.

Key responsibilities:
    - Exposes the deposit/mint/withdraw/redeem, transfer, lockup and report surface
    - Routes every operation LockupManager -> conversion -> ShareLedger
    - Executes each operation atomically (all state changes apply or none do)
    - Rejects re-entrant calls and serializes concurrent ones
    - Gates dragon router activity on solvency in the yield-skimming mode
    - Always logs - every applied operation lands in operation_log
"""

from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union
import threading

from .core import (
    # Types
    VaultConfig, PoolState, LockupInfo, CustodyInfo, LockupStatus,
    SkimmingAccounts, ReportResult, VaultOperation, Rounding,
    Authorizer, YieldSource, ExchangeRateOracle,
    # Constants
    ZERO_ADDRESS, MAX_BPS, MAX_UINT256, MODE_YIELD_SKIMMING,
    ROLE_MANAGEMENT, ROLE_KEEPER, ROLE_EMERGENCY_ADMIN,
    CONFIG_CHANGE_DELAY, DRAGON_ROUTER_COOLDOWN,
    OP_DEPOSIT, OP_WITHDRAW, OP_TRANSFER, OP_APPROVE, OP_REPORT,
    OP_RAGE_QUIT, OP_CANCEL_RAGE_QUIT, OP_GOVERNANCE, OP_SHUTDOWN,
    OP_EMERGENCY_WITHDRAW,
    # Exceptions
    Unauthorized, ZeroShares, ZeroAssets, LimitExceeded, TooMuchLoss,
    InvalidAccount, InsufficientBalance, ReentrantCall, VaultShutdown, ConfigError,
    # Helpers
    require_amount, validate_cooldown,
)
from .conversion import mul_div, normalize_rate_to_ray
from .lockup import LockupManager, LinearLockupManager
from .report import PoolView, SettlementPolicy, YieldDonatingPolicy, YieldSkimmingPolicy
from .shares import ShareLedger
from .solvency import SolvencyGuard


_NO_DURATION = timedelta(0)


class TokenizedVault:
    """
    Single-asset vault with yield separation and optional share lockups.

    The vault holds its collaborators by composition: a ShareLedger for
    balances, a LockupManager for unlock rules, a settlement policy for
    reports and conversions, and (skimming mode) a SolvencyGuard.

    Design Principles:
        - Always validates: every precondition is checked inside the
          operation, and any failure restores the pre-operation state.
        - Always logs: every applied operation is recorded in operation_log.

    Thread Safety:
        Operations are serialized by a per-instance lock. A call that
        re-enters the vault from inside one of its own operations (e.g. an
        adapter callback) raises ReentrantCall.

    Example:
        vault = TokenizedVault(
            VaultConfig(name="vault", asset="USDC", dragon_router="dragon", asset_decimals=6),
            yield_source=IdleYieldSource(),
            authorizer=RoleRegistry({"keeper": {ROLE_KEEPER}}),
        )
        shares = vault.deposit(10_000, "alice")
        vault.report("keeper")
    """

    def __init__(
        self,
        config: VaultConfig,
        yield_source: YieldSource,
        authorizer: Authorizer,
        rate_oracle: Optional[ExchangeRateOracle] = None,
        lockup_manager: Optional[LockupManager] = None,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
    ):
        """
        Create a vault.

        Args:
            config: Immutable vault parameters
            yield_source: Adapter holding deployed funds
            authorizer: Role capability check
            rate_oracle: Exchange rate source (required in skimming mode)
            lockup_manager: Lockup rules (default: LinearLockupManager from config)
            initial_time: Starting time for the vault clock (default: 1970-01-01)
            verbose: Print operation receipts (default: True)

        Raises:
            ValueError: If skimming mode is configured without a rate oracle
            ConfigError: If skimming mode is configured with rescaled share decimals
        """
        self.config = config
        self.name = config.name
        self.asset = config.asset
        self.yield_source = yield_source
        self.authorizer = authorizer
        self.rate_oracle = rate_oracle
        self.verbose = verbose

        if config.mode == MODE_YIELD_SKIMMING:
            if rate_oracle is None:
                raise ValueError("Yield-skimming vaults require a rate oracle")
            if config.share_decimals != config.asset_decimals:
                raise ConfigError("Yield-skimming shares must use the asset's decimals")
            self.policy: SettlementPolicy = YieldSkimmingPolicy()
            self.guard: Optional[SolvencyGuard] = SolvencyGuard(config.dragon_router)
        else:
            self.policy = YieldDonatingPolicy()
            self.guard = None

        self.shares = ShareLedger(config.name)
        self.lockups: LockupManager = lockup_manager or LinearLockupManager(
            config.min_lockup_duration, config.rage_quit_cooldown
        )
        self.dragon_router: str = config.dragon_router
        self.enable_burning: bool = config.enable_burning
        self.is_shutdown: bool = False

        self._total_assets: int = 0
        self._idle: int = 0
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self._last_report: datetime = self._current_time
        self._pending_dragon_router: Optional[Tuple[str, datetime]] = None
        self._pending_cooldown: Optional[Tuple[timedelta, datetime]] = None

        self.operation_log: List[VaultOperation] = []
        self._next_sequence: int = 0

        self._lock = threading.Lock()
        self._owner: Optional[int] = None
        self._freed_in_flight: int = 0
        self._deployed_in_flight: int = 0

    # ========================================================================
    # READ-ONLY VIEWS
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the vault."""
        return self._current_time

    @property
    def idle(self) -> int:
        """Assets held by the vault itself, not deployed to the yield source."""
        return self._idle

    @property
    def last_report(self) -> datetime:
        return self._last_report

    @property
    def decimals(self) -> int:
        return self.config.share_decimals

    def total_assets(self) -> int:
        """Principal basis, tracked manually and never read from a live balance."""
        return self._total_assets

    def total_supply(self) -> int:
        return self.shares.total_supply

    def balance_of(self, account: str) -> int:
        return self.shares.balance_of(account)

    def allowance(self, owner: str, spender: str) -> int:
        return self.shares.allowance(owner, spender)

    def pool_state(self) -> PoolState:
        return PoolState(
            total_supply=self.shares.total_supply,
            total_assets=self._total_assets,
            decimals=self.decimals,
            last_report=self._last_report,
        )

    def skimming_accounts(self) -> Optional[SkimmingAccounts]:
        """Debt buckets in skimming mode, None in donating mode."""
        return self.guard.accounts if self.guard else None

    def is_insolvent(self) -> bool:
        """True iff (skimming mode) the pool's value at the current rate cannot cover its debts."""
        return self._pool_view().insolvent

    def convert_to_shares(self, assets: int) -> int:
        return self.policy.to_shares(self._pool_view(), assets, Rounding.FLOOR)

    def convert_to_assets(self, shares: int) -> int:
        return self.policy.to_assets(self._pool_view(), shares, Rounding.FLOOR)

    def preview_deposit(self, assets: int) -> int:
        return self.policy.to_shares(self._pool_view(), assets, Rounding.FLOOR)

    def preview_mint(self, shares: int) -> int:
        return self.policy.to_assets(self._pool_view(), shares, Rounding.CEIL)

    def preview_withdraw(self, assets: int) -> int:
        return self.policy.to_shares(self._pool_view(), assets, Rounding.CEIL)

    def preview_redeem(self, shares: int) -> int:
        return self.policy.to_assets(self._pool_view(), shares, Rounding.FLOOR)

    def max_deposit(self, receiver: str) -> int:
        return self._max_deposit(self._pool_view(), receiver)

    def max_mint(self, receiver: str) -> int:
        pool = self._pool_view()
        limit = self._max_deposit(pool, receiver)
        if limit == MAX_UINT256:
            return MAX_UINT256
        return self.policy.to_shares(pool, limit, Rounding.FLOOR)

    def max_redeem(self, owner: str) -> int:
        return self._max_redeem(self._pool_view(), owner)

    def max_withdraw(self, owner: str) -> int:
        pool = self._pool_view()
        return self.policy.to_assets(pool, self._max_redeem(pool, owner), Rounding.FLOOR)

    def unlocked_shares(self, holder: str) -> int:
        """Shares the holder may currently withdraw (and, linear variant, transfer)."""
        return self.lockups.unlocked_shares(
            holder, self.shares.balance_of(holder), self._current_time
        )

    def get_user_lockup_info(self, holder: str) -> Union[LockupInfo, CustodyInfo]:
        return self.lockups.get_user_lockup_info(holder)

    def lockup_status(self, holder: str) -> LockupStatus:
        return self.lockups.status(holder, self._current_time)

    @property
    def pending_dragon_router(self) -> Optional[Tuple[str, datetime]]:
        """(new router, effective time) of a proposed change, if any."""
        return self._pending_dragon_router

    @property
    def pending_rage_quit_cooldown(self) -> Optional[Tuple[timedelta, datetime]]:
        return self._pending_cooldown

    def verify_invariants(self) -> Dict[str, Any]:
        """
        Check the accounting invariants.

        Returns:
            Dict with keys:
            - 'valid': bool - True if every check holds
            - 'conservation': result of ShareLedger.verify_conservation()
            - 'debt_buckets': bool - skimming debts equal share buckets (True in donating mode)
        """
        conservation = self.shares.verify_conservation()
        debt_ok = True
        if self.guard is not None:
            dragon_balance = self.shares.balance_of(self.dragon_router)
            accounts = self.guard.accounts
            debt_ok = (
                accounts.dragon_router_debt == dragon_balance
                and accounts.total_user_debt == self.shares.total_supply - dragon_balance
            )
        return {
            'valid': conservation['valid'] and debt_ok,
            'conservation': conservation,
            'debt_buckets': debt_ok,
        }

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the vault's logical clock. Time can only move forward.

        Waits for any operation running on another thread, so one operation
        always sees a single time.

        Raises:
            ValueError: If new_time is before the current time
            ReentrantCall: If called from inside an operation on this vault
        """
        if self._owner == threading.get_ident():
            raise ReentrantCall(f"advance_time: vault {self.name} is already mid-operation")
        with self._lock:
            if new_time < self._current_time:
                raise ValueError(
                    f"Cannot move time backwards: {new_time} < {self._current_time}"
                )
            self._current_time = new_time

    # ========================================================================
    # DEPOSITS
    # ========================================================================

    def deposit(self, assets: int, receiver: str, caller: Optional[str] = None) -> int:
        """Deposit assets for receiver without a lockup. Returns shares minted."""
        return self.deposit_with_lockup(assets, receiver, _NO_DURATION, caller)

    def deposit_with_lockup(
        self,
        assets: int,
        receiver: str,
        duration: timedelta,
        caller: Optional[str] = None,
    ) -> int:
        """
        Deposit assets and lock the receiver's shares for duration.

        A duration of 0 leaves new funds liquid (or, on an existing lock,
        only refreshes the locked amount).

        Returns:
            Shares minted to receiver

        Raises:
            VaultShutdown, Insolvent, LimitExceeded, ZeroShares, LockupViolation
        """
        with self._operation(OP_DEPOSIT):
            require_amount(assets, "assets")
            pool = self._pool_view()
            self._check_deposit_allowed(pool, receiver)
            if assets > self._max_deposit(pool, receiver):
                raise LimitExceeded(f"Deposit {assets} exceeds max deposit for {receiver}")
            shares = self.policy.to_shares(pool, assets, Rounding.FLOOR)
            if shares == 0:
                raise ZeroShares(f"Deposit of {assets} converts to zero shares")
            self._deposit(caller or receiver, receiver, assets, shares, duration)
        return shares

    def mint(self, shares: int, receiver: str, caller: Optional[str] = None) -> int:
        """Mint exactly shares for receiver without a lockup. Returns assets pulled."""
        return self.mint_with_lockup(shares, receiver, _NO_DURATION, caller)

    def mint_with_lockup(
        self,
        shares: int,
        receiver: str,
        duration: timedelta,
        caller: Optional[str] = None,
    ) -> int:
        """
        Mint exactly shares (paying assets rounded up) and lock them for duration.

        Returns:
            Assets pulled from the caller
        """
        with self._operation(OP_DEPOSIT):
            require_amount(shares, "shares")
            pool = self._pool_view()
            self._check_deposit_allowed(pool, receiver)
            max_mint = self._max_deposit(pool, receiver)
            if max_mint != MAX_UINT256:
                max_mint = self.policy.to_shares(pool, max_mint, Rounding.FLOOR)
            if shares > max_mint:
                raise LimitExceeded(f"Mint {shares} exceeds max mint for {receiver}")
            assets = self.policy.to_assets(pool, shares, Rounding.CEIL)
            if assets == 0:
                raise ZeroAssets(f"Mint of {shares} shares converts to zero assets")
            self._deposit(caller or receiver, receiver, assets, shares, duration)
        return assets

    def _check_deposit_allowed(self, pool: PoolView, receiver: str) -> None:
        if receiver == ZERO_ADDRESS:
            raise InvalidAccount("Cannot deposit for the zero identity")
        if self.is_shutdown:
            raise VaultShutdown("Vault is shut down; deposits are disabled")
        if self.guard is not None:
            self.guard.require_solvent(pool.total_assets, pool.rate_ray, "deposit")

    def _max_deposit(self, pool: PoolView, receiver: str) -> int:
        if self.is_shutdown or pool.insolvent:
            return 0
        return min(self.yield_source.available_deposit_limit(receiver), MAX_UINT256)

    def _deposit(
        self,
        caller: str,
        receiver: str,
        assets: int,
        shares: int,
        duration: timedelta,
    ) -> None:
        now = self._current_time
        new_balance = self.shares.balance_of(receiver) + shares
        self.lockups.on_deposit(receiver, new_balance, duration, now)

        self._idle += assets
        self.shares.mint(receiver, shares)
        self._total_assets += assets
        if self.guard is not None:
            self.guard.record_mint(receiver, shares)

        # Everything idle is put to work
        deployable = self._idle
        self._idle = 0
        self._deployed_in_flight += deployable
        self.yield_source.deploy_funds(deployable)

        self._record(
            OP_DEPOSIT, caller, receiver, assets=assets, shares=shares,
            lockup_duration=str(duration),
        )

    # ========================================================================
    # WITHDRAWALS
    # ========================================================================

    def withdraw(
        self,
        assets: int,
        receiver: str,
        owner: str,
        max_loss_bps: int = 0,
        caller: Optional[str] = None,
    ) -> int:
        """
        Withdraw assets from owner's position to receiver.

        Args:
            assets: Asset amount requested
            receiver: Identity receiving the assets
            owner: Holder whose shares are burned
            max_loss_bps: Tolerated realized loss in basis points (default 0)
            caller: Invoking identity (default: owner); spends allowance if not owner

        Returns:
            Shares burned

        Raises:
            ZeroShares, LimitExceeded, SharesStillLocked, ExceedsCustodiedAmount,
            NoActiveRageQuit, Insolvent, TooMuchLoss, InsufficientAllowance
        """
        with self._operation(OP_WITHDRAW):
            require_amount(assets, "assets")
            self._check_max_loss(max_loss_bps)
            pool = self._pool_view()
            self._check_withdraw_allowed(pool, receiver, owner)
            shares = self.policy.to_shares(pool, assets, Rounding.CEIL)
            if shares == 0:
                raise ZeroShares(f"Withdrawal of {assets} converts to zero shares")
            self._check_redeemable(pool, owner, shares, assets)
            self._withdraw(pool, caller or owner, receiver, owner, assets, shares, max_loss_bps)
        return shares

    def redeem(
        self,
        shares: int,
        receiver: str,
        owner: str,
        max_loss_bps: int = MAX_BPS,
        caller: Optional[str] = None,
    ) -> int:
        """
        Burn shares from owner and send the assets they are worth to receiver.

        Defaults to accepting any loss, like a plain ERC-4626 redeem.

        Returns:
            Assets actually sent to receiver
        """
        with self._operation(OP_WITHDRAW):
            require_amount(shares, "shares")
            self._check_max_loss(max_loss_bps)
            pool = self._pool_view()
            self._check_withdraw_allowed(pool, receiver, owner)
            assets = self.policy.to_assets(pool, shares, Rounding.FLOOR)
            if assets == 0:
                raise ZeroAssets(f"Redemption of {shares} shares converts to zero assets")
            self._check_redeemable(pool, owner, shares, assets)
            paid = self._withdraw(
                pool, caller or owner, receiver, owner, assets, shares, max_loss_bps
            )
        return paid

    @staticmethod
    def _check_max_loss(max_loss_bps: int) -> None:
        if not 0 <= max_loss_bps <= MAX_BPS:
            raise ValueError(f"max_loss_bps must be within [0, {MAX_BPS}], got {max_loss_bps}")

    def _check_withdraw_allowed(self, pool: PoolView, receiver: str, owner: str) -> None:
        if receiver == ZERO_ADDRESS:
            raise InvalidAccount("Cannot withdraw to the zero identity")
        if self.guard is not None:
            self.guard.check_dragon(pool.total_assets, pool.rate_ray, "withdraw", owner)

    def _check_redeemable(self, pool: PoolView, owner: str, shares: int, assets: int) -> None:
        balance = self.shares.balance_of(owner)
        if shares > balance:
            raise LimitExceeded(f"{owner}: redeem {shares} exceeds balance {balance}")
        self.lockups.check_withdraw(owner, shares, balance, self._current_time)
        limit = self.yield_source.available_withdraw_limit(owner)
        if assets > limit:
            raise LimitExceeded(f"{owner}: withdraw {assets} exceeds available limit {limit}")

    def _max_redeem(self, pool: PoolView, owner: str) -> int:
        if self.guard is not None and owner == self.dragon_router and pool.insolvent:
            return 0
        unlocked = self.lockups.unlocked_shares(
            owner, self.shares.balance_of(owner), self._current_time
        )
        limit = self.yield_source.available_withdraw_limit(owner)
        if limit >= MAX_UINT256:
            return unlocked
        return min(unlocked, self.policy.to_shares(pool, limit, Rounding.FLOOR))

    def _withdraw(
        self,
        pool: PoolView,
        caller: str,
        receiver: str,
        owner: str,
        assets: int,
        shares: int,
        max_loss_bps: int,
    ) -> int:
        if caller != owner:
            self.shares.spend_allowance(owner, caller, shares)

        requested = assets
        loss = 0
        if self._idle < assets:
            freed = require_amount(self.yield_source.free_funds(assets - self._idle), "freed")
            self._idle += freed
            self._freed_in_flight += freed
            if self._idle < assets:
                loss = assets - self._idle
                assets = self._idle

        if max_loss_bps < MAX_BPS and loss > mul_div(requested, max_loss_bps, MAX_BPS):
            raise TooMuchLoss(
                f"Loss {loss} on {requested} exceeds tolerance of {max_loss_bps} bps"
            )

        self._total_assets -= assets + loss
        self.shares.burn(owner, shares)
        if self.guard is not None:
            self.guard.record_burn(owner, shares)
        self.lockups.on_withdraw(owner, shares, self.shares.balance_of(owner))
        self._idle -= assets

        if self.guard is not None:
            # The dragon router may not withdraw the pool into insolvency
            self.guard.check_dragon(self._total_assets, pool.rate_ray, "withdraw", owner)

        self._record(
            OP_WITHDRAW, caller, owner, assets=assets, shares=shares,
            receiver=receiver, loss=loss,
        )
        return assets

    # ========================================================================
    # TRANSFERS AND ALLOWANCES
    # ========================================================================

    def transfer(self, source: str, dest: str, amount: int) -> bool:
        """Transfer unlocked shares from source (as the caller) to dest."""
        return self.transfer_from(source, source, dest, amount)

    def transfer_from(self, caller: str, source: str, dest: str, amount: int) -> bool:
        """
        Transfer unlocked shares from source to dest, spending caller's allowance.

        Raises:
            InsufficientBalance, SharesStillLocked, InsufficientAllowance,
            InvalidAccount, Insolvent
        """
        with self._operation(OP_TRANSFER):
            require_amount(amount)
            if self.guard is not None:
                pool = self._pool_view()
                self.guard.check_dragon(pool.total_assets, pool.rate_ray, "transfer", source, dest)
            balance = self.shares.balance_of(source)
            if amount > balance:
                raise InsufficientBalance(f"{source}: transfer {amount} > balance {balance}")
            self.lockups.check_transfer(source, amount, balance, self._current_time)
            if caller != source:
                self.shares.spend_allowance(source, caller, amount)
            self.shares.transfer(source, dest, amount)
            if self.guard is not None:
                self.guard.record_transfer(source, dest, amount)
            self.lockups.on_transfer_out(source, amount, self.shares.balance_of(source))
            self._record(OP_TRANSFER, caller, source, shares=amount, dest=dest)
        return True

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        with self._operation(OP_APPROVE):
            self.shares.approve(owner, spender, amount)
            self._record(OP_APPROVE, owner, owner, shares=amount, spender=spender)
        return True

    # ========================================================================
    # RAGE QUIT
    # ========================================================================

    def initiate_rage_quit(self, holder: str, shares: Optional[int] = None) -> None:
        """
        Elect an early exit for holder's locked shares.

        Linear variant: irreversible; the whole position unlocks linearly
        until min(unlock_time, now + cooldown). Custody variant: shares
        (default: full balance) are custodied until now + cooldown.
        """
        with self._operation(OP_RAGE_QUIT):
            balance = self.shares.balance_of(holder)
            self.lockups.initiate_rage_quit(holder, balance, self._current_time, shares)
            info = self.lockups.get_user_lockup_info(holder)
            self._record(
                OP_RAGE_QUIT, holder, holder, shares=info.locked_shares,
                unlock_time=info.unlock_time,
            )

    def cancel_rage_quit(self, holder: str) -> None:
        """Cancel a custody rage quit (custody variant only)."""
        with self._operation(OP_CANCEL_RAGE_QUIT):
            self.lockups.cancel_rage_quit(holder)
            self._record(OP_CANCEL_RAGE_QUIT, holder, holder)

    # ========================================================================
    # REPORTING
    # ========================================================================

    def report(self, caller: str) -> ReportResult:
        """
        Harvest the yield source and settle profit or loss.

        Restricted to the keeper or management roles. The yield source and
        (skimming) the rate oracle are each read exactly once.

        Returns:
            ReportResult; unrecovered_loss is surfaced, never absorbed silently

        Raises:
            Unauthorized: If caller is neither keeper nor management
        """
        with self._operation(OP_REPORT):
            self._require_role(caller, ROLE_KEEPER, ROLE_MANAGEMENT)
            pool = self._pool_view()
            harvested = require_amount(self.yield_source.harvest_and_report(), "harvested")
            new_total_assets = harvested + self._idle
            dragon = self.dragon_router
            result = self.policy.settle(
                pool, new_total_assets, self.shares.balance_of(dragon),
                self.enable_burning, self._current_time,
            )

            if result.shares_minted:
                self.shares.mint(dragon, result.shares_minted)
                if self.guard is not None:
                    self.guard.record_mint(dragon, result.shares_minted)
            if result.shares_burned:
                self.shares.burn(dragon, result.shares_burned)
                if self.guard is not None:
                    self.guard.record_burn(dragon, result.shares_burned)
                self.lockups.on_transfer_out(
                    dragon, result.shares_burned, self.shares.balance_of(dragon)
                )

            self._total_assets = result.total_assets
            if self.guard is not None:
                self.guard.record_rate(pool.rate_ray)
            self._last_report = self._current_time

            self._record(
                OP_REPORT, caller, dragon, assets=result.total_assets,
                shares=result.shares_minted - result.shares_burned,
                profit=result.profit, loss=result.loss,
                unrecovered_loss=result.unrecovered_loss,
            )
            if self.verbose and result.unrecovered_loss:
                print(f"⚠️  UNRECOVERED LOSS: {result.unrecovered_loss} ({self.name})")
        return result

    # ========================================================================
    # GOVERNANCE
    # ========================================================================

    def set_dragon_router(self, caller: str, new_router: str) -> None:
        """Propose a new dragon router; effective after DRAGON_ROUTER_COOLDOWN."""
        with self._operation(OP_GOVERNANCE):
            self._require_role(caller, ROLE_MANAGEMENT)
            if new_router == ZERO_ADDRESS or new_router == self.name:
                raise InvalidAccount(f"Invalid dragon router: {new_router!r}")
            if new_router == self.dragon_router:
                raise ConfigError(f"{new_router} is already the dragon router")
            effective = self._current_time + DRAGON_ROUTER_COOLDOWN
            self._pending_dragon_router = (new_router, effective)
            self._record(
                OP_GOVERNANCE, caller, new_router,
                action="propose_dragon_router", effective=effective,
            )

    def finalize_dragon_router_change(self, caller: str) -> None:
        """
        Apply a proposed dragon router change once its cooldown elapsed.

        In skimming mode the old router's shares become depositor debt and the
        new router's existing shares become dragon router debt; the change is
        blocked while the pool is insolvent.
        """
        with self._operation(OP_GOVERNANCE):
            self._require_role(caller, ROLE_MANAGEMENT)
            if self._pending_dragon_router is None:
                raise ConfigError("No dragon router change pending")
            new_router, effective = self._pending_dragon_router
            if self._current_time < effective:
                raise ConfigError(f"Dragon router change not effective until {effective}")
            old_router = self.dragon_router
            if self.guard is not None:
                pool = self._pool_view()
                self.guard.require_solvent(pool.total_assets, pool.rate_ray, "dragon router change")
                self.guard.change_dragon_router(
                    new_router,
                    self.shares.balance_of(old_router),
                    self.shares.balance_of(new_router),
                )
            self.dragon_router = new_router
            self._pending_dragon_router = None
            self._record(
                OP_GOVERNANCE, caller, new_router,
                action="finalize_dragon_router", previous=old_router,
            )

    def cancel_dragon_router_change(self, caller: str) -> None:
        with self._operation(OP_GOVERNANCE):
            self._require_role(caller, ROLE_MANAGEMENT)
            if self._pending_dragon_router is None:
                raise ConfigError("No dragon router change pending")
            self._pending_dragon_router = None
            self._record(OP_GOVERNANCE, caller, self.dragon_router, action="cancel_dragon_router")

    def set_enable_burning(self, caller: str, enabled: bool) -> None:
        """Toggle whether losses burn dragon router shares."""
        with self._operation(OP_GOVERNANCE):
            self._require_role(caller, ROLE_MANAGEMENT)
            self.enable_burning = bool(enabled)
            self._record(OP_GOVERNANCE, caller, self.name, action="enable_burning", enabled=enabled)

    def set_min_lockup_duration(self, caller: str, duration: timedelta) -> None:
        """Change the minimum lockup for new or extended locks (linear variant)."""
        with self._operation(OP_GOVERNANCE):
            self._require_role(caller, ROLE_MANAGEMENT)
            if not isinstance(self.lockups, LinearLockupManager):
                raise ConfigError("Minimum lockup duration applies to linear lockups only")
            validate_cooldown(duration, "min_lockup_duration")
            self.lockups.min_lockup_duration = duration
            self._record(
                OP_GOVERNANCE, caller, self.name,
                action="min_lockup_duration", duration=str(duration),
            )

    def propose_rage_quit_cooldown_change(self, caller: str, cooldown: timedelta) -> None:
        """Propose a new rage-quit cooldown; finalizable after CONFIG_CHANGE_DELAY."""
        with self._operation(OP_GOVERNANCE):
            self._require_role(caller, ROLE_MANAGEMENT)
            validate_cooldown(cooldown, "rage_quit_cooldown")
            if cooldown == self.lockups.rage_quit_cooldown:
                raise ConfigError(f"Rage quit cooldown is already {cooldown}")
            effective = self._current_time + CONFIG_CHANGE_DELAY
            self._pending_cooldown = (cooldown, effective)
            self._record(
                OP_GOVERNANCE, caller, self.name,
                action="propose_rage_quit_cooldown", cooldown=str(cooldown), effective=effective,
            )

    def finalize_rage_quit_cooldown_change(self, caller: str) -> None:
        with self._operation(OP_GOVERNANCE):
            self._require_role(caller, ROLE_MANAGEMENT)
            if self._pending_cooldown is None:
                raise ConfigError("No rage quit cooldown change pending")
            cooldown, effective = self._pending_cooldown
            if self._current_time < effective:
                raise ConfigError(f"Rage quit cooldown change not effective until {effective}")
            self.lockups.rage_quit_cooldown = cooldown
            self._pending_cooldown = None
            self._record(
                OP_GOVERNANCE, caller, self.name,
                action="finalize_rage_quit_cooldown", cooldown=str(cooldown),
            )

    def cancel_rage_quit_cooldown_change(self, caller: str) -> None:
        with self._operation(OP_GOVERNANCE):
            self._require_role(caller, ROLE_MANAGEMENT)
            if self._pending_cooldown is None:
                raise ConfigError("No rage quit cooldown change pending")
            self._pending_cooldown = None
            self._record(OP_GOVERNANCE, caller, self.name, action="cancel_rage_quit_cooldown")

    def shutdown(self, caller: str) -> None:
        """Permanently disable deposits and mints. Withdrawals keep working."""
        with self._operation(OP_SHUTDOWN):
            self._require_role(caller, ROLE_EMERGENCY_ADMIN, ROLE_MANAGEMENT)
            self.is_shutdown = True
            self._record(OP_SHUTDOWN, caller, self.name)

    def emergency_withdraw(self, caller: str, amount: int) -> int:
        """
        Pull up to amount back from the yield source into idle after shutdown.

        total_assets is unchanged; the next report settles any shortfall.

        Returns:
            Assets actually freed
        """
        with self._operation(OP_EMERGENCY_WITHDRAW):
            self._require_role(caller, ROLE_EMERGENCY_ADMIN, ROLE_MANAGEMENT)
            require_amount(amount)
            if not self.is_shutdown:
                raise ConfigError("Emergency withdrawals require a shut down vault")
            freed = require_amount(self.yield_source.free_funds(amount), "freed")
            self._idle += freed
            self._freed_in_flight += freed
            self._record(OP_EMERGENCY_WITHDRAW, caller, self.name, assets=freed, requested=amount)
        return freed

    def _require_role(self, caller: str, *roles: str) -> None:
        if not any(self.authorizer.has_role(caller, role) for role in roles):
            raise Unauthorized(f"{caller} lacks role {' or '.join(roles)}")

    # ========================================================================
    # EXECUTION (atomicity, reentrancy, audit log)
    # ========================================================================

    def _read_rate(self) -> int:
        oracle = self.rate_oracle
        return normalize_rate_to_ray(
            oracle.get_current_exchange_rate(), oracle.decimals_of_exchange_rate()
        )

    def _pool_view(self) -> PoolView:
        """Capture pool figures, reading the rate oracle once (skimming mode)."""
        rate_ray = None
        accounts = None
        if self.policy.uses_exchange_rate:
            rate_ray = self._read_rate()
            accounts = self.guard.accounts
        return PoolView(
            total_supply=self.shares.total_supply,
            total_assets=self._total_assets,
            asset_decimals=self.config.asset_decimals,
            share_decimals=self.config.share_decimals,
            rate_ray=rate_ray,
            accounts=accounts,
        )

    @contextmanager
    def _operation(self, kind: str) -> Iterator[None]:
        """
        Run one public operation as an atomic unit.

        Holds the instance lock for the duration, rejects re-entry from the
        thread already inside, and on any exception restores the state
        captured at entry before re-raising. Assets freed from the yield
        source during a failed operation stay idle in the vault. Assets
        handed to the yield source during a failed operation are taken back
        with free_funds(), so the next report sees no phantom profit.
        """
        me = threading.get_ident()
        if self._owner == me:
            raise ReentrantCall(f"{kind}: vault {self.name} is already mid-operation")
        with self._lock:
            self._owner = me
            snapshot = self._snapshot()
            self._freed_in_flight = 0
            self._deployed_in_flight = 0
            try:
                yield
            except Exception as exc:
                freed = self._freed_in_flight
                handed_over = self._deployed_in_flight
                self._restore(snapshot)
                self._idle += freed
                if handed_over:
                    self._reclaim(handed_over)
                if self.verbose:
                    print(f"✗ REJECTED: {kind}: {exc}")
                raise
            finally:
                self._freed_in_flight = 0
                self._deployed_in_flight = 0
                self._owner = None

    def _reclaim(self, amount: int) -> None:
        """
        Take back funds handed to the yield source by a failed operation.

        The restored idle balance and the failed deposit's refund are paid
        out of what comes back. Whatever the source cannot release stays
        deployed, and idle shrinks by as much so total value is unchanged.
        """
        stranded = amount - require_amount(self.yield_source.free_funds(amount), "freed")
        if stranded:
            self._idle -= min(stranded, self._idle)
            if self.verbose:
                print(f"⚠️  UNRECLAIMED: {stranded} left with the yield source ({self.name})")

    def _snapshot(self) -> Dict[str, Any]:
        return {
            'shares': self.shares.clone(),
            'lockups': self.lockups.clone(),
            'guard': self.guard.clone() if self.guard is not None else None,
            'total_assets': self._total_assets,
            'idle': self._idle,
            'dragon_router': self.dragon_router,
            'enable_burning': self.enable_burning,
            'is_shutdown': self.is_shutdown,
            'last_report': self._last_report,
            'pending_dragon_router': self._pending_dragon_router,
            'pending_cooldown': self._pending_cooldown,
            'log_length': len(self.operation_log),
            'next_sequence': self._next_sequence,
        }

    def _restore(self, snapshot: Dict[str, Any]) -> None:
        self.shares = snapshot['shares']
        self.lockups = snapshot['lockups']
        self.guard = snapshot['guard']
        self._total_assets = snapshot['total_assets']
        self._idle = snapshot['idle']
        self.dragon_router = snapshot['dragon_router']
        self.enable_burning = snapshot['enable_burning']
        self.is_shutdown = snapshot['is_shutdown']
        self._last_report = snapshot['last_report']
        self._pending_dragon_router = snapshot['pending_dragon_router']
        self._pending_cooldown = snapshot['pending_cooldown']
        del self.operation_log[snapshot['log_length']:]
        self._next_sequence = snapshot['next_sequence']

    def _record(
        self,
        kind: str,
        caller: str,
        account: str,
        assets: int = 0,
        shares: int = 0,
        **details: Any,
    ) -> VaultOperation:
        operation = VaultOperation(
            kind=kind,
            caller=caller,
            timestamp=self._current_time,
            sequence_number=self._next_sequence,
            account=account,
            assets=assets,
            shares=shares,
            details=details,
        )
        self._next_sequence += 1
        self.operation_log.append(operation)
        if self.verbose:
            self._print_operation(operation)
        return operation

    def _print_operation(self, operation: VaultOperation) -> None:
        """Print the operation box with an APPLIED result line."""
        lines = repr(operation).split('\n')
        w = 100
        bar = "─" * w
        result = " ✓ APPLIED"
        lines[-1] = f"├{bar}┤"
        lines.append(f"│{result + ' ' * (w - len(result))}│")
        lines.append(f"└{bar}┘")
        print("\n".join(lines))
