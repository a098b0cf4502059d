"""
shares.py - Claim Token Ledger

The ShareLedger holds share balances, total supply and allowances for a
single vault. It is the only place share balances change.

Key responsibilities:
    - mint/burn/transfer primitives that keep sum(balances) == total_supply
    - allowance bookkeeping with an unlimited-allowance sentinel
    - conservation verification for audits and tests

Lockup gating is not applied here: the vault checks the holder's unlocked
balance before calling transfer().
"""

from __future__ import annotations
from typing import Dict, Set, Any, Tuple

from .core import (
    ZERO_ADDRESS, MAX_UINT256,
    InvalidAccount, InsufficientBalance, InsufficientAllowance,
    require_amount,
)


class ShareLedger:
    """
    Balances, supply and allowances of a vault's claim token.

    Thread Safety:
        Not thread-safe on its own. The owning vault serializes access.

    Example:
        shares = ShareLedger("vault")
        shares.mint("alice", 1_000)
        shares.transfer("alice", "bob", 250)
        assert shares.verify_conservation()['valid']
    """

    def __init__(self, vault_address: str):
        """
        Create an empty share ledger.

        Args:
            vault_address: The vault's own identity (transfers to it are rejected)
        """
        self.vault_address = vault_address
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}
        self._total_supply: int = 0

    # ========================================================================
    # READ-ONLY
    # ========================================================================

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, account: str) -> int:
        """Balance of an account (0 if it never held shares)."""
        return self._balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    def holders(self) -> Set[str]:
        """Accounts with a non-zero balance."""
        return set(self._balances)

    def get_positions(self) -> Dict[str, int]:
        """Mapping of holder to balance for all non-zero balances."""
        return dict(self._balances)

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Verify that balances sum to the recorded total supply.

        Holders are summed in sorted order so the result is deterministic.

        Returns:
            Dict with keys:
            - 'valid': bool - True if sum(balances) == total_supply
            - 'total_supply': int - recorded supply
            - 'sum_of_balances': int - recomputed supply
            - 'difference': int - sum_of_balances - total_supply
        """
        recomputed = sum(self._balances[h] for h in sorted(self._balances))
        return {
            'valid': recomputed == self._total_supply,
            'total_supply': self._total_supply,
            'sum_of_balances': recomputed,
            'difference': recomputed - self._total_supply,
        }

    # ========================================================================
    # MUTATING
    # ========================================================================

    def mint(self, to: str, amount: int) -> None:
        """
        Create shares for an account.

        Raises:
            InvalidAccount: If to is the zero identity
        """
        require_amount(amount)
        if to == ZERO_ADDRESS:
            raise InvalidAccount("Cannot mint to the zero identity")
        if amount == 0:
            return
        self._set_balance(to, self.balance_of(to) + amount)
        self._total_supply += amount

    def burn(self, account: str, amount: int) -> None:
        """
        Destroy shares held by an account.

        Raises:
            InvalidAccount: If account is the zero identity
            InsufficientBalance: If account holds fewer than amount shares
        """
        require_amount(amount)
        if account == ZERO_ADDRESS:
            raise InvalidAccount("Cannot burn from the zero identity")
        balance = self.balance_of(account)
        if amount > balance:
            raise InsufficientBalance(f"{account}: burn {amount} > balance {balance}")
        if amount == 0:
            return
        self._set_balance(account, balance - amount)
        self._total_supply -= amount

    def transfer(self, source: str, dest: str, amount: int) -> None:
        """
        Move shares between accounts. Supply is unchanged.

        Raises:
            InvalidAccount: If either side is the zero identity or dest is the vault
            InsufficientBalance: If source holds fewer than amount shares
        """
        require_amount(amount)
        if source == ZERO_ADDRESS or dest == ZERO_ADDRESS:
            raise InvalidAccount("Cannot transfer from or to the zero identity")
        if dest == self.vault_address:
            raise InvalidAccount(f"Cannot transfer shares to the vault itself ({dest})")
        balance = self.balance_of(source)
        if amount > balance:
            raise InsufficientBalance(f"{source}: transfer {amount} > balance {balance}")
        if amount == 0 or source == dest:
            return
        self._set_balance(source, balance - amount)
        self._set_balance(dest, self.balance_of(dest) + amount)

    def approve(self, owner: str, spender: str, amount: int) -> None:
        require_amount(amount)
        if owner == ZERO_ADDRESS or spender == ZERO_ADDRESS:
            raise InvalidAccount("Cannot approve from or to the zero identity")
        if amount == 0:
            self._allowances.pop((owner, spender), None)
        else:
            self._allowances[(owner, spender)] = amount

    def spend_allowance(self, owner: str, spender: str, amount: int) -> None:
        """
        Consume allowance granted by owner to spender.

        An allowance of MAX_UINT256 is unlimited and never decremented.

        Raises:
            InsufficientAllowance: If the allowance is smaller than amount
        """
        require_amount(amount)
        current = self.allowance(owner, spender)
        if current == MAX_UINT256:
            return
        if amount > current:
            raise InsufficientAllowance(
                f"{spender} allowance from {owner}: {current} < {amount}"
            )
        self.approve(owner, spender, current - amount)

    def _set_balance(self, account: str, quantity: int) -> None:
        # Zero balances are dropped to keep holders() compact
        if quantity:
            self._balances[account] = quantity
        else:
            self._balances.pop(account, None)

    # ========================================================================
    # SNAPSHOTS
    # ========================================================================

    def clone(self) -> ShareLedger:
        """
        Create an independent copy of this ledger.

        Modifications to the clone never affect the original, and vice versa.
        """
        cloned = ShareLedger.__new__(ShareLedger)
        cloned.vault_address = self.vault_address
        cloned._balances = dict(self._balances)
        cloned._allowances = dict(self._allowances)
        cloned._total_supply = self._total_supply
        return cloned
