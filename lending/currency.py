"""
currency.py - In-Memory Single-Asset Currency Ledger

CurrencyLedger is the reference implementation of LedgerTransferPort. The
pool treats the currency ledger as an external collaborator; hosts with a
real balance system inject their own port, while the demo, simulations and
tests run against this one.

Key responsibilities:
    - Free and reserved integer balances per registered account
    - transfer / reserve / unreserve, each all-or-nothing
    - Issuance through SYSTEM_ACCOUNT, the only account allowed below zero
    - Always logs: every applied operation is recorded in transfer_log
    - Conservation check: free + reserved across all accounts never changes
      except through issuance
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Any

from .core import (
    AccountId, Amount,
    LendingError, InsufficientFunds, InsufficientReserved, AccountNotRegistered,
)


# Reserved account for issuance and redemption. Exempt from balance
# validation, so its free balance mirrors total issued supply with a minus sign.
SYSTEM_ACCOUNT = "system"

TRANSFER = "transfer"
RESERVE = "reserve"
UNRESERVE = "unreserve"


@dataclass(frozen=True, slots=True)
class Transfer:
    """
    One applied currency ledger operation.

    Attributes:
        kind: "transfer", "reserve" or "unreserve".
        source: Debited account (for reserve/unreserve, the account itself).
        dest: Credited account (for reserve/unreserve, the account itself).
        amount: Positive integer amount.
        sequence_number: Monotonic within the ledger.
    """
    kind: str
    source: AccountId
    dest: AccountId
    amount: Amount
    sequence_number: int

    def __repr__(self) -> str:
        if self.kind == TRANSFER:
            return f"Transfer(#{self.sequence_number} {self.amount}: {self.source}→{self.dest})"
        return f"Transfer(#{self.sequence_number} {self.kind} {self.amount}: {self.source})"


class CurrencyLedger:
    """
    Single-asset account ledger with free and reserved balances.

    Implements the LedgerTransferPort protocol.

    Thread Safety:
        Not thread-safe. Each thread should maintain its own CurrencyLedger instance.

    Example:
        ledger = CurrencyLedger("main")
        ledger.register_account("alice")
        ledger.register_account("pool")
        ledger.issue("alice", 1_000)
        ledger.transfer("alice", "pool", 100)
    """

    def __init__(self, name: str, verbose: bool = True, test_mode: bool = False):
        """
        Create a currency ledger.

        Args:
            name: Ledger identifier
            verbose: Print one line per applied or refused operation (default: True)
            test_mode: Allow set_balance() calls (default: False)
        """
        self.name = name
        self.verbose = verbose
        self._test_mode = test_mode
        self.free: Dict[AccountId, Amount] = {}
        self.reserved: Dict[AccountId, Amount] = {}
        self.registered_accounts: Set[AccountId] = set()
        self.transfer_log: List[Transfer] = []
        self._next_sequence: int = 0

        # Auto-register the system account (used for issuance/redemption)
        self.register_account(SYSTEM_ACCOUNT)

    # ========================================================================
    # READ-ONLY METHODS
    # ========================================================================

    def is_registered(self, account: AccountId) -> bool:
        return account in self.registered_accounts

    def list_accounts(self) -> List[AccountId]:
        """All registered accounts, sorted."""
        return sorted(self.registered_accounts)

    def get_balance(self, account: AccountId) -> Amount:
        """
        Free balance of account.

        Raises:
            AccountNotRegistered: If account is not registered
        """
        self._require(account)
        return self.free[account]

    def reserved_balance(self, account: AccountId) -> Amount:
        """
        Reserved balance of account.

        Raises:
            AccountNotRegistered: If account is not registered
        """
        self._require(account)
        return self.reserved[account]

    def total_balance(self, account: AccountId) -> Amount:
        """Free plus reserved balance of account."""
        self._require(account)
        return self.free[account] + self.reserved[account]

    def total_issuance(self) -> Amount:
        """
        Total value held by non-system accounts (free + reserved).

        Accounts are sorted before summation so the accumulation order is fixed.
        """
        return sum(
            self.free[a] + self.reserved[a]
            for a in sorted(self.registered_accounts)
            if a != SYSTEM_ACCOUNT
        )

    def verify_conservation(self, expected_issuance: Optional[Amount] = None) -> Dict[str, Any]:
        """
        Verify that no value was created or destroyed outside issuance.

        The sum of free and reserved balances over every account, the system
        account included, must be zero: issuance debits SYSTEM_ACCOUNT by
        exactly what it credits elsewhere.

        Args:
            expected_issuance: If given, total_issuance() must also equal it.

        Returns:
            Dict with keys:
            - 'valid': bool - True if all checks hold
            - 'issuance': Amount - current total_issuance()
            - 'discrepancies': List[str] - description of each violation
        """
        discrepancies = []
        net = sum(
            self.free[a] + self.reserved[a]
            for a in sorted(self.registered_accounts)
        )
        if net != 0:
            discrepancies.append(f"net balance across accounts is {net}, expected 0")

        issuance = self.total_issuance()
        if expected_issuance is not None and issuance != expected_issuance:
            discrepancies.append(
                f"issuance {issuance} != expected {expected_issuance}"
            )

        for account in sorted(self.registered_accounts):
            if account == SYSTEM_ACCOUNT:
                continue
            if self.free[account] < 0:
                discrepancies.append(f"{account} free balance {self.free[account]} < 0")
            if self.reserved[account] < 0:
                discrepancies.append(f"{account} reserved balance {self.reserved[account]} < 0")

        return {
            'valid': len(discrepancies) == 0,
            'issuance': issuance,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_account(self, account: AccountId) -> AccountId:
        """
        Register a new account with zero balances.

        Raises:
            ValueError: If account is empty or already registered
        """
        if not account or not account.strip():
            raise ValueError("Account id cannot be empty")
        if account in self.registered_accounts:
            raise ValueError(f"Account {account} already registered")
        self.registered_accounts.add(account)
        self.free[account] = 0
        self.reserved[account] = 0
        return account

    def set_balance(self, account: AccountId, amount: Amount) -> None:
        """
        Overwrite an account's free balance directly.

        WARNING: This bypasses conservation and is only available in test
        mode. Use issue() to fund accounts in production.

        Raises:
            LendingError: If called when test_mode is False
        """
        if not self._test_mode:
            raise LendingError(
                "set_balance() is disabled in production mode. "
                "Use issue() to fund accounts. "
                "Set test_mode=True when creating CurrencyLedger for testing."
            )
        self._require(account)
        self._check_amount(amount, allow_zero=True)
        self.free[account] = amount

    # ========================================================================
    # PORT OPERATIONS (Mutating)
    # ========================================================================

    def issue(self, account: AccountId, amount: Amount) -> None:
        """Credit account with newly issued value, debiting SYSTEM_ACCOUNT."""
        self.transfer(SYSTEM_ACCOUNT, account, amount)

    def transfer(self, source: AccountId, dest: AccountId, amount: Amount) -> None:
        """
        Move amount from source's free balance to dest's free balance.

        Raises:
            ValueError: If amount is not a positive int or source == dest
            AccountNotRegistered: If either account is unknown
            InsufficientFunds: If source's free balance is below amount
        """
        self._check_amount(amount)
        if source == dest:
            raise ValueError("Source and dest must be different")
        self._require(source)
        self._require(dest)
        if source != SYSTEM_ACCOUNT and self.free[source] < amount:
            self._refuse(f"{source}: free {self.free[source]} < {amount}")
            raise InsufficientFunds(
                f"{source} free balance {self.free[source]} cannot cover {amount}"
            )
        self.free[source] -= amount
        self.free[dest] += amount
        self._log(TRANSFER, source, dest, amount)

    def reserve(self, account: AccountId, amount: Amount) -> None:
        """
        Hold amount of account's free balance in reserve.

        Raises:
            AccountNotRegistered: If account is unknown
            InsufficientFunds: If the free balance is below amount
        """
        self._check_amount(amount)
        self._require(account)
        if self.free[account] < amount:
            self._refuse(f"{account}: free {self.free[account]} < reserve {amount}")
            raise InsufficientFunds(
                f"{account} free balance {self.free[account]} cannot reserve {amount}"
            )
        self.free[account] -= amount
        self.reserved[account] += amount
        self._log(RESERVE, account, account, amount)

    def unreserve(self, account: AccountId, amount: Amount) -> None:
        """
        Release amount from account's reserve back to its free balance.

        Raises:
            AccountNotRegistered: If account is unknown
            InsufficientReserved: If the reserved balance is below amount
        """
        self._check_amount(amount)
        self._require(account)
        if self.reserved[account] < amount:
            self._refuse(f"{account}: reserved {self.reserved[account]} < unreserve {amount}")
            raise InsufficientReserved(
                f"{account} reserved balance {self.reserved[account]} cannot release {amount}"
            )
        self.reserved[account] -= amount
        self.free[account] += amount
        self._log(UNRESERVE, account, account, amount)

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> CurrencyLedger:
        """
        Create an independent copy of this ledger.

        Modifications to the clone do not affect the original, and vice versa.
        """
        cloned = CurrencyLedger.__new__(CurrencyLedger)
        cloned.name = self.name
        cloned.verbose = self.verbose
        cloned._test_mode = self._test_mode
        cloned.free = dict(self.free)
        cloned.reserved = dict(self.reserved)
        cloned.registered_accounts = self.registered_accounts.copy()
        cloned.transfer_log = list(self.transfer_log)
        cloned._next_sequence = self._next_sequence
        return cloned

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _require(self, account: AccountId) -> None:
        if account not in self.registered_accounts:
            raise AccountNotRegistered(f"Account {account} not registered")

    @staticmethod
    def _check_amount(amount: Amount, allow_zero: bool = False) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValueError(f"Amount must be int, got {type(amount).__name__}")
        if amount < 0 or (amount == 0 and not allow_zero):
            raise ValueError(f"Amount must be positive, got {amount}")

    def _log(self, kind: str, source: AccountId, dest: AccountId, amount: Amount) -> None:
        record = Transfer(kind, source, dest, amount, self._next_sequence)
        self._next_sequence += 1
        self.transfer_log.append(record)
        if self.verbose:
            print(f"✓ {self.name}: {record!r}")

    def _refuse(self, reason: str) -> None:
        if self.verbose:
            print(f"✗ {self.name} REFUSED: {reason}")
