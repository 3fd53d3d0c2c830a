"""
store.py - Position Storage, Account Registry and Pool Counters

Three plain containers owned by a LendingPool. None of them knows about
business rules; LendingPool decides what may be written and in what order.

=== ACCOUNT REGISTRY ===

The registry is a dense list of accounts with open positions plus a reverse
index mapping account -> slot:

    registry = [A, B, C]
    index    = {A: 0, B: 1, C: 2}

    Invariant: index[registry[i]] == i for every slot i
               len(registry) == count

Removal is swap-with-last-then-truncate, so it stays O(1):

    remove(B):  registry[1] = C ; index[C] = 1 ; pop last
    registry = [A, C]
    index    = {A: 0, C: 1}

Removing the current last entry needs no swap, only truncation.

=== SNAPSHOTS ===

Each container can hand out a snapshot and be restored from one. tick()
touches every position, so it snapshots before the first write and restores
if anything after it raises. Single-account operations instead undo their
own writes one by one (AccountRegistry.reinsert is the inverse of remove),
which keeps them independent of the pool size.
"""

from __future__ import annotations
from typing import Dict, List, Tuple

from .core import (
    AccountId, Amount, Position, NoPosition,
    CounterOverflow, CounterUnderflow, U64_MAX,
)


# =============================================================================
# POSITION STORE
# =============================================================================

class PositionStore:
    """
    Keyed storage of at most one Position per account.

    get() returns Position.empty() for absent accounts; use exists() to tell
    "no position" apart from a zero-valued one.
    """

    def __init__(self):
        self._positions: Dict[AccountId, Position] = {}

    def get(self, account: AccountId) -> Position:
        return self._positions.get(account, Position.empty())

    def exists(self, account: AccountId) -> bool:
        return account in self._positions

    def insert(self, account: AccountId, position: Position) -> None:
        self._positions[account] = position

    def remove(self, account: AccountId) -> None:
        self._positions.pop(account, None)

    def items(self) -> List[Tuple[AccountId, Position]]:
        """All (account, position) pairs, sorted by account for deterministic output."""
        return sorted(self._positions.items())

    def __len__(self) -> int:
        return len(self._positions)

    def __contains__(self, account: object) -> bool:
        return account in self._positions

    def snapshot(self) -> Dict[AccountId, Position]:
        # Positions are frozen, a shallow copy is a full copy
        return dict(self._positions)

    def restore(self, snapshot: Dict[AccountId, Position]) -> None:
        self._positions = dict(snapshot)


# =============================================================================
# ACCOUNT REGISTRY
# =============================================================================

class AccountRegistry:
    """
    Dense enumerable list of accounts with O(1) add/remove and ordered iteration.

    Example:
        registry = AccountRegistry()
        registry.add("alice")      # -> 0
        registry.add("bob")        # -> 1
        registry.add("carol")      # -> 2
        registry.remove("bob")     # carol moves into slot 1
        registry.iterate()         # -> ("alice", "carol")
    """

    def __init__(self, max_count: int = U64_MAX):
        self.max_count = max_count
        self._accounts: List[AccountId] = []
        self._index: Dict[AccountId, int] = {}
        self._count: int = 0

    @property
    def count(self) -> int:
        return self._count

    def __len__(self) -> int:
        return self._count

    def __contains__(self, account: object) -> bool:
        return account in self._index

    def index_of(self, account: AccountId) -> int:
        """
        Slot currently occupied by account.

        Raises:
            NoPosition: If the account is not registered
        """
        if account not in self._index:
            raise NoPosition(f"Account {account} not registered")
        return self._index[account]

    def account_at(self, slot: int) -> AccountId:
        """Account stored in slot (IndexError outside 0..count-1)."""
        if slot < 0 or slot >= self._count:
            raise IndexError(f"Registry slot {slot} out of range (count={self._count})")
        return self._accounts[slot]

    def add(self, account: AccountId) -> int:
        """
        Append account and return its slot.

        Raises:
            ValueError: If account is already registered
            CounterOverflow: If count would exceed max_count
        """
        if account in self._index:
            raise ValueError(f"Account {account} already registered")
        if self._count + 1 > self.max_count:
            raise CounterOverflow(
                f"Registry count would exceed {self.max_count}"
            )
        slot = self._count
        self._accounts.append(account)
        self._index[account] = slot
        self._count += 1
        return slot

    def remove(self, account: AccountId) -> int:
        """
        Remove account using swap-with-last and return the slot it vacated.

        Raises:
            CounterUnderflow: If the registry is empty
            NoPosition: If account is not registered
        """
        if self._count == 0:
            raise CounterUnderflow("Registry count is already zero")
        if account not in self._index:
            raise NoPosition(f"Account {account} not registered")

        slot = self._index.pop(account)
        last_slot = self._count - 1
        if slot != last_slot:
            moved = self._accounts[last_slot]
            self._accounts[slot] = moved
            self._index[moved] = slot
        self._accounts.pop()
        self._count -= 1
        return slot

    def reinsert(self, account: AccountId, slot: int) -> None:
        """
        Undo remove(): put account back in slot, moving the occupant to the end.

        reinsert(a, s) right after remove(a) == s restores the exact prior order.

        Raises:
            ValueError: If account is already registered
            IndexError: If slot is outside 0..count
        """
        if account in self._index:
            raise ValueError(f"Account {account} already registered")
        if slot < 0 or slot > self._count:
            raise IndexError(f"Registry slot {slot} out of range (count={self._count})")
        if slot < self._count:
            moved = self._accounts[slot]
            self._accounts.append(moved)
            self._index[moved] = self._count
            self._accounts[slot] = account
        else:
            self._accounts.append(account)
        self._index[account] = slot
        self._count += 1

    def iterate(self) -> Tuple[AccountId, ...]:
        """Snapshot of registered accounts in registry order."""
        return tuple(self._accounts)

    def check_consistency(self) -> List[str]:
        """
        Verify the registry invariants.

        Returns:
            List of human-readable problems (empty when consistent)
        """
        problems = []
        if len(self._accounts) != self._count:
            problems.append(
                f"registry length {len(self._accounts)} != count {self._count}"
            )
        if len(self._index) != self._count:
            problems.append(
                f"index size {len(self._index)} != count {self._count}"
            )
        for slot, account in enumerate(self._accounts):
            indexed = self._index.get(account)
            if indexed != slot:
                problems.append(f"index[{account}] = {indexed}, expected {slot}")
        return problems

    def snapshot(self) -> Tuple[List[AccountId], Dict[AccountId, int], int]:
        return list(self._accounts), dict(self._index), self._count

    def restore(self, snapshot: Tuple[List[AccountId], Dict[AccountId, int], int]) -> None:
        accounts, index, count = snapshot
        self._accounts = list(accounts)
        self._index = dict(index)
        self._count = count


# =============================================================================
# POOL COUNTERS
# =============================================================================

class PoolCounters:
    """
    Pool-wide totals of open supply and borrow balances.

    Every mutation is bounds-checked: totals never go below zero and never
    exceed max_amount. A failed check leaves both totals unchanged.
    """

    def __init__(self, max_amount: Amount = U64_MAX):
        self.max_amount = max_amount
        self.total_supplied: Amount = 0
        self.total_borrowed: Amount = 0

    def _checked_add(self, name: str, current: Amount, delta: Amount) -> Amount:
        proposed = current + delta
        if proposed > self.max_amount:
            raise CounterOverflow(
                f"{name}: {current} + {delta} exceeds {self.max_amount}"
            )
        return proposed

    def _checked_sub(self, name: str, current: Amount, delta: Amount) -> Amount:
        if delta > current:
            raise CounterUnderflow(f"{name}: {current} - {delta} < 0")
        return current - delta

    def check_add_supplied(self, amount: Amount) -> Amount:
        """Return the would-be total_supplied after adding amount, without writing."""
        return self._checked_add("total_supplied", self.total_supplied, amount)

    def check_add_borrowed(self, amount: Amount) -> Amount:
        """Return the would-be total_borrowed after adding amount, without writing."""
        return self._checked_add("total_borrowed", self.total_borrowed, amount)

    def add_supplied(self, amount: Amount) -> None:
        self.total_supplied = self.check_add_supplied(amount)

    def sub_supplied(self, amount: Amount) -> None:
        self.total_supplied = self._checked_sub("total_supplied", self.total_supplied, amount)

    def add_borrowed(self, amount: Amount) -> None:
        self.total_borrowed = self.check_add_borrowed(amount)

    def sub_borrowed(self, amount: Amount) -> None:
        self.total_borrowed = self._checked_sub("total_borrowed", self.total_borrowed, amount)

    def snapshot(self) -> Tuple[Amount, Amount]:
        return self.total_supplied, self.total_borrowed

    def restore(self, snapshot: Tuple[Amount, Amount]) -> None:
        self.total_supplied, self.total_borrowed = snapshot
