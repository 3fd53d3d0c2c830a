"""
pool.py - Lending Pool Orchestrator

LendingPool is the only class that mutates pool state. It composes the
PositionStore, AccountRegistry and PoolCounters with an injected
LedgerTransferPort and exposes the client operations plus tick().

Key responsibilities:
    - One position per account: deposit/borrow refuse an account that has one
    - Guards before writes: every precondition is checked before the first mutation
    - Atomic operations: every completed write, pool-side or port-side, is
      journaled with its inverse and undone newest-first if a later step raises
    - tick(): exactly one compounding step per registered account, in registry order
    - Always logs: every committed operation appends its events to event_log

State machine per account:

    Closed --deposit--> Supplying --withdraw_in_full--> Closed
    Closed --borrow---> Borrowing --repay_in_full-----> Closed

There is no Supplying <-> Borrowing edge; the duplicate-position guard forces
an account to close before opening the other side.
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from .core import (
    # Types
    AccountId, Amount, Direction, EventKind, OverflowPolicy,
    Position, PoolEvent, OperationReceipt, TickReport, PoolConfig,
    CompensationFailure,
    LedgerTransferPort,
    # Exceptions
    DuplicatePosition, NoPosition, WrongDirection, CounterOverflow,
    # Helpers
    _check_account,
)
from .interest import compound
from .store import PositionStore, AccountRegistry, PoolCounters


# Inverse of one completed write, recorded after the write succeeds.
Undo = Callable[[], None]

# (step name, undo) pair kept in a transaction journal.
JournalEntry = Tuple[str, Undo]


class LendingPool:
    """
    Single-asset lending pool with periodic interest compounding.

    Design Principles:
        - Validates first: DuplicatePosition, NoPosition, WrongDirection and
          counter bounds are all decided before anything is written.
        - All or nothing: a failure from the port after writes began leaves
          the pool and the port exactly as they were.
        - Deterministic: integer balances, Decimal rates, registry-ordered ticks.

    Thread Safety:
        Not thread-safe. Operations and ticks must be totally ordered by the caller.

    Example:
        ledger = CurrencyLedger("main", verbose=False)
        for account in ("pool", "alice"):
            ledger.register_account(account)
        ledger.issue("pool", 10_000)
        ledger.issue("alice", 500)

        pool = LendingPool(PoolConfig(liquidity_provider="pool"), ledger)
        pool.deposit("alice", 100)
        pool.tick()
        pool.get_position("alice").balance   # -> 101
    """

    def __init__(
        self,
        config: PoolConfig,
        port: LedgerTransferPort,
        verbose: bool = True,
    ):
        """
        Create a pool.

        Args:
            config: Static pool parameters (liquidity provider, rates, bounds)
            port: Currency ledger used for every transfer and reservation
            verbose: Print committed and rejected operations (default: True)
        """
        if not isinstance(port, LedgerTransferPort):
            raise TypeError(f"port must implement LedgerTransferPort, got {type(port).__name__}")
        self.config = config
        self.port = port
        self.verbose = verbose
        self.positions = PositionStore()
        self.registry = AccountRegistry(max_count=config.max_count)
        self.counters = PoolCounters(max_amount=config.max_amount)
        self.event_log: List[PoolEvent] = []
        self.compensation_failures: List[CompensationFailure] = []
        self._current_tick: int = 0
        self._next_sequence: int = 0

    # ========================================================================
    # READ-ONLY METHODS
    # ========================================================================

    @property
    def liquidity_provider(self) -> AccountId:
        """Counterparty of every transfer. Fixed for the life of the pool."""
        return self.config.liquidity_provider

    @property
    def current_tick(self) -> int:
        """Logical time: number of ticks applied so far."""
        return self._current_tick

    @property
    def total_supplied(self) -> Amount:
        return self.counters.total_supplied

    @property
    def total_borrowed(self) -> Amount:
        return self.counters.total_borrowed

    @property
    def position_count(self) -> int:
        return self.registry.count

    def has_position(self, account: AccountId) -> bool:
        return self.positions.exists(account)

    def get_position(self, account: AccountId) -> Optional[Position]:
        """The account's open position, or None if it has none."""
        if not self.positions.exists(account):
            return None
        return self.positions.get(account)

    def list_accounts(self) -> Tuple[AccountId, ...]:
        """Accounts with open positions, in registry order."""
        return self.registry.iterate()

    def verify_invariants(self) -> Dict[str, Any]:
        """
        Check every bookkeeping invariant of the pool.

        Checks performed:
        1. Registry: index[registry[i]] == i, length == count
        2. Registry and store hold exactly the same accounts
        3. total_supplied / total_borrowed equal the sums of open balances
        4. Balances and totals within max_amount
        5. Supply positions hold no reserve
        6. The port holds exactly each borrow position's collateral in reserve
        7. No compensating port call has failed

        Returns:
            Dict with keys:
            - 'valid': bool - True if all invariants hold
            - 'totals': Dict[str, Amount] - recomputed supply and borrow sums
            - 'discrepancies': List[str] - description of each violation
        """
        discrepancies = list(self.registry.check_consistency())

        registered = set(self.registry.iterate())
        stored = {account for account, _ in self.positions.items()}
        for account in sorted(registered - stored):
            discrepancies.append(f"{account} registered without a position")
        for account in sorted(stored - registered):
            discrepancies.append(f"{account} has a position but is not registered")
        if len(self.positions) != self.registry.count:
            discrepancies.append(
                f"store count {len(self.positions)} != registry count {self.registry.count}"
            )

        supplied = 0
        borrowed = 0
        for account, position in self.positions.items():
            if position.is_supplying:
                supplied += position.balance
                if position.reserved:
                    discrepancies.append(f"{account} supply position holds reserve {position.reserved}")
            else:
                borrowed += position.balance
                held = self.port.reserved_balance(account)
                if held != position.reserved:
                    discrepancies.append(
                        f"{account} port reserve {held} != recorded collateral {position.reserved}"
                    )
            if position.balance > self.config.max_amount:
                discrepancies.append(f"{account} balance {position.balance} exceeds max_amount")

        if supplied != self.counters.total_supplied:
            discrepancies.append(
                f"total_supplied {self.counters.total_supplied} != sum of supply balances {supplied}"
            )
        if borrowed != self.counters.total_borrowed:
            discrepancies.append(
                f"total_borrowed {self.counters.total_borrowed} != sum of borrow balances {borrowed}"
            )

        for failure in self.compensation_failures:
            discrepancies.append(
                f"unresolved compensation: {failure.operation} {failure.account} "
                f"{failure.step} failed ({failure.error})"
            )

        return {
            'valid': len(discrepancies) == 0,
            'totals': {'supplied': supplied, 'borrowed': borrowed},
            'discrepancies': discrepancies,
        }

    def export_state(self) -> Dict[str, Any]:
        """
        Pool state as the persisted columns, in plain data.

        Keys: LiquidityProvider, Position, Registry, Index, Count,
        TotalSupplied, TotalBorrowed.
        """
        accounts = self.registry.iterate()
        return {
            'LiquidityProvider': self.liquidity_provider,
            'Position': {account: position.to_dict() for account, position in self.positions.items()},
            'Registry': {slot: account for slot, account in enumerate(accounts)},
            'Index': {account: slot for slot, account in enumerate(accounts)},
            'Count': self.registry.count,
            'TotalSupplied': self.counters.total_supplied,
            'TotalBorrowed': self.counters.total_borrowed,
        }

    # ========================================================================
    # CLIENT OPERATIONS (Mutating)
    # ========================================================================

    def deposit(self, account: AccountId, amount: Amount) -> OperationReceipt:
        """
        Open a supply position and move amount from account to the liquidity provider.

        Raises:
            ValueError: If account or amount is invalid
            DuplicatePosition: If account already has a position
            CounterOverflow: If total_supplied or the registry count would overflow
            TransferFailed: If the port refuses the transfer (InsufficientFunds, ...)
        """
        self._validate_open(account, amount)
        self.counters.check_add_supplied(amount)

        position = Position(
            direction=Direction.SUPPLYING,
            balance=amount,
            interest_rate=self.config.supply_rate,
            opened_at=self._current_tick,
            reserved=0,
        )
        with self._transaction("deposit", account) as journal:
            self._put_position(journal, account, position)
            self._register(journal, account)
            self._add_total(journal, Direction.SUPPLYING, amount)
            self._transfer(journal, account, self.liquidity_provider, amount)

        return self._commit("deposit", account, amount, EventKind.DEPOSITED)

    def withdraw_in_full(self, account: AccountId) -> OperationReceipt:
        """
        Close a supply position and pay its balance out from the liquidity provider.

        Raises:
            NoPosition: If account has no position
            WrongDirection: If the position is a borrow
            TransferFailed: If the port refuses the transfer
        """
        position = self._validate_close(account, Direction.SUPPLYING)
        amount = position.balance

        with self._transaction("withdraw_in_full", account) as journal:
            self._put_position(journal, account, replace(position, balance=0))
            if amount > 0:
                self._transfer(journal, self.liquidity_provider, account, amount)
            self._unregister(journal, account)
            self._delete_position(journal, account)
            self._sub_total(journal, Direction.SUPPLYING, amount)

        return self._commit("withdraw_in_full", account, amount, EventKind.WITHDRAWN)

    def borrow(self, account: AccountId, amount: Amount) -> OperationReceipt:
        """
        Open a borrow position: reserve amount on account as collateral, then
        move amount from the liquidity provider to account.

        Raises:
            ValueError: If account or amount is invalid
            DuplicatePosition: If account already has a position
            CounterOverflow: If total_borrowed or the registry count would overflow
            InsufficientFunds: If account cannot cover the reservation, or the
                liquidity provider cannot cover the transfer
        """
        self._validate_open(account, amount)
        self.counters.check_add_borrowed(amount)

        position = Position(
            direction=Direction.BORROWING,
            balance=amount,
            interest_rate=self.config.borrow_rate,
            opened_at=self._current_tick,
            reserved=amount,
        )
        with self._transaction("borrow", account) as journal:
            self._put_position(journal, account, position)
            self._register(journal, account)
            self._add_total(journal, Direction.BORROWING, amount)
            self._reserve(journal, account, amount)
            self._transfer(journal, self.liquidity_provider, account, amount)

        return self._commit("borrow", account, amount, EventKind.BORROWED)

    def repay_in_full(self, account: AccountId) -> OperationReceipt:
        """
        Close a borrow position: release its collateral, then move the stored
        balance (principal plus interest) from account to the liquidity provider.

        Raises:
            NoPosition: If account has no position
            WrongDirection: If the position is a supply
            InsufficientReserved: If the port holds less reserve than recorded
            TransferFailed: If account cannot cover the repayment
        """
        position = self._validate_close(account, Direction.BORROWING)
        amount = position.balance

        with self._transaction("repay_in_full", account) as journal:
            self._put_position(journal, account, replace(position, balance=0))
            if position.reserved > 0:
                self._unreserve(journal, account, position.reserved)
            if amount > 0:
                self._transfer(journal, account, self.liquidity_provider, amount)
            self._unregister(journal, account)
            self._delete_position(journal, account)
            self._sub_total(journal, Direction.BORROWING, amount)

        return self._commit("repay_in_full", account, amount, EventKind.REPAID)

    # ========================================================================
    # TICK (Mutating)
    # ========================================================================

    def tick(self) -> TickReport:
        """
        Apply one compounding step to every open position, in registry order.

        Counters grow by the interest accrued so that each total keeps
        matching the sum of its open balances. With an empty registry no
        position or counter changes; the logical clock still advances.

        Overflow handling follows config.overflow_policy:
            SKIP: the overflowing account keeps its position and is listed in
                  TickReport.skipped; the other accounts still accrue.
            ABORT: the tick is rolled back entirely and CounterOverflow propagates.

        Returns:
            TickReport describing what was applied
        """
        tick_index = self._current_tick
        accounts = self.registry.iterate()
        events: List[PoolEvent] = []
        skipped: List[AccountId] = []
        compounded = 0
        supply_interest = 0
        borrow_interest = 0

        with self._transaction("tick", None, snapshot=True):
            for account in accounts:
                position = self.positions.get(account)
                updated = compound(position)
                interest = updated.balance - position.balance
                if interest == 0:
                    compounded += 1
                    continue
                try:
                    if updated.balance > self.config.max_amount:
                        raise CounterOverflow(
                            f"{account}: balance {updated.balance} exceeds {self.config.max_amount}"
                        )
                    if position.is_supplying:
                        self.counters.add_supplied(interest)
                    else:
                        self.counters.add_borrowed(interest)
                except CounterOverflow:
                    if self.config.overflow_policy is OverflowPolicy.ABORT:
                        raise
                    skipped.append(account)
                    events.append(PoolEvent(EventKind.INTEREST_SKIPPED, account, interest, tick_index))
                    if self.verbose:
                        print(f"⚠️  SKIPPED interest for {account}: {interest} would overflow")
                    continue

                self.positions.insert(account, updated)
                compounded += 1
                if position.is_supplying:
                    supply_interest += interest
                else:
                    borrow_interest += interest
                events.append(PoolEvent(EventKind.INTEREST_ACCRUED, account, interest, tick_index))

            self._current_tick += 1

        events.append(PoolEvent(
            EventKind.TICK_COMPLETED, None, supply_interest + borrow_interest, tick_index
        ))
        report = TickReport(
            tick=tick_index,
            sequence_number=self._take_sequence(),
            compounded=compounded,
            supply_interest=supply_interest,
            borrow_interest=borrow_interest,
            skipped=tuple(skipped),
            events=tuple(events),
        )
        self.event_log.extend(report.events)
        if self.verbose:
            print(f"✓ TICK {tick_index}: {compounded} compounded, "
                  f"+{supply_interest} supplied, +{borrow_interest} borrowed, "
                  f"{len(skipped)} skipped")
        return report

    def run_ticks(self, count: int) -> List[TickReport]:
        """
        Apply tick() `count` times in a row.

        Args:
            count: Number of ticks (0 returns an empty list)

        Returns:
            One TickReport per tick, in order
        """
        if count < 0:
            raise ValueError(f"count cannot be negative, got {count}")
        return [self.tick() for _ in range(count)]

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self, port: Optional[LedgerTransferPort] = None) -> LendingPool:
        """
        Create a copy of this pool with independent pool state.

        Args:
            port: Port for the clone. Defaults to this pool's port; pass a
                  cloned CurrencyLedger to keep the two pools fully independent.

        Returns:
            A new LendingPool with identical positions, registry order,
            counters, tick and event log
        """
        cloned = LendingPool(self.config, port if port is not None else self.port, verbose=self.verbose)
        cloned.positions.restore(self.positions.snapshot())
        cloned.registry.restore(self.registry.snapshot())
        cloned.counters.restore(self.counters.snapshot())
        cloned.event_log = list(self.event_log)
        cloned.compensation_failures = list(self.compensation_failures)
        cloned._current_tick = self._current_tick
        cloned._next_sequence = self._next_sequence
        return cloned

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _validate_open(self, account: AccountId, amount: Amount) -> None:
        """Guards shared by deposit and borrow. Nothing is written."""
        _check_account(account)
        if account == self.liquidity_provider:
            raise ValueError("The liquidity provider cannot open a position")
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValueError(f"amount must be int, got {type(amount).__name__}")
        if amount <= 0:
            raise ValueError(f"amount must be positive, got {amount}")
        if amount > self.config.max_amount:
            raise CounterOverflow(f"amount {amount} exceeds {self.config.max_amount}")
        if self.positions.exists(account):
            existing = self.positions.get(account)
            raise DuplicatePosition(
                f"{account} already has a {existing.direction.value} position"
            )
        if self.registry.count + 1 > self.registry.max_count:
            raise CounterOverflow(f"Registry count would exceed {self.registry.max_count}")

    def _validate_close(self, account: AccountId, direction: Direction) -> Position:
        """Guards shared by withdraw_in_full and repay_in_full. Nothing is written."""
        _check_account(account)
        if not self.positions.exists(account):
            raise NoPosition(f"{account} has no open position")
        position = self.positions.get(account)
        if position.direction is not direction:
            raise WrongDirection(
                f"{account} holds a {position.direction.value} position, "
                f"expected {direction.value}"
            )
        return position

    def _snapshot(self) -> Tuple[Any, ...]:
        return (
            self.positions.snapshot(),
            self.registry.snapshot(),
            self.counters.snapshot(),
            self._current_tick,
        )

    def _restore(self, snapshot: Tuple[Any, ...]) -> None:
        positions, registry, counters, current_tick = snapshot
        self.positions.restore(positions)
        self.registry.restore(registry)
        self.counters.restore(counters)
        self._current_tick = current_tick

    @contextmanager
    def _transaction(
        self,
        operation: str,
        account: Optional[AccountId],
        snapshot: bool = False,
    ) -> Iterator[List[JournalEntry]]:
        """
        Transaction boundary around the writes of one operation.

        Yields a journal to which the write helpers append (step, undo) pairs.
        If the body raises, the journal is unwound newest-first and the
        exception propagates unchanged. An undo that itself raises is recorded
        in compensation_failures and the unwinding continues.

        snapshot=True additionally copies the whole pool state up front and
        restores it at the end of the unwind. Only tick() needs this; client
        operations touch one account and rely on the journal alone.
        """
        saved = self._snapshot() if snapshot else None
        journal: List[JournalEntry] = []
        try:
            yield journal
        except Exception as exc:
            for step, undo in reversed(journal):
                try:
                    undo()
                except Exception as undo_exc:
                    self._record_compensation_failure(operation, account, step, undo_exc)
            if saved is not None:
                self._restore(saved)
            if self.verbose:
                who = f" {account}" if account else ""
                print(f"✗ REJECTED {operation}{who}: {type(exc).__name__}: {exc}")
            raise

    def _record_compensation_failure(
        self,
        operation: str,
        account: Optional[AccountId],
        step: str,
        error: Exception,
    ) -> None:
        failure = CompensationFailure(operation, account, step, f"{type(error).__name__}: {error}")
        self.compensation_failures.append(failure)
        if self.verbose:
            print(f"⚠️  COMPENSATION FAILED during {operation}: {step}: {failure.error}")

    # Pool-side writes. Each records its own inverse.

    def _put_position(self, journal: List[JournalEntry], account: AccountId, position: Position) -> None:
        if self.positions.exists(account):
            previous = self.positions.get(account)
            undo = lambda: self.positions.insert(account, previous)
        else:
            undo = lambda: self.positions.remove(account)
        self.positions.insert(account, position)
        journal.append(("position", undo))

    def _delete_position(self, journal: List[JournalEntry], account: AccountId) -> None:
        previous = self.positions.get(account)
        self.positions.remove(account)
        journal.append(("position", lambda: self.positions.insert(account, previous)))

    def _register(self, journal: List[JournalEntry], account: AccountId) -> None:
        self.registry.add(account)
        journal.append(("registry", lambda: self.registry.remove(account)))

    def _unregister(self, journal: List[JournalEntry], account: AccountId) -> None:
        slot = self.registry.remove(account)
        journal.append(("registry", lambda: self.registry.reinsert(account, slot)))

    def _add_total(self, journal: List[JournalEntry], direction: Direction, amount: Amount) -> None:
        if direction is Direction.SUPPLYING:
            self.counters.add_supplied(amount)
            journal.append(("total_supplied", lambda: self.counters.sub_supplied(amount)))
        else:
            self.counters.add_borrowed(amount)
            journal.append(("total_borrowed", lambda: self.counters.sub_borrowed(amount)))

    def _sub_total(self, journal: List[JournalEntry], direction: Direction, amount: Amount) -> None:
        if direction is Direction.SUPPLYING:
            self.counters.sub_supplied(amount)
            journal.append(("total_supplied", lambda: self.counters.add_supplied(amount)))
        else:
            self.counters.sub_borrowed(amount)
            journal.append(("total_borrowed", lambda: self.counters.add_borrowed(amount)))

    # Port calls. Each records its compensating call.

    def _transfer(self, journal: List[JournalEntry], source: AccountId, dest: AccountId, amount: Amount) -> None:
        self.port.transfer(source, dest, amount)
        journal.append(("transfer", lambda: self.port.transfer(dest, source, amount)))

    def _reserve(self, journal: List[JournalEntry], account: AccountId, amount: Amount) -> None:
        self.port.reserve(account, amount)
        journal.append(("unreserve", lambda: self.port.unreserve(account, amount)))

    def _unreserve(self, journal: List[JournalEntry], account: AccountId, amount: Amount) -> None:
        self.port.unreserve(account, amount)
        journal.append(("reserve", lambda: self.port.reserve(account, amount)))

    def _take_sequence(self) -> int:
        sequence = self._next_sequence
        self._next_sequence += 1
        return sequence

    def _commit(self, operation: str, account: AccountId, amount: Amount, kind: EventKind) -> OperationReceipt:
        event = PoolEvent(kind, account, amount, self._current_tick)
        receipt = OperationReceipt(
            operation=operation,
            account=account,
            amount=amount,
            tick=self._current_tick,
            sequence_number=self._take_sequence(),
            events=(event,),
        )
        self.event_log.append(event)
        if self.verbose:
            print(repr(receipt))
            print(f"✓ APPLIED {operation} {account} {amount}")
        return receipt
