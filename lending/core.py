"""
Core types and pure helpers for the lending pool ledger.

This module provides the foundational data structures and protocols for the pool:
1. Protocols: LedgerTransferPort for the external currency ledger
2. Immutable data structures: Position, PoolEvent, OperationReceipt, TickReport, PoolConfig
3. Exceptions: LendingError and domain-specific error types
4. Enums: Direction, EventKind, OverflowPolicy
5. Constants: default rates and representable bounds

Nothing in this module mutates pool state.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_EVEN, getcontext
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple, runtime_checkable


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Interest accrual multiplies integer balances by Decimal rates. The context
# is pinned at import time so that every run rounds identically.
#
# PRECONDITION: No other code should modify the global Decimal context.
# If thread-local contexts are needed, use decimal.localcontext().
#
_LENDING_DECIMAL_CONTEXT = getcontext()
_LENDING_DECIMAL_CONTEXT.prec = 50
_LENDING_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Largest value of an unsigned 64-bit column in the persisted layout.
U64_MAX = 2**64 - 1

# Rate fixed on every new supply position (1%).
DEFAULT_SUPPLY_RATE = Decimal("0.01")

# Rate fixed on every new borrow position (3%).
DEFAULT_BORROW_RATE = Decimal("0.03")

# Rounding used when interest is quantized to whole ledger units.
INTEREST_ROUNDING = ROUND_HALF_EVEN


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Authenticated account identity, as handed over by the origin collaborator.
AccountId = str

# Non-negative integer amount in the ledger's smallest unit.
Amount = int


# ============================================================================
# ENUMS
# ============================================================================

class Direction(str, Enum):
    """Which side of the pool a position is on. Exactly one, never both."""
    SUPPLYING = "supplying"
    BORROWING = "borrowing"


class OverflowPolicy(str, Enum):
    """
    What tick() does when compounding an account would exceed max_amount.

    SKIP: leave that account's position untouched, report it, continue.
    ABORT: roll back the whole tick and raise CounterOverflow.
    """
    SKIP = "skip"
    ABORT = "abort"


class EventKind(str, Enum):
    """Domain notifications returned alongside operation results."""
    DEPOSITED = "deposited"
    WITHDRAWN = "withdrawn"
    BORROWED = "borrowed"
    REPAID = "repaid"
    INTEREST_ACCRUED = "interest_accrued"
    INTEREST_SKIPPED = "interest_skipped"
    TICK_COMPLETED = "tick_completed"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LendingError(Exception):
    """Base exception for all lending pool errors."""
    pass


class DuplicatePosition(LendingError):
    """Raised when deposit or borrow is attempted while the account already has a position."""
    pass


class NoPosition(LendingError):
    """Raised when withdraw or repay is attempted with nothing open."""
    pass


class WrongDirection(LendingError):
    """Raised on withdraw of a borrow position or repay of a supply position."""
    pass


class CounterOverflow(LendingError):
    """Raised when a pool total or the registry count would exceed its representable bound."""
    pass


class CounterUnderflow(LendingError):
    """Raised when a pool total or the registry count would drop below zero."""
    pass


class TransferFailed(LendingError):
    """Raised when the external currency ledger refuses a transfer, reserve or unreserve."""
    pass


class InsufficientFunds(TransferFailed):
    """Raised by the currency ledger when a free balance cannot cover a transfer or reservation."""
    pass


class InsufficientReserved(TransferFailed):
    """Raised by the currency ledger when an unreserve exceeds the reserved balance."""
    pass


class AccountNotRegistered(TransferFailed):
    """Raised by the currency ledger for an account it does not know."""
    pass


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerTransferPort(Protocol):
    """
    Capability surface of the external currency ledger.

    The pool never inspects free balances; it only moves value and holds or
    releases collateral through these calls. Failures are raised, never
    returned: InsufficientFunds for transfer/reserve, InsufficientReserved
    for unreserve.
    """

    def transfer(self, source: AccountId, dest: AccountId, amount: Amount) -> None:
        """Move amount from source's free balance to dest's free balance."""
        ...

    def reserve(self, account: AccountId, amount: Amount) -> None:
        """Move amount from account's free balance into its reserved balance."""
        ...

    def unreserve(self, account: AccountId, amount: Amount) -> None:
        """Move amount from account's reserved balance back to its free balance."""
        ...

    def reserved_balance(self, account: AccountId) -> Amount:
        """Return the amount currently held in reserve for account."""
        ...


# ============================================================================
# VALIDATION HELPERS
# ============================================================================

def _check_amount(name: str, value: Any) -> None:
    # bool is an int subclass and never a valid amount
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} cannot be negative, got {value}")


def _check_rate(name: str, value: Any) -> None:
    if not isinstance(value, Decimal):
        raise ValueError(f"{name} must be Decimal, got {type(value).__name__}")
    if not value.is_finite():
        raise ValueError(f"{name} must be finite, got {value}")
    if value < 0 or value > 1:
        raise ValueError(f"{name} must be within [0, 1], got {value}")


def _check_account(value: Any) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValueError("account cannot be empty")


# ============================================================================
# POSITION
# ============================================================================

@dataclass(frozen=True, slots=True)
class Position:
    """
    An account's single open supply or borrow record.

    Attributes:
        direction: SUPPLYING or BORROWING.
        balance: Principal plus accrued interest, in whole ledger units.
        interest_rate: Fraction in [0, 1] fixed when the position was opened.
        opened_at: Tick index at which the position was created.
        reserved: Collateral held by the currency ledger (0 for supply positions).

    This class is immutable (frozen=True) and memory-optimized (slots=True).
    All fields are validated in __post_init__.
    """
    direction: Direction
    balance: Amount
    interest_rate: Decimal
    opened_at: int = 0
    reserved: Amount = 0

    def __post_init__(self):
        if not isinstance(self.direction, Direction):
            raise ValueError(f"Position direction must be Direction, got {self.direction!r}")
        _check_amount("Position balance", self.balance)
        _check_amount("Position reserved", self.reserved)
        _check_amount("Position opened_at", self.opened_at)
        _check_rate("Position interest_rate", self.interest_rate)

    @classmethod
    def empty(cls) -> Position:
        """
        The zero-valued position returned for accounts with nothing open.

        Indistinguishable by value from a real supply position that has been
        drained, which is why presence is always checked separately.
        """
        return cls(Direction.SUPPLYING, 0, Decimal("0"), 0, 0)

    @property
    def is_supplying(self) -> bool:
        return self.direction is Direction.SUPPLYING

    @property
    def is_borrowing(self) -> bool:
        return self.direction is Direction.BORROWING

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data form used by export_state()."""
        return {
            'direction': self.direction.value,
            'balance': self.balance,
            'interest_rate': str(self.interest_rate),
            'opened_at': self.opened_at,
            'reserved': self.reserved,
        }

    def __repr__(self) -> str:
        return (f"Position({self.direction.value} {self.balance} @ {self.interest_rate}, "
                f"opened_at={self.opened_at}, reserved={self.reserved})")


# ============================================================================
# EVENTS AND RECEIPTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class PoolEvent:
    """
    A domain notification produced by a committed operation.

    Attributes:
        kind: What happened.
        account: Account concerned (None for pool-wide events such as TICK_COMPLETED).
        amount: Value moved, accrued or skipped.
        tick: Pool tick at which the event was produced.
    """
    kind: EventKind
    account: Optional[AccountId]
    amount: Amount
    tick: int

    def __repr__(self) -> str:
        who = self.account if self.account is not None else "pool"
        return f"PoolEvent({self.kind.value}: {who} {self.amount} @tick {self.tick})"


@dataclass(frozen=True, slots=True)
class OperationReceipt:
    """
    Immutable record of one committed client operation.

    Attributes:
        operation: "deposit", "withdraw_in_full", "borrow" or "repay_in_full".
        account: Account that performed it.
        amount: Value moved by the operation's final transfer.
        tick: Pool tick at which it was applied.
        sequence_number: Monotonic within the pool (ticks share the sequence).
        events: Notifications emitted, in order.
    """
    operation: str
    account: AccountId
    amount: Amount
    tick: int
    sequence_number: int
    events: Tuple[PoolEvent, ...] = ()

    def __repr__(self) -> str:
        w = 72
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            f"┌{bar}┐",
            f"│{pad(' ' + self.operation + ' #' + str(self.sequence_number))}│",
            f"├{bar}┤",
            f"│{pad('   account : ' + self.account)}│",
            f"│{pad('   amount  : ' + str(self.amount))}│",
            f"│{pad('   tick    : ' + str(self.tick))}│",
        ]
        for event in self.events:
            lines.append(f"│{pad('   ' + repr(event))}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class TickReport:
    """
    Outcome of one tick().

    Attributes:
        tick: Index of the tick that was applied (current_tick before advancing).
        sequence_number: Monotonic within the pool.
        compounded: Number of positions that accrued this tick.
        supply_interest: Interest added to supply positions.
        borrow_interest: Interest added to borrow positions.
        skipped: Accounts left untouched under OverflowPolicy.SKIP.
        events: Notifications emitted, in registry order.
    """
    tick: int
    sequence_number: int
    compounded: int
    supply_interest: Amount
    borrow_interest: Amount
    skipped: Tuple[AccountId, ...] = ()
    events: Tuple[PoolEvent, ...] = ()


@dataclass(frozen=True, slots=True)
class CompensationFailure:
    """
    A compensating port call that raised while an operation was being unwound.

    The pool state is still restored and the original error still propagates;
    the port is left holding whatever the failed step could not undo.

    Attributes:
        operation: Operation being unwound.
        account: Account concerned.
        step: Which compensating call failed (e.g. "unreserve").
        error: Rendering of the exception it raised.
    """
    operation: str
    account: Optional[AccountId]
    step: str
    error: str


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class PoolConfig:
    """
    Static parameters of a pool, fixed when the pool is created.

    Attributes:
        liquidity_provider: Counterparty account for every transfer and reservation.
        supply_rate: Rate fixed on new supply positions.
        borrow_rate: Rate fixed on new borrow positions.
        max_amount: Upper bound of balances and pool totals.
        max_count: Upper bound of the registry count.
        overflow_policy: How tick() handles an account whose balance would overflow.
    """
    liquidity_provider: AccountId
    supply_rate: Decimal = DEFAULT_SUPPLY_RATE
    borrow_rate: Decimal = DEFAULT_BORROW_RATE
    max_amount: Amount = U64_MAX
    max_count: int = U64_MAX
    overflow_policy: OverflowPolicy = OverflowPolicy.SKIP

    def __post_init__(self):
        if not isinstance(self.liquidity_provider, str) or not self.liquidity_provider.strip():
            raise ValueError("liquidity_provider cannot be empty")
        _check_rate("supply_rate", self.supply_rate)
        _check_rate("borrow_rate", self.borrow_rate)
        _check_amount("max_amount", self.max_amount)
        _check_amount("max_count", self.max_count)
        if not isinstance(self.overflow_policy, OverflowPolicy):
            raise ValueError(f"overflow_policy must be OverflowPolicy, got {self.overflow_policy!r}")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> PoolConfig:
        """
        Build a config from a genesis-style plain mapping.

        Rates may be given as strings ("0.01") and the policy by its value
        ("skip" / "abort"). Unknown keys are rejected.

        Example:
            PoolConfig.from_mapping({
                "liquidity_provider": "pool",
                "borrow_rate": "0.07",
            })
        """
        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown pool config keys: {sorted(unknown)}")
        if 'liquidity_provider' not in data:
            raise ValueError("liquidity_provider is required")

        kwargs: Dict[str, Any] = dict(data)
        for key in ('supply_rate', 'borrow_rate'):
            if key in kwargs and not isinstance(kwargs[key], Decimal):
                kwargs[key] = Decimal(str(kwargs[key]))
        if 'overflow_policy' in kwargs and not isinstance(kwargs['overflow_policy'], OverflowPolicy):
            kwargs['overflow_policy'] = OverflowPolicy(kwargs['overflow_policy'])
        return cls(**kwargs)
