"""
lending - Single-Asset Lending Pool Ledger

A deterministic ledger engine for a lending pool: accounts deposit to earn
interest or borrow against shared liquidity, one position per account, with
one compounding step applied to every open position on each tick.

Usage:
    from lending import CurrencyLedger, LendingPool, PoolConfig

    ledger = CurrencyLedger("main")
    for account in ("pool", "alice", "bob"):
        ledger.register_account(account)
    ledger.issue("pool", 1_000_000)
    ledger.issue("alice", 1_000)
    ledger.issue("bob", 1_000)

    pool = LendingPool(PoolConfig(liquidity_provider="pool"), ledger)
    pool.deposit("alice", 100)     # supply position at 1%
    pool.borrow("bob", 200)        # borrow position at 3%, 200 reserved
    pool.tick()                    # alice -> 101, bob -> 206
    pool.withdraw_in_full("alice")
    pool.repay_in_full("bob")
"""

# Core types
from .core import (
    AccountId,
    Amount,
    Direction,
    EventKind,
    OverflowPolicy,
    Position,
    PoolEvent,
    OperationReceipt,
    TickReport,
    CompensationFailure,
    PoolConfig,
    LedgerTransferPort,
    LendingError,
    DuplicatePosition,
    NoPosition,
    WrongDirection,
    CounterOverflow,
    CounterUnderflow,
    TransferFailed,
    InsufficientFunds,
    InsufficientReserved,
    AccountNotRegistered,
    U64_MAX,
    DEFAULT_SUPPLY_RATE,
    DEFAULT_BORROW_RATE,
    INTEREST_ROUNDING,
)

# Storage
from .store import PositionStore, AccountRegistry, PoolCounters

# Interest
from .interest import accrued_interest, compound, compound_periods, project_balance

# Currency ledger
from .currency import CurrencyLedger, Transfer, SYSTEM_ACCOUNT

# Pool
from .pool import LendingPool

__all__ = [
    # Core
    'AccountId', 'Amount', 'Direction', 'EventKind', 'OverflowPolicy',
    'Position', 'PoolEvent', 'OperationReceipt', 'TickReport', 'CompensationFailure',
    'PoolConfig',
    'LedgerTransferPort',
    'LendingError', 'DuplicatePosition', 'NoPosition', 'WrongDirection',
    'CounterOverflow', 'CounterUnderflow', 'TransferFailed',
    'InsufficientFunds', 'InsufficientReserved', 'AccountNotRegistered',
    'U64_MAX', 'DEFAULT_SUPPLY_RATE', 'DEFAULT_BORROW_RATE', 'INTEREST_ROUNDING',
    # Storage
    'PositionStore', 'AccountRegistry', 'PoolCounters',
    # Interest
    'accrued_interest', 'compound', 'compound_periods', 'project_balance',
    # Currency ledger
    'CurrencyLedger', 'Transfer', 'SYSTEM_ACCOUNT',
    # Pool
    'LendingPool',
]

__version__ = '1.0.0'
