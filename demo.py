#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Lending Pool Step by Step

A walk through the lending pool, one concept per step. Each step builds on
the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Foundation    - The currency ledger, the pool, the first deposit
  4-6:  Positions     - Borrowing against collateral, one position per account
  7-8:  Time          - Ticks, compounding, closing with interest
  9-10: Guarantees    - Rejections leave no trace, conservation proof
  11:   Load Test     - Many accounts, many ticks, everything closed

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from decimal import Decimal
import sys
import time
import random

from lending import (
    CurrencyLedger, LendingPool, PoolConfig,
    SYSTEM_ACCOUNT, DuplicatePosition, InsufficientFunds,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    # Accounts
    liquidity_provider: str = "pool"
    pool_funds: int = 1_000_000
    account_funds: int = 10_000

    # Rates
    supply_rate: Decimal = Decimal("0.01")
    borrow_rate: Decimal = Decimal("0.03")

    # Load test parameters (Step 11)
    load_test_accounts: int = 1_000
    load_test_operations: int = 20_000
    load_test_tick_every: int = 100


CONFIG = DemoConfig()

# Global state for interactive mode
QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def show_pool(pool: LendingPool):
    print(f"Positions:      {pool.position_count}")
    print(f"Registry order: {list(pool.list_accounts())}")
    print(f"TotalSupplied:  {pool.total_supplied}")
    print(f"TotalBorrowed:  {pool.total_borrowed}")
    print(f"Current tick:   {pool.current_tick}")


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_currency_ledger():
    """Create the currency ledger the pool moves value through."""
    step_header(1, "The Currency Ledger",
        "The pool never holds money itself. Value lives in a currency ledger.")

    print("""
    Every account has two balances in the currency ledger:

    1. FREE     - spendable
    2. RESERVED - held as collateral, not spendable

    New money enters through the SYSTEM account (issuance).
    """)

    wait_for_enter()

    print(">>> ledger = CurrencyLedger('tutorial')")
    ledger = CurrencyLedger("tutorial", verbose=True)
    for account in (CONFIG.liquidity_provider, "alice", "bob", "carol"):
        ledger.register_account(account)

    section_header("Issuance")
    ledger.issue(CONFIG.liquidity_provider, CONFIG.pool_funds)
    for account in ("alice", "bob", "carol"):
        ledger.issue(account, CONFIG.account_funds)

    print(f"\nSYSTEM balance: {ledger.get_balance(SYSTEM_ACCOUNT)}  (minus everything issued)")
    print(f"Issuance:       {ledger.total_issuance()}")
    return ledger


def step_02_create_pool(ledger: CurrencyLedger):
    """Create a pool over the currency ledger."""
    step_header(2, "The Pool",
        "A pool is a liquidity provider account plus fixed supply and borrow rates.")

    print(f""">>> config = PoolConfig(liquidity_provider="{CONFIG.liquidity_provider}",
...                     supply_rate=Decimal("{CONFIG.supply_rate}"),
...                     borrow_rate=Decimal("{CONFIG.borrow_rate}"))
>>> pool = LendingPool(config, ledger)
""")
    config = PoolConfig(
        liquidity_provider=CONFIG.liquidity_provider,
        supply_rate=CONFIG.supply_rate,
        borrow_rate=CONFIG.borrow_rate,
    )
    pool = LendingPool(config, ledger, verbose=True)

    section_header("Initial State")
    show_pool(pool)
    return pool


def step_03_first_deposit(pool: LendingPool, ledger: CurrencyLedger):
    """Open two supply positions."""
    step_header(3, "Deposits",
        "deposit() opens a supply position and pays the liquidity provider.")

    print('>>> pool.deposit("bob", 100)')
    pool.deposit("bob", 100)
    print('>>> pool.deposit("carol", 100)')
    pool.deposit("carol", 100)

    section_header("After")
    show_pool(pool)
    print(f"\nLiquidity provider free balance: {ledger.get_balance(CONFIG.liquidity_provider)}")
    return pool


# ============================================================================
# PHASE 2: POSITIONS (Steps 4-6)
# ============================================================================

def step_04_withdraw(pool: LendingPool, ledger: CurrencyLedger):
    """Close a supply position and see the registry compact."""
    step_header(4, "Withdraw in Full",
        "Closing removes the account from the registry in O(1): the last entry moves into its slot.")

    print(f"Before: {list(pool.list_accounts())}")
    print('>>> pool.withdraw_in_full("bob")')
    pool.withdraw_in_full("bob")
    print(f"After:  {list(pool.list_accounts())}")
    print(f"carol now sits at slot {pool.registry.index_of('carol')}")
    print(f"bob free balance: {ledger.get_balance('bob')}")
    return pool


def step_05_one_position(pool: LendingPool, ledger: CurrencyLedger):
    """An account may hold only one position."""
    step_header(5, "One Position per Account",
        "An account that is supplying cannot borrow until it closes.")

    print('>>> pool.borrow("carol", 50)')
    try:
        pool.borrow("carol", 50)
    except DuplicatePosition as exc:
        print(f"DuplicatePosition: {exc}")

    print(f"\ncarol reserved balance: {ledger.reserved_balance('carol')} (nothing was held)")
    return pool


def step_06_borrow(pool: LendingPool, ledger: CurrencyLedger):
    """Borrow against collateral."""
    step_header(6, "Borrowing",
        "borrow() reserves collateral on the borrower, then pays out from the liquidity provider.")

    print('>>> pool.borrow("alice", 1000)')
    pool.borrow("alice", 1_000)

    section_header("Currency Ledger View")
    print(f"alice free:     {ledger.get_balance('alice')}")
    print(f"alice reserved: {ledger.reserved_balance('alice')}")
    print(f"alice position: {pool.get_position('alice')}")
    return pool


# ============================================================================
# PHASE 3: TIME (Steps 7-8)
# ============================================================================

def step_07_ticks(pool: LendingPool):
    """Advance the pool and watch balances compound."""
    step_header(7, "Ticks",
        "Each tick applies exactly one compounding step to every open position.")

    for _ in range(3):
        report = pool.tick()
        print(f"  tick {report.tick}: +{report.supply_interest} supplied, "
              f"+{report.borrow_interest} borrowed")

    section_header("Balances")
    for account in pool.list_accounts():
        print(f"  {account:>6}: {pool.get_position(account)}")
    show_pool(pool)
    return pool


def step_08_close_with_interest(pool: LendingPool, ledger: CurrencyLedger):
    """Close both sides and settle the interest."""
    step_header(8, "Closing with Interest",
        "Interest is pool bookkeeping until close; closing settles it with one transfer.")

    lp_before = ledger.get_balance(CONFIG.liquidity_provider)
    pool.withdraw_in_full("carol")
    pool.repay_in_full("alice")
    lp_after = ledger.get_balance(CONFIG.liquidity_provider)

    print(f"\nLiquidity provider gained {lp_after - lp_before} across the two closes")
    print(f"alice reserved balance: {ledger.reserved_balance('alice')}")
    show_pool(pool)
    return pool


# ============================================================================
# PHASE 4: GUARANTEES (Steps 9-10)
# ============================================================================

def step_09_rejection(pool: LendingPool, ledger: CurrencyLedger):
    """A refused transfer leaves the pool untouched."""
    step_header(9, "Rejections Leave No Trace",
        "If the currency ledger refuses any step, every earlier step is undone.")

    before = pool.export_state()
    print('>>> pool.borrow("bob", 50_000)   # bob cannot post that much collateral')
    try:
        pool.borrow("bob", 50_000)
    except InsufficientFunds as exc:
        print(f"InsufficientFunds: {exc}")

    print(f"\nPool state unchanged: {pool.export_state() == before}")
    return pool


def step_10_conservation(pool: LendingPool, ledger: CurrencyLedger):
    """Prove nothing was created or destroyed."""
    step_header(10, "Conservation Proof",
        "The pool only moves value: issuance is the same as in step 1.")

    report = ledger.verify_conservation(
        expected_issuance=CONFIG.pool_funds + 3 * CONFIG.account_funds
    )
    print(f"Conservation valid: {report['valid']}")
    print(f"Issuance:           {report['issuance']}")

    invariants = pool.verify_invariants()
    print(f"Pool invariants:    {invariants['valid']}")
    return pool


# ============================================================================
# PHASE 5: SCALABILITY (Step 11)
# ============================================================================

def step_11_load_test():
    """Many accounts churning positions across many ticks."""
    step_header(11, "Load Test",
        f"{CONFIG.load_test_accounts} accounts, {CONFIG.load_test_operations} operations.")

    rng = random.Random(42)
    accounts = [f"acct_{i:05d}" for i in range(CONFIG.load_test_accounts)]
    ledger = CurrencyLedger("load", verbose=False)
    ledger.register_account(CONFIG.liquidity_provider)
    ledger.issue(CONFIG.liquidity_provider, CONFIG.pool_funds * 100)
    for account in accounts:
        ledger.register_account(account)
        ledger.issue(account, CONFIG.account_funds * 10)

    pool = LendingPool(PoolConfig(liquidity_provider=CONFIG.liquidity_provider), ledger, verbose=False)

    start = time.perf_counter()
    ticks = 0
    for i in range(CONFIG.load_test_operations):
        account = rng.choice(accounts)
        position = pool.get_position(account)
        if position is None:
            if rng.random() < 0.5:
                pool.deposit(account, rng.randint(1, 1_000))
            else:
                pool.borrow(account, rng.randint(1, 1_000))
        elif position.is_supplying:
            pool.withdraw_in_full(account)
        else:
            pool.repay_in_full(account)
        if i % CONFIG.load_test_tick_every == 0:
            pool.tick()
            ticks += 1
    elapsed = time.perf_counter() - start

    section_header("Results")
    print(f"Operations: {CONFIG.load_test_operations:,} in {elapsed:.2f}s")
    print(f"Ticks:      {ticks}")
    print(f"Open positions at end: {pool.position_count}")
    print(f"Pool invariants hold:  {pool.verify_invariants()['valid']}")
    print(f"Conservation holds:    {ledger.verify_conservation()['valid']}")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       LENDING POOL - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    wait_for_enter()

    ledger = step_01_currency_ledger()
    wait_for_enter()

    pool = step_02_create_pool(ledger)
    wait_for_enter()

    pool = step_03_first_deposit(pool, ledger)
    wait_for_enter()

    pool = step_04_withdraw(pool, ledger)
    wait_for_enter()

    pool = step_05_one_position(pool, ledger)
    wait_for_enter()

    pool = step_06_borrow(pool, ledger)
    wait_for_enter()

    pool = step_07_ticks(pool)
    wait_for_enter()

    pool = step_08_close_with_interest(pool, ledger)
    wait_for_enter()

    pool = step_09_rejection(pool, ledger)
    wait_for_enter()

    step_10_conservation(pool, ledger)
    wait_for_enter()

    step_11_load_test()

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    You've learned:
      - The pool moves value through an external currency ledger
      - One position per account, supply or borrow, never both
      - Each tick is one compounding step for every open position
      - A refused step undoes the whole operation
      - Value is conserved: the pool never creates money

    Next steps:
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
