"""
helpers.py - Construction and comparison helpers shared by the test suite

Plain functions rather than fixtures so that hypothesis tests, which cannot
use function-scoped fixtures, can build fresh pools per example.
"""

from hypothesis import strategies as st

from lending import CurrencyLedger, LendingPool, LendingError, PoolConfig


LP = "pool"
ACCOUNTS = ("alice", "bob", "carol", "dave")


def funded_currency_ledger(
    lp_funds: int = 1_000_000,
    account_funds: int = 10_000,
    accounts=ACCOUNTS,
) -> CurrencyLedger:
    """CurrencyLedger with the liquidity provider and accounts funded through issuance."""
    ledger = CurrencyLedger("test", verbose=False, test_mode=True)
    ledger.register_account(LP)
    if lp_funds:
        ledger.issue(LP, lp_funds)
    for account in accounts:
        ledger.register_account(account)
        if account_funds:
            ledger.issue(account, account_funds)
    return ledger


def make_pool(port, **config_overrides) -> LendingPool:
    """LendingPool over port with LP as liquidity provider."""
    config = PoolConfig(liquidity_provider=LP, **config_overrides)
    return LendingPool(config, port, verbose=False)


def assert_pool_consistent(pool: LendingPool) -> None:
    """Fail with the discrepancy list if any pool invariant is broken."""
    report = pool.verify_invariants()
    assert report['valid'], report['discrepancies']


def pool_state(pool: LendingPool) -> dict:
    """Everything observable about a pool, for before/after comparisons."""
    return {
        'export': pool.export_state(),
        'tick': pool.current_tick,
        'events': list(pool.event_log),
    }


def ledger_state(ledger: CurrencyLedger) -> dict:
    """Balances and log length of a currency ledger, for before/after comparisons."""
    return {
        'free': dict(ledger.free),
        'reserved': dict(ledger.reserved),
        'log': len(ledger.transfer_log),
    }


# =============================================================================
# OPERATION SEQUENCES
# =============================================================================

def operations(max_amount: int = 3_000, accounts=ACCOUNTS, max_size: int = 40):
    """
    Hypothesis strategy for pool operation sequences.

    Each element is one of:
        ("deposit", account, amount)   ("borrow", account, amount)
        ("withdraw", account)          ("repay", account)
        ("tick",)
    """
    account = st.sampled_from(accounts)
    amount = st.integers(min_value=1, max_value=max_amount)
    op = st.one_of(
        st.tuples(st.just("deposit"), account, amount),
        st.tuples(st.just("borrow"), account, amount),
        st.tuples(st.just("withdraw"), account),
        st.tuples(st.just("repay"), account),
        st.tuples(st.just("tick")),
    )
    return st.lists(op, max_size=max_size)


def apply_operation(pool: LendingPool, op: tuple) -> bool:
    """
    Apply one operation tuple to pool.

    Returns:
        True if it committed, False if the pool or the port refused it
    """
    name, *args = op
    action = {
        "deposit": pool.deposit,
        "borrow": pool.borrow,
        "withdraw": pool.withdraw_in_full,
        "repay": pool.repay_in_full,
        "tick": pool.tick,
    }[name]
    try:
        action(*args)
    except LendingError:
        return False
    return True
