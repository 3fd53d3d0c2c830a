"""
conftest.py - Shared pytest fixtures for lending pool tests

Provides common fixtures used across unit, functional and conformance tests:
- Funded currency ledgers
- Pools over a real CurrencyLedger and over a recording FakeLedger
- Pools with non-default rates, bounds and overflow policies
"""

import pytest
from decimal import Decimal

from lending import OverflowPolicy

from tests.fake_ledger import FakeLedger
from tests.helpers import funded_currency_ledger, make_pool


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def currency_ledger():
    """Funded currency ledger: pool 1,000,000; alice/bob/carol/dave 10,000 each."""
    return funded_currency_ledger()


@pytest.fixture
def pool(currency_ledger):
    """Default-rate pool over the funded currency ledger."""
    return make_pool(currency_ledger)


@pytest.fixture
def fake_port():
    """Recording port that never refuses."""
    return FakeLedger()


@pytest.fixture
def fake_pool(fake_port):
    """Pool over the recording port."""
    return make_pool(fake_port)


# =============================================================================
# CONFIGURATION FIXTURES
# =============================================================================

@pytest.fixture
def seven_percent_pool(currency_ledger):
    """Pool with a 7% borrow rate."""
    return make_pool(currency_ledger, borrow_rate=Decimal("0.07"))


@pytest.fixture
def tight_pool(currency_ledger):
    """Pool whose totals cap at 1,000 with skip-on-overflow ticks."""
    return make_pool(currency_ledger, max_amount=1_000, overflow_policy=OverflowPolicy.SKIP)


@pytest.fixture
def strict_pool(currency_ledger):
    """Pool whose totals cap at 1,000 with abort-on-overflow ticks."""
    return make_pool(currency_ledger, max_amount=1_000, overflow_policy=OverflowPolicy.ABORT)
