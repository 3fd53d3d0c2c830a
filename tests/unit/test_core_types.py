"""
test_core_types.py - Unit tests for core data structures

Tests:
- Position: creation, validation, immutability, empty default
- PoolEvent / OperationReceipt: creation, rendering
- PoolConfig: defaults, validation, from_mapping
- Exception hierarchy
"""

import pytest
from dataclasses import FrozenInstanceError
from decimal import Decimal

from lending import (
    Position, Direction, PoolEvent, EventKind, OperationReceipt,
    PoolConfig, OverflowPolicy,
    LendingError, TransferFailed, InsufficientFunds, InsufficientReserved,
    AccountNotRegistered, DuplicatePosition, CounterOverflow,
    U64_MAX, DEFAULT_SUPPLY_RATE, DEFAULT_BORROW_RATE,
)


class TestPositionCreation:
    """Tests for Position creation and validation."""

    def test_create_valid_supply(self):
        """Valid supply position with all fields."""
        position = Position(Direction.SUPPLYING, 100, Decimal("0.01"), 4, 0)
        assert position.direction is Direction.SUPPLYING
        assert position.balance == 100
        assert position.interest_rate == Decimal("0.01")
        assert position.opened_at == 4
        assert position.reserved == 0
        assert position.is_supplying
        assert not position.is_borrowing

    def test_create_valid_borrow(self):
        position = Position(Direction.BORROWING, 500, Decimal("0.03"), reserved=500)
        assert position.is_borrowing
        assert position.reserved == 500

    def test_negative_balance_rejected(self):
        with pytest.raises(ValueError, match="balance"):
            Position(Direction.SUPPLYING, -1, Decimal("0.01"))

    def test_float_balance_rejected(self):
        """Balances are whole ledger units."""
        with pytest.raises(ValueError, match="must be int"):
            Position(Direction.SUPPLYING, 100.0, Decimal("0.01"))

    def test_bool_balance_rejected(self):
        with pytest.raises(ValueError):
            Position(Direction.SUPPLYING, True, Decimal("0.01"))

    def test_float_rate_rejected(self):
        with pytest.raises(ValueError, match="Decimal"):
            Position(Direction.SUPPLYING, 100, 0.01)

    def test_rate_above_one_rejected(self):
        with pytest.raises(ValueError, match=r"\[0, 1\]"):
            Position(Direction.SUPPLYING, 100, Decimal("1.01"))

    def test_negative_rate_rejected(self):
        with pytest.raises(ValueError):
            Position(Direction.BORROWING, 100, Decimal("-0.01"))

    def test_nan_rate_rejected(self):
        with pytest.raises(ValueError, match="finite"):
            Position(Direction.SUPPLYING, 100, Decimal("NaN"))

    def test_direction_must_be_enum(self):
        with pytest.raises(ValueError, match="direction"):
            Position("supplying", 100, Decimal("0.01"))

    def test_position_is_frozen(self):
        position = Position(Direction.SUPPLYING, 100, Decimal("0.01"))
        with pytest.raises(FrozenInstanceError):
            position.balance = 200

    def test_boundary_values(self):
        position = Position(Direction.SUPPLYING, U64_MAX, Decimal("1"))
        assert position.balance == U64_MAX
        assert Position(Direction.SUPPLYING, 0, Decimal("0")).balance == 0


class TestPositionEmpty:
    """Tests for the zero-valued default position."""

    def test_empty_fields(self):
        empty = Position.empty()
        assert empty.direction is Direction.SUPPLYING
        assert empty.balance == 0
        assert empty.interest_rate == Decimal("0")
        assert empty.opened_at == 0
        assert empty.reserved == 0

    def test_empty_equality(self):
        assert Position.empty() == Position.empty()

    def test_to_dict(self):
        position = Position(Direction.BORROWING, 250, Decimal("0.03"), 2, 250)
        assert position.to_dict() == {
            'direction': "borrowing",
            'balance': 250,
            'interest_rate': "0.03",
            'opened_at': 2,
            'reserved': 250,
        }


class TestEventsAndReceipts:
    """Tests for PoolEvent and OperationReceipt."""

    def test_event_repr_names_account(self):
        event = PoolEvent(EventKind.DEPOSITED, "alice", 100, 0)
        assert "alice" in repr(event)
        assert "deposited" in repr(event)

    def test_pool_wide_event_repr(self):
        event = PoolEvent(EventKind.TICK_COMPLETED, None, 3, 7)
        assert "pool" in repr(event)
        assert "@tick 7" in repr(event)

    def test_receipt_repr_is_boxed(self):
        event = PoolEvent(EventKind.BORROWED, "bob", 50, 1)
        receipt = OperationReceipt("borrow", "bob", 50, 1, 9, (event,))
        rendered = repr(receipt)
        lines = rendered.split("\n")
        assert lines[0].startswith("┌")
        assert lines[-1].startswith("└")
        assert "borrow #9" in rendered
        assert len({len(line) for line in lines}) == 1


class TestPoolConfig:
    """Tests for PoolConfig defaults and validation."""

    def test_defaults(self):
        config = PoolConfig(liquidity_provider="pool")
        assert config.supply_rate == DEFAULT_SUPPLY_RATE == Decimal("0.01")
        assert config.borrow_rate == DEFAULT_BORROW_RATE == Decimal("0.03")
        assert config.max_amount == U64_MAX
        assert config.max_count == U64_MAX
        assert config.overflow_policy is OverflowPolicy.SKIP

    def test_empty_liquidity_provider_rejected(self):
        with pytest.raises(ValueError, match="liquidity_provider"):
            PoolConfig(liquidity_provider="  ")

    def test_rate_validation(self):
        with pytest.raises(ValueError, match="borrow_rate"):
            PoolConfig(liquidity_provider="pool", borrow_rate=Decimal("2"))

    def test_negative_bound_rejected(self):
        with pytest.raises(ValueError, match="max_amount"):
            PoolConfig(liquidity_provider="pool", max_amount=-1)

    def test_policy_must_be_enum(self):
        with pytest.raises(ValueError, match="overflow_policy"):
            PoolConfig(liquidity_provider="pool", overflow_policy="skip")


class TestPoolConfigFromMapping:
    """Tests for PoolConfig.from_mapping."""

    def test_string_rates_and_policy(self):
        config = PoolConfig.from_mapping({
            "liquidity_provider": "pool",
            "supply_rate": "0.02",
            "borrow_rate": "0.07",
            "overflow_policy": "abort",
        })
        assert config.supply_rate == Decimal("0.02")
        assert config.borrow_rate == Decimal("0.07")
        assert config.overflow_policy is OverflowPolicy.ABORT

    def test_minimal_mapping_uses_defaults(self):
        config = PoolConfig.from_mapping({"liquidity_provider": "pool"})
        assert config == PoolConfig(liquidity_provider="pool")

    def test_missing_liquidity_provider(self):
        with pytest.raises(ValueError, match="required"):
            PoolConfig.from_mapping({"supply_rate": "0.01"})

    def test_unknown_key_rejected(self):
        with pytest.raises(ValueError, match="Unknown"):
            PoolConfig.from_mapping({"liquidity_provider": "pool", "fee": "0.1"})

    def test_unknown_policy_rejected(self):
        with pytest.raises(ValueError):
            PoolConfig.from_mapping({"liquidity_provider": "pool", "overflow_policy": "wrap"})


class TestExceptionHierarchy:
    """Every pool error is a LendingError; port refusals are TransferFailed."""

    @pytest.mark.parametrize("exc", [
        InsufficientFunds, InsufficientReserved, AccountNotRegistered,
    ])
    def test_port_refusals_are_transfer_failures(self, exc):
        assert issubclass(exc, TransferFailed)
        assert issubclass(exc, LendingError)

    def test_guards_are_not_transfer_failures(self):
        assert not issubclass(DuplicatePosition, TransferFailed)
        assert not issubclass(CounterOverflow, TransferFailed)
        assert issubclass(DuplicatePosition, LendingError)
