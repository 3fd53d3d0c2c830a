"""
test_tick.py - Unit tests for LendingPool.tick()

Tests:
- Exactly one compounding step per open position per tick
- Registry-ordered events, counters tracking accrued interest
- Empty-registry ticks advance the clock only
- Overflow handling under SKIP and ABORT
"""

import pytest

from lending import EventKind, CounterOverflow, compound_periods

from tests.helpers import assert_pool_consistent, pool_state


class TestSingleStep:
    """One tick is one compounding step."""

    def test_supply_one_percent(self, pool):
        pool.deposit("alice", 100)
        pool.tick()
        assert pool.get_position("alice").balance == 101
        assert pool.total_supplied == 101
        assert_pool_consistent(pool)

    def test_borrow_three_percent(self, pool):
        pool.borrow("bob", 200)
        report = pool.tick()
        assert pool.get_position("bob").balance == 206
        assert pool.total_borrowed == 206
        assert report.borrow_interest == 6
        assert report.supply_interest == 0

    def test_n_ticks_are_n_steps(self, pool):
        pool.deposit("alice", 100)
        position = pool.get_position("alice")
        pool.run_ticks(10)
        assert pool.get_position("alice") == compound_periods(position, 10)
        assert pool.get_position("alice").balance == 110

    def test_position_opened_later_compounds_from_then(self, pool):
        pool.deposit("alice", 100)
        pool.tick()
        pool.deposit("bob", 100)
        pool.tick()
        assert pool.get_position("alice").balance == 102
        assert pool.get_position("bob").balance == 101
        assert pool.get_position("bob").opened_at == 1

    def test_tick_makes_no_port_calls(self, fake_pool, fake_port):
        fake_pool.deposit("alice", 100)
        fake_pool.borrow("bob", 100)
        fake_port.calls.clear()
        fake_pool.tick()
        assert fake_port.calls == []

    def test_zero_interest_counts_as_compounded(self, pool):
        pool.deposit("alice", 10)   # 10 * 1% rounds to 0
        report = pool.tick()
        assert report.compounded == 1
        assert pool.get_position("alice").balance == 10
        assert [e.kind for e in report.events] == [EventKind.TICK_COMPLETED]


class TestTickReport:
    """Tests for the TickReport and event log."""

    def test_events_follow_registry_order(self, pool):
        for account in ("carol", "alice", "bob"):
            pool.deposit(account, 1_000)
        report = pool.tick()

        accrued = [e.account for e in report.events if e.kind is EventKind.INTEREST_ACCRUED]
        assert accrued == list(pool.list_accounts()) == ["carol", "alice", "bob"]
        assert report.events[-1].kind is EventKind.TICK_COMPLETED
        assert report.events[-1].amount == 30
        assert report.compounded == 3

    def test_report_tick_index(self, pool):
        reports = pool.run_ticks(3)
        assert [r.tick for r in reports] == [0, 1, 2]
        assert pool.current_tick == 3

    def test_event_log_extended(self, pool):
        pool.deposit("alice", 100)
        report = pool.tick()
        assert pool.event_log[-len(report.events):] == list(report.events)

    def test_run_ticks_zero_and_negative(self, pool):
        assert pool.run_ticks(0) == []
        with pytest.raises(ValueError):
            pool.run_ticks(-1)


class TestEmptyTick:
    """A tick with no open positions."""

    def test_empty_tick_changes_nothing_but_clock(self, pool):
        before = pool.export_state()
        report = pool.tick()
        assert pool.export_state() == before
        assert pool.current_tick == 1
        assert report.compounded == 0
        assert report.skipped == ()

    def test_empty_after_everyone_closed(self, pool):
        pool.deposit("alice", 100)
        pool.withdraw_in_full("alice")
        report = pool.tick()
        assert report.compounded == 0
        assert pool.total_supplied == 0


class TestOverflowSkip:
    """OverflowPolicy.SKIP leaves the overflowing account untouched."""

    def test_counter_overflow_skips_account(self, tight_pool):
        tight_pool.deposit("alice", 500)
        tight_pool.deposit("bob", 495)

        report = tight_pool.tick()

        # alice +5 brings total to 1000; bob's +5 would make 1005
        assert report.skipped == ("bob",)
        assert tight_pool.get_position("alice").balance == 505
        assert tight_pool.get_position("bob").balance == 495
        assert tight_pool.total_supplied == 1_000
        skipped = [e for e in report.events if e.kind is EventKind.INTEREST_SKIPPED]
        assert [(e.account, e.amount) for e in skipped] == [("bob", 5)]
        assert_pool_consistent(tight_pool)

    def test_balance_overflow_skips_account(self, tight_pool):
        tight_pool.borrow("alice", 990)   # +30 would exceed 1000
        tight_pool.deposit("bob", 500)

        report = tight_pool.tick()

        assert report.skipped == ("alice",)
        assert tight_pool.get_position("alice").balance == 990
        assert tight_pool.get_position("bob").balance == 505
        assert tight_pool.current_tick == 1
        assert_pool_consistent(tight_pool)


class TestOverflowAbort:
    """OverflowPolicy.ABORT rolls back the whole tick."""

    def test_abort_restores_everything(self, strict_pool):
        strict_pool.deposit("alice", 500)
        strict_pool.deposit("bob", 495)
        before = pool_state(strict_pool)

        with pytest.raises(CounterOverflow):
            strict_pool.tick()

        assert pool_state(strict_pool) == before
        assert strict_pool.get_position("alice").balance == 500
        assert strict_pool.current_tick == 0
        assert_pool_consistent(strict_pool)

    def test_abort_then_close_and_retry(self, strict_pool):
        strict_pool.deposit("alice", 500)
        strict_pool.deposit("bob", 495)
        with pytest.raises(CounterOverflow):
            strict_pool.tick()
        strict_pool.withdraw_in_full("bob")
        report = strict_pool.tick()
        assert report.tick == 0
        assert strict_pool.get_position("alice").balance == 505
