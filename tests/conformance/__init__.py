"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lending pool.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. registry_consistency.py - index[registry[i]] == i, count == length, O(1) swap removal
2. single_position.py - At most one position per account, store and registry agree
3. atomicity.py - Every operation and tick is all-or-nothing
4. conservation.py - Value only moves between accounts; totals match open balances
5. determinism.py - Identical inputs produce identical pool and ledger state

These tests use hypothesis for property-based testing.
"""
