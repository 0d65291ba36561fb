"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the CDP ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Credit supply equals debt plus paid interest
2. atomicity.py - Failed operations leave no trace
3. idempotency.py - Duplicate execution handling
4. determinism.py - Reproducible behavior
5. overflow.py - Checked integer arithmetic
6. isolation.py - Concurrent operations on vaults
7. temporal.py - Clock ordering and accrual over split intervals

These tests use hypothesis for property-based testing.
"""
