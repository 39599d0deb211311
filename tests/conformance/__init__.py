"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lending market ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Pool totals match deposits; share totals reconcile
2. atomicity.py - Rejected operations leave no trace
3. idempotency.py - Accrual at the same timestamp is a no-op
4. determinism.py - Reproducible behavior
5. rounding.py - Every rounding direction favours the pool
6. concurrency.py - One lock region per operation; snapshots are never torn

These tests use hypothesis for property-based testing.
"""
