"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the loan ledger engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. test_replay.py - Replay is a deterministic fold over approved events
2. test_balances.py - Undrawn commitment and non-negativity invariants
3. test_segmentation.py - Segments partition the accrual range exactly
4. test_batch_idempotency.py - Re-running the batch never rewrites entries

These tests use hypothesis for property-based testing.
"""
