"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the synthetic-asset engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. test_atomicity.py - Failed operations leave no trace
2. test_conservation.py - Ledger totals match custody, supply matches debt
3. test_solvency.py - Successful operations never leave the caller unsafe
4. test_truncation.py - Conversions never create value
5. test_reentrancy.py - Nested entry is rejected and rolled back

These tests use hypothesis for property-based testing.
"""
