"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the token ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Supply is fixed and double entry always holds
2. atomicity.py - A rejected call changes nothing
3. idempotency.py - Duplicate execution and nonce handling
4. ownership.py - The owner never changes and keeps its exemptions

These tests use hypothesis for property-based testing.
"""
