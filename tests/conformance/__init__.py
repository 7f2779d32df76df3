"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the TaxLedger system.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Every deposited unit is escrowed, spare, taxed or paid out
2. single_execution.py - A transaction reaches a terminal state exactly once
3. tax_properties.py - Grace period, monotonic growth, cap, integer square root
4. determinism.py - Reproducible ids, clone and replay

These tests use hypothesis for property-based testing.
"""
