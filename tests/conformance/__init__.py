"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the token ledger and draw engine.

The tests are organized by invariant:
1. test_conservation.py - Raw balances always sum to the fixed supply
2. test_atomicity.py - Failed calls leave ledger and engine state untouched
3. test_reflection_properties.py - Scaling, exclusion and inclusion properties

These tests use hypothesis for property-based testing.
"""
