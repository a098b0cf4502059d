"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the vault accounting engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. vault_conservation.py - Share supply and asset conservation
2. vault_atomicity.py - All-or-nothing operation semantics
3. reentrancy.py - Re-entrant calls are rejected
4. rounding_bias.py - Rounding always favors the pool
5. unlock_schedule.py - Monotonic, exact linear unlocking
6. principal_invariant.py - Yield-donating principal preservation
7. solvency_gating.py - Yield-skimming debt and insolvency gating

These tests use hypothesis for property-based testing.
"""
