"""
Conformance Test Suite

Property-based tests for the behavior every market must preserve, whatever
sequence of calls it receives:
1. test_conservation.py - No quantity is created or destroyed
2. test_invariants.py - Rate ordering, floors, lock caps, token exclusivity,
   oldest-pointer correctness, and caller errors only
3. test_determinism.py - Seeded markets replay identically

Shared strategies and the operation runner live in strategies.py.
These tests use hypothesis for property-based testing.
"""
