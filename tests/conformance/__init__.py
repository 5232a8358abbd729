"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the simulated exchange.

The tests are organized by invariant:
1. conservation.py - Cash and shares are fully explained by the trade log
2. atomicity.py - Rejected trades change nothing; applied trades are never rolled back
3. pricing.py - Price floor, cent precision and bounded history
4. determinism.py - Same seed, same market
5. temporal.py - Arrival ordering and history ordering

These tests use hypothesis for property-based testing.
"""
