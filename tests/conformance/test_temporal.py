"""
Temporal Conformance Tests

INVARIANT: Time only moves forward in every sequence the system exposes.

    history timestamps are non-decreasing (oldest first)
    transactions() timestamps are non-increasing (most recent first)
    stored transactions are in execution order (oldest first)
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from marketsim import InMemoryStore

from tests.helpers import StepClock, make_simulator, open_ledger


class TestTemporalProperties:
    """Property-based ordering tests."""

    @given(st.lists(st.sampled_from(["tick", "buy", "sell"]), min_size=1, max_size=60))
    @settings(max_examples=80, deadline=None)
    def test_sequences_are_ordered(self, steps):
        """
        PROPERTY: Price history, in-memory log and stored log are each time ordered.
        """
        clock = StepClock()
        store = InMemoryStore()
        simulator = make_simulator({"X": "10.00"}, clock=clock)
        ledger = open_ledger(store, simulator, clock=clock)

        for step in steps:
            if step == "tick":
                simulator.tick()
            elif step == "buy":
                ledger.buy("X", 1)
            elif ledger.get_holding("X"):
                ledger.sell("X", 1)

        history = [p.timestamp for p in simulator.quote("X").history]
        assert history == sorted(history)

        log = [tx.timestamp for tx in ledger.transactions()]
        assert log == sorted(log, reverse=True)

        stored = store.load_transactions("alice")
        assert stored == list(reversed(ledger.transactions()))
