"""
conftest.py - Shared pytest fixtures for marketsim tests

Provides common fixtures used across unit, conformance and functional tests:
- Deterministic clock and a three-instrument simulator
- In-memory, flaky and CSV stores
- A ready-to-trade ledger for a signed-up user
"""

import pytest

from marketsim import InMemoryStore, CsvFileStore, UserDirectory

from tests.helpers import StepClock, FlakyStore, make_simulator, open_ledger


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def simulator(clock):
    """Simulator with X at 100.00, Y at 50.00 and Z at 20.00."""
    return make_simulator({"X": "100.00", "Y": "50.00", "Z": "20.00"}, clock=clock)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def flaky_store():
    return FlakyStore()


@pytest.fixture
def csv_store(tmp_path):
    return CsvFileStore(tmp_path / "data")


@pytest.fixture
def users(store):
    return UserDirectory(store)


@pytest.fixture
def ledger(store, simulator, clock):
    """Quiet ledger for 'alice' funded with the initial 10000.00."""
    return open_ledger(store, simulator, clock=clock)
