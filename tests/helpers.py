"""
helpers.py - Test doubles and builders shared across the test suite

- StepClock: deterministic clock
- ScriptedRng: generator with scripted draws
- FlakyStore: InMemoryStore with switchable write failures
- make_simulator / open_ledger: one-line setup
"""

from __future__ import annotations
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List
import time

import numpy as np

from marketsim import (
    Instrument, Ledger, PriceSimulator, SimulatorConfig,
    InMemoryStore, UserDirectory,
)


class StepClock:
    """Deterministic clock: every call returns a time one second later."""

    def __init__(self, start: datetime = datetime(2025, 1, 1, 9, 30)):
        self.current = start
        self.calls: List[datetime] = []

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        self.calls.append(self.current)
        return self.current


class ScriptedRng:
    """Stand-in generator returning scripted uniform() and random() draws."""

    def __init__(self, uniforms, randoms):
        self.uniforms = list(uniforms)
        self.randoms = list(randoms)

    def uniform(self, low, high):
        value = self.uniforms.pop(0)
        assert low <= value <= high
        return value

    def random(self):
        return self.randoms.pop(0)


class FlakyStore(InMemoryStore):
    """InMemoryStore whose writes can be switched to fail (OSError unless told otherwise)."""

    def __init__(self, error_type=OSError):
        super().__init__()
        self.fail_on = set()
        self.error_type = error_type

    def _maybe_fail(self, operation: str):
        if operation in self.fail_on:
            raise self.error_type(f"write failed during {operation}")

    def save_user_directory(self, directory):
        self._maybe_fail("save_user_directory")
        super().save_user_directory(directory)

    def save_holdings(self, username, holdings):
        self._maybe_fail("save_holdings")
        super().save_holdings(username, holdings)

    def append_transaction(self, username, record):
        self._maybe_fail("append_transaction")
        super().append_transaction(username, record)


def make_simulator(prices=None, seed: int = 1234, clock=None) -> PriceSimulator:
    """Simulator with the given {symbol: price} listings registered."""
    prices = prices or {"X": "100.00"}
    simulator = PriceSimulator(
        SimulatorConfig(tick_interval=0.01, seed=seed),
        rng=np.random.default_rng(seed),
        clock=clock or StepClock(),
    )
    for symbol, price in prices.items():
        simulator.register(Instrument(symbol, f"{symbol} Corp", Decimal(price)))
    return simulator


def open_ledger(store, simulator, username: str = "alice", password: str = "pw", clock=None) -> Ledger:
    """Sign up a user (if needed) and open a quiet session."""
    users = UserDirectory(store)
    if username not in users:
        users.signup(username, password)
    return users.open_session(username, password, simulator, verbose=False, clock=clock or StepClock())


def wait_until(predicate, timeout: float = 5.0) -> bool:
    """Poll predicate until it holds or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()
