"""
simulator.py - Randomised price engine

The PriceSimulator owns every registered instrument and advances all of them
together on a fixed cadence. It is the only writer of instrument state;
everyone else reads value snapshots through quote() and list().

Tick algorithm (per instrument):
    1. delta ~ U[-max_drift_pct, +max_drift_pct] percent
    2. new = price * (1 + delta / 100)
    3. with probability spike_probability: new *= 1 + U[-max_spike_pct, +max_spike_pct] / 100
    4. round to cents, clamp to PRICE_FLOOR
    5. append (now, new) to history, evicting the oldest point past the limit

Thread Safety:
    Each instrument has its own lock, so ticking one instrument never blocks
    quotes of another. A reader sees an instrument either entirely before or
    entirely after a tick.
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, localcontext
from typing import Callable, Deque, Dict, List, Optional
import logging
import threading
import time

import numpy as np

from .core import (
    Instrument, PricePoint,
    MARKET_DECIMAL_CONTEXT, HISTORY_LIMIT, DEFAULT_TICK_INTERVAL,
    DuplicateSymbol, NotFound,
    Number, normalize_price, to_decimal,
)


logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
TickCallback = Callable[[], None]


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True)
class SimulatorConfig:
    """Tunable parameters of the price engine."""
    tick_interval: float = DEFAULT_TICK_INTERVAL
    max_drift_pct: float = 2.0
    spike_probability: float = 0.03
    max_spike_pct: float = 4.0
    history_limit: int = HISTORY_LIMIT
    seed: Optional[int] = None

    def __post_init__(self):
        if self.tick_interval <= 0:
            raise ValueError(f"tick_interval must be positive, got {self.tick_interval}")
        if self.max_drift_pct < 0:
            raise ValueError(f"max_drift_pct cannot be negative, got {self.max_drift_pct}")
        if not 0 <= self.spike_probability <= 1:
            raise ValueError(f"spike_probability must be in [0, 1], got {self.spike_probability}")
        if self.max_spike_pct < 0:
            raise ValueError(f"max_spike_pct cannot be negative, got {self.max_spike_pct}")
        if self.history_limit < 1:
            raise ValueError(f"history_limit must be at least 1, got {self.history_limit}")


# ============================================================================
# LIVE INSTRUMENT STATE
# ============================================================================

class _Ticker:
    """Mutable state of one instrument. Only touched with its lock held."""

    __slots__ = ('symbol', 'name', 'price', 'previous_price', 'history', 'lock')

    def __init__(self, instrument: Instrument, history_limit: int, now: datetime):
        price = normalize_price(instrument.price)
        self.symbol = instrument.symbol
        self.name = instrument.name
        self.price = price
        self.previous_price = price
        self.history: Deque[PricePoint] = deque(instrument.history, maxlen=history_limit)
        if not self.history:
            self.history.append(PricePoint(now, price))
        self.lock = threading.Lock()

    def apply(self, price: Decimal, now: datetime) -> None:
        self.previous_price = self.price
        self.price = price
        # deque(maxlen=...) drops the oldest point on overflow
        self.history.append(PricePoint(now, price))

    def snapshot(self) -> Instrument:
        return Instrument(
            symbol=self.symbol,
            name=self.name,
            price=self.price,
            history=tuple(self.history),
            previous_price=self.previous_price,
        )


# ============================================================================
# PRICE SIMULATOR
# ============================================================================

class PriceSimulator:
    """
    Owns the instrument set and advances prices on a background thread.

    Example:
        sim = PriceSimulator(SimulatorConfig(tick_interval=1.0, seed=7))
        sim.register(Instrument("AAPL", "Apple Inc.", Decimal("150.00")))
        sim.start(on_tick=refresh_view)
        quote = sim.quote("AAPL")
        ...
        sim.stop()
    """

    def __init__(
        self,
        config: Optional[SimulatorConfig] = None,
        rng: Optional[np.random.Generator] = None,
        clock: Clock = datetime.now,
    ):
        """
        Create a simulator.

        Args:
            config: Engine parameters (default: SimulatorConfig())
            rng: Random generator for price moves (default: seeded from config.seed)
            clock: Source of history timestamps (default: datetime.now)
        """
        self.config = config or SimulatorConfig()
        self._rng = rng if rng is not None else np.random.default_rng(self.config.seed)
        self._clock = clock
        self._tickers: Dict[str, _Ticker] = {}
        self._registry_lock = threading.Lock()
        # Serializes tick() so the generator is never drawn from concurrently
        self._tick_lock = threading.Lock()
        self._lifecycle_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._tick_count = 0

    # ========================================================================
    # REGISTRATION
    # ========================================================================

    def register(self, instrument: Instrument) -> Instrument:
        """
        Add an instrument to the managed set.

        The price is rounded to cents and clamped to the floor. An instrument
        registered without history is seeded with a single (now, price) point.

        Returns:
            Snapshot of the instrument as registered

        Raises:
            DuplicateSymbol: If the symbol is already managed
        """
        with self._registry_lock:
            if instrument.symbol in self._tickers:
                raise DuplicateSymbol(f"Instrument {instrument.symbol} already registered")
            ticker = _Ticker(instrument, self.config.history_limit, self._clock())
            self._tickers[instrument.symbol] = ticker
        logger.debug("Registered %s (%s) at %s", ticker.symbol, ticker.name, ticker.price)
        return ticker.snapshot()

    # ========================================================================
    # READ ACCESS (value snapshots)
    # ========================================================================

    def quote(self, symbol: str) -> Instrument:
        """
        Current price and a copy of the history of one instrument.

        Raises:
            NotFound: If the symbol is not managed
        """
        ticker = self._tickers.get(symbol)
        if ticker is None:
            raise NotFound(f"No instrument with symbol {symbol}")
        with ticker.lock:
            return ticker.snapshot()

    def list(self) -> List[Instrument]:
        """Snapshots of all instruments in registration order."""
        snapshots = []
        for ticker in self._ticker_list():
            with ticker.lock:
                snapshots.append(ticker.snapshot())
        return snapshots

    def symbols(self) -> List[str]:
        """Registered symbols in registration order."""
        with self._registry_lock:
            return list(self._tickers)

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._tickers

    def __len__(self) -> int:
        return len(self._tickers)

    @property
    def tick_count(self) -> int:
        """Number of completed ticks."""
        return self._tick_count

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive() and not self._stop_event.is_set()

    def _ticker_list(self) -> List[_Ticker]:
        with self._registry_lock:
            return list(self._tickers.values())

    # ========================================================================
    # PRICE UPDATES
    # ========================================================================

    def tick(self) -> None:
        """Advance every instrument by one step of the random walk."""
        with self._tick_lock:
            now = self._clock()
            for ticker in self._ticker_list():
                with ticker.lock:
                    ticker.apply(self._next_price(ticker.price), now)
            self._tick_count += 1

    def set_price(self, symbol: str, price: Number) -> Instrument:
        """
        Move an instrument to a given price through the normal update path.

        The price is rounded and clamped and a history point is appended,
        exactly as a tick would.

        Raises:
            NotFound: If the symbol is not managed
        """
        ticker = self._tickers.get(symbol)
        if ticker is None:
            raise NotFound(f"No instrument with symbol {symbol}")
        normalized = normalize_price(price)
        with ticker.lock:
            ticker.apply(normalized, self._clock())
            return ticker.snapshot()

    def _next_price(self, price: Decimal) -> Decimal:
        cfg = self.config
        delta_pct = self._rng.uniform(-cfg.max_drift_pct, cfg.max_drift_pct)
        spike = None
        if self._rng.random() < cfg.spike_probability:
            spike = self._rng.uniform(-cfg.max_spike_pct, cfg.max_spike_pct)
        with localcontext(MARKET_DECIMAL_CONTEXT):
            new_price = price * (1 + to_decimal(float(delta_pct)) / 100)
            if spike is not None:
                new_price *= 1 + to_decimal(float(spike)) / 100
            return normalize_price(new_price)

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    def start(
        self,
        tick_interval: Optional[float] = None,
        on_tick: Optional[TickCallback] = None,
    ) -> None:
        """
        Begin ticking on a daemon thread. No-op if already running.

        The first tick fires immediately, then one every tick_interval seconds
        at a fixed rate.

        Args:
            tick_interval: Seconds between ticks (default: config.tick_interval)
            on_tick: Called after each completed tick. Exceptions it raises
                     are logged and never stop the simulation.
        """
        interval = self.config.tick_interval if tick_interval is None else tick_interval
        if interval <= 0:
            raise ValueError(f"tick_interval must be positive, got {interval}")
        with self._lifecycle_lock:
            if self.is_running:
                return
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(interval, on_tick, self._stop_event),
                name="price-simulator",
                daemon=True,
            )
            self._thread.start()
        logger.info("Price simulator started (%d instruments, every %ss)", len(self), interval)

    def stop(self) -> None:
        """
        Halt the timer. Safe to call when never started.

        Blocks until the in-flight tick, if any, has completed. When called
        from inside an on_tick callback it only signals the loop to exit.
        """
        with self._lifecycle_lock:
            thread = self._thread
            self._stop_event.set()
            if thread is None or thread is threading.current_thread():
                return
            self._thread = None
        thread.join()
        logger.info("Price simulator stopped after %d ticks", self._tick_count)

    def _run(self, interval: float, on_tick: Optional[TickCallback], stop_event: threading.Event) -> None:
        next_run = time.monotonic()
        while not stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Price tick failed")
            else:
                if on_tick is not None:
                    try:
                        on_tick()
                    except Exception:
                        logger.exception("on_tick observer raised; simulation continues")
            next_run += interval
            stop_event.wait(max(0.0, next_run - time.monotonic()))

    def __repr__(self) -> str:
        state = "running" if self.is_running else "stopped"
        return f"PriceSimulator({len(self)} instruments, {self._tick_count} ticks, {state})"
