"""
Core types and pure helpers for the market simulator.

This module provides the foundational data structures shared by the
simulator and the ledger:
1. Decimal configuration and package constants
2. Exceptions: MarketError and domain-specific error types
3. Immutable data structures: PricePoint, Instrument, Holding,
   TransactionRecord, Account, PositionValuation, SessionSnapshot
4. Price normalisation helpers

Every data structure here is frozen. Components that own state (the
PriceSimulator and the Ledger) replace values instead of mutating them, so a
reference handed to a caller can never change underneath it.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, Context, ROUND_HALF_EVEN
from enum import Enum
from typing import Tuple, Union


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Decimal contexts are thread-local, and prices are computed on the tick
# thread while trades run on caller threads. Arithmetic that must be
# reproducible runs inside decimal.localcontext(MARKET_DECIMAL_CONTEXT)
# instead of relying on the global context of whichever thread is running.
#
MARKET_DECIMAL_CONTEXT = Context(prec=50, rounding=ROUND_HALF_EVEN)


# ============================================================================
# CONSTANTS
# ============================================================================

# Prices are quoted in cents and never fall below one cent.
PRICE_QUANTUM = Decimal("0.01")
PRICE_FLOOR = Decimal("0.01")

# Maximum number of (timestamp, price) points kept per instrument.
HISTORY_LIMIT = 200

# Seconds between two ticks of the price simulator.
DEFAULT_TICK_INTERVAL = 3.0

# Starting cash for a freshly signed-up account.
INITIAL_BALANCE = Decimal("10000.00")

Number = Union[Decimal, int, float, str]


# ============================================================================
# EXCEPTIONS
# ============================================================================

class MarketError(Exception):
    """Base exception for all simulator and ledger errors."""
    pass


class DuplicateSymbol(MarketError):
    """Raised when registering an instrument whose symbol is already managed."""
    pass


class NotFound(MarketError):
    """Raised when quoting a symbol the simulator does not manage."""
    pass


class InvalidQuantity(MarketError):
    """Raised when a trade quantity is not a positive integer."""
    pass


class UnknownSymbol(MarketError):
    """Raised when a trade names a symbol that cannot be quoted."""
    pass


class InsufficientFunds(MarketError):
    """Raised when a buy would cost more than the account balance."""
    pass


class InsufficientShares(MarketError):
    """Raised when a sell requests more shares than the holding contains."""
    pass


class PersistenceFailure(MarketError):
    """
    Raised when the durable store fails after a trade was applied in memory.

    The trade is NOT rolled back. ``record`` carries the executed
    TransactionRecord (None when a retry of the persistence step fails).
    """

    def __init__(self, message: str, record: "TransactionRecord" = None):
        super().__init__(message)
        self.record = record


class UserExists(MarketError):
    """Raised on signup when the username is already taken."""
    pass


class InvalidCredentials(MarketError):
    """Raised on login for an unknown user or a wrong password."""
    pass


class InvalidInput(MarketError):
    """Raised on signup when the username or password is unusable."""
    pass


# ============================================================================
# PRICE HELPERS
# ============================================================================

def to_decimal(value: Number) -> Decimal:
    """
    Convert a number to Decimal without binary float artefacts.

    Floats go through str() so that 0.1 becomes Decimal("0.1") rather than
    Decimal("0.1000000000000000055511151231257827...").
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def normalize_price(value: Number) -> Decimal:
    """Round a price to cents and clamp it to PRICE_FLOOR."""
    price = to_decimal(value)
    if price.is_nan() or price.is_infinite():
        raise ValueError(f"Price must be finite, got {value}")
    price = price.quantize(PRICE_QUANTUM, rounding=ROUND_HALF_EVEN)
    return max(price, PRICE_FLOOR)


# ============================================================================
# INSTRUMENTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class PricePoint:
    """One observation in an instrument's price history."""
    timestamp: datetime
    price: Decimal


@dataclass(frozen=True, slots=True)
class Instrument:
    """
    Value snapshot of a tradable instrument.

    The simulator keeps the live state privately and hands out Instrument
    values only, so a snapshot is never affected by later ticks.

    Attributes:
        symbol: Unique key (e.g., "AAPL").
        name: Human-readable name (e.g., "Apple Inc.").
        price: Current price, rounded to cents and never below PRICE_FLOOR.
        history: Oldest-first (timestamp, price) points, at most HISTORY_LIMIT.
        previous_price: Price before the most recent update (None until the
            simulator registers the instrument).
    """
    symbol: str
    name: str
    price: Decimal
    history: Tuple[PricePoint, ...] = ()
    previous_price: Decimal = None

    def __post_init__(self):
        if not self.symbol or not self.symbol.strip():
            raise ValueError("Instrument symbol cannot be empty")
        if not isinstance(self.price, Decimal):
            object.__setattr__(self, 'price', to_decimal(self.price))
        if not isinstance(self.history, tuple):
            object.__setattr__(self, 'history', tuple(self.history))

    @property
    def change(self) -> Decimal:
        """Absolute move caused by the most recent update."""
        if self.previous_price is None:
            return Decimal("0")
        return self.price - self.previous_price

    @property
    def daily_change_percent(self) -> Decimal:
        """
        Percentage move from the oldest retained history point.

        Zero when fewer than two points exist or the first price is not
        positive.
        """
        if len(self.history) < 2:
            return Decimal("0")
        first = self.history[0].price
        if first <= 0:
            return Decimal("0")
        return (self.price - first) / first * 100


# ============================================================================
# ACCOUNT STATE
# ============================================================================

class TradeKind(Enum):
    """Direction of an executed trade."""
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True, slots=True)
class Holding:
    """
    A position in one symbol.

    avg_cost is the quantity-weighted mean of every buy price contributing to
    the position, kept at full Decimal precision. Sells reduce quantity and
    leave avg_cost unchanged.
    """
    symbol: str
    quantity: int
    avg_cost: Decimal

    def __post_init__(self):
        if self.quantity < 0:
            raise ValueError(f"Holding quantity cannot be negative, got {self.quantity}")
        if self.avg_cost < 0:
            raise ValueError(f"Holding avg_cost cannot be negative, got {self.avg_cost}")

    @property
    def cost_basis(self) -> Decimal:
        return self.avg_cost * self.quantity


@dataclass(frozen=True, slots=True)
class TransactionRecord:
    """
    An executed trade - immutable once created.

    Attributes:
        kind: BUY or SELL
        symbol: Instrument traded
        quantity: Number of shares (always positive)
        price: Quote the trade executed at
        timestamp: When the trade executed
    """
    kind: TradeKind
    symbol: str
    quantity: int
    price: Decimal
    timestamp: datetime

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValueError(f"Transaction quantity must be positive, got {self.quantity}")
        if self.price <= 0:
            raise ValueError(f"Transaction price must be positive, got {self.price}")

    @property
    def notional(self) -> Decimal:
        """Cash exchanged: price * quantity."""
        return self.price * self.quantity

    def __repr__(self) -> str:
        return f"{self.kind.value} {self.symbol} {self.quantity} @{self.price:.2f}"


@dataclass(frozen=True, slots=True)
class Account:
    """Cash balance of the logged-in user."""
    username: str
    balance: Decimal

    def __post_init__(self):
        if not isinstance(self.balance, Decimal):
            object.__setattr__(self, 'balance', to_decimal(self.balance))
        if self.balance < 0:
            raise ValueError(f"Account balance cannot be negative, got {self.balance}")


@dataclass(frozen=True, slots=True)
class PositionValuation:
    """A holding marked to the current quote."""
    symbol: str
    quantity: int
    avg_cost: Decimal
    price: Decimal
    market_value: Decimal
    unrealized_pnl: Decimal


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """Account, holdings and most-recent-first transactions read together."""
    account: Account
    holdings: Tuple[Holding, ...]
    transactions: Tuple[TransactionRecord, ...]
