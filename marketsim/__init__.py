"""
marketsim - Simulated exchange with a persistent per-account ledger

A price simulator that random-walks a set of instruments on a timer, and a
ledger that lets one logged-in user buy and sell at the current quote while
persisting balance, holdings and trade history.

Usage:
    from marketsim import (
        CsvFileStore, UserDirectory, create_default_simulator,
    )

    simulator = create_default_simulator()
    simulator.start(on_tick=refresh_view)

    users = UserDirectory(CsvFileStore("data"))
    users.signup("alice", "s3cret")
    ledger = users.open_session("alice", "s3cret", simulator)

    ledger.buy("AAPL", 10)
    ledger.sell("AAPL", 4)

    simulator.stop()
"""

# Core types
from .core import (
    PricePoint,
    Instrument,
    Holding,
    TransactionRecord,
    TradeKind,
    Account,
    PositionValuation,
    SessionSnapshot,
    MarketError,
    DuplicateSymbol,
    NotFound,
    InvalidQuantity,
    UnknownSymbol,
    InsufficientFunds,
    InsufficientShares,
    PersistenceFailure,
    UserExists,
    InvalidCredentials,
    InvalidInput,
    normalize_price,
    PRICE_FLOOR,
    PRICE_QUANTUM,
    HISTORY_LIMIT,
    DEFAULT_TICK_INTERVAL,
    INITIAL_BALANCE,
)

# Price engine
from .simulator import PriceSimulator, SimulatorConfig

# Persistence
from .storage import DurableStore, UserRecord, InMemoryStore, CsvFileStore

# Ledger
from .ledger import Ledger

# Authentication
from .auth import UserDirectory, hash_password, verify_password

# Catalog
from .catalog import DEFAULT_LISTINGS, default_instruments, create_default_simulator

__all__ = [
    # Core
    'PricePoint', 'Instrument', 'Holding', 'TransactionRecord', 'TradeKind',
    'Account', 'PositionValuation', 'SessionSnapshot',
    'MarketError', 'DuplicateSymbol', 'NotFound', 'InvalidQuantity',
    'UnknownSymbol', 'InsufficientFunds', 'InsufficientShares',
    'PersistenceFailure', 'UserExists', 'InvalidCredentials', 'InvalidInput',
    'normalize_price',
    'PRICE_FLOOR', 'PRICE_QUANTUM', 'HISTORY_LIMIT', 'DEFAULT_TICK_INTERVAL',
    'INITIAL_BALANCE',
    # Simulator
    'PriceSimulator', 'SimulatorConfig',
    # Storage
    'DurableStore', 'UserRecord', 'InMemoryStore', 'CsvFileStore',
    # Ledger
    'Ledger',
    # Auth
    'UserDirectory', 'hash_password', 'verify_password',
    # Catalog
    'DEFAULT_LISTINGS', 'default_instruments', 'create_default_simulator',
]

__version__ = '1.0.0'
