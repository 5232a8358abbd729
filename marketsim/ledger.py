"""
ledger.py - Per-account trading ledger

The Ledger is the session aggregate for one authenticated user. It is the
only component that mutates the account balance, the holdings and the trade
history, and it keeps the three mutually consistent.

Key responsibilities:
    - Executes buy/sell against the simulator's current quote
    - Enforces funds and share constraints before touching any state
    - Maintains weighted-average cost basis per holding
    - Persists every successful mutation before reporting success
    - Serializes trades for its account in arrival order

Persistence contract:
    A trade is applied in memory first and then written to the store
    (account, full holdings snapshot, appended record). If the store fails
    the trade is NOT rolled back: PersistenceFailure is raised and the
    unwritten state is retried by persist() or by the next trade.
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime
from decimal import Decimal, localcontext
from typing import Callable, Dict, Iterable, List, Optional
import threading

from .core import (
    # Types
    Account, Holding, TransactionRecord, TradeKind,
    PositionValuation, SessionSnapshot,
    # Constants
    MARKET_DECIMAL_CONTEXT,
    # Exceptions
    NotFound, InvalidQuantity, UnknownSymbol,
    InsufficientFunds, InsufficientShares, PersistenceFailure,
)
from .simulator import PriceSimulator
from .storage import DurableStore, directory_lock


class _ArrivalOrderLock:
    """
    Mutual exclusion that admits waiters strictly in arrival order.

    threading.Lock makes no fairness promise, so each caller takes a ticket
    and waits until its number is served.
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._next_ticket = 0
        self._serving = 0

    def __enter__(self):
        with self._cond:
            ticket = self._next_ticket
            self._next_ticket += 1
            while ticket != self._serving:
                self._cond.wait()
        return self

    def __exit__(self, exc_type, exc, tb):
        with self._cond:
            self._serving += 1
            self._cond.notify_all()
        return False


class Ledger:
    """
    Trading session of one account.

    Thread Safety:
        buy(), sell(), persist() and snapshot() are serialized per Ledger in
        arrival order. The individual read accessors return immutable values
        and never observe a half-applied trade.

    Example:
        ledger = Ledger.load(account, simulator, store)
        ledger.buy("AAPL", 10)
        ledger.sell("AAPL", 5)
        for tx in ledger.transactions():
            print(tx)
    """

    def __init__(
        self,
        account: Account,
        simulator: PriceSimulator,
        store: DurableStore,
        holdings: Iterable[Holding] = (),
        transactions: Iterable[TransactionRecord] = (),
        verbose: bool = True,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Create a ledger from an already-loaded session.

        Args:
            account: Logged-in account with its persisted balance
            simulator: Source of execution quotes
            store: Durable store receiving every mutation
            holdings: Current positions (zero-quantity rows are dropped)
            transactions: Trade history, most recent first
            verbose: Print a line for every applied or rejected trade (default: True)
            clock: Source of trade timestamps (default: datetime.now)
        """
        self.simulator = simulator
        self.store = store
        self.verbose = verbose
        self._clock = clock
        self._account = account
        self._holdings: Dict[str, Holding] = {
            h.symbol: h for h in holdings if h.quantity > 0
        }
        self._transactions: List[TransactionRecord] = list(transactions)
        # Records executed in memory but not yet appended to the store, oldest first
        self._unpersisted: List[TransactionRecord] = []
        self._state_dirty = False
        self._lock = _ArrivalOrderLock()

    @classmethod
    def load(
        cls,
        account: Account,
        simulator: PriceSimulator,
        store: DurableStore,
        verbose: bool = True,
        clock: Callable[[], datetime] = datetime.now,
    ) -> "Ledger":
        """
        Rebuild a session from the durable store.

        Holdings come from the user's snapshot; the history is read in
        storage (chronological) order and reversed to most-recent-first.
        Stored execution timestamps are kept as they were written.
        """
        holdings = store.load_holdings(account.username)
        history = store.load_transactions(account.username)
        history.reverse()
        return cls(
            account, simulator, store,
            holdings=holdings,
            transactions=history,
            verbose=verbose,
            clock=clock,
        )

    # ========================================================================
    # READ ACCESS
    # ========================================================================

    @property
    def username(self) -> str:
        return self._account.username

    @property
    def account(self) -> Account:
        return self._account

    @property
    def balance(self) -> Decimal:
        return self._account.balance

    def holdings(self) -> List[Holding]:
        """Current positions in the order they were opened."""
        return list(self._holdings.values())

    def get_holding(self, symbol: str) -> Optional[Holding]:
        return self._holdings.get(symbol)

    def transactions(self) -> List[TransactionRecord]:
        """Trade history, most recent first."""
        return list(self._transactions)

    def snapshot(self) -> SessionSnapshot:
        """Account, holdings and history captured between two trades."""
        with self._lock:
            return SessionSnapshot(
                account=self._account,
                holdings=tuple(self._holdings.values()),
                transactions=tuple(self._transactions),
            )

    @property
    def has_pending_persistence(self) -> bool:
        """True while some applied trade has not reached the store."""
        return self._state_dirty or bool(self._unpersisted)

    # ========================================================================
    # VALUATION
    # ========================================================================

    def positions(self) -> List[PositionValuation]:
        """
        Mark every holding to its current quote.

        A symbol the simulator no longer quotes is valued at zero.
        """
        rows = []
        for holding in self.holdings():
            try:
                price = self.simulator.quote(holding.symbol).price
            except NotFound:
                price = Decimal("0")
            rows.append(PositionValuation(
                symbol=holding.symbol,
                quantity=holding.quantity,
                avg_cost=holding.avg_cost,
                price=price,
                market_value=price * holding.quantity,
                unrealized_pnl=(price - holding.avg_cost) * holding.quantity,
            ))
        return rows

    def market_value(self) -> Decimal:
        """Total value of all holdings at current quotes."""
        return sum((p.market_value for p in self.positions()), Decimal("0"))

    def net_worth(self) -> Decimal:
        """Cash plus market value of holdings."""
        return self.balance + self.market_value()

    # ========================================================================
    # TRADING (Mutating)
    # ========================================================================

    def buy(self, symbol: str, quantity: int) -> TransactionRecord:
        """
        Buy shares at the current quote.

        The quote is read once; the same price is charged and recorded.

        Returns:
            The executed BUY record

        Raises:
            InvalidQuantity: quantity is not a positive integer
            UnknownSymbol: symbol cannot be quoted
            InsufficientFunds: price * quantity exceeds the balance
            PersistenceFailure: trade applied but not fully persisted
        """
        with self._lock:
            self._check_quantity(quantity)
            price = self._quote_price(symbol)
            with localcontext(MARKET_DECIMAL_CONTEXT):
                cost = price * quantity
                if self._account.balance < cost:
                    self._reject(
                        f"insufficient funds: BUY {quantity} {symbol} costs {cost:.2f}, "
                        f"balance {self._account.balance:.2f}"
                    )
                    raise InsufficientFunds(
                        f"Buying {quantity} {symbol} costs {cost:.2f}, "
                        f"balance is {self._account.balance:.2f}"
                    )

                held = self._holdings.get(symbol)
                if held is None:
                    new_holding = Holding(symbol, quantity, price)
                else:
                    total_qty = held.quantity + quantity
                    avg = (held.avg_cost * held.quantity + cost) / total_qty
                    new_holding = replace(held, quantity=total_qty, avg_cost=avg)

                record = TransactionRecord(TradeKind.BUY, symbol, quantity, price, self._clock())
                self._account = replace(self._account, balance=self._account.balance - cost)
                self._holdings[symbol] = new_holding
            return self._commit(record)

    def sell(self, symbol: str, quantity: int) -> TransactionRecord:
        """
        Sell shares at the current quote.

        A holding reduced to zero is removed together with its cost basis.

        Returns:
            The executed SELL record

        Raises:
            InvalidQuantity: quantity is not a positive integer
            UnknownSymbol: symbol cannot be quoted
            InsufficientShares: fewer than quantity shares are held
            PersistenceFailure: trade applied but not fully persisted
        """
        with self._lock:
            self._check_quantity(quantity)
            price = self._quote_price(symbol)
            held = self._holdings.get(symbol)
            owned = held.quantity if held else 0
            if owned < quantity:
                self._reject(f"insufficient shares: SELL {quantity} {symbol}, holding {owned}")
                raise InsufficientShares(f"Cannot sell {quantity} {symbol}: holding {owned}")

            with localcontext(MARKET_DECIMAL_CONTEXT):
                proceeds = price * quantity
                record = TransactionRecord(TradeKind.SELL, symbol, quantity, price, self._clock())
                remaining = held.quantity - quantity
                if remaining == 0:
                    del self._holdings[symbol]
                else:
                    self._holdings[symbol] = replace(held, quantity=remaining)
                self._account = replace(self._account, balance=self._account.balance + proceeds)
            return self._commit(record)

    def persist(self) -> None:
        """
        Retry the persistence step after a PersistenceFailure.

        Writes the account and holdings snapshot and appends every record
        that has not reached the store yet, oldest first. Trades are never
        re-executed.

        Raises:
            PersistenceFailure: the store failed again
        """
        with self._lock:
            try:
                self._flush()
            except Exception as exc:
                raise PersistenceFailure(f"Persistence retry for {self.username} failed: {exc}") from exc

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _check_quantity(self, quantity: int) -> None:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            self._reject(f"invalid quantity: {quantity!r}")
            raise InvalidQuantity(f"Quantity must be a positive integer, got {quantity!r}")

    def _quote_price(self, symbol: str) -> Decimal:
        try:
            return self.simulator.quote(symbol).price
        except NotFound as exc:
            self._reject(f"unknown symbol: {symbol}")
            raise UnknownSymbol(f"Unknown symbol {symbol}") from exc

    def _commit(self, record: TransactionRecord) -> TransactionRecord:
        """Record an applied trade in memory, then persist it."""
        self._transactions.insert(0, record)
        self._unpersisted.append(record)
        self._state_dirty = True
        try:
            self._flush()
        except Exception as exc:
            if self.verbose:
                print(f"⚠️  NOT PERSISTED: {record!r} ({exc})")
            raise PersistenceFailure(
                f"{record!r} applied but not persisted for {self.username}: {exc}",
                record=record,
            ) from exc
        if self.verbose:
            print(f"✓ {record!r} | balance {self._account.balance:.2f}")
        return record

    def _flush(self) -> None:
        """
        Write account, holdings and pending records, in that order.

        The user directory is a single shared file, so its read-modify-write
        runs under the store's directory lock (shared with signup).
        """
        if self._state_dirty:
            with directory_lock(self.store):
                directory = self.store.load_user_directory()
                entry = directory.get(self.username)
                if entry is None:
                    raise FileNotFoundError(f"No directory entry for {self.username}")
                directory[self.username] = replace(entry, balance=self._account.balance)
                self.store.save_user_directory(directory)
            self.store.save_holdings(self.username, self._holdings.values())
            self._state_dirty = False
        while self._unpersisted:
            self.store.append_transaction(self.username, self._unpersisted[0])
            self._unpersisted.pop(0)

    def _reject(self, reason: str) -> None:
        if self.verbose:
            print(f"✗ REJECTED: {reason}")

    def __repr__(self) -> str:
        return (
            f"Ledger({self.username}, balance={self._account.balance:.2f}, "
            f"{len(self._holdings)} holdings, {len(self._transactions)} trades)"
        )
