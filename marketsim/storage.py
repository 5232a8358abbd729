"""
storage.py - Durable store for accounts, holdings and trade history

Provides the persistence interface consumed by the Ledger and the user
directory.

Classes:
- DurableStore: Protocol defining the persistence interface
- InMemoryStore: Dictionary-backed store (tests, demos)
- CsvFileStore: One CSV file per concern under a data directory

Write semantics:
- save_user_directory / save_holdings: full overwrite
- append_transaction: single append, prior entries are never rewritten
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Protocol, Sequence, Union, runtime_checkable
import logging
import os
import tempfile
import threading
import weakref

import pandas as pd

from .core import Holding, TradeKind, TransactionRecord


logger = logging.getLogger(__name__)

_directory_locks = weakref.WeakKeyDictionary()
_directory_locks_guard = threading.Lock()


def directory_lock(store):
    """
    Lock guarding read-modify-write of one store's user directory.

    Signup and balance updates both rewrite the whole directory; holding
    this lock keeps one from overwriting the other. It is per store object,
    so two store objects on the same files are not coordinated.
    """
    with _directory_locks_guard:
        lock = _directory_locks.get(store)
        if lock is None:
            lock = _directory_locks[store] = threading.RLock()
        return lock


@dataclass(frozen=True, slots=True)
class UserRecord:
    """Entry of the user directory: credential and persisted cash balance."""
    password_hash: str
    balance: Decimal


@runtime_checkable
class DurableStore(Protocol):
    """
    Protocol for durable stores.

    Implementations raise when the underlying medium fails (OSError for
    files, the driver's own error for databases); the Ledger reports any
    such failure after a trade as PersistenceFailure.
    """

    def load_user_directory(self) -> Dict[str, UserRecord]:
        """All users, keyed by username."""
        ...

    def save_user_directory(self, directory: Mapping[str, UserRecord]) -> None:
        """Replace the whole user directory."""
        ...

    def load_holdings(self, username: str) -> List[Holding]:
        """Holdings snapshot of one user."""
        ...

    def save_holdings(self, username: str, holdings: Iterable[Holding]) -> None:
        """Replace the holdings snapshot of one user."""
        ...

    def append_transaction(self, username: str, record: TransactionRecord) -> None:
        """Append one record to the user's trade history."""
        ...

    def load_transactions(self, username: str) -> List[TransactionRecord]:
        """Trade history of one user, oldest first."""
        ...


class InMemoryStore:
    """
    Store kept in process memory.

    Every read and write copies the containers, so callers can never alias
    the stored state. Records themselves are frozen and shared safely.
    """

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}
        self.holdings: Dict[str, List[Holding]] = {}
        self.transactions: Dict[str, List[TransactionRecord]] = {}

    def load_user_directory(self) -> Dict[str, UserRecord]:
        return dict(self.users)

    def save_user_directory(self, directory: Mapping[str, UserRecord]) -> None:
        self.users = dict(directory)

    def load_holdings(self, username: str) -> List[Holding]:
        return list(self.holdings.get(username, []))

    def save_holdings(self, username: str, holdings: Iterable[Holding]) -> None:
        self.holdings[username] = list(holdings)

    def append_transaction(self, username: str, record: TransactionRecord) -> None:
        self.transactions.setdefault(username, []).append(record)

    def load_transactions(self, username: str) -> List[TransactionRecord]:
        return list(self.transactions.get(username, []))

    def __repr__(self):
        return f"InMemoryStore({len(self.users)} users)"


class CsvFileStore:
    """
    Store backed by headerless CSV files in a data directory.

    Layout:
        users.csv              username,password_hash,balance
        portfolio_<user>.csv   symbol,quantity,avg_cost
        tx_<user>.csv          kind,symbol,quantity,price,timestamp

    Every column is read as text so Decimal values round-trip exactly.
    Full overwrites are written to a temporary file and moved into place, so
    a crash mid-write leaves the previous snapshot intact. Rows that cannot
    be parsed are skipped with a warning. Missing files read as empty.
    """

    USERS_FILE = "users.csv"
    USERS_COLUMNS = ["username", "password_hash", "balance"]
    HOLDINGS_COLUMNS = ["symbol", "quantity", "avg_cost"]
    TRANSACTION_COLUMNS = ["kind", "symbol", "quantity", "price", "timestamp"]

    def __init__(self, data_dir: Union[str, Path] = "data"):
        self.data_dir = Path(data_dir)

    # ========================================================================
    # PATHS
    # ========================================================================

    @property
    def users_path(self) -> Path:
        return self.data_dir / self.USERS_FILE

    def holdings_path(self, username: str) -> Path:
        return self.data_dir / f"portfolio_{username}.csv"

    def transactions_path(self, username: str) -> Path:
        return self.data_dir / f"tx_{username}.csv"

    # ========================================================================
    # USERS
    # ========================================================================

    def load_user_directory(self) -> Dict[str, UserRecord]:
        directory: Dict[str, UserRecord] = {}
        for _, row in self._read_frame(self.users_path, self.USERS_COLUMNS).iterrows():
            try:
                if not row["username"]:
                    raise ValueError("empty username")
                balance = Decimal(row["balance"])
                if not balance.is_finite() or balance < 0:
                    raise ValueError(f"unusable balance {balance}")
                directory[row["username"]] = UserRecord(row["password_hash"], balance)
            except (ValueError, InvalidOperation):
                self._skip(self.users_path, row)
        return directory

    def save_user_directory(self, directory: Mapping[str, UserRecord]) -> None:
        rows = [
            (username, record.password_hash, str(record.balance))
            for username, record in directory.items()
        ]
        self._write_frame(self.users_path, pd.DataFrame(rows, columns=self.USERS_COLUMNS))

    # ========================================================================
    # HOLDINGS
    # ========================================================================

    def load_holdings(self, username: str) -> List[Holding]:
        path = self.holdings_path(username)
        holdings = []
        for _, row in self._read_frame(path, self.HOLDINGS_COLUMNS).iterrows():
            try:
                holdings.append(Holding(row["symbol"], int(row["quantity"]), Decimal(row["avg_cost"])))
            except (ValueError, InvalidOperation):
                self._skip(path, row)
        return holdings

    def save_holdings(self, username: str, holdings: Iterable[Holding]) -> None:
        rows = [(h.symbol, str(h.quantity), str(h.avg_cost)) for h in holdings]
        frame = pd.DataFrame(rows, columns=self.HOLDINGS_COLUMNS)
        self._write_frame(self.holdings_path(username), frame)

    # ========================================================================
    # TRANSACTIONS
    # ========================================================================

    def append_transaction(self, username: str, record: TransactionRecord) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        frame = pd.DataFrame([self._transaction_row(record)], columns=self.TRANSACTION_COLUMNS)
        frame.to_csv(
            self.transactions_path(username),
            mode="a", header=False, index=False, lineterminator="\n",
        )

    def load_transactions(self, username: str) -> List[TransactionRecord]:
        path = self.transactions_path(username)
        records = []
        for _, row in self._read_frame(path, self.TRANSACTION_COLUMNS).iterrows():
            try:
                records.append(TransactionRecord(
                    kind=TradeKind(row["kind"]),
                    symbol=row["symbol"],
                    quantity=int(row["quantity"]),
                    price=Decimal(row["price"]),
                    timestamp=datetime.fromisoformat(row["timestamp"]),
                ))
            except (ValueError, InvalidOperation):
                self._skip(path, row)
        return records

    @staticmethod
    def _transaction_row(record: TransactionRecord) -> Sequence[str]:
        return (
            record.kind.value,
            record.symbol,
            str(record.quantity),
            str(record.price),
            record.timestamp.isoformat(sep=" "),
        )

    # ========================================================================
    # FILE HELPERS
    # ========================================================================

    def _read_frame(self, path: Path, columns: List[str]) -> pd.DataFrame:
        """All rows of a headerless file as text; short rows padded with ''."""
        if not path.exists():
            return pd.DataFrame(columns=columns)

        def skip_long_row(fields: List[str]) -> None:
            self._skip(path, fields)

        try:
            frame = pd.read_csv(
                path,
                header=None,
                names=columns,
                index_col=False,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
                engine="python",
                on_bad_lines=skip_long_row,
            )
        except pd.errors.EmptyDataError:
            return pd.DataFrame(columns=columns)
        return frame.fillna("")

    def _write_frame(self, path: Path, frame: pd.DataFrame) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.data_dir, prefix=f".{path.name}.", suffix=".tmp")
        os.close(fd)
        try:
            frame.to_csv(tmp_name, header=False, index=False, lineterminator="\n")
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    @staticmethod
    def _skip(path: Path, row) -> None:
        values = list(row.values) if isinstance(row, pd.Series) else list(row)
        logger.warning("Skipping malformed row in %s: %r", path.name, values)

    def __repr__(self):
        return f"CsvFileStore({str(self.data_dir)!r})"
