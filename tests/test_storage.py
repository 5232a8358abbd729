"""
test_storage.py - Unit tests for storage.py

Tests:
- Both stores satisfy the DurableStore protocol
- InMemoryStore copy-on-read/write isolation
- CsvFileStore round trips, overwrite vs. append semantics
- Missing files and malformed rows
"""

import pytest
from datetime import datetime
from decimal import Decimal

from marketsim import (
    DurableStore, InMemoryStore, CsvFileStore, UserRecord,
    Holding, TransactionRecord, TradeKind, UserDirectory, InvalidCredentials,
)
from marketsim.storage import directory_lock


T0 = datetime(2025, 1, 1, 9, 30, 15)


def buy(symbol="X", quantity=10, price="100.00", ts=T0):
    return TransactionRecord(TradeKind.BUY, symbol, quantity, Decimal(price), ts)


@pytest.fixture(params=["memory", "csv"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return InMemoryStore()
    return CsvFileStore(tmp_path / "data")


class TestDurableStoreContract:
    """Behaviour shared by every store."""

    def test_is_durable_store(self, any_store):
        assert isinstance(any_store, DurableStore)

    def test_empty_store(self, any_store):
        assert any_store.load_user_directory() == {}
        assert any_store.load_holdings("alice") == []
        assert any_store.load_transactions("alice") == []

    def test_user_directory_overwrite(self, any_store):
        any_store.save_user_directory({
            "alice": UserRecord("h1", Decimal("10000.00")),
            "bob": UserRecord("h2", Decimal("5.50")),
        })
        any_store.save_user_directory({"alice": UserRecord("h1", Decimal("9000.00"))})
        assert any_store.load_user_directory() == {"alice": UserRecord("h1", Decimal("9000.00"))}

    def test_holdings_overwrite(self, any_store):
        any_store.save_holdings("alice", [Holding("X", 10, Decimal("100.00")), Holding("Y", 1, Decimal("5"))])
        any_store.save_holdings("alice", [Holding("Y", 2, Decimal("5"))])
        assert any_store.load_holdings("alice") == [Holding("Y", 2, Decimal("5"))]

    def test_holdings_per_user(self, any_store):
        any_store.save_holdings("alice", [Holding("X", 1, Decimal("1"))])
        assert any_store.load_holdings("bob") == []

    def test_transactions_append_in_order(self, any_store):
        first = buy()
        second = TransactionRecord(TradeKind.SELL, "X", 4, Decimal("110.00"), T0.replace(minute=31))
        any_store.append_transaction("alice", first)
        any_store.append_transaction("alice", second)
        assert any_store.load_transactions("alice") == [first, second]

    def test_empty_holdings_snapshot(self, any_store):
        any_store.save_holdings("alice", [Holding("X", 1, Decimal("1"))])
        any_store.save_holdings("alice", [])
        assert any_store.load_holdings("alice") == []


class TestInMemoryStore:
    """Tests for InMemoryStore isolation."""

    def test_loaded_directory_is_a_copy(self):
        store = InMemoryStore()
        store.save_user_directory({"alice": UserRecord("h", Decimal("1"))})
        loaded = store.load_user_directory()
        loaded["mallory"] = UserRecord("h", Decimal("1"))
        assert "mallory" not in store.load_user_directory()

    def test_saved_holdings_are_copied(self):
        store = InMemoryStore()
        holdings = [Holding("X", 1, Decimal("1"))]
        store.save_holdings("alice", holdings)
        holdings.append(Holding("Y", 1, Decimal("1")))
        assert len(store.load_holdings("alice")) == 1


class TestCsvFileStore:
    """Tests for the CSV file layout."""

    def test_file_layout(self, csv_store):
        csv_store.save_user_directory({"alice": UserRecord("sha256$ab$cd", Decimal("9000.00"))})
        csv_store.save_holdings("alice", [Holding("X", 10, Decimal("100.00"))])
        csv_store.append_transaction("alice", buy())
        data = csv_store.data_dir
        assert (data / "users.csv").read_text().splitlines() == ["alice,sha256$ab$cd,9000.00"]
        assert (data / "portfolio_alice.csv").read_text().splitlines() == ["X,10,100.00"]
        assert (data / "tx_alice.csv").read_text().splitlines() == ["BUY,X,10,100.00,2025-01-01 09:30:15"]

    def test_creates_data_dir(self, tmp_path):
        store = CsvFileStore(tmp_path / "nested" / "data")
        store.append_transaction("alice", buy())
        assert store.transactions_path("alice").exists()

    def test_average_cost_precision_survives(self, csv_store):
        avg = Decimal("300.02") / 3
        csv_store.save_holdings("alice", [Holding("X", 3, avg)])
        assert csv_store.load_holdings("alice")[0].avg_cost == avg

    def test_timestamp_microseconds_survive(self, csv_store):
        record = buy(ts=datetime(2025, 3, 4, 5, 6, 7, 890123))
        csv_store.append_transaction("alice", record)
        assert csv_store.load_transactions("alice") == [record]

    def test_overwrite_leaves_no_temp_files(self, csv_store):
        for balance in ("1", "2", "3"):
            csv_store.save_user_directory({"alice": UserRecord("h", Decimal(balance))})
        assert [p.name for p in csv_store.data_dir.iterdir()] == ["users.csv"]

    def test_append_does_not_rewrite_existing_lines(self, csv_store):
        csv_store.append_transaction("alice", buy())
        path = csv_store.transactions_path("alice")
        before = path.read_text()
        csv_store.append_transaction("alice", buy("Y", 1, "50.00"))
        assert path.read_text().startswith(before)

    def test_malformed_rows_are_skipped(self, csv_store, caplog):
        csv_store.data_dir.mkdir(parents=True)
        csv_store.users_path.write_text("alice,h,100.00\nbroken\nbob,h,not-a-number\n\ncarol,h,7\n")
        csv_store.holdings_path("alice").write_text("X,ten,1\nY,2,40.00\nZ,-1,3\n")
        csv_store.transactions_path("alice").write_text(
            "BUY,X,10,100.00,2025-01-01 09:30:00\n"
            "HOLD,X,1,1.00,2025-01-01 09:30:00\n"
            "SELL,X,5,110.00,yesterday\n"
            "SELL,X,5,110.00,2025-01-01 09:31:00\n"
        )

        assert set(csv_store.load_user_directory()) == {"alice", "carol"}
        assert csv_store.load_holdings("alice") == [Holding("Y", 2, Decimal("40.00"))]
        assert [tx.kind for tx in csv_store.load_transactions("alice")] == [TradeKind.BUY, TradeKind.SELL]
        assert "Skipping malformed row" in caplog.text

    def test_negative_or_nan_balance_rows_are_skipped(self, csv_store, caplog):
        csv_store.data_dir.mkdir(parents=True)
        csv_store.users_path.write_text("alice,h,100.00\neve,h,-5\nfrank,h,NaN\ngina,h,Infinity\n")

        assert csv_store.load_user_directory() == {"alice": UserRecord("h", Decimal("100.00"))}
        assert caplog.text.count("Skipping malformed row") == 3

    def test_skipped_balance_row_cannot_log_in(self, csv_store):
        csv_store.data_dir.mkdir(parents=True)
        csv_store.users_path.write_text("eve,h,-5\n")
        with pytest.raises(InvalidCredentials):
            UserDirectory(csv_store).login("eve", "h")

    def test_repr(self, tmp_path):
        assert repr(CsvFileStore(tmp_path)) == f"CsvFileStore({str(tmp_path)!r})"


class TestDirectoryLock:
    """Tests for the per-store user-directory lock."""

    def test_same_store_same_lock(self):
        store = InMemoryStore()
        assert directory_lock(store) is directory_lock(store)

    def test_stores_do_not_share(self):
        assert directory_lock(InMemoryStore()) is not directory_lock(InMemoryStore())

    def test_reentrant(self):
        store = InMemoryStore()
        with directory_lock(store):
            with directory_lock(store):
                store.save_user_directory({})
