"""Tests for SQLite-specific storage behaviour."""

import sqlite3
from datetime import date

import pytest

from price_tracker.data_store import StorageConflictError
from price_tracker.models import PriceRecord, PurchaseHistoryEntry, VariantRecord
from price_tracker.sqlite_store import SQLiteStore

TODAY = date(2026, 10, 19)


def make_record(price=1.0, report_count=1) -> PriceRecord:
    return PriceRecord(
        normalized_name="milk",
        display_name="Milk",
        store_key="tesco",
        store_name="Tesco",
        store_id="tesco",
        unit_price=price,
        min_price=price,
        max_price=price,
        average_price=price,
        confidence=0.6,
        report_count=report_count,
        last_seen_date=TODAY,
    )


def _bump(current):
    return current.model_copy(update={"report_count": current.report_count + 1})


class TestSchema:
    """Tests for database initialization."""

    def test_creates_tables(self, sqlite_store):
        with sqlite3.connect(sqlite_store.db_path) as conn:
            tables = {
                row[0]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            }
        assert {
            "price_records",
            "variants",
            "purchase_history",
            "user_preferences",
            "schema_version",
        } <= tables

    def test_wal_mode(self, sqlite_store):
        with sqlite3.connect(sqlite_store.db_path) as conn:
            mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
        assert mode.lower() == "wal"

    def test_schema_version(self, sqlite_store):
        with sqlite3.connect(sqlite_store.db_path) as conn:
            versions = [row[0] for row in conn.execute("SELECT version FROM schema_version")]
        assert versions == [SQLiteStore.SCHEMA_VERSION]

    def test_reopen_is_idempotent(self, sqlite_store):
        sqlite_store.save_price_records([make_record()])
        reopened = SQLiteStore(db_path=sqlite_store.db_path)
        assert reopened.get_price_record("milk", "tesco") is not None

    def test_unique_item_store_pair(self, sqlite_store):
        sqlite_store.save_price_records([make_record()])
        with pytest.raises(sqlite3.IntegrityError):
            sqlite_store.save_price_records([make_record(), make_record()])


class TestOptimisticWrites:
    """Compare-and-swap ledger writes."""

    def _version(self, store):
        with sqlite3.connect(store.db_path) as conn:
            return conn.execute(
                "SELECT version FROM price_records WHERE normalized_name = 'milk'"
            ).fetchone()[0]

    def test_version_increments(self, sqlite_store):
        sqlite_store.update_price_record("milk", "tesco", lambda current: make_record())
        assert self._version(sqlite_store) == 1

        sqlite_store.update_price_record("milk", "tesco", _bump)
        sqlite_store.update_price_record("milk", "tesco", _bump)
        assert self._version(sqlite_store) == 3

    def test_id_preserved_on_update(self, sqlite_store):
        first = sqlite_store.update_price_record("milk", "tesco", lambda current: make_record())
        second = sqlite_store.update_price_record("milk", "tesco", _bump)
        assert second.id == first.id

    def test_lost_race_recomputes(self, sqlite_store):
        """A write that loses the version check re-reads and runs compute again."""
        sqlite_store.save_price_records([make_record(report_count=1)])
        seen = []

        def compute(current):
            seen.append(current.report_count)
            if len(seen) == 1:
                # Another writer lands between this read and the write
                sqlite_store.update_price_record("milk", "tesco", _bump)
            return _bump(current)

        stored = sqlite_store.update_price_record("milk", "tesco", compute)

        assert seen == [1, 2]
        assert stored.report_count == 3
        assert sqlite_store.get_price_record("milk", "tesco").report_count == 3

    def test_insert_race_retries_as_update(self, sqlite_store):
        seen = []

        def compute(current):
            seen.append(current)
            if len(seen) == 1:
                sqlite_store.update_price_record(
                    "milk", "tesco", lambda current: make_record(report_count=1)
                )
                return make_record(report_count=1)
            return _bump(current)

        stored = sqlite_store.update_price_record("milk", "tesco", compute)

        assert seen[0] is None
        assert seen[1].report_count == 1
        assert stored.report_count == 2
        assert len(sqlite_store.load_price_records()) == 1

    def test_gives_up_after_max_attempts(self, tmp_path):
        store = SQLiteStore(db_path=tmp_path / "conflict.db")
        store.MAX_WRITE_ATTEMPTS = 3
        store.save_price_records([make_record()])
        calls = []

        def always_loses(current):
            calls.append(current)
            store.update_price_record("milk", "tesco", _bump)
            return _bump(current)

        with pytest.raises(StorageConflictError):
            store.update_price_record("milk", "tesco", always_loses)
        assert len(calls) == 3


class TestStorageDetails:
    def test_clear_all(self, sqlite_store):
        sqlite_store.save_price_records([make_record()])
        sqlite_store.add_variant(
            VariantRecord(base_item="milk", variant_name="Milk 2L", size="2", unit="L")
        )
        sqlite_store.add_purchase(
            PurchaseHistoryEntry(
                user_id="alice",
                normalized_name="milk",
                item_name="Milk",
                unit_price=1.0,
                store_name="Tesco",
                purchase_date=TODAY,
            )
        )
        sqlite_store.set_preferred_variant("alice", "milk", "Milk 2L")

        sqlite_store.clear_all()

        assert sqlite_store.load_price_records() == []
        assert sqlite_store.load_variants() == []
        assert sqlite_store.load_purchase_history() == []
        assert sqlite_store.load_preferences() == {}

    def test_save_replaces_ledger(self, sqlite_store):
        sqlite_store.save_price_records([make_record(price=1.0)])
        sqlite_store.save_price_records([make_record(price=2.0)])

        records = sqlite_store.load_price_records()
        assert len(records) == 1
        assert records[0].unit_price == 2.0

    def test_failed_save_rolls_back(self, sqlite_store):
        sqlite_store.save_price_records([make_record(price=1.0)])
        with pytest.raises(sqlite3.IntegrityError):
            sqlite_store.save_price_records([make_record(price=2.0), make_record(price=3.0)])

        assert sqlite_store.get_price_record("milk", "tesco").unit_price == 1.0
