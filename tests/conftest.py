"""Shared test fixtures for Price Tracker."""

import json
from datetime import date

import pytest

from price_tracker.analytics import Analytics
from price_tracker.data_store import DataStore
from price_tracker.price_ledger import PriceLedger
from price_tracker.receipt_processor import ReceiptProcessor
from price_tracker.sqlite_store import SQLiteStore
from price_tracker.variant_engine import VariantEngine

TODAY = date(2026, 10, 19)


@pytest.fixture
def today():
    """Fixed 'today' for recency-sensitive tests."""
    return TODAY


@pytest.fixture
def temp_data_dir(tmp_path):
    """Create a temporary data directory."""
    data_dir = tmp_path / "test_data"
    data_dir.mkdir()
    return data_dir


@pytest.fixture
def data_store(temp_data_dir):
    """Create a DataStore with temporary directory."""
    return DataStore(data_dir=temp_data_dir)


@pytest.fixture
def sqlite_store(tmp_path):
    """Create a SQLite store with a temporary database."""
    return SQLiteStore(db_path=tmp_path / "test.db")


@pytest.fixture(params=["json", "sqlite"])
def any_store(request, tmp_path):
    """Each backend in turn."""
    if request.param == "json":
        return DataStore(data_dir=tmp_path / "json_data")
    return SQLiteStore(db_path=tmp_path / "sqlite" / "prices.db")


@pytest.fixture
def ledger(any_store):
    """PriceLedger over each backend with a fixed clock."""
    return PriceLedger(any_store, today=lambda: TODAY)


@pytest.fixture
def variant_engine(any_store, ledger):
    """VariantEngine sharing the ledger's store."""
    return VariantEngine(any_store, ledger)


@pytest.fixture
def analytics(any_store):
    """Analytics with a fixed clock."""
    return Analytics(any_store, today=lambda: TODAY)


@pytest.fixture
def receipt_processor(any_store, ledger, variant_engine):
    """ReceiptProcessor wired to the fixed-clock ledger."""
    return ReceiptProcessor(any_store, ledger=ledger, variant_engine=variant_engine)


@pytest.fixture
def sample_receipt_data():
    """Sample receipt data dictionary for testing."""
    return {
        "store_name": "TESCO EXPRESS",
        "purchase_date": TODAY.isoformat(),
        "reporter_id": "alice",
        "line_items": [
            {"name": "Milk 2L", "unit_price": 1.80, "size": "2", "unit": "L"},
            {"name": "Bread", "unit_price": 1.10, "quantity": 2},
        ],
    }


@pytest.fixture
def sample_receipt_json(sample_receipt_data):
    """Sample receipt data as JSON string."""
    return json.dumps(sample_receipt_data)
