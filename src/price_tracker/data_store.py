"""Data persistence for Price Tracker.

This module provides data persistence with support for JSON (default) or SQLite backends.
Use create_data_store() to get the appropriate backend based on configuration.
"""

import json
import logging
import threading
from collections.abc import Callable
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Protocol
from uuid import UUID

from .item_normalizer import normalize_item_name, variant_name_key
from .models import PriceRecord, PurchaseHistoryEntry, UserPreferences, VariantRecord

logger = logging.getLogger(__name__)

RecordUpdate = Callable[[PriceRecord | None], PriceRecord | None]


class BackendType(str, Enum):
    """Data storage backend types."""

    JSON = "json"
    SQLITE = "sqlite"


class StorageConflictError(RuntimeError):
    """Raised when a ledger write keeps losing to concurrent writers."""

    def __init__(self, normalized_name: str, store_key: str, attempts: int):
        self.normalized_name = normalized_name
        self.store_key = store_key
        super().__init__(
            f"Could not update price record ({normalized_name!r}, {store_key!r}) "
            f"after {attempts} attempts"
        )


class DataStoreProtocol(Protocol):
    """Protocol defining the data store interface."""

    def get_price_record(self, normalized_name: str, store_key: str) -> PriceRecord | None: ...
    def get_price_records(self, normalized_name: str) -> list[PriceRecord]: ...
    def load_price_records(self) -> list[PriceRecord]: ...
    def save_price_records(self, records: list[PriceRecord]) -> None: ...
    def update_price_record(
        self, normalized_name: str, store_key: str, compute: RecordUpdate
    ) -> PriceRecord | None: ...
    def get_variants(self, base_item: str) -> list[VariantRecord]: ...
    def load_variants(self) -> list[VariantRecord]: ...
    def add_variant(self, variant: VariantRecord) -> bool: ...
    def add_purchase(self, entry: PurchaseHistoryEntry) -> UUID: ...
    def get_purchase_history(
        self, user_id: str, since: date | None = None
    ) -> list[PurchaseHistoryEntry]: ...
    def load_purchase_history(self) -> list[PurchaseHistoryEntry]: ...
    def load_preferences(self) -> dict[str, UserPreferences]: ...
    def save_user_preferences(self, prefs: UserPreferences) -> None: ...
    def get_preferred_variant(self, user_id: str, item_name: str) -> str | None: ...
    def set_preferred_variant(
        self, user_id: str, item_name: str, variant_name: str | None
    ) -> None: ...


class JSONEncoder(json.JSONEncoder):
    """Custom JSON encoder for our data types."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, date):
            return obj.isoformat()
        if isinstance(obj, (set, frozenset)):
            return sorted(obj)
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


class DataStore:
    """Manages JSON file persistence for price data.

    Every read-modify-write holds one re-entrant lock, so concurrent writers
    in this process are applied one after another.
    """

    def __init__(self, data_dir: Path | None = None):
        """Initialize data store.

        Args:
            data_dir: Directory for data files. Defaults to ./data
        """
        self.data_dir = data_dir or Path.cwd() / "data"
        self._lock = threading.RLock()
        self._ensure_directories()

    def _ensure_directories(self) -> None:
        """Create necessary directories if they don't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _price_records_path(self) -> Path:
        return self.data_dir / "price_records.json"

    def _variants_path(self) -> Path:
        return self.data_dir / "variants.json"

    def _purchase_history_path(self) -> Path:
        return self.data_dir / "purchase_history.json"

    def _preferences_path(self) -> Path:
        return self.data_dir / "user_preferences.json"

    def _read(self, path: Path, default: Any) -> Any:
        if not path.exists():
            return default
        with open(path) as f:
            return json.load(f)

    def _write(self, path: Path, data: Any) -> None:
        tmp_path = path.with_suffix(".tmp")
        with open(tmp_path, "w") as f:
            json.dump(data, f, cls=JSONEncoder, indent=2)
        tmp_path.replace(path)

    # --- Price Ledger Operations ---

    def load_price_records(self) -> list[PriceRecord]:
        """Load every ledger record.

        Returns:
            List of PriceRecord
        """
        with self._lock:
            data = self._read(self._price_records_path(), [])
        return [PriceRecord(**record) for record in data]

    def save_price_records(self, records: list[PriceRecord]) -> None:
        """Replace the whole ledger.

        Args:
            records: List of PriceRecord to save
        """
        with self._lock:
            self._write(
                self._price_records_path(), [r.model_dump() for r in records]
            )

    def get_price_record(self, normalized_name: str, store_key: str) -> PriceRecord | None:
        """Get the record for one (item, store) pair."""
        for record in self.load_price_records():
            if record.normalized_name == normalized_name and record.store_key == store_key:
                return record
        return None

    def get_price_records(self, normalized_name: str) -> list[PriceRecord]:
        """Get every store's record for an item."""
        return [r for r in self.load_price_records() if r.normalized_name == normalized_name]

    def update_price_record(
        self, normalized_name: str, store_key: str, compute: RecordUpdate
    ) -> PriceRecord | None:
        """Atomically read, recompute and write one ledger record.

        Args:
            normalized_name: Item key
            store_key: Store key
            compute: Receives the current record (or None) and returns the
                record to store, or None to leave the ledger untouched

        Returns:
            The stored record, or the unchanged current one if compute
            returned None
        """
        with self._lock:
            records = self.load_price_records()
            index = next(
                (
                    i
                    for i, r in enumerate(records)
                    if r.normalized_name == normalized_name and r.store_key == store_key
                ),
                None,
            )
            current = records[index] if index is not None else None
            updated = compute(current)
            if updated is None:
                return current

            if index is None:
                records.append(updated)
            else:
                records[index] = updated
            self.save_price_records(records)
            logger.debug("Wrote price record (%s, %s)", normalized_name, store_key)
            return updated

    # --- Variant Catalog Operations ---

    def load_variants(self) -> list[VariantRecord]:
        with self._lock:
            data = self._read(self._variants_path(), [])
        return [VariantRecord(**variant) for variant in data]

    def get_variants(self, base_item: str) -> list[VariantRecord]:
        """Get variants filed under a base item."""
        return [v for v in self.load_variants() if v.base_item == base_item]

    def add_variant(self, variant: VariantRecord) -> bool:
        """Add a variant unless its name already exists under the base item.

        Returns:
            True if the variant was inserted
        """
        with self._lock:
            variants = self.load_variants()
            wanted = variant_name_key(variant.variant_name)
            if any(
                v.base_item == variant.base_item and variant_name_key(v.variant_name) == wanted
                for v in variants
            ):
                return False
            variants.append(variant)
            self._write(self._variants_path(), [v.model_dump() for v in variants])
            return True

    # --- Purchase History Operations ---

    def load_purchase_history(self) -> list[PurchaseHistoryEntry]:
        with self._lock:
            data = self._read(self._purchase_history_path(), [])
        return [PurchaseHistoryEntry(**entry) for entry in data]

    def add_purchase(self, entry: PurchaseHistoryEntry) -> UUID:
        """Append a purchase to the history log.

        Returns:
            Entry ID
        """
        with self._lock:
            history = self.load_purchase_history()
            history.append(entry)
            self._write(
                self._purchase_history_path(), [e.model_dump() for e in history]
            )
        return entry.id

    def get_purchase_history(
        self, user_id: str, since: date | None = None
    ) -> list[PurchaseHistoryEntry]:
        """Get a user's purchases, oldest first.

        Args:
            user_id: User to filter by
            since: Optional earliest purchase date (inclusive)
        """
        entries = [
            e
            for e in self.load_purchase_history()
            if e.user_id == user_id and (since is None or e.purchase_date >= since)
        ]
        return sorted(entries, key=lambda e: e.purchase_date)

    # --- User Preferences Operations ---

    def load_preferences(self) -> dict[str, UserPreferences]:
        """Load all user preferences.

        Returns:
            Dict mapping user_id -> UserPreferences
        """
        with self._lock:
            data = self._read(self._preferences_path(), {})
        return {user_id: UserPreferences(**prefs) for user_id, prefs in data.items()}

    def save_user_preferences(self, prefs: UserPreferences) -> None:
        with self._lock:
            all_prefs = self.load_preferences()
            all_prefs[prefs.user_id] = prefs
            self._write(
                self._preferences_path(),
                {user_id: p.model_dump() for user_id, p in all_prefs.items()},
            )

    def get_preferred_variant(self, user_id: str, item_name: str) -> str | None:
        prefs = self.load_preferences().get(user_id)
        if prefs is None:
            return None
        return prefs.preferred_variants.get(normalize_item_name(item_name))

    def set_preferred_variant(
        self, user_id: str, item_name: str, variant_name: str | None
    ) -> None:
        """Record (or clear, with None) a user's variant choice for an item."""
        with self._lock:
            prefs = self.load_preferences().get(user_id) or UserPreferences(user_id=user_id)
            key = normalize_item_name(item_name)
            if variant_name is None:
                prefs.preferred_variants.pop(key, None)
            else:
                prefs.preferred_variants[key] = variant_name
            self.save_user_preferences(prefs)


def create_data_store(
    backend: BackendType = BackendType.JSON,
    data_dir: Path | None = None,
    db_path: Path | None = None,
) -> DataStoreProtocol:
    """Create a data store with the specified backend.

    Args:
        backend: Which backend to use (json or sqlite)
        data_dir: Directory for data files (used by JSON backend, also used
                  as base path for SQLite if db_path not specified)
        db_path: Path to SQLite database file (only used by SQLite backend)

    Returns:
        A DataStore or SQLiteStore instance

    Example:
        # Use JSON backend (default)
        store = create_data_store()

        # Use SQLite with custom path
        store = create_data_store(
            BackendType.SQLITE,
            db_path=Path("./my_data/prices.db")
        )
    """
    if backend == BackendType.SQLITE:
        from .sqlite_store import SQLiteStore

        if db_path is None and data_dir is not None:
            db_path = data_dir / "prices.db"

        return SQLiteStore(db_path=db_path)
    else:
        return DataStore(data_dir=data_dir)
