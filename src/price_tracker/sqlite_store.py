"""SQLite-based data persistence for Price Tracker.

This module provides SQLite database storage as an alternative to JSON files.
It implements the same interface as DataStore for seamless switching.

Ledger writes use optimistic concurrency: every price record carries a
``version`` counter and an update only lands if the version it read is
still current. Losers re-read and recompute.
"""

import logging
import random
import sqlite3
import time
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from uuid import UUID

from .data_store import RecordUpdate, StorageConflictError
from .item_normalizer import normalize_item_name, variant_name_key
from .models import (
    PriceRecord,
    PurchaseHistoryEntry,
    UserPreferences,
    VariantRecord,
    VariantSource,
)

logger = logging.getLogger(__name__)


def adapt_uuid(uuid_val: UUID) -> str:
    """Adapt UUID to string for SQLite."""
    return str(uuid_val)


def adapt_datetime(dt: datetime) -> str:
    """Adapt datetime to ISO string for SQLite."""
    return dt.isoformat()


def adapt_date(d: date) -> str:
    """Adapt date to ISO string for SQLite."""
    return d.isoformat()


# Register adapters
sqlite3.register_adapter(UUID, adapt_uuid)
sqlite3.register_adapter(datetime, adapt_datetime)
sqlite3.register_adapter(date, adapt_date)


class SQLiteStore:
    """Manages SQLite database persistence for price data."""

    SCHEMA_VERSION = 1
    MAX_WRITE_ATTEMPTS = 20

    def __init__(self, db_path: Path | None = None, timeout: float = 30.0):
        """Initialize SQLite store.

        Args:
            db_path: Path to the SQLite database file. Defaults to ./data/prices.db
            timeout: Seconds a connection waits on a locked database
        """
        if db_path is None:
            db_path = Path.cwd() / "data" / "prices.db"
        self.db_path = db_path
        self.timeout = timeout
        self._ensure_directories()
        self._init_database()

    def _ensure_directories(self) -> None:
        """Create necessary directories if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _get_connection(self):
        """Get a database connection with proper cleanup."""
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_database(self) -> None:
        """Initialize database schema if not exists."""
        with self._get_connection() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript("""
                -- Schema version tracking
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                );

                -- Price ledger, one row per (item, store)
                CREATE TABLE IF NOT EXISTS price_records (
                    id TEXT PRIMARY KEY,
                    normalized_name TEXT NOT NULL,
                    display_name TEXT NOT NULL,
                    store_key TEXT NOT NULL,
                    store_name TEXT NOT NULL,
                    store_id TEXT,
                    unit_price REAL NOT NULL,
                    min_price REAL NOT NULL,
                    max_price REAL NOT NULL,
                    average_price REAL NOT NULL,
                    confidence REAL NOT NULL,
                    report_count INTEGER NOT NULL DEFAULT 0,
                    last_seen_date TEXT NOT NULL,
                    size TEXT,
                    unit TEXT,
                    variant_name TEXT,
                    last_reported_by TEXT,
                    updated_at TEXT NOT NULL,
                    version INTEGER NOT NULL DEFAULT 1,
                    UNIQUE(normalized_name, store_key)
                );

                CREATE INDEX IF NOT EXISTS idx_price_records_item
                    ON price_records(normalized_name);

                -- Variant catalog
                CREATE TABLE IF NOT EXISTS variants (
                    id TEXT PRIMARY KEY,
                    base_item TEXT NOT NULL,
                    variant_name TEXT NOT NULL,
                    name_key TEXT NOT NULL,
                    size TEXT NOT NULL,
                    unit TEXT NOT NULL,
                    category TEXT NOT NULL DEFAULT 'Other',
                    estimated_price REAL,
                    source TEXT NOT NULL DEFAULT 'manual',
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_variants_base_item
                    ON variants(base_item);

                CREATE UNIQUE INDEX IF NOT EXISTS idx_variants_unique_name
                    ON variants(base_item, name_key);

                -- Purchase history for analytics
                CREATE TABLE IF NOT EXISTS purchase_history (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    normalized_name TEXT NOT NULL,
                    item_name TEXT NOT NULL,
                    unit_price REAL NOT NULL,
                    quantity REAL NOT NULL DEFAULT 1.0,
                    store_name TEXT NOT NULL,
                    store_id TEXT,
                    purchase_date TEXT NOT NULL,
                    size TEXT,
                    unit TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_purchase_history_user_date
                    ON purchase_history(user_id, purchase_date);

                -- User preferences
                CREATE TABLE IF NOT EXISTS user_preferences (
                    user_id TEXT NOT NULL,
                    item_name TEXT NOT NULL,
                    variant_name TEXT NOT NULL,
                    PRIMARY KEY (user_id, item_name)
                );

                -- Record schema version
                INSERT OR IGNORE INTO schema_version (version) VALUES (1);
            """)

    def clear_all(self) -> None:
        """Delete every ledger, catalog, history and preference row."""
        with self._get_connection() as conn:
            conn.executescript("""
                DELETE FROM price_records;
                DELETE FROM variants;
                DELETE FROM purchase_history;
                DELETE FROM user_preferences;
            """)

    # --- Price Ledger Operations ---

    def _row_to_record(self, row: sqlite3.Row) -> PriceRecord:
        return PriceRecord(
            id=UUID(row["id"]),
            normalized_name=row["normalized_name"],
            display_name=row["display_name"],
            store_key=row["store_key"],
            store_name=row["store_name"],
            store_id=row["store_id"],
            unit_price=row["unit_price"],
            min_price=row["min_price"],
            max_price=row["max_price"],
            average_price=row["average_price"],
            confidence=row["confidence"],
            report_count=row["report_count"],
            last_seen_date=date.fromisoformat(row["last_seen_date"]),
            size=row["size"],
            unit=row["unit"],
            variant_name=row["variant_name"],
            last_reported_by=row["last_reported_by"],
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def _record_values(self, record: PriceRecord) -> tuple:
        return (
            record.display_name,
            record.store_name,
            record.store_id,
            record.unit_price,
            record.min_price,
            record.max_price,
            record.average_price,
            record.confidence,
            record.report_count,
            record.last_seen_date,
            record.size,
            record.unit,
            record.variant_name,
            record.last_reported_by,
            record.updated_at,
        )

    def load_price_records(self) -> list[PriceRecord]:
        """Load every ledger record.

        Returns:
            List of PriceRecord
        """
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM price_records ORDER BY normalized_name, store_key"
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def save_price_records(self, records: list[PriceRecord]) -> None:
        """Replace the whole ledger.

        Args:
            records: List of PriceRecord to save
        """
        with self._get_connection() as conn:
            conn.execute("DELETE FROM price_records")
            for record in records:
                self._insert_record(conn, record)

    def _insert_record(self, conn: sqlite3.Connection, record: PriceRecord) -> None:
        conn.execute(
            """
            INSERT INTO price_records
            (id, normalized_name, store_key, display_name, store_name, store_id,
             unit_price, min_price, max_price, average_price, confidence,
             report_count, last_seen_date, size, unit, variant_name,
             last_reported_by, updated_at, version)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1)
            """,
            (record.id, record.normalized_name, record.store_key)
            + self._record_values(record),
        )

    def get_price_record(self, normalized_name: str, store_key: str) -> PriceRecord | None:
        """Get the record for one (item, store) pair."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM price_records WHERE normalized_name = ? AND store_key = ?",
                (normalized_name, store_key),
            ).fetchone()
        return self._row_to_record(row) if row else None

    def get_price_records(self, normalized_name: str) -> list[PriceRecord]:
        """Get every store's record for an item."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM price_records WHERE normalized_name = ? ORDER BY store_key",
                (normalized_name,),
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def update_price_record(
        self, normalized_name: str, store_key: str, compute: RecordUpdate
    ) -> PriceRecord | None:
        """Atomically read, recompute and write one ledger record.

        The write is a compare-and-swap on the row's version. If another
        writer got there first, the record is re-read and compute runs again.

        Args:
            normalized_name: Item key
            store_key: Store key
            compute: Receives the current record (or None) and returns the
                record to store, or None to leave the ledger untouched

        Returns:
            The stored record, or the unchanged current one if compute
            returned None

        Raises:
            StorageConflictError: If every attempt lost to a concurrent writer
        """
        for attempt in range(1, self.MAX_WRITE_ATTEMPTS + 1):
            with self._get_connection() as conn:
                rows = conn.execute(
                    "SELECT * FROM price_records WHERE normalized_name = ? AND store_key = ?",
                    (normalized_name, store_key),
                ).fetchall()
                row = rows[0] if rows else None
                current = self._row_to_record(row) if row else None
                updated = compute(current)
                if updated is None:
                    return current

                if row is None:
                    try:
                        self._insert_record(conn, updated)
                    except sqlite3.IntegrityError:
                        logger.debug(
                            "Insert race on (%s, %s), attempt %d",
                            normalized_name,
                            store_key,
                            attempt,
                        )
                        continue
                    return updated

                cursor = conn.execute(
                    """
                    UPDATE price_records
                    SET display_name = ?, store_name = ?, store_id = ?,
                        unit_price = ?, min_price = ?, max_price = ?,
                        average_price = ?, confidence = ?, report_count = ?,
                        last_seen_date = ?, size = ?, unit = ?, variant_name = ?,
                        last_reported_by = ?, updated_at = ?, version = version + 1
                    WHERE id = ? AND version = ?
                    """,
                    self._record_values(updated) + (row["id"], row["version"]),
                )
                if cursor.rowcount == 1:
                    return updated.model_copy(update={"id": UUID(row["id"])})

            logger.debug(
                "Version conflict on (%s, %s), attempt %d",
                normalized_name,
                store_key,
                attempt,
            )
            time.sleep(random.uniform(0, 0.002 * attempt))

        raise StorageConflictError(normalized_name, store_key, self.MAX_WRITE_ATTEMPTS)

    # --- Variant Catalog Operations ---

    def _row_to_variant(self, row: sqlite3.Row) -> VariantRecord:
        return VariantRecord(
            id=UUID(row["id"]),
            base_item=row["base_item"],
            variant_name=row["variant_name"],
            size=row["size"],
            unit=row["unit"],
            category=row["category"],
            estimated_price=row["estimated_price"],
            source=VariantSource(row["source"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def load_variants(self) -> list[VariantRecord]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM variants ORDER BY base_item, created_at"
            ).fetchall()
        return [self._row_to_variant(row) for row in rows]

    def get_variants(self, base_item: str) -> list[VariantRecord]:
        """Get variants filed under a base item."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM variants WHERE base_item = ? ORDER BY created_at",
                (base_item,),
            ).fetchall()
        return [self._row_to_variant(row) for row in rows]

    def add_variant(self, variant: VariantRecord) -> bool:
        """Add a variant unless its name already exists under the base item.

        Returns:
            True if the variant was inserted
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO variants
                (id, base_item, variant_name, name_key, size, unit, category,
                 estimated_price, source, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    variant.id,
                    variant.base_item,
                    variant.variant_name,
                    variant_name_key(variant.variant_name),
                    variant.size,
                    variant.unit,
                    variant.category,
                    variant.estimated_price,
                    variant.source.value,
                    variant.created_at,
                ),
            )
            return cursor.rowcount == 1

    # --- Purchase History Operations ---

    def _row_to_purchase(self, row: sqlite3.Row) -> PurchaseHistoryEntry:
        return PurchaseHistoryEntry(
            id=UUID(row["id"]),
            user_id=row["user_id"],
            normalized_name=row["normalized_name"],
            item_name=row["item_name"],
            unit_price=row["unit_price"],
            quantity=row["quantity"],
            store_name=row["store_name"],
            store_id=row["store_id"],
            purchase_date=date.fromisoformat(row["purchase_date"]),
            size=row["size"],
            unit=row["unit"],
        )

    def load_purchase_history(self) -> list[PurchaseHistoryEntry]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM purchase_history ORDER BY purchase_date, rowid"
            ).fetchall()
        return [self._row_to_purchase(row) for row in rows]

    def add_purchase(self, entry: PurchaseHistoryEntry) -> UUID:
        """Append a purchase to the history log.

        Returns:
            Entry ID
        """
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO purchase_history
                (id, user_id, normalized_name, item_name, unit_price, quantity,
                 store_name, store_id, purchase_date, size, unit)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.id,
                    entry.user_id,
                    entry.normalized_name,
                    entry.item_name,
                    entry.unit_price,
                    entry.quantity,
                    entry.store_name,
                    entry.store_id,
                    entry.purchase_date,
                    entry.size,
                    entry.unit,
                ),
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
        query = "SELECT * FROM purchase_history WHERE user_id = ?"
        params: list = [user_id]
        if since is not None:
            query += " AND purchase_date >= ?"
            params.append(since)
        query += " ORDER BY purchase_date, rowid"

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_purchase(row) for row in rows]

    # --- User Preferences Operations ---

    def load_preferences(self) -> dict[str, UserPreferences]:
        """Load all user preferences.

        Returns:
            Dict mapping user_id -> UserPreferences
        """
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT user_id, item_name, variant_name FROM user_preferences"
            ).fetchall()

        prefs: dict[str, UserPreferences] = {}
        for row in rows:
            user = prefs.setdefault(row["user_id"], UserPreferences(user_id=row["user_id"]))
            user.preferred_variants[row["item_name"]] = row["variant_name"]
        return prefs

    def save_user_preferences(self, prefs: UserPreferences) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM user_preferences WHERE user_id = ?", (prefs.user_id,))
            conn.executemany(
                """
                INSERT INTO user_preferences (user_id, item_name, variant_name)
                VALUES (?, ?, ?)
                """,
                [
                    (prefs.user_id, item_name, variant_name)
                    for item_name, variant_name in prefs.preferred_variants.items()
                ],
            )

    def get_preferred_variant(self, user_id: str, item_name: str) -> str | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT variant_name FROM user_preferences WHERE user_id = ? AND item_name = ?",
                (user_id, normalize_item_name(item_name)),
            ).fetchone()
        return row["variant_name"] if row else None

    def set_preferred_variant(
        self, user_id: str, item_name: str, variant_name: str | None
    ) -> None:
        """Record (or clear, with None) a user's variant choice for an item."""
        key = normalize_item_name(item_name)
        with self._get_connection() as conn:
            if variant_name is None:
                conn.execute(
                    "DELETE FROM user_preferences WHERE user_id = ? AND item_name = ?",
                    (user_id, key),
                )
            else:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO user_preferences (user_id, item_name, variant_name)
                    VALUES (?, ?, ?)
                    """,
                    (user_id, key, variant_name),
                )
