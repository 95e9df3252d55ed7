"""Migration from JSON to SQLite data storage.

Copies the price ledger, variant catalog, purchase history and user
preferences from a JSON data directory into a SQLite database. It can be run
safely multiple times: a database that already holds data is left alone
unless the migration is forced.
"""

import logging
from pathlib import Path

from .data_store import DataStore
from .sqlite_store import SQLiteStore

logger = logging.getLogger(__name__)


class MigrationError(Exception):
    """Raised when migration encounters an error."""


class JSONToSQLiteMigrator:
    """Migrates data from JSON files to SQLite database."""

    JSON_FILES = (
        "price_records.json",
        "variants.json",
        "purchase_history.json",
        "user_preferences.json",
    )

    def __init__(
        self,
        json_data_dir: Path | None = None,
        sqlite_db_path: Path | None = None,
    ):
        """Initialize migrator.

        Args:
            json_data_dir: Directory containing JSON data files.
                          Defaults to ./data
            sqlite_db_path: Path to SQLite database file.
                           Defaults to <json_data_dir>/prices.db
        """
        self.json_data_dir = json_data_dir or Path.cwd() / "data"
        self.sqlite_db_path = sqlite_db_path or (self.json_data_dir / "prices.db")

        self.json_store = DataStore(data_dir=self.json_data_dir)
        self.sqlite_store = SQLiteStore(db_path=self.sqlite_db_path)

        self.stats = {
            "price_records": 0,
            "variants": 0,
            "purchases": 0,
            "users": 0,
        }

    def check_json_data_exists(self) -> bool:
        """Check if there is JSON data to migrate.

        Returns:
            True if any JSON data files exist
        """
        return any((self.json_data_dir / name).exists() for name in self.JSON_FILES)

    def check_sqlite_has_data(self) -> bool:
        """Check if SQLite database already has data.

        Returns:
            True if database has existing data
        """
        return bool(
            self.sqlite_store.load_price_records()
            or self.sqlite_store.load_variants()
            or self.sqlite_store.load_purchase_history()
        )

    def migrate_price_records(self) -> int:
        """Migrate the price ledger.

        Returns:
            Number of records migrated
        """
        records = self.json_store.load_price_records()
        if records:
            self.sqlite_store.save_price_records(records)

        self.stats["price_records"] = len(records)
        return len(records)

    def migrate_variants(self) -> int:
        """Migrate the variant catalog.

        Returns:
            Number of variants migrated
        """
        count = sum(
            1 for variant in self.json_store.load_variants()
            if self.sqlite_store.add_variant(variant)
        )
        self.stats["variants"] = count
        return count

    def migrate_purchase_history(self) -> int:
        """Migrate purchase history.

        Returns:
            Number of purchases migrated
        """
        history = self.json_store.load_purchase_history()
        for entry in history:
            self.sqlite_store.add_purchase(entry)

        self.stats["purchases"] = len(history)
        return len(history)

    def migrate_user_preferences(self) -> int:
        """Migrate user preferences.

        Returns:
            Number of users migrated
        """
        preferences = self.json_store.load_preferences()
        for prefs in preferences.values():
            self.sqlite_store.save_user_preferences(prefs)

        self.stats["users"] = len(preferences)
        return len(preferences)

    def verify_migration(self) -> dict[str, bool]:
        """Verify that data was migrated correctly.

        Returns:
            Dict mapping data type to verification result
        """
        json_records = self.json_store.load_price_records()
        sqlite_records = self.sqlite_store.load_price_records()
        json_keys = {(r.normalized_name, r.store_key) for r in json_records}
        sqlite_keys = {(r.normalized_name, r.store_key) for r in sqlite_records}

        json_prefs = self.json_store.load_preferences()
        sqlite_prefs = self.sqlite_store.load_preferences()

        return {
            "price_records": json_keys == sqlite_keys,
            "variants": len(self.json_store.load_variants())
            == len(self.sqlite_store.load_variants()),
            "purchase_history": len(self.json_store.load_purchase_history())
            == len(self.sqlite_store.load_purchase_history()),
            "user_preferences": {
                user_id: p.preferred_variants for user_id, p in json_prefs.items()
                if p.preferred_variants
            }
            == {user_id: p.preferred_variants for user_id, p in sqlite_prefs.items()},
        }

    def run_migration(self, force: bool = False) -> dict[str, int]:
        """Run the full migration.

        Args:
            force: If True, replace any data already in the SQLite database

        Returns:
            Dict with migration statistics

        Raises:
            MigrationError: If data verification fails
        """
        if not self.check_json_data_exists():
            logger.warning("No JSON data found to migrate in %s", self.json_data_dir)
            return self.stats

        if self.check_sqlite_has_data():
            if not force:
                raise MigrationError(
                    f"{self.sqlite_db_path} already contains data; use force to overwrite"
                )
            logger.warning("Clearing existing data in %s", self.sqlite_db_path)
            self.sqlite_store.clear_all()

        logger.info("Migrating %s to %s", self.json_data_dir, self.sqlite_db_path)
        logger.info("Price records: %d", self.migrate_price_records())
        logger.info("Variants: %d", self.migrate_variants())
        logger.info("Purchases: %d", self.migrate_purchase_history())
        logger.info("Users: %d", self.migrate_user_preferences())

        verification = self.verify_migration()
        failed = [k for k, ok in verification.items() if not ok]
        if failed:
            raise MigrationError(f"Migration verification failed for: {failed}")

        logger.info("Migration verified")
        return self.stats


def migrate(
    data_dir: Path | None = None,
    db_path: Path | None = None,
    force: bool = False,
) -> dict[str, int]:
    """Convenience function to run migration.

    Args:
        data_dir: Directory containing JSON data files
        db_path: Path to SQLite database file
        force: If True, overwrite existing SQLite data

    Returns:
        Migration statistics
    """
    migrator = JSONToSQLiteMigrator(json_data_dir=data_dir, sqlite_db_path=db_path)
    return migrator.run_migration(force=force)
