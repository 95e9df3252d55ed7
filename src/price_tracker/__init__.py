"""Price Tracker - Cross-store grocery prices from receipts."""

from .analytics import Analytics
from .config import ConfigManager
from .data_store import (
    BackendType,
    create_data_store,
    DataStore,
    StorageConflictError,
)
from .models import (
    AIEstimateInput,
    BracketMatch,
    Deal,
    IngestResult,
    MatchOutcome,
    PriceEstimate,
    PriceRecord,
    PurchaseHistoryEntry,
    ReceiptInput,
    ReceiptLine,
    Recommendation,
    StoreComparison,
    StoreIdentity,
    StoreType,
    UserPreferences,
    VariantRecord,
    VariantSource,
)
from .output_formatter import OutputFormatter
from .price_ledger import InvalidObservation, PriceLedger
from .receipt_processor import ReceiptProcessor
from .sqlite_store import SQLiteStore
from .store_normalizer import get_all_stores, get_store_info, resolve_store
from .variant_engine import VariantEngine, match_price_bracket

__version__ = "0.1.0"

__all__ = [
    "AIEstimateInput",
    "Analytics",
    "BackendType",
    "BracketMatch",
    "ConfigManager",
    "create_data_store",
    "DataStore",
    "Deal",
    "get_all_stores",
    "get_store_info",
    "IngestResult",
    "InvalidObservation",
    "match_price_bracket",
    "MatchOutcome",
    "OutputFormatter",
    "PriceEstimate",
    "PriceLedger",
    "PriceRecord",
    "PurchaseHistoryEntry",
    "ReceiptInput",
    "ReceiptLine",
    "ReceiptProcessor",
    "Recommendation",
    "resolve_store",
    "SQLiteStore",
    "StorageConflictError",
    "StoreComparison",
    "StoreIdentity",
    "StoreType",
    "UserPreferences",
    "VariantEngine",
    "VariantRecord",
    "VariantSource",
]
