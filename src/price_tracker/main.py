"""CLI entry point for Price Tracker."""

import json
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from .analytics import Analytics
from .config import ConfigManager
from .data_store import BackendType, DataStoreProtocol, create_data_store
from .migrate_to_sqlite import migrate as run_migrate
from .models import AIEstimateInput, StoreType
from .output_formatter import OutputFormatter
from .price_ledger import PriceLedger
from .receipt_processor import ReceiptProcessor
from .store_normalizer import get_all_stores, get_store_info, get_stores_by_type, resolve_store
from .variant_engine import VariantEngine

app = typer.Typer(
    name="prices",
    help="Cross-store grocery price tracking from receipts",
    no_args_is_help=True,
)

# Global state for formatter and config (set by callback)
formatter: OutputFormatter = OutputFormatter()
config: ConfigManager | None = None
data_store: DataStoreProtocol | None = None


def get_config() -> ConfigManager:
    """Get or create ConfigManager instance."""
    global config
    if config is None:
        config = ConfigManager()
    return config


def get_data_store() -> DataStoreProtocol:
    """Get or create the data store using config values."""
    global data_store
    if data_store is None:
        cfg = get_config()
        backend = BackendType(cfg.data.backend)
        data_store = create_data_store(backend=backend, data_dir=cfg.data.storage_dir)
    return data_store


def get_ledger() -> PriceLedger:
    return PriceLedger(get_data_store(), get_config().ledger)


def get_variant_engine() -> VariantEngine:
    return VariantEngine(get_data_store(), get_ledger(), get_config().variants)


def get_analytics() -> Analytics:
    return Analytics(get_data_store(), get_config().analytics)


def configure_logging(level: str) -> None:
    """Send library logs to stderr through Rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main(
    json_output: Annotated[
        bool, typer.Option("--json", help="Output as JSON for programmatic use")
    ] = False,
    data_dir: Annotated[Path | None, typer.Option("--data-dir", help="Data directory path")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """Price Tracker CLI - Know what your groceries cost, and where."""
    global formatter, config, data_store

    formatter = OutputFormatter(json_mode=json_output)

    # Load config early
    config = ConfigManager()
    configure_logging("DEBUG" if verbose else config.logging.level)

    # CLI --data-dir overrides config, which overrides default
    effective_data_dir = data_dir if data_dir else config.data.storage_dir
    backend = BackendType(config.data.backend)

    data_store = create_data_store(backend=backend, data_dir=effective_data_dir)


# Store subcommand group
store_app = typer.Typer(help="Store name resolution and catalogue")
app.add_typer(store_app, name="store")


@store_app.command("resolve")
def store_resolve(
    name: Annotated[str, typer.Argument(help="Store name as printed on a receipt")],
) -> None:
    """Resolve a store name to its canonical id."""
    try:
        store_id = resolve_store(name)
        info = get_store_info(store_id)
        output_data = {
            "success": True,
            "data": {
                "resolution": {
                    "input": name,
                    "store_id": store_id,
                    "display_name": info.display_name if info else None,
                }
            },
        }
        formatter.output(output_data)
    except Exception as e:
        formatter.error(str(e))
        raise typer.Exit(code=1)


@store_app.command("list")
def store_list(
    store_type: Annotated[
        StoreType | None, typer.Option("--type", "-t", help="Filter by store type")
    ] = None,
) -> None:
    """List known stores, largest first."""
    try:
        stores = get_stores_by_type(store_type) if store_type else get_all_stores()
        output_data = {
            "success": True,
            "data": {"stores": [s.model_dump(mode="json") for s in stores]},
        }
        formatter.output(output_data, f"{len(stores)} stores")
    except Exception as e:
        formatter.error(str(e))
        raise typer.Exit(code=1)


@store_app.command("info")
def store_info(
    store_id: Annotated[str, typer.Argument(help="Canonical store id")],
) -> None:
    """Show details for one store."""
    info = get_store_info(store_id)
    if info is None:
        formatter.error(f"Unknown store: {store_id}", error_code="STORE_NOT_FOUND")
        raise typer.Exit(code=1)
    formatter.output({"success": True, "data": {"store_info": info.model_dump(mode="json")}})


# Receipt subcommand group
receipt_app = typer.Typer(help="Receipt processing commands")
app.add_typer(receipt_app, name="receipt")


@receipt_app.command("process")
def process_receipt(
    data: Annotated[str | None, typer.Option("--data", "-d", help="JSON receipt data")] = None,
    file: Annotated[Path | None, typer.Option("--file", "-f", help="Path to JSON file")] = None,
) -> None:
    """Record the prices from a confirmed receipt."""
    try:
        if not data and not file:
            formatter.error("Must provide either --data or --file")
            raise typer.Exit(code=1)

        if data:
            receipt_dict = json.loads(data)
        else:
            with open(file) as f:  # type: ignore[arg-type]
                receipt_dict = json.load(f)

        processor = ReceiptProcessor(get_data_store(), config=get_config())
        result = processor.process_receipt_dict(receipt_dict)

        output_data = {
            "success": True,
            "data": {"ingest": result.model_dump(mode="json")},
        }
        formatter.output(
            output_data,
            f"Recorded {result.accepted} price(s) from {result.store_name}",
        )
    except typer.Exit:
        raise
    except json.JSONDecodeError as e:
        formatter.error(f"Invalid JSON: {e}")
        raise typer.Exit(code=1)
    except Exception as e:
        formatter.error(str(e))
        raise typer.Exit(code=1)


# Price subcommand group
price_app = typer.Typer(help="Price lookup commands")
app.add_typer(price_app, name="price")


@price_app.command("estimate")
def price_estimate(
    items: Annotated[list[str], typer.Argument(help="Item name(s)")],
) -> None:
    """Cheapest and average known price for one or more items."""
    try:
        ledger = get_ledger()
        if len(items) > 1:
            estimates = ledger.batch_get_estimates(items)
            output_data = {
                "success": True,
                "data": {
                    "estimates": {
                        name: est.model_dump(mode="json") if est else None
                        for name, est in estimates.items()
                    }
                },
            }
            formatter.output(output_data)
            return

        estimate = ledger.get_price_estimate(items[0])
        if estimate is None:
            formatter.warning(f"No price data for {items[0]}")
            return
        formatter.output(
            {"success": True, "data": {"estimate": estimate.model_dump(mode="json")}}
        )
    except Exception as e:
        formatter.error(str(e))
        raise typer.Exit(code=1)


@price_app.command("compare")
def price_compare(
    item: Annotated[str, typer.Argument(help="Item name")],
    size: Annotated[str | None, typer.Option("--size", help="Package size, e.g. 2L")] = None,
    stores: Annotated[
        list[str] | None, typer.Option("--store", "-s", help="Store to include (repeatable)")
    ] = None,
) -> None:
    """Compare an item's price across stores."""
    try:
        comparison = get_ledger().compare_across_stores(item, size=size, store_ids=stores or ())
        if comparison.stores_with_data == 0 and not stores:
            formatter.warning(f"No price data for {item}")
            return
        formatter.output(
            {"success": True, "data": {"comparison": comparison.model_dump(mode="json")}}
        )
    except Exception as e:
        formatter.error(str(e))
        raise typer.Exit(code=1)


@price_app.command("records")
def price_records(
    item: Annotated[str, typer.Argument(help="Item name")],
) -> None:
    """Show the raw ledger records for an item."""
    try:
        records = get_ledger().get_records(item)
        if not records:
            formatter.warning(f"No price data for {item}")
            return
        formatter.output(
            {
                "success": True,
                "data": {"records": [r.model_dump(mode="json") for r in records]},
            }
        )
    except Exception as e:
        formatter.error(str(e))
        raise typer.Exit(code=1)


@price_app.command("ai-estimate")
def price_ai_estimate(
    item: Annotated[str, typer.Argument(help="Item name")],
    price: Annotated[float, typer.Argument(help="Estimated price")],
    user: Annotated[str, typer.Option("--user", "-u", help="Requesting user")] = "cli",
    size: Annotated[str | None, typer.Option("--size", help="Package size")] = None,
    unit: Annotated[str | None, typer.Option("--unit", help="Package unit")] = None,
    variant: Annotated[str | None, typer.Option("--variant", help="Variant name")] = None,
) -> None:
    """Record an AI-estimated price."""
    try:
        estimate = AIEstimateInput(
            normalized_name=item,
            item_name=item,
            unit_price=price,
            user_id=user,
            size=size,
            unit=unit,
            variant_name=variant,
        )
        record = get_ledger().record_ai_estimate(estimate)
        if record is None:
            formatter.warning(f"Estimate for {item} not recorded")
            return
        formatter.output(
            {"success": True, "data": {"records": [record.model_dump(mode="json")]}},
            f"Recorded AI estimate for {item}",
        )
    except Exception as e:
        formatter.error(str(e))
        raise typer.Exit(code=1)


@price_app.command("stats")
def price_stats(
    item: Annotated[str, typer.Argument(help="Item name")],
    user: Annotated[str, typer.Option("--user", "-u", help="User id")],
) -> None:
    """What a user has recently paid for an item, and which way it's heading."""
    try:
        stats = get_analytics().price_stats(user, item)
        if stats is None:
            formatter.warning(f"No recent purchases of {item}")
            return
        formatter.output({"success": True, "data": {"stats": stats.model_dump(mode="json")}})
    except Exception as e:
        formatter.error(str(e))
        raise typer.Exit(code=1)


# Variant subcommand group
variant_app = typer.Typer(help="Variant catalog commands")
app.add_typer(variant_app, name="variant")


@variant_app.command("list")
def variant_list(
    item: Annotated[str, typer.Argument(help="Item name")],
    user: Annotated[
        str | None, typer.Option("--user", "-u", help="Price from this user's purchases first")
    ] = None,
    store: Annotated[
        str | None, typer.Option("--store", "-s", help="Prefer this store's price")
    ] = None,
) -> None:
    """List known variants of an item with their best known prices."""
    try:
        variants = get_variant_engine().get_variants_with_prices(item, store=store, user_id=user)
        formatter.output(
            {
                "success": True,
                "data": {"variants": [v.model_dump(mode="json") for v in variants]},
            }
        )
    except Exception as e:
        formatter.error(str(e))
        raise typer.Exit(code=1)


@variant_app.command("add")
def variant_add(
    item: Annotated[str, typer.Argument(help="Item name")],
    name: Annotated[str, typer.Argument(help="Variant name, e.g. 'Milk 2L'")],
    size: Annotated[str, typer.Option("--size", help="Package size")],
    unit: Annotated[str, typer.Option("--unit", help="Package unit")],
    price: Annotated[float | None, typer.Option("--price", "-p", help="Typical price")] = None,
    category: Annotated[str, typer.Option("--category", "-c", help="Category")] = "Other",
) -> None:
    """Add a variant to the catalog by hand."""
    try:
        variant = get_variant_engine().add_manual_variant(
            item, name, size, unit, category=category, estimated_price=price
        )
        if variant is None:
            formatter.error(f"Variant already exists: {name}", error_code="DUPLICATE_VARIANT")
            raise typer.Exit(code=1)
        formatter.output(
            {"success": True, "data": {"variants": [variant.model_dump(mode="json")]}},
            f"Added variant {name}",
        )
    except typer.Exit:
        raise
    except Exception as e:
        formatter.error(str(e))
        raise typer.Exit(code=1)


# Preferences subcommand group
prefs_app = typer.Typer(help="User preference commands")
app.add_typer(prefs_app, name="prefs")


@prefs_app.command("variant")
def prefs_variant(
    user: Annotated[str, typer.Argument(help="User id")],
    item: Annotated[str | None, typer.Argument(help="Item name")] = None,
    variant: Annotated[str | None, typer.Argument(help="Preferred variant name")] = None,
    clear: Annotated[bool, typer.Option("--clear", help="Forget the preference")] = False,
) -> None:
    """View or set a user's preferred variants."""
    try:
        ds = get_data_store()
        message = ""
        if item and (variant or clear):
            ds.set_preferred_variant(user, item, None if clear else variant)
            message = f"Updated preferences for {user}"

        prefs = ds.load_preferences().get(user)
        output_data = {
            "success": True,
            "data": {
                "preferences": {
                    "user_id": user,
                    "preferred_variants": prefs.preferred_variants if prefs else {},
                }
            },
        }
        formatter.output(output_data, message)
    except Exception as e:
        formatter.error(str(e))
        raise typer.Exit(code=1)


@app.command()
def deals(
    user: Annotated[str, typer.Argument(help="User id")],
) -> None:
    """Recent purchases that were cheaper elsewhere."""
    try:
        found = get_analytics().find_deals(user)
        if not found:
            formatter.warning("No deals found")
            return
        formatter.output(
            {"success": True, "data": {"deals": [d.model_dump(mode="json") for d in found]}},
            f"Found {len(found)} deal(s)",
        )
    except Exception as e:
        formatter.error(str(e))
        raise typer.Exit(code=1)


@app.command()
def recommend(
    user: Annotated[str, typer.Argument(help="User id")],
) -> None:
    """Recommend a store to switch to."""
    try:
        rec = get_analytics().recommend_store(user)
        if rec is None:
            formatter.warning("Not enough recent purchases for a recommendation")
            return
        formatter.output(
            {"success": True, "data": {"recommendation": rec.model_dump(mode="json")}}
        )
    except Exception as e:
        formatter.error(str(e))
        raise typer.Exit(code=1)


@app.command()
def spending(
    user: Annotated[str, typer.Argument(help="User id")],
    days: Annotated[int | None, typer.Option("--days", help="Look-back window")] = None,
) -> None:
    """Total spent per store."""
    try:
        totals = get_analytics().spending_by_store(user, window_days=days)
        if not totals:
            formatter.warning("No purchases found")
            return
        formatter.output({"success": True, "data": {"spending": totals}})
    except Exception as e:
        formatter.error(str(e))
        raise typer.Exit(code=1)


@app.command()
def migrate(
    db_path: Annotated[
        Path | None, typer.Option("--db-path", help="SQLite database file")
    ] = None,
    force: Annotated[bool, typer.Option("--force", help="Overwrite existing data")] = False,
) -> None:
    """Copy JSON data into a SQLite database."""
    try:
        ds = get_data_store()
        json_dir = getattr(ds, "data_dir", None) or get_config().data.storage_dir
        stats = run_migrate(data_dir=json_dir, db_path=db_path, force=force)
        formatter.output(
            {"success": True, "data": {"migration": stats}}, "Migration complete"
        )
    except Exception as e:
        formatter.error(str(e))
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
