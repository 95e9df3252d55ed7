"""Output formatting for CLI and programmatic use."""

import json
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from rich.console import Console
from rich.panel import Panel
from rich.table import Table


class JSONEncoder(json.JSONEncoder):
    """Custom JSON encoder for output."""

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


def _money(value: float | None) -> str:
    return "-" if value is None else f"£{value:.2f}"


class OutputFormatter:
    """Formats output for both Rich terminal and JSON modes."""

    def __init__(self, json_mode: bool = False):
        """Initialize formatter.

        Args:
            json_mode: If True, output JSON instead of Rich formatting
        """
        self.json_mode = json_mode
        self.console = Console()

    def output(self, data: dict[str, Any], message: str = "") -> None:
        """Output data in appropriate format.

        Args:
            data: Data to output
            message: Optional message for Rich mode
        """
        if self.json_mode:
            self._output_json(data)
        else:
            self._output_rich(data, message)

    def _output_json(self, data: dict[str, Any]) -> None:
        """Output as JSON to stdout."""
        print(json.dumps(data, cls=JSONEncoder, indent=2))

    def _output_rich(self, data: dict[str, Any], message: str) -> None:
        """Output with Rich formatting."""
        if message:
            self.console.print(f"[green]✓[/green] {message}")

        # Format based on data type
        payload = data.get("data", {})
        if "resolution" in payload:
            self._render_resolution(data)
        elif "stores" in payload:
            self._render_stores(data)
        elif "store_info" in payload:
            self._render_store_info(data)
        elif "ingest" in payload:
            self._render_ingest(data)
        elif "estimates" in payload:
            self._render_estimates(data)
        elif "estimate" in payload:
            self._render_estimate(data)
        elif "comparison" in payload:
            self._render_comparison(data)
        elif "records" in payload:
            self._render_records(data)
        elif "variants" in payload:
            self._render_variants(data)
        elif "preferences" in payload:
            self._render_preferences(data)
        elif "deals" in payload:
            self._render_deals(data)
        elif "recommendation" in payload:
            self._render_recommendation(data)
        elif "stats" in payload:
            self._render_stats(data)
        elif "spending" in payload:
            self._render_spending(data)
        elif "migration" in payload:
            self._render_migration(data)

    def _render_resolution(self, data: dict) -> None:
        """Render a store name resolution."""
        res = data["data"]["resolution"]
        if res.get("store_id"):
            self.console.print(
                f"{res['input']!r} -> [bold cyan]{res['store_id']}[/bold cyan]"
                f" ({res.get('display_name', '')})"
            )
        else:
            self.console.print(f"{res['input']!r} -> [dim]unrecognized[/dim]")

    def _render_stores(self, data: dict) -> None:
        """Render the store catalogue."""
        stores = data["data"]["stores"]

        table = Table(show_header=True, header_style="bold")
        table.add_column("ID")
        table.add_column("Name")
        table.add_column("Type")
        table.add_column("Share", justify="right")

        for store in stores:
            color = store.get("brand_color", "white")
            table.add_row(
                store["id"],
                f"[{color}]{store['display_name']}[/{color}]",
                store["store_type"],
                f"{store['market_share']:g}%",
            )

        self.console.print(table)

    def _render_store_info(self, data: dict) -> None:
        """Render one store's details."""
        store = data["data"]["store_info"]

        lines = [
            f"ID: {store['id']}",
            f"Type: {store['store_type']}",
            f"Colour: {store['brand_color']}",
            f"Market share: {store['market_share']:g}%",
            f"Aliases: {', '.join(store['aliases'])}",
        ]
        if store.get("cuisine_tags"):
            lines.append(f"Cuisines: {', '.join(sorted(store['cuisine_tags']))}")

        self.console.print(
            Panel("\n".join(lines), title=store["display_name"], border_style="cyan")
        )

    def _render_ingest(self, data: dict) -> None:
        """Render receipt ingestion results."""
        result = data["data"]["ingest"]

        store = result["store_name"]
        if result.get("store_id"):
            store += f" [dim]({result['store_id']})[/dim]"
        self.console.print(f"\n[bold]Receipt: {store}[/bold] on {result['purchase_date']}")
        self.console.print(f"Accepted: [green]{result['accepted']}[/green]")

        if result.get("records"):
            table = Table(show_header=True, header_style="bold")
            table.add_column("Item")
            table.add_column("Price", justify="right")
            table.add_column("Average", justify="right")
            table.add_column("Reports", justify="right")
            table.add_column("Variant")
            for record in result["records"]:
                table.add_row(
                    record["display_name"],
                    _money(record["unit_price"]),
                    _money(record["average_price"]),
                    str(record["report_count"]),
                    record.get("variant_name") or "-",
                )
            self.console.print(table)

        if result.get("variants_discovered"):
            self.console.print(
                f"New variants: {', '.join(result['variants_discovered'])}"
            )

        if result.get("price_alerts"):
            self.console.print("\n[bold]Price alerts:[/bold]")
            for alert in result["price_alerts"]:
                colour = "red" if alert["direction"] == "increase" else "green"
                self.console.print(
                    f"  - {alert['item_name']}: [{colour}]{alert['direction']}"
                    f" {alert['percent_change']:.1f}%[/{colour}]"
                    f" ({_money(alert['old_price'])} -> {_money(alert['new_price'])})"
                )

        if result.get("rejected"):
            self.console.print(f"\n[yellow]Rejected ({len(result['rejected'])}):[/yellow]")
            for line in result["rejected"]:
                self.console.print(f"  - {line['name']}: {line['reason']}")

    def _render_estimate(self, data: dict) -> None:
        """Render a price estimate."""
        est = data["data"]["estimate"]
        cheapest = est["cheapest"]

        self.console.print(f"\n[bold]{est['item_name']}[/bold]")
        self.console.print(
            f"Cheapest: [green]{_money(cheapest['price'])}[/green] at {cheapest['store']}"
            f" (seen {cheapest['last_seen']}, confidence {cheapest['confidence']:.2f})"
        )
        self.console.print(f"Average: {_money(est['average'])} across {est['store_count']} store(s)")

    def _render_estimates(self, data: dict) -> None:
        """Render estimates for several items."""
        estimates = data["data"]["estimates"]

        table = Table(show_header=True, header_style="bold")
        table.add_column("Item")
        table.add_column("Cheapest", justify="right")
        table.add_column("Store")
        table.add_column("Average", justify="right")

        for name, est in estimates.items():
            if est is None:
                table.add_row(name, "-", "[dim]no data[/dim]", "-")
            else:
                table.add_row(
                    name,
                    _money(est["cheapest"]["price"]),
                    est["cheapest"]["store"],
                    _money(est["average"]),
                )

        self.console.print(table)

    def _render_comparison(self, data: dict) -> None:
        """Render price comparison across stores."""
        comp = data["data"]["comparison"]

        title = comp["item_name"]
        if comp.get("size"):
            title += f" ({comp['size']})"
        self.console.print(f"\n[bold]Price Comparison: {title}[/bold]")

        table = Table(show_header=True, header_style="bold")
        table.add_column("Store")
        table.add_column("Price", justify="right")
        table.add_column("Average", justify="right")
        table.add_column("Confidence", justify="right")
        table.add_column("", justify="center")

        for store, price in comp["by_store"].items():
            if price is None:
                table.add_row(store, "-", "-", "-", "[dim]no data[/dim]")
                continue
            marker = "[green](best)[/green]" if store == comp.get("cheapest_store") else ""
            table.add_row(
                store,
                _money(price["price"]),
                _money(price["average_price"]),
                f"{price['confidence']:.2f}",
                marker,
            )

        self.console.print(table)

        if comp.get("average_price") is not None:
            self.console.print(
                f"Average across {comp['stores_with_data']} store(s): "
                f"{_money(comp['average_price'])}"
            )

    def _render_records(self, data: dict) -> None:
        """Render raw ledger records."""
        records = data["data"]["records"]

        table = Table(show_header=True, header_style="bold")
        table.add_column("Store")
        table.add_column("Latest", justify="right")
        table.add_column("Min", justify="right")
        table.add_column("Max", justify="right")
        table.add_column("Average", justify="right")
        table.add_column("Conf.", justify="right")
        table.add_column("Reports", justify="right")
        table.add_column("Last seen")
        table.add_column("Size")

        for r in records:
            size = f"{r['size']}{r['unit'] or ''}" if r.get("size") else "-"
            table.add_row(
                r["store_name"],
                _money(r["unit_price"]),
                _money(r["min_price"]),
                _money(r["max_price"]),
                _money(r["average_price"]),
                f"{r['confidence']:.2f}",
                str(r["report_count"]),
                str(r["last_seen_date"]),
                size,
            )

        self.console.print(table)

    def _render_variants(self, data: dict) -> None:
        """Render variant catalog entries."""
        variants = data["data"]["variants"]

        if not variants:
            self.console.print("[dim]No variants known[/dim]")
            return

        table = Table(show_header=True, header_style="bold")
        table.add_column("Variant")
        table.add_column("Size")
        table.add_column("Price", justify="right")
        table.add_column("Price from")
        table.add_column("Source")

        for v in variants:
            price = v["price"] if "price" in v else v.get("estimated_price")
            origin = v.get("price_source") or "-"
            if v.get("store_name"):
                origin += f" ({v['store_name']})"
            table.add_row(
                v["variant_name"],
                f"{v['size']} {v['unit']}",
                _money(price),
                origin,
                v["source"],
            )

        self.console.print(table)

    def _render_preferences(self, data: dict) -> None:
        """Render user preferences."""
        prefs = data["data"]["preferences"]

        self.console.print(f"\n[bold]Preferences: {prefs['user_id']}[/bold]")
        if not prefs.get("preferred_variants"):
            self.console.print("[dim]No preferred variants[/dim]")
        for item, variant in prefs.get("preferred_variants", {}).items():
            self.console.print(f"  {item}: {variant}")

    def _render_deals(self, data: dict) -> None:
        """Render deals found in purchase history."""
        deals = data["data"]["deals"]

        if not deals:
            self.console.print("[dim]No deals found[/dim]")
            return

        table = Table(show_header=True, header_style="bold")
        table.add_column("Item")
        table.add_column("Paid", justify="right")
        table.add_column("At")
        table.add_column("Cheapest", justify="right")
        table.add_column("At")
        table.add_column("Save", justify="right")

        for deal in deals:
            table.add_row(
                deal["item_name"],
                _money(deal["paid_price"]),
                deal["paid_store"],
                _money(deal["cheapest_price"]),
                deal["cheapest_store"],
                f"[green]{_money(deal['savings'])} ({deal['savings_percent']:.1f}%)[/green]",
            )

        self.console.print(table)

    def _render_recommendation(self, data: dict) -> None:
        """Render store-switch recommendation."""
        rec = data["data"]["recommendation"]

        self.console.print(
            Panel(
                f"[bold]{rec['message']}[/bold]\n"
                f"Based on {rec['item_count']} item(s) bought in the last month",
                title=f"[{rec['store_color']}]{rec['store_name']}[/{rec['store_color']}]",
                border_style="green",
            )
        )

        alternatives = rec.get("alternative_stores", [])
        if alternatives:
            table = Table(show_header=True, header_style="bold")
            table.add_column("Alternative")
            table.add_column("Savings", justify="right")
            table.add_column("Items", justify="right")
            for alt in alternatives:
                table.add_row(
                    alt["store_name"], _money(alt["potential_savings"]), str(alt["item_count"])
                )
            self.console.print(table)

    def _render_stats(self, data: dict) -> None:
        """Render a user's price history summary for an item."""
        stats = data["data"]["stats"]

        trend_style = {"increasing": "red", "decreasing": "green"}.get(stats["trend"], "dim")
        self.console.print(f"\n[bold]{stats['item_name']}[/bold]")
        self.console.print(
            f"Average: {_money(stats['average'])} over {stats['data_points']} purchase(s)"
        )
        self.console.print(
            f"Range: {_money(stats['min'])} - {_money(stats['max'])}"
            f" (lowest at {stats['lowest_store']})"
        )
        self.console.print(f"Trend: [{trend_style}]{stats['trend']}[/{trend_style}]")

    def _render_spending(self, data: dict) -> None:
        """Render spend per store."""
        spending = data["data"]["spending"]

        table = Table(show_header=True, header_style="bold")
        table.add_column("Store")
        table.add_column("Spent", justify="right")
        for store, total in spending.items():
            table.add_row(store, _money(total))
        self.console.print(table)

    def _render_migration(self, data: dict) -> None:
        """Render migration statistics."""
        stats = data["data"]["migration"]

        for key, count in stats.items():
            self.console.print(f"  {key.replace('_', ' ')}: {count}")

    def error(self, message: str, error_code: str | None = None) -> None:
        """Output error message.

        Args:
            message: Error message
            error_code: Optional error code
        """
        if self.json_mode:
            output = {"success": False, "error": message}
            if error_code:
                output["error_code"] = error_code
            print(json.dumps(output))
        else:
            self.console.print(f"[red]✗ Error:[/red] {message}")

    def success(self, message: str, data: dict | None = None) -> None:
        """Output success message.

        Args:
            message: Success message
            data: Optional data to include
        """
        if self.json_mode:
            output: dict[str, Any] = {"success": True, "message": message}
            if data:
                output["data"] = data
            print(json.dumps(output, cls=JSONEncoder))
        else:
            self.console.print(f"[green]✓[/green] {message}")

    def warning(self, message: str) -> None:
        """Output warning message.

        Args:
            message: Warning message
        """
        if self.json_mode:
            print(json.dumps({"warning": message}))
        else:
            self.console.print(f"[yellow]⚠[/yellow] {message}")
