"""Deals, store recommendations and price history analytics for Price Tracker."""

import logging
from collections import defaultdict
from collections.abc import Callable, Iterable
from datetime import date, timedelta

from .config import AnalyticsConfig
from .data_store import DataStoreProtocol
from .item_normalizer import normalize_item_name
from .models import (
    Deal,
    PriceAlert,
    PriceRecord,
    PriceStats,
    PriceTrend,
    PurchaseHistoryEntry,
    Recommendation,
    StoreSaving,
)
from .price_ledger import effective_records
from .store_normalizer import get_store_info, store_key

logger = logging.getLogger(__name__)

UNKNOWN_STORE_COLOR = "#6B7280"
# Absorbs float noise so a saving of exactly the threshold is kept
_EPSILON = 1e-9


def _same_store(entry: PurchaseHistoryEntry, record: PriceRecord) -> bool:
    return (entry.store_id or store_key(entry.store_name)) == record.store_key


class Analytics:
    """Read-only analytics over the ledger and a user's purchase history."""

    def __init__(
        self,
        data_store: DataStoreProtocol,
        config: AnalyticsConfig | None = None,
        today: Callable[[], date] = date.today,
    ):
        self.data_store = data_store
        self.config = config or AnalyticsConfig()
        self.today = today

    def _history(self, user_id: str, window_days: int) -> list[PurchaseHistoryEntry]:
        since = self.today() - timedelta(days=window_days)
        return self.data_store.get_purchase_history(user_id, since=since)

    def _records(self, normalized_name: str) -> list[PriceRecord]:
        return effective_records(self.data_store.get_price_records(normalized_name))

    def find_deals(self, user_id: str) -> list[Deal]:
        """Find recent purchases that were cheaper elsewhere.

        For each item bought in the deal window, the most recent purchase is
        compared with the cheapest ledger price at a different store.

        Args:
            user_id: User whose purchases to check

        Returns:
            Deals sorted by savings, largest first
        """
        latest: dict[str, PurchaseHistoryEntry] = {}
        for entry in self._history(user_id, self.config.deal_window_days):
            current = latest.get(entry.normalized_name)
            if current is None or entry.purchase_date >= current.purchase_date:
                latest[entry.normalized_name] = entry

        deals: list[tuple[float, Deal]] = []
        for normalized_name, purchase in latest.items():
            others = [
                r for r in self._records(normalized_name) if not _same_store(purchase, r)
            ]
            if not others:
                continue

            cheapest = min(others, key=lambda r: (r.unit_price, r.store_key))
            savings = purchase.unit_price - cheapest.unit_price
            savings_percent = savings / purchase.unit_price * 100
            if savings <= 0 or savings_percent + _EPSILON < self.config.min_savings_percent:
                continue

            deals.append(
                (
                    savings,
                    Deal(
                        item_name=purchase.item_name,
                        normalized_name=normalized_name,
                        paid_price=round(purchase.unit_price, 2),
                        paid_store=purchase.store_name,
                        paid_store_id=purchase.store_id,
                        cheapest_price=round(cheapest.unit_price, 2),
                        cheapest_store=cheapest.store_name,
                        cheapest_store_id=cheapest.store_id,
                        savings=round(savings, 2),
                        savings_percent=round(savings_percent, 1),
                        purchase_date=purchase.purchase_date,
                    ),
                )
            )

        deals.sort(key=lambda sd: (-sd[0], sd[1].item_name))
        return [deal for _, deal in deals[: self.config.max_deals]]

    def recommend_store(self, user_id: str) -> Recommendation | None:
        """Recommend the store that would have saved the most this month.

        Args:
            user_id: User to recommend for

        Returns:
            Recommendation, or None without recent history or any saving
        """
        history = self._history(user_id, self.config.recommendation_window_days)
        if not history:
            return None

        totals: dict[str, float] = defaultdict(float)
        quantities: dict[str, float] = defaultdict(float)
        for entry in history:
            totals[entry.normalized_name] += entry.total_price
            quantities[entry.normalized_name] += entry.quantity

        savings: dict[str, float] = defaultdict(float)
        item_counts: dict[str, int] = defaultdict(int)
        names: dict[str, str] = {}
        for normalized_name in sorted(totals):
            records = [r for r in self._records(normalized_name) if not r.is_estimate]
            if not records:
                continue
            cheapest = min(records, key=lambda r: (r.unit_price, r.store_key))
            avg_paid = totals[normalized_name] / quantities[normalized_name]
            per_unit = avg_paid - cheapest.unit_price
            if per_unit <= 0:
                continue
            savings[cheapest.store_key] += per_unit * quantities[normalized_name]
            item_counts[cheapest.store_key] += 1
            names.setdefault(cheapest.store_key, cheapest.store_name)

        if not savings:
            logger.debug("No saving found for %s", user_id)
            return None

        ranked = [
            self._store_saving(key, names[key], savings[key], item_counts[key])
            for key in sorted(savings, key=lambda k: (-savings[k], k))
        ]
        best = ranked[0]
        return Recommendation(
            recommended_store=best.store_id,
            store_name=best.store_name,
            store_color=best.store_color,
            potential_monthly_savings=best.potential_savings,
            item_count=best.item_count,
            message=f"Shop at {best.store_name} to save £{best.potential_savings:.2f}/month",
            alternative_stores=ranked[1 : 1 + self.config.max_alternatives],
        )

    def _store_saving(
        self, key: str, fallback_name: str, amount: float, item_count: int
    ) -> StoreSaving:
        info = get_store_info(key)
        return StoreSaving(
            store_id=key,
            store_name=info.display_name if info else fallback_name,
            store_color=info.brand_color if info else UNKNOWN_STORE_COLOR,
            potential_savings=round(amount, 2),
            item_count=item_count,
        )

    def spending_by_store(
        self, user_id: str, window_days: int | None = None
    ) -> dict[str, float]:
        """Total spent per store, largest first.

        Args:
            user_id: User to summarize
            window_days: Optional look-back window; all history if omitted
        """
        if window_days is None:
            history = self.data_store.get_purchase_history(user_id)
        else:
            history = self._history(user_id, window_days)

        totals: dict[str, float] = defaultdict(float)
        for entry in history:
            totals[entry.store_id or store_key(entry.store_name)] += entry.total_price
        return {
            key: round(total, 2)
            for key, total in sorted(totals.items(), key=lambda kv: (-kv[1], kv[0]))
        }

    # --- Price History ---

    def _item_history(
        self, user_id: str, item: str, since: date | None = None
    ) -> list[PurchaseHistoryEntry]:
        normalized = normalize_item_name(item)
        return [
            e
            for e in self.data_store.get_purchase_history(user_id, since=since)
            if e.normalized_name == normalized
        ]

    def price_stats(self, user_id: str, item: str) -> PriceStats | None:
        """Summarize what a user has paid for an item recently.

        Args:
            user_id: User whose purchases to summarize
            item: Item name

        Returns:
            PriceStats over the stats window, or None without purchases
        """
        since = self.today() - timedelta(days=self.config.stats_window_days)
        entries = self._item_history(user_id, item, since)
        if not entries:
            return None

        prices = [e.unit_price for e in entries]
        lowest = min(entries, key=lambda e: e.unit_price)
        return PriceStats(
            item_name=entries[-1].item_name,
            average=round(sum(prices) / len(prices), 2),
            min=lowest.unit_price,
            max=max(prices),
            lowest_store=lowest.store_name,
            data_points=len(entries),
            trend=self.price_trend(user_id, item),
        )

    def price_trend(self, user_id: str, item: str) -> PriceTrend:
        """Compare the latest price with the average of the few before it."""
        recent = self._item_history(user_id, item)[-self.config.trend_sample_size :]
        if len(recent) < 2:
            return PriceTrend.STABLE

        older = [e.unit_price for e in recent[:-1]]
        older_average = sum(older) / len(older)
        change = (recent[-1].unit_price - older_average) / older_average * 100
        threshold = self.config.trend_threshold_percent
        if change > threshold:
            return PriceTrend.INCREASING
        if change < -threshold:
            return PriceTrend.DECREASING
        return PriceTrend.STABLE

    def price_alerts(
        self, user_id: str, prices: Iterable[tuple[str, float]]
    ) -> list[PriceAlert]:
        """Flag prices far from what the user recently paid.

        Call this before the prices are recorded, so they aren't compared
        with themselves.

        Args:
            user_id: User whose history to compare against
            prices: (item name, unit price) pairs

        Returns:
            One alert per price that moved more than the alert threshold
        """
        history: dict[str, list[float]] = defaultdict(list)
        for entry in self.data_store.get_purchase_history(user_id):
            history[entry.normalized_name].append(entry.unit_price)

        alerts = []
        for name, price in prices:
            previous = history.get(normalize_item_name(name), [])[
                -self.config.trend_sample_size :
            ]
            if not previous or price <= 0:
                continue
            old_price = sum(previous) / len(previous)
            change = (price - old_price) / old_price * 100
            if abs(change) <= self.config.alert_threshold_percent:
                continue
            alerts.append(
                PriceAlert(
                    item_name=name,
                    direction="increase" if change > 0 else "decrease",
                    percent_change=round(abs(change), 1),
                    old_price=round(old_price, 2),
                    new_price=price,
                )
            )
        return alerts
