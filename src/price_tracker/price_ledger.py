"""Price ledger: one confidence-scored, time-weighted record per (item, store)."""

import logging
import math
from collections.abc import Callable, Iterable
from datetime import date, datetime

from .config import LedgerConfig
from .data_store import DataStoreProtocol
from .item_normalizer import (
    display_item_name,
    extract_base_item,
    normalize_item_name,
    variant_label,
)
from .models import (
    AI_ESTIMATE_KEY,
    AI_ESTIMATE_STORE,
    AIEstimateInput,
    CheapestPrice,
    PriceEstimate,
    PriceRecord,
    StoreComparison,
    StorePrice,
)
from .pricing import confidence_score, days_since, weighted_average
from .store_normalizer import clean_store_text, resolve_store, store_key

logger = logging.getLogger(__name__)


class InvalidObservation(ValueError):
    """A price observation that must not reach the ledger."""


def _coerce_date(value: date | datetime | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError as e:
            raise InvalidObservation(f"Invalid purchase date: {value!r}") from e
    raise InvalidObservation(f"Invalid purchase date: {value!r}")


def _key_label(key: str) -> str:
    return AI_ESTIMATE_STORE if key == AI_ESTIMATE_KEY else key


def _store_label(record: PriceRecord) -> str:
    return _key_label(record.store_key)


def _normalize_size(size: str) -> str:
    return "".join(size.lower().split())


def _size_matches(record: PriceRecord, wanted: str) -> bool:
    if not record.size:
        return False
    forms = {_normalize_size(record.size), _normalize_size(record.size + (record.unit or ""))}
    return wanted in forms


def effective_records(records: list[PriceRecord]) -> list[PriceRecord]:
    """Drop AI estimates when any receipt-derived record exists."""
    observed = [r for r in records if not r.is_estimate]
    return observed or records


class PriceLedger:
    """Maintains the per-(item, store) price records.

    All writes go through the store's ``update_price_record`` so that
    concurrent observations for the same key are applied one after another.
    """

    def __init__(
        self,
        data_store: DataStoreProtocol,
        config: LedgerConfig | None = None,
        today: Callable[[], date] = date.today,
    ):
        """Initialize the ledger.

        Args:
            data_store: Persistence backend
            config: Decay horizon and AI estimate settings
            today: Clock used for recency, injectable for tests
        """
        self.data_store = data_store
        self.config = config or LedgerConfig()
        self.today = today

    def validate(self, item: str, store: str, unit_price: float) -> None:
        """Raise InvalidObservation unless the observation can be recorded."""
        if not isinstance(item, str) or not normalize_item_name(item):
            raise InvalidObservation("Item name is required")
        if not clean_store_text(store):
            raise InvalidObservation("Store name is required")
        if isinstance(unit_price, bool) or not isinstance(unit_price, (int, float)):
            raise InvalidObservation(f"Price must be a number, got {unit_price!r}")
        if not math.isfinite(unit_price) or unit_price <= 0:
            raise InvalidObservation(f"Price must be positive, got {unit_price}")
        if store_key(store) == AI_ESTIMATE_KEY:
            raise InvalidObservation(f"{AI_ESTIMATE_STORE!r} is reserved for AI estimates")

    def upsert(
        self,
        item: str,
        store: str,
        unit_price: float,
        purchase_date: date | datetime | str,
        reporter_id: str | None = None,
        size: str | None = None,
        unit: str | None = None,
    ) -> PriceRecord:
        """Fold one price observation into the ledger.

        Args:
            item: Item name as printed on the receipt
            store: Store name as printed on the receipt
            unit_price: Observed price per unit
            purchase_date: When the purchase happened
            reporter_id: User who confirmed the receipt
            size: Package size, if known
            unit: Package unit, if known

        Returns:
            The record after the observation. An observation older than the
            record's last_seen_date leaves it unchanged. A fresh observation
            without size and unit clears any earlier variant label.

        Raises:
            InvalidObservation: If the observation fails validation. Nothing
                is written.
        """
        self.validate(item, store, unit_price)
        observed_on = _coerce_date(purchase_date)
        normalized = normalize_item_name(item)
        key = store_key(store)
        store_id = resolve_store(store)
        store_name = " ".join(store.split())
        horizon = self.config.decay_days
        days = days_since(observed_on, self.today())
        price = float(unit_price)
        # Each fresh observation replaces the variant label. An unsized one
        # clears it until inference attaches a variant.
        label = {"size": None, "unit": None, "variant_name": None}
        if size and unit:
            base_item = extract_base_item(item)
            label.update(
                size=size,
                unit=unit,
                variant_name=variant_label(base_item, size, unit) if base_item else None,
            )

        def compute(current: PriceRecord | None) -> PriceRecord | None:
            if current is None:
                return PriceRecord(
                    normalized_name=normalized,
                    display_name=display_item_name(item),
                    store_key=key,
                    store_name=store_name,
                    store_id=store_id,
                    unit_price=price,
                    min_price=price,
                    max_price=price,
                    average_price=price,
                    confidence=confidence_score(1, days, horizon),
                    report_count=1,
                    last_seen_date=observed_on,
                    last_reported_by=reporter_id,
                    **label,
                )

            if observed_on < current.last_seen_date:
                logger.debug(
                    "Stale observation for (%s, %s): %s < %s",
                    normalized,
                    key,
                    observed_on,
                    current.last_seen_date,
                )
                return None

            report_count = current.report_count + 1
            changes = {
                "display_name": display_item_name(item),
                "store_name": store_name,
                "store_id": store_id,
                "unit_price": price,
                "min_price": min(current.min_price, price),
                "max_price": max(current.max_price, price),
                "average_price": weighted_average(
                    current.average_price, price, current.report_count, days, horizon
                ),
                "confidence": confidence_score(report_count, days, horizon),
                "report_count": report_count,
                "last_seen_date": observed_on,
                "last_reported_by": reporter_id,
                "updated_at": datetime.now(),
                **label,
            }
            return current.model_copy(update=changes)

        record = self.data_store.update_price_record(normalized, key, compute)
        logger.debug("Upserted %s @ %s: %.2f", normalized, key, price)
        return record

    def record_ai_estimate(self, estimate: AIEstimateInput) -> PriceRecord | None:
        """Store an AI-guessed price under the "AI Estimate" pseudo-store.

        An existing estimate row is refreshed only while it has no real
        reports behind it.

        Returns:
            The estimate row, or None if nothing was written
        """
        normalized = normalize_item_name(estimate.normalized_name or estimate.item_name)
        if not normalized:
            raise InvalidObservation("Item name is required")
        today = self.today()
        confidence = self.config.ai_estimate_confidence
        price = estimate.unit_price
        written = False

        def compute(current: PriceRecord | None) -> PriceRecord | None:
            nonlocal written
            if current is not None and current.report_count > 0:
                written = False
                return None
            written = True
            fields = {
                "display_name": display_item_name(estimate.item_name),
                "unit_price": price,
                "min_price": price,
                "max_price": price,
                "average_price": price,
                "confidence": confidence,
                "report_count": 0,
                "last_seen_date": today,
                "size": estimate.size,
                "unit": estimate.unit,
                "variant_name": estimate.variant_name,
                "last_reported_by": estimate.user_id,
                "updated_at": datetime.now(),
            }
            if current is None:
                return PriceRecord(
                    normalized_name=normalized,
                    store_key=AI_ESTIMATE_KEY,
                    store_name=AI_ESTIMATE_STORE,
                    **fields,
                )
            return current.model_copy(update=fields)

        record = self.data_store.update_price_record(normalized, AI_ESTIMATE_KEY, compute)
        return record if written else None

    def attach_variant(
        self,
        item: str,
        store: str,
        variant_name: str,
        size: str | None,
        unit: str | None,
    ) -> PriceRecord | None:
        """Label an existing record with an inferred variant.

        Returns:
            The updated record, or None if the record doesn't exist
        """
        normalized = normalize_item_name(item)
        key = store_key(store)

        def compute(current: PriceRecord | None) -> PriceRecord | None:
            if current is None:
                return None
            return current.model_copy(
                update={
                    "variant_name": variant_name,
                    "size": size,
                    "unit": unit,
                    "updated_at": datetime.now(),
                }
            )

        return self.data_store.update_price_record(normalized, key, compute)

    # --- Queries ---

    def get_records(self, item: str) -> list[PriceRecord]:
        """All records for an item, cheapest first."""
        records = self.data_store.get_price_records(normalize_item_name(item))
        return sorted(records, key=lambda r: (r.unit_price, r.store_key))

    def get_price_estimate(self, item: str) -> PriceEstimate | None:
        """Cheapest and average price for an item across stores.

        Args:
            item: Item name

        Returns:
            PriceEstimate, or None if the item has no records
        """
        records = effective_records(self.get_records(item))
        if not records:
            return None

        cheapest = records[0]
        return PriceEstimate(
            item_name=cheapest.display_name,
            cheapest=CheapestPrice(
                price=cheapest.unit_price,
                store=_store_label(cheapest),
                store_id=cheapest.store_id,
                last_seen=cheapest.last_seen_date,
                confidence=cheapest.confidence,
            ),
            average=sum(r.unit_price for r in records) / len(records),
            store_count=len(records),
        )

    def batch_get_estimates(self, items: Iterable[str]) -> dict[str, PriceEstimate | None]:
        """Estimates for several items, keyed by the names given."""
        return {item: self.get_price_estimate(item) for item in items}

    def compare_across_stores(
        self,
        item: str,
        size: str | None = None,
        store_ids: Iterable[str] = (),
    ) -> StoreComparison:
        """Side-by-side prices for an item.

        Args:
            item: Item name
            size: Optional package size; only records with this size count
            store_ids: Stores to include. Each one appears in by_store, with
                None where there is no data. Empty means every store with data.

        Returns:
            StoreComparison
        """
        records = effective_records(self.get_records(item))
        if size:
            wanted = _normalize_size(size)
            records = [r for r in records if _size_matches(r, wanted)]

        by_label = {_store_label(r): r for r in records}
        requested = [_key_label(store_key(s)) for s in store_ids]
        labels = requested or list(by_label)

        by_store: dict[str, StorePrice | None] = {}
        for label in labels:
            record = by_label.get(label)
            by_store[label] = (
                StorePrice(
                    store=record.store_name,
                    price=record.unit_price,
                    average_price=record.average_price,
                    confidence=record.confidence,
                    report_count=record.report_count,
                    last_seen=record.last_seen_date,
                )
                if record
                else None
            )

        with_data = [(label, p) for label, p in by_store.items() if p is not None]
        comparison = StoreComparison(
            item_name=display_item_name(item),
            size=size,
            by_store=by_store,
            stores_with_data=len(with_data),
        )
        if with_data:
            cheapest_label, cheapest = min(with_data, key=lambda lp: (lp[1].price, lp[0]))
            comparison.cheapest_store = cheapest_label
            comparison.cheapest_price = cheapest.price
            comparison.average_price = sum(p.price for _, p in with_data) / len(with_data)
        return comparison
