"""Variant discovery and price-bracket inference.

An observation that carries both size and unit teaches the catalog a new
variant. One that carries neither gets a variant inferred for it, either
from the reporting user's stated preference or from a price bracket. The
bracket match only attaches a variant when exactly one candidate fits; an
ambiguous price is left unlabelled.
"""

import logging
from collections.abc import Iterable

from .config import VariantConfig
from .data_store import DataStoreProtocol
from .item_normalizer import (
    extract_base_item,
    normalize_item_name,
    variant_label,
    variant_name_key,
)
from .models import (
    BracketMatch,
    MatchOutcome,
    PriceRecord,
    PriceSource,
    PurchaseHistoryEntry,
    VariantInference,
    VariantPrice,
    VariantRecord,
    VariantSource,
)
from .price_ledger import PriceLedger
from .pricing import relative_difference
from .store_normalizer import store_key

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 0.20


def match_price_bracket(
    price: float,
    variants: Iterable[VariantRecord],
    tolerance: float = DEFAULT_TOLERANCE,
) -> BracketMatch:
    """Match a price against known variant prices.

    Args:
        price: Observed price
        variants: Candidate variants; those without an estimated price are ignored
        tolerance: Allowed relative difference, 0.20 means +/-20%

    Returns:
        BracketMatch tagged ATTACHED only when exactly one variant is within
        tolerance, AMBIGUOUS when several are, NO_CANDIDATES otherwise
    """
    candidates = [
        v
        for v in variants
        if v.estimated_price
        and v.estimated_price > 0
        and relative_difference(price, v.estimated_price) <= tolerance
    ]

    if len(candidates) == 1:
        return BracketMatch(
            outcome=MatchOutcome.ATTACHED,
            variant=candidates[0],
            candidates=candidates,
            tolerance=tolerance,
        )
    if candidates:
        return BracketMatch(
            outcome=MatchOutcome.AMBIGUOUS, candidates=candidates, tolerance=tolerance
        )
    return BracketMatch(outcome=MatchOutcome.NO_CANDIDATES, tolerance=tolerance)


def find_closest_variant(
    price: float, variants: Iterable[VariantRecord]
) -> VariantRecord | None:
    """Variant whose estimated price is nearest, for suggestions only.

    Ties keep the earlier variant.
    """
    priced = [v for v in variants if v.estimated_price is not None]
    if not priced:
        return None
    return min(priced, key=lambda v: abs(price - v.estimated_price))


class VariantEngine:
    """Annotates ledger records and grows the variant catalog."""

    def __init__(
        self,
        data_store: DataStoreProtocol,
        ledger: PriceLedger,
        config: VariantConfig | None = None,
    ):
        self.data_store = data_store
        self.ledger = ledger
        self.config = config or VariantConfig()

    def _find_variant(self, base_item: str, variant_name: str) -> VariantRecord | None:
        wanted = variant_name_key(variant_name)
        for variant in self.data_store.get_variants(base_item):
            if variant_name_key(variant.variant_name) == wanted:
                return variant
        return None

    def discover(
        self,
        item: str,
        size: str,
        unit: str,
        unit_price: float | None = None,
        category: str | None = None,
    ) -> VariantRecord | None:
        """Catalog the variant an observation names, if it's new.

        Returns:
            The inserted VariantRecord, or None if the base item is empty or
            the variant was already known
        """
        base_item = extract_base_item(item)
        if not base_item:
            return None

        variant = VariantRecord(
            base_item=base_item,
            variant_name=variant_label(base_item, size, unit),
            size=size.strip(),
            unit=unit.strip(),
            category=category or "Other",
            estimated_price=unit_price,
            source=VariantSource.RECEIPT_DISCOVERED,
        )
        if not self.data_store.add_variant(variant):
            return None
        logger.info("Discovered variant %r under %r", variant.variant_name, base_item)
        return variant

    def infer(
        self,
        item: str,
        store: str,
        unit_price: float,
        user_id: str | None = None,
    ) -> VariantInference:
        """Infer and attach a variant for an observation without size/unit.

        A preferred variant recorded for the user always wins. Otherwise the
        price is bracket-matched against the catalog for the base item.

        Args:
            item: Item name as observed
            store: Store name as observed
            unit_price: Observed price
            user_id: Reporting user, for preference lookup

        Returns:
            VariantInference describing what was attached, if anything
        """
        base_item = extract_base_item(item)

        if user_id:
            preferred = self.data_store.get_preferred_variant(user_id, item)
            if preferred:
                known = self._find_variant(base_item, preferred) if base_item else None
                size = known.size if known else None
                unit = known.unit if known else None
                name = known.variant_name if known else preferred
                self.ledger.attach_variant(item, store, name, size, unit)
                return VariantInference(
                    outcome=MatchOutcome.ATTACHED,
                    source="preference",
                    variant_name=name,
                    size=size,
                    unit=unit,
                    candidate_count=1,
                )

        if not base_item:
            return VariantInference(outcome=MatchOutcome.NO_CANDIDATES, source="none")

        match = match_price_bracket(
            unit_price, self.data_store.get_variants(base_item), self.config.price_tolerance
        )
        if match.outcome == MatchOutcome.AMBIGUOUS:
            logger.debug(
                "Ambiguous variant for %r at %.2f: %s",
                normalize_item_name(item),
                unit_price,
                [v.variant_name for v in match.candidates],
            )
        if not match.matched:
            return VariantInference(
                outcome=match.outcome,
                source="none",
                candidate_count=len(match.candidates),
            )

        variant = match.variant
        self.ledger.attach_variant(item, store, variant.variant_name, variant.size, variant.unit)
        return VariantInference(
            outcome=MatchOutcome.ATTACHED,
            source="bracket",
            variant_name=variant.variant_name,
            size=variant.size,
            unit=variant.unit,
            candidate_count=1,
        )

    def process_observation(
        self,
        item: str,
        store: str,
        unit_price: float,
        user_id: str | None = None,
        size: str | None = None,
        unit: str | None = None,
        category: str | None = None,
    ) -> tuple[VariantRecord | None, VariantInference | None]:
        """Run discovery or inference depending on what the observation carries.

        Returns:
            (discovered variant, inference). Discovery runs when both size and
            unit are present, inference when neither is; a partial size/unit
            pair does neither.
        """
        if size and unit:
            return self.discover(item, size, unit, unit_price, category), None
        if not size and not unit:
            return None, self.infer(item, store, unit_price, user_id)
        return None, None

    def add_manual_variant(
        self,
        item: str,
        variant_name: str,
        size: str,
        unit: str,
        category: str = "Other",
        estimated_price: float | None = None,
    ) -> VariantRecord | None:
        """Add a hand-entered catalog entry.

        Returns:
            The new VariantRecord, or None if the name is already taken
        """
        base_item = extract_base_item(item)
        if not base_item:
            raise ValueError(f"No base item in {item!r}")
        variant = VariantRecord(
            base_item=base_item,
            variant_name=variant_name,
            size=size,
            unit=unit,
            category=category,
            estimated_price=estimated_price,
            source=VariantSource.MANUAL,
        )
        return variant if self.data_store.add_variant(variant) else None

    def seed_variants(self, item: str, variants: Iterable[dict]) -> list[VariantRecord]:
        """Add AI-suggested variants for an item.

        Args:
            item: Item the suggestions are for
            variants: Dicts with variant_name, size, unit and optionally
                category and estimated_price

        Returns:
            The variants actually inserted
        """
        base_item = extract_base_item(item)
        if not base_item:
            return []
        inserted = []
        for data in variants:
            variant = VariantRecord(
                base_item=base_item, source=VariantSource.AI_ESTIMATE, **data
            )
            if self.data_store.add_variant(variant):
                inserted.append(variant)
        return inserted

    def list_variants(self, item: str) -> list[VariantRecord]:
        """Catalog entries for an item's base, cheapest first."""
        variants = self.data_store.get_variants(extract_base_item(item))
        return sorted(
            variants,
            key=lambda v: (v.estimated_price is None, v.estimated_price or 0, v.variant_name),
        )

    def get_variants_with_prices(
        self,
        item: str,
        store: str | None = None,
        user_id: str | None = None,
    ) -> list[VariantPrice]:
        """Catalog entries for an item's base, each with its best known price.

        Each variant takes its price from the first source that has one:
        the user's own latest purchase of that size, then ledger prices (the
        given store's if it has one, else the cheapest), then the catalog's
        estimated price.

        Args:
            item: Item name
            store: Store whose ledger price is preferred
            user_id: User whose purchases are checked first

        Returns:
            Priced variants, cheapest first, unpriced ones last
        """
        base_item = extract_base_item(item)
        variants = self.data_store.get_variants(base_item) if base_item else []
        if not variants:
            return []

        personal = []
        if user_id:
            personal = [
                e
                for e in self.data_store.get_purchase_history(user_id)
                if e.size and e.unit and extract_base_item(e.item_name) == base_item
            ]
        preferred_store = store_key(store) if store else None

        priced = [self._price_variant(v, personal, preferred_store) for v in variants]
        return sorted(
            priced, key=lambda v: (v.price is None, v.price or 0, v.variant_name)
        )

    def _price_variant(
        self,
        variant: VariantRecord,
        personal: list[PurchaseHistoryEntry],
        preferred_store: str | None,
    ) -> VariantPrice:
        fields = variant.model_dump()
        size = (variant.size.lower(), variant.unit.lower())

        bought = [e for e in personal if (e.size.lower(), e.unit.lower()) == size]
        if bought:
            latest = bought[-1]
            return VariantPrice(
                **fields,
                price=latest.unit_price,
                store_name=latest.store_name,
                report_count=len(bought),
                price_source=PriceSource.PERSONAL,
            )

        records = self._variant_records(variant)
        if records:
            chosen = next(
                (r for r in records if r.store_key == preferred_store), None
            ) or min(records, key=lambda r: (r.average_price, r.store_key))
            return VariantPrice(
                **fields,
                price=chosen.average_price,
                store_name=chosen.store_name,
                report_count=chosen.report_count,
                price_source=PriceSource.CROWDSOURCED,
            )

        if variant.estimated_price is not None:
            return VariantPrice(
                **fields, price=variant.estimated_price, price_source=PriceSource.AI_ESTIMATE
            )
        return VariantPrice(**fields)

    def _variant_records(self, variant: VariantRecord) -> list[PriceRecord]:
        """Receipt-derived records for a variant.

        Records filed under the variant's own name count as-is. Records
        under the bare base item count when labelled with this variant or
        carrying its size.
        """
        wanted = variant_name_key(variant.variant_name)
        size = (variant.size.lower(), variant.unit.lower())
        own_name = normalize_item_name(variant.variant_name)
        records = list(self.data_store.get_price_records(own_name))
        if own_name == variant.base_item:
            return [r for r in records if not r.is_estimate]

        for record in self.data_store.get_price_records(variant.base_item):
            labelled = record.variant_name and variant_name_key(record.variant_name) == wanted
            same_size = record.size and record.unit and (
                (record.size.lower(), record.unit.lower()) == size
            )
            if labelled or same_size:
                records.append(record)
        return [r for r in records if not r.is_estimate]
