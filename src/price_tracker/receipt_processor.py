"""Receipt ingestion: turns a confirmed receipt into ledger observations."""

import logging

from .analytics import Analytics
from .config import ConfigManager
from .data_store import DataStoreProtocol
from .item_normalizer import normalize_item_name
from .models import (
    AIEstimateInput,
    IngestResult,
    PriceRecord,
    PurchaseHistoryEntry,
    ReceiptInput,
    ReceiptLine,
    RejectedLine,
)
from .price_ledger import InvalidObservation, PriceLedger
from .store_normalizer import resolve_store
from .variant_engine import VariantEngine

logger = logging.getLogger(__name__)


class ReceiptProcessor:
    """Feeds confirmed receipts through the ledger and the variant engine."""

    def __init__(
        self,
        data_store: DataStoreProtocol,
        ledger: PriceLedger | None = None,
        variant_engine: VariantEngine | None = None,
        config: ConfigManager | None = None,
        analytics: Analytics | None = None,
    ):
        """Initialize receipt processor.

        Args:
            data_store: Persistence backend
            ledger: PriceLedger instance
            variant_engine: VariantEngine instance
            config: Application configuration
            analytics: Analytics used for receipt-time price alerts
        """
        self.data_store = data_store
        ledger_config = config.ledger if config else None
        variant_config = config.variants if config else None
        self.ledger = ledger or PriceLedger(data_store, ledger_config)
        self.variant_engine = variant_engine or VariantEngine(
            data_store, self.ledger, variant_config
        )
        self.analytics = analytics or Analytics(
            data_store, config.analytics if config else None
        )

    def process_receipt(self, receipt_input: ReceiptInput) -> IngestResult:
        """Record every line of a confirmed receipt.

        Lines are applied in order, so an item appearing twice sees its own
        earlier observation. An invalid line is skipped and reported; the
        others still go through. Storage errors propagate and leave the lines
        already applied in place.

        Args:
            receipt_input: Confirmed receipt data

        Returns:
            IngestResult with accepted/rejected counts, touched records and
            price alerts against the reporter's earlier purchases
        """
        store_id = resolve_store(receipt_input.store_name)
        if store_id is None:
            logger.info("Unrecognized store %r", receipt_input.store_name)

        result = IngestResult(
            store_name=receipt_input.store_name,
            store_id=store_id,
            purchase_date=receipt_input.purchase_date,
        )

        alerts = self.analytics.price_alerts(
            receipt_input.reporter_id,
            [(line.name, line.unit_price) for line in receipt_input.line_items],
        )
        accepted_names = set()

        for line in receipt_input.line_items:
            try:
                record = self._process_line(receipt_input, line, store_id, result)
            except InvalidObservation as e:
                logger.warning("Rejected line %r: %s", line.name, e)
                result.rejected.append(RejectedLine(name=line.name, reason=str(e)))
                continue
            result.accepted += 1
            result.records.append(record)
            accepted_names.add(line.name)

        result.price_alerts = [a for a in alerts if a.item_name in accepted_names]

        logger.info(
            "Processed receipt from %s: %d accepted, %d rejected",
            receipt_input.store_name,
            result.accepted,
            len(result.rejected),
        )
        return result

    def _process_line(
        self,
        receipt_input: ReceiptInput,
        line: ReceiptLine,
        store_id: str | None,
        result: IngestResult,
    ) -> PriceRecord:
        self.ledger.validate(line.name, receipt_input.store_name, line.unit_price)
        if line.quantity <= 0:
            raise InvalidObservation(f"Quantity must be positive, got {line.quantity}")
        sized = bool(line.size and line.unit)

        self.data_store.add_purchase(
            PurchaseHistoryEntry(
                user_id=receipt_input.reporter_id,
                normalized_name=normalize_item_name(line.name),
                item_name=line.name,
                unit_price=line.unit_price,
                quantity=line.quantity,
                store_name=receipt_input.store_name,
                store_id=store_id,
                purchase_date=receipt_input.purchase_date,
                size=line.size if sized else None,
                unit=line.unit if sized else None,
            )
        )

        record = self.ledger.upsert(
            line.name,
            receipt_input.store_name,
            line.unit_price,
            receipt_input.purchase_date,
            reporter_id=receipt_input.reporter_id,
            size=line.size,
            unit=line.unit,
        )

        discovered, inference = self.variant_engine.process_observation(
            line.name,
            receipt_input.store_name,
            line.unit_price,
            user_id=receipt_input.reporter_id,
            size=line.size,
            unit=line.unit,
            category=line.category,
        )
        if discovered:
            result.variants_discovered.append(discovered.variant_name)
        if inference and inference.variant_name:
            result.variants_inferred[line.name] = inference.variant_name
            record = self.data_store.get_price_record(
                record.normalized_name, record.store_key
            ) or record
        return record

    def process_receipt_dict(self, receipt_dict: dict) -> IngestResult:
        """Process a receipt from dictionary input.

        Args:
            receipt_dict: Dictionary with receipt data

        Returns:
            IngestResult
        """
        line_items = [ReceiptLine(**item) for item in receipt_dict.get("line_items", [])]

        receipt_input = ReceiptInput(
            store_name=receipt_dict["store_name"],
            purchase_date=receipt_dict["purchase_date"],
            reporter_id=receipt_dict["reporter_id"],
            line_items=line_items,
        )
        return self.process_receipt(receipt_input)

    def record_ai_estimate(self, estimate: AIEstimateInput | dict) -> PriceRecord | None:
        """Record an AI-guessed price.

        Returns:
            The estimate row, or None if it was not written
        """
        if isinstance(estimate, dict):
            estimate = AIEstimateInput(**estimate)
        return self.ledger.record_ai_estimate(estimate)
