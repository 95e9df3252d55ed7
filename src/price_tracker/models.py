"""Core data models for Price Tracker."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

AI_ESTIMATE_STORE = "AI Estimate"
AI_ESTIMATE_KEY = "ai estimate"


class StoreType(str, Enum):
    """Retailer categories."""

    SUPERMARKET = "supermarket"
    DISCOUNTER = "discounter"
    CONVENIENCE = "convenience"
    PREMIUM = "premium"
    FROZEN = "frozen"
    WHOLESALE = "wholesale"
    SPECIALTY = "specialty"


class StoreIdentity(BaseModel):
    """A canonical retailer record."""

    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str
    brand_color: str
    store_type: StoreType
    aliases: tuple[str, ...]
    market_share: float
    cuisine_tags: frozenset[str] = frozenset()


class PriceRecord(BaseModel):
    """One ledger entry per (item, store) pair."""

    id: UUID = Field(default_factory=uuid4)
    normalized_name: str
    display_name: str
    store_key: str
    store_name: str
    store_id: str | None = None
    unit_price: float
    min_price: float
    max_price: float
    average_price: float
    confidence: float = Field(ge=0, le=1)
    report_count: int = Field(ge=0)
    last_seen_date: date
    size: str | None = None
    unit: str | None = None
    variant_name: str | None = None
    last_reported_by: str | None = None
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_estimate(self) -> bool:
        """Whether this row holds an AI-guessed price."""
        return self.store_key == AI_ESTIMATE_KEY


class VariantSource(str, Enum):
    """Where a variant record came from."""

    RECEIPT_DISCOVERED = "receipt_discovered"
    MANUAL = "manual"
    AI_ESTIMATE = "ai_estimate"


class VariantRecord(BaseModel):
    """A known package variant of a base item."""

    id: UUID = Field(default_factory=uuid4)
    base_item: str
    variant_name: str
    size: str
    unit: str
    category: str = "Other"
    estimated_price: float | None = None
    source: VariantSource = VariantSource.MANUAL
    created_at: datetime = Field(default_factory=datetime.now)


class PurchaseHistoryEntry(BaseModel):
    """A user's historical purchase, used only for analytics."""

    id: UUID = Field(default_factory=uuid4)
    user_id: str
    normalized_name: str
    item_name: str
    unit_price: float = Field(gt=0)
    quantity: float = Field(default=1.0, gt=0)
    store_name: str
    store_id: str | None = None
    purchase_date: date
    size: str | None = None
    unit: str | None = None

    @property
    def total_price(self) -> float:
        return self.unit_price * self.quantity


class PriceSource(str, Enum):
    """Where a variant's displayed price came from."""

    PERSONAL = "personal"
    CROWDSOURCED = "crowdsourced"
    AI_ESTIMATE = "ai_estimate"


class VariantPrice(VariantRecord):
    """A catalog variant with the best price known for it."""

    price: float | None = None
    store_name: str | None = None
    report_count: int = 0
    price_source: PriceSource | None = None


class UserPreferences(BaseModel):
    """Per-user variant choices, keyed by normalized item name."""

    user_id: str
    preferred_variants: dict[str, str] = Field(default_factory=dict)


# --- Ingestion inputs ---


class ReceiptLine(BaseModel):
    """A line item handed over by receipt confirmation.

    Prices are not range-checked here: a bad line is rejected by the
    ledger without failing its siblings.
    """

    name: str
    unit_price: float
    quantity: float = 1.0
    size: str | None = None
    unit: str | None = None
    category: str | None = None


class ReceiptInput(BaseModel):
    """A confirmed receipt's worth of observations."""

    store_name: str
    purchase_date: date
    reporter_id: str
    line_items: list[ReceiptLine]

    @field_validator("line_items")
    @classmethod
    def validate_line_items(cls, v: list[ReceiptLine]) -> list[ReceiptLine]:
        if not v:
            raise ValueError("Receipt must have at least one line item")
        return v


class AIEstimateInput(BaseModel):
    """A single AI-guessed price."""

    normalized_name: str
    item_name: str
    unit_price: float = Field(gt=0)
    user_id: str
    size: str | None = None
    unit: str | None = None
    variant_name: str | None = None


# --- Query results ---


class CheapestPrice(BaseModel):
    """Cheapest known price for an item."""

    price: float
    store: str
    store_id: str | None = None
    last_seen: date
    confidence: float


class PriceEstimate(BaseModel):
    """Cross-store price estimate for an item."""

    item_name: str
    cheapest: CheapestPrice
    average: float
    store_count: int


class StorePrice(BaseModel):
    """One store's price in a comparison."""

    store: str
    price: float
    average_price: float
    confidence: float
    report_count: int
    last_seen: date


class StoreComparison(BaseModel):
    """Price comparison for an item across stores."""

    item_name: str
    size: str | None = None
    by_store: dict[str, StorePrice | None] = Field(default_factory=dict)
    cheapest_store: str | None = None
    cheapest_price: float | None = None
    average_price: float | None = None
    stores_with_data: int = 0


class Deal(BaseModel):
    """A purchase where a cheaper price was known elsewhere."""

    item_name: str
    normalized_name: str
    paid_price: float
    paid_store: str
    paid_store_id: str | None = None
    cheapest_price: float
    cheapest_store: str
    cheapest_store_id: str | None = None
    savings: float
    savings_percent: float
    purchase_date: date


class PriceTrend(str, Enum):
    """Direction of a user's recent prices for an item."""

    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class PriceStats(BaseModel):
    """A user's price history summary for one item."""

    item_name: str
    average: float
    min: float
    max: float
    lowest_store: str
    data_points: int
    trend: PriceTrend = PriceTrend.STABLE


class PriceAlert(BaseModel):
    """A receipt price well away from what the user usually pays."""

    item_name: str
    direction: str  # "increase" or "decrease"
    percent_change: float
    old_price: float
    new_price: float


class StoreSaving(BaseModel):
    """Projected saving from switching to a store."""

    store_id: str
    store_name: str
    store_color: str
    potential_savings: float
    item_count: int


class Recommendation(BaseModel):
    """Ranked store-switch recommendation."""

    recommended_store: str
    store_name: str
    store_color: str
    potential_monthly_savings: float
    item_count: int
    message: str
    alternative_stores: list[StoreSaving] = Field(default_factory=list)


# --- Variant matching ---


class MatchOutcome(str, Enum):
    """Result tag of a variant match."""

    ATTACHED = "attached"
    AMBIGUOUS = "ambiguous"
    NO_CANDIDATES = "no_candidates"


class BracketMatch(BaseModel):
    """Price-bracket matching result."""

    outcome: MatchOutcome
    variant: VariantRecord | None = None
    candidates: list[VariantRecord] = Field(default_factory=list)
    tolerance: float

    @property
    def matched(self) -> bool:
        return self.outcome == MatchOutcome.ATTACHED


class VariantInference(BaseModel):
    """What the variant engine did with one observation."""

    outcome: MatchOutcome
    source: str  # "preference", "bracket" or "none"
    variant_name: str | None = None
    size: str | None = None
    unit: str | None = None
    candidate_count: int = 0


# --- Ingestion results ---


class RejectedLine(BaseModel):
    """A receipt line skipped during ingestion."""

    name: str
    reason: str


class IngestResult(BaseModel):
    """Outcome of processing one confirmed receipt."""

    store_name: str
    store_id: str | None = None
    purchase_date: date
    accepted: int = 0
    rejected: list[RejectedLine] = Field(default_factory=list)
    records: list[PriceRecord] = Field(default_factory=list)
    variants_discovered: list[str] = Field(default_factory=list)
    variants_inferred: dict[str, str] = Field(default_factory=dict)
    price_alerts: list[PriceAlert] = Field(default_factory=list)
