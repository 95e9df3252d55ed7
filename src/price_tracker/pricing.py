"""Pure numeric contracts behind the price ledger.

Nothing here knows about records or storage; every function takes plain
numbers so the bounds and monotonicity guarantees can be tested directly.
"""

from datetime import date

DECAY_HORIZON_DAYS = 30
MAX_VOLUME_SCORE = 0.5
MAX_RECENCY_SCORE = 0.5
REPORTS_FOR_FULL_VOLUME = 10
HISTORY_WEIGHT_FLOOR = 0.3


def days_since(purchase_date: date, today: date | None = None) -> int:
    """Whole days between a purchase and today, never negative."""
    today = today or date.today()
    return max(0, (today - purchase_date).days)


def confidence_score(
    report_count: int,
    days: float,
    horizon: float = DECAY_HORIZON_DAYS,
) -> float:
    """Blend report volume and recency into a [0, 1] score.

    Volume and recency each contribute at most half. A record with no fresh
    evidence decays to its volume-only floor.
    """
    report_count = max(report_count, 0)
    days = max(days, 0)
    volume = min(report_count / REPORTS_FOR_FULL_VOLUME, MAX_VOLUME_SCORE)
    recency = max(0.0, MAX_RECENCY_SCORE * (1 - days / horizon))
    return min(volume + recency, 1.0)


def recency_weight(days: float, horizon: float = DECAY_HORIZON_DAYS) -> float:
    """Weight of a new observation; zero once it is older than the horizon."""
    return max(0.0, 1 - max(days, 0) / horizon)


def history_weight(report_count: int) -> float:
    """Weight kept by the accumulated average."""
    return max(HISTORY_WEIGHT_FLOOR, 0.9 if report_count > 1 else 1.0)


def weighted_average(
    old_average: float,
    new_price: float,
    report_count: int,
    days: float,
    horizon: float = DECAY_HORIZON_DAYS,
) -> float:
    """Fold a new price into a time-decayed running average.

    Args:
        old_average: Current average on the record
        new_price: Newly observed price
        report_count: Reports already on the record, before this one
        days: Age of the new observation in days
        horizon: Days after which an observation carries no weight

    Returns:
        The new average
    """
    new_weight = recency_weight(days, horizon)
    existing_weight = history_weight(report_count)
    return (old_average * existing_weight + new_price * new_weight) / (
        existing_weight + new_weight
    )


def relative_difference(observed: float, reference: float) -> float:
    """|observed - reference| as a fraction of reference."""
    return abs(observed - reference) / reference
