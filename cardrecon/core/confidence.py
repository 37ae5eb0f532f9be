# cardrecon/core/confidence.py

"""
Confidence scoring for cluster-to-charge matching.

Each dimension is scored 0-100 from its normalized distance (distance divided
by its tolerance):

- Date proximity:   100 on the billing date, 50 at the tolerance edge
- Amount proximity: 100 on the exact aggregate, 50 at the tolerance edge

Total = 60% date + 40% amount, rounded half-up. Anything accepted by the
tolerance window therefore scores between 50 and 100, and the score never
increases as either distance grows.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Literal

from cardrecon.models import ConfidenceBreakdown

DATE_WEIGHT = 0.6
AMOUNT_WEIGHT = 0.4

# Sub-score at the tolerance boundary
SCORE_FLOOR = 50

ConfidenceLevel = Literal["high", "medium", "low"]


def within_tolerance(
    days_apart: int,
    date_tolerance_days: int,
    amount_difference: int,
    cluster_amount: int,
    amount_tolerance_percent: float,
) -> bool:
    """Date within ±tolerance days and |difference| <= cluster * pct / 100."""
    if abs(days_apart) > date_tolerance_days:
        return False
    return abs(amount_difference) * 100 <= cluster_amount * amount_tolerance_percent


def normalized_distances(
    days_apart: int,
    date_tolerance_days: int,
    amount_difference: int,
    cluster_amount: int,
    amount_tolerance_percent: float,
) -> tuple[float, float]:
    """
    (date, amount) distances as fractions of their tolerance, in [0, 1].

    A zero tolerance window only admits exact matches, which are distance 0.
    """
    date_ratio = abs(days_apart) / date_tolerance_days if date_tolerance_days > 0 else 0.0

    allowed = cluster_amount * amount_tolerance_percent / 100
    amount_ratio = abs(amount_difference) / allowed if allowed > 0 else 0.0

    return min(date_ratio, 1.0), min(amount_ratio, 1.0)


def calculate_confidence(
    days_apart: int,
    date_tolerance_days: int,
    amount_difference: int,
    cluster_amount: int,
    amount_tolerance_percent: float,
) -> ConfidenceBreakdown:
    """
    Score a candidate pairing that is already within tolerance.

    Returns a ConfidenceBreakdown with sub-scores and human-readable factors.
    """
    date_ratio, amount_ratio = normalized_distances(
        days_apart,
        date_tolerance_days,
        amount_difference,
        cluster_amount,
        amount_tolerance_percent,
    )

    date_score = _score(date_ratio)
    amount_score = _score(amount_ratio)

    weighted = Decimal(str(date_score * DATE_WEIGHT + amount_score * AMOUNT_WEIGHT))
    total = int(weighted.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    factors: list[str] = []
    days = abs(days_apart)
    if days == 0:
        factors.append("Same day as billing date")
    elif days == 1:
        factors.append("1 day from billing date")
    else:
        factors.append(f"{days} days from billing date")

    if amount_difference == 0:
        factors.append("Exact amount match")
    else:
        factors.append(f"Amount differs by {abs(amount_difference)} minor units")

    return ConfidenceBreakdown(
        date_score=round(date_score, 2),
        amount_score=round(amount_score, 2),
        total=max(0, min(100, total)),
        days_apart=days,
        factors=factors,
    )


def _score(ratio: float) -> float:
    """Linear from 100 at distance 0 down to SCORE_FLOOR at the boundary."""
    return max(0.0, 100 - ratio * (100 - SCORE_FLOOR))


def confidence_level(score: int, threshold: int) -> ConfidenceLevel:
    """Display bucket for a score against the caller's threshold."""
    if score >= threshold:
        return "high"
    elif score >= SCORE_FLOOR:
        return "medium"
    else:
        return "low"
