# cardrecon/core/matching.py

"""
Card-to-bank matching engine.

Pairs clusters of credit-card purchases (one cluster per card and billing
date) with the bank line that paid for them. Pure computation: the caller
loads candidates and persists the proposals.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional
import logging

from cardrecon.models import (
    BankChargeRecord,
    ConfidenceBreakdown,
    PurchaseRecord,
)
from cardrecon.core.confidence import (
    calculate_confidence,
    normalized_distances,
    within_tolerance,
)

logger = logging.getLogger(__name__)

# (bank_charge_id, purchase ids) of a pairing a reviewer already rejected
RejectedPairing = tuple[str, frozenset[str]]


@dataclass
class PurchaseCluster:
    """Purchases billed to one card on one billing date."""

    card_last_four: str
    billing_date: date
    purchases: list[PurchaseRecord] = field(default_factory=list)

    @property
    def total_minor(self) -> int:
        return sum(p.effective_amount for p in self.purchases)

    @property
    def purchase_ids(self) -> list[str]:
        return [p.id for p in self.purchases]

    @property
    def key(self) -> tuple[str, date]:
        return (self.card_last_four, self.billing_date)


@dataclass
class ProposedMatch:
    """A cluster paired with a bank charge, ready to persist."""

    cluster: PurchaseCluster
    charge: BankChargeRecord
    confidence: ConfidenceBreakdown

    @property
    def discrepancy_minor(self) -> int:
        return self.charge.charge_amount - self.cluster.total_minor

    @property
    def discrepancy_percent(self) -> float:
        bank_amount = self.charge.charge_amount
        if bank_amount <= 0:
            return 0.0
        return round(abs(self.discrepancy_minor) / bank_amount * 100, 2)


@dataclass
class MatchingRun:
    """Everything one matching pass produced."""

    proposals: list[ProposedMatch] = field(default_factory=list)
    clusters: int = 0
    skipped_clusters: int = 0
    skipped_charges: int = 0


# ============================================
# Grouping
# ============================================

def group_purchases(purchases: Iterable[PurchaseRecord]) -> list[PurchaseCluster]:
    """
    Group purchases by (card, billing date).

    Clusters come out sorted by key, members keep the order of
    (transaction date, id) so results are stable for identical inputs.
    """
    clusters: dict[tuple[str, date], PurchaseCluster] = {}

    ordered = sorted(purchases, key=lambda p: (p.transaction_date, p.id))
    for purchase in ordered:
        key = (purchase.card_last_four, purchase.billing_date)
        if key not in clusters:
            clusters[key] = PurchaseCluster(
                card_last_four=purchase.card_last_four,
                billing_date=purchase.billing_date,
            )
        clusters[key].purchases.append(purchase)

    return [clusters[key] for key in sorted(clusters)]


# ============================================
# Candidate search
# ============================================

@dataclass(order=True)
class _Candidate:
    sort_key: tuple
    cluster: PurchaseCluster = field(compare=False)
    charge: BankChargeRecord = field(compare=False)
    days_apart: int = field(compare=False)
    difference: int = field(compare=False)


def _candidate(
    cluster: PurchaseCluster,
    charge: BankChargeRecord,
    date_tolerance_days: int,
    amount_tolerance_percent: float,
) -> Optional[_Candidate]:
    """Score one pairing, or None if it falls outside tolerance."""
    if charge.card_last_four and charge.card_last_four != cluster.card_last_four:
        return None

    cluster_amount = cluster.total_minor
    days_apart = abs((charge.date - cluster.billing_date).days)
    difference = charge.charge_amount - cluster_amount

    if not within_tolerance(
        days_apart, date_tolerance_days,
        difference, cluster_amount, amount_tolerance_percent,
    ):
        return None

    date_ratio, amount_ratio = normalized_distances(
        days_apart, date_tolerance_days,
        difference, cluster_amount, amount_tolerance_percent,
    )

    # Smallest combined distance first, then smallest discrepancy, then ids
    sort_key = (
        date_ratio + amount_ratio,
        abs(difference),
        charge.id,
        cluster.card_last_four,
        cluster.billing_date,
    )
    return _Candidate(sort_key, cluster, charge, days_apart, difference)


def find_best_charge(
    cluster: PurchaseCluster,
    charges: Iterable[BankChargeRecord],
    date_tolerance_days: int,
    amount_tolerance_percent: float,
) -> Optional[BankChargeRecord]:
    """Best charge for a single cluster, ignoring competition from others."""
    candidates = [
        c for c in (
            _candidate(cluster, charge, date_tolerance_days, amount_tolerance_percent)
            for charge in charges
        )
        if c is not None
    ]
    if not candidates:
        return None
    return min(candidates).charge


# ============================================
# Main entry point
# ============================================

def match_clusters(
    purchases: list[PurchaseRecord],
    charges: list[BankChargeRecord],
    date_tolerance_days: int,
    amount_tolerance_percent: float,
    rejected: Optional[set[RejectedPairing]] = None,
) -> MatchingRun:
    """
    Pair purchase clusters with bank card charges.

    1. Group purchases into clusters by (card, billing date)
    2. Drop clusters with a non-positive total and non-positive charges
    3. Score every pairing inside the date and amount tolerance
    4. Accept pairings best-first; each charge and each cluster is used once

    A charge wanted by two clusters goes to the better-scoring one; the other
    cluster falls back to its next best charge or stays unmatched.
    """
    run = MatchingRun()
    rejected = rejected or set()

    clusters = group_purchases(purchases)
    run.clusters = len(clusters)

    usable_clusters: list[PurchaseCluster] = []
    for cluster in clusters:
        if not cluster.purchases:
            run.skipped_clusters += 1
            logger.warning(f"Skipping empty cluster for card {cluster.card_last_four} on {cluster.billing_date}")
            continue
        if cluster.total_minor <= 0:
            run.skipped_clusters += 1
            logger.warning(
                f"Skipping cluster for card {cluster.card_last_four} on {cluster.billing_date}: "
                f"non-positive total {cluster.total_minor}"
            )
            continue
        usable_clusters.append(cluster)

    usable_charges: list[BankChargeRecord] = []
    for charge in charges:
        if charge.charge_amount <= 0:
            run.skipped_charges += 1
            logger.warning(f"Skipping bank charge {charge.id}: non-positive amount {charge.amount_minor}")
            continue
        usable_charges.append(charge)

    candidates: list[_Candidate] = []
    for cluster in usable_clusters:
        for charge in usable_charges:
            candidate = _candidate(cluster, charge, date_tolerance_days, amount_tolerance_percent)
            if candidate is None:
                continue
            if (charge.id, frozenset(cluster.purchase_ids)) in rejected:
                continue
            candidates.append(candidate)

    candidates.sort()

    used_charges: set[str] = set()
    used_clusters: set[tuple[str, date]] = set()

    for candidate in candidates:
        if candidate.charge.id in used_charges or candidate.cluster.key in used_clusters:
            continue

        confidence = calculate_confidence(
            candidate.days_apart,
            date_tolerance_days,
            candidate.difference,
            candidate.cluster.total_minor,
            amount_tolerance_percent,
        )
        run.proposals.append(ProposedMatch(
            cluster=candidate.cluster,
            charge=candidate.charge,
            confidence=confidence,
        ))
        used_charges.add(candidate.charge.id)
        used_clusters.add(candidate.cluster.key)

    # Stable output order: by cluster key
    run.proposals.sort(key=lambda p: p.cluster.key)
    return run
