# cardrecon/core/reconciliation.py

"""
Reconcile orchestration.

Loads the owner's free purchases and card charges, runs the matching engine
and persists the proposals as pending matches in one atomic write. Runs for
the same owner are serialized through the store's owner lock.
"""

from datetime import date, datetime
from typing import Optional
import logging
import uuid

from cardrecon.errors import ValidationError
from cardrecon.models import (
    MatchResult,
    MatchStatus,
    ReconciliationOutcome,
    ReconciliationSummary,
)
from cardrecon.core.matching import ProposedMatch, match_clusters
from cardrecon.store import RecordStore

logger = logging.getLogger(__name__)


def validate_tolerances(date_tolerance_days: int, amount_tolerance_percent: float):
    if date_tolerance_days is None or date_tolerance_days < 0:
        raise ValidationError("date_tolerance_days must be a non-negative integer")
    if amount_tolerance_percent is None or amount_tolerance_percent < 0:
        raise ValidationError("amount_tolerance_percent must be non-negative")


def require_owner(user_id: Optional[str]):
    if not user_id:
        raise ValidationError("An owner scope is required")


def proposal_to_match(user_id: str, proposal: ProposedMatch) -> MatchResult:
    cluster = proposal.cluster
    charge = proposal.charge
    return MatchResult(
        id=str(uuid.uuid4()),
        user_id=user_id,
        card_last_four=cluster.card_last_four,
        charge_date=charge.date,
        bank_charge_id=charge.id,
        purchase_ids=cluster.purchase_ids,
        total_purchase_minor=cluster.total_minor,
        bank_amount_minor=charge.charge_amount,
        discrepancy_minor=proposal.discrepancy_minor,
        discrepancy_percent=proposal.discrepancy_percent,
        confidence=proposal.confidence.total,
        confidence_breakdown=proposal.confidence,
        status=MatchStatus.PENDING,
    )


async def reconcile(
    store: RecordStore,
    user_id: str,
    date_tolerance_days: int,
    amount_tolerance_percent: float,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> ReconciliationOutcome:
    """
    Propose pending matches for the owner's unmatched purchases.

    Additive: existing matches are never touched, and purchases or charges
    held by an active match are not candidates, so an immediate second run
    creates nothing.
    """
    require_owner(user_id)
    validate_tolerances(date_tolerance_days, amount_tolerance_percent)
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must not be after end_date")

    started = datetime.now()

    async with store.owner_lock(user_id):
        purchases = await store.get_unmatched_purchases(user_id, start_date, end_date)
        charges = await store.get_card_charges(user_id, start_date, end_date)
        existing = await store.list_matches(user_id)

        taken_charges = {m.bank_charge_id for m in existing if m.is_active}
        taken_purchases = {pid for m in existing if m.is_active for pid in m.purchase_ids}
        rejected = {
            (m.bank_charge_id, frozenset(m.purchase_ids))
            for m in existing if m.status == MatchStatus.REJECTED
        }

        purchases = [p for p in purchases if p.id not in taken_purchases]
        charges = [c for c in charges if c.id not in taken_charges]

        run = match_clusters(
            purchases,
            charges,
            date_tolerance_days,
            amount_tolerance_percent,
            rejected=rejected,
        )

        proposed = [proposal_to_match(user_id, p) for p in run.proposals]
        created = await store.create_matches(user_id, proposed) if proposed else []

    summary = ReconciliationSummary(
        candidate_purchases=len(purchases),
        candidate_charges=len(charges),
        clusters=run.clusters,
        matched_groups=len(created),
        matched_purchases=sum(m.purchase_count for m in created),
        total_discrepancy_minor=sum(abs(m.discrepancy_minor) for m in created),
        skipped_clusters=run.skipped_clusters,
        skipped_charges=run.skipped_charges,
        duration_ms=int((datetime.now() - started).total_seconds() * 1000),
    )

    logger.info(
        f"Reconcile for {user_id}: {summary.candidate_purchases} purchases, "
        f"{summary.candidate_charges} charges, {summary.clusters} clusters, "
        f"{summary.matched_groups} new matches"
    )

    return ReconciliationOutcome(matches=created, summary=summary)
