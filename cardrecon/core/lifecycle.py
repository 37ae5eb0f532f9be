# cardrecon/core/lifecycle.py

"""
Match lifecycle: review decisions, unmatch and manual linking.

    pending --approve--> approved
    pending --reject---> rejected
    any     --unmatch--> (deleted)

Every mutation is a compare-and-set against the version the caller read,
so two reviewers racing on one match cannot both win.
"""

from typing import Optional
import logging
import uuid

from cardrecon.errors import ConflictError, NotFoundError, ValidationError
from cardrecon.models import (
    ConfidenceBreakdown,
    MatchResult,
    MatchStatus,
    MatchSummary,
)
from cardrecon.core.reconciliation import require_owner
from cardrecon.store import RecordStore

logger = logging.getLogger(__name__)


async def _load_match(store: RecordStore, user_id: str, match_id: str) -> MatchResult:
    require_owner(user_id)
    if not match_id:
        raise ValidationError("match_id is required")

    match = await store.get_match(user_id, match_id)
    if match is None:
        raise NotFoundError(f"Match {match_id} not found")
    return match


# ============================================
# Review decisions
# ============================================

async def set_match_status(
    store: RecordStore,
    user_id: str,
    match_id: str,
    status: MatchStatus | str,
) -> MatchResult:
    """
    Move a pending match to approved or rejected.

    Raises ConflictError if the match is not pending (or changes underneath
    us). Approving marks member purchases matched; rejecting frees them.
    """
    try:
        target = MatchStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown match status: {status}")
    if target == MatchStatus.PENDING:
        raise ValidationError("A match can only be approved or rejected")

    match = await _load_match(store, user_id, match_id)

    if not match.status.can_transition_to(target):
        logger.info(f"Refusing {match.status.value} -> {target.value} for match {match_id}")
        raise ConflictError(f"Match {match_id} is {match.status.value}, not pending")

    updated = await store.update_match_status(user_id, match_id, match.version, target)
    logger.info(f"Match {match_id} {target.value}")
    return updated


async def approve(store: RecordStore, user_id: str, match_id: str) -> MatchResult:
    return await set_match_status(store, user_id, match_id, MatchStatus.APPROVED)


async def reject(store: RecordStore, user_id: str, match_id: str) -> MatchResult:
    return await set_match_status(store, user_id, match_id, MatchStatus.REJECTED)


# ============================================
# Unmatch
# ============================================

async def unmatch(
    store: RecordStore,
    user_id: str,
    match_id: str,
    purchase_ids: Optional[list[str]] = None,
) -> Optional[MatchResult]:
    """
    Release purchases from a match, whatever its status.

    All members (or none given): the match is deleted and its purchases go
    back to unmatched. A strict subset: only those purchases are released
    and the match's totals are recomputed. A purchase held by another
    active match keeps its status. Returns the shrunk
    match, or None when the match was deleted.
    """
    match = await _load_match(store, user_id, match_id)

    requested = list(dict.fromkeys(purchase_ids or []))
    foreign = [pid for pid in requested if pid not in match.purchase_ids]
    if foreign:
        raise ValidationError(f"Purchases not in match {match_id}: {foreign}")

    remaining = [pid for pid in match.purchase_ids if pid not in requested]

    if not requested or not remaining:
        await store.delete_match(user_id, match_id, match.version)
        logger.info(f"Match {match_id} unmatched ({match.purchase_count} purchases released)")
        return None

    kept = await store.get_purchases(user_id, remaining)
    total = sum(p.effective_amount for p in kept)
    discrepancy = match.bank_amount_minor - total
    discrepancy_percent = (
        round(abs(discrepancy) / match.bank_amount_minor * 100, 2)
        if match.bank_amount_minor > 0 else 0.0
    )

    updated = match.model_copy(update={
        "purchase_ids": remaining,
        "total_purchase_minor": total,
        "discrepancy_minor": discrepancy,
        "discrepancy_percent": discrepancy_percent,
    })
    shrunk = await store.shrink_match(user_id, updated, match.version, requested)
    logger.info(f"Match {match_id}: released {len(requested)} of {match.purchase_count} purchases")
    return shrunk


# ============================================
# Manual linking
# ============================================

async def link_manually(
    store: RecordStore,
    user_id: str,
    bank_charge_id: str,
    purchase_ids: list[str],
) -> MatchResult:
    """
    Link purchases to a bank charge by hand as a pending match.

    Neither the charge nor any purchase may already be in an active match.
    """
    require_owner(user_id)
    purchase_ids = list(dict.fromkeys(purchase_ids or []))
    if not bank_charge_id or not purchase_ids:
        raise ValidationError("A bank charge and at least one purchase are required")

    async with store.owner_lock(user_id):
        charge = await store.get_bank_charge(user_id, bank_charge_id)
        if charge is None:
            raise NotFoundError(f"Bank charge {bank_charge_id} not found")

        purchases = await store.get_purchases(user_id, purchase_ids)
        found = {p.id for p in purchases}
        missing = [pid for pid in purchase_ids if pid not in found]
        if missing:
            raise NotFoundError(f"Purchases not found: {missing}")

        # Keep the caller's order
        by_id = {p.id: p for p in purchases}
        purchases = [by_id[pid] for pid in purchase_ids]

        total = sum(p.effective_amount for p in purchases)
        bank_amount = charge.charge_amount
        discrepancy = bank_amount - total

        match = MatchResult(
            id=str(uuid.uuid4()),
            user_id=user_id,
            card_last_four=purchases[0].card_last_four,
            charge_date=charge.date,
            bank_charge_id=charge.id,
            purchase_ids=purchase_ids,
            total_purchase_minor=total,
            bank_amount_minor=bank_amount,
            discrepancy_minor=discrepancy,
            discrepancy_percent=round(abs(discrepancy) / bank_amount * 100, 2) if bank_amount > 0 else 0.0,
            confidence=100,
            confidence_breakdown=ConfidenceBreakdown(
                date_score=100,
                amount_score=100,
                total=100,
                days_apart=abs((charge.date - purchases[0].billing_date).days),
                factors=["Linked manually"],
            ),
            status=MatchStatus.PENDING,
            is_manual=True,
        )
        created = await store.create_matches(user_id, [match])

    logger.info(f"Manual match {created[0].id}: charge {bank_charge_id}, {len(purchase_ids)} purchases")
    return created[0]


# ============================================
# Summary
# ============================================

def summarize_matches(matches: list[MatchResult]) -> MatchSummary:
    """Dashboard totals: counts per status, linked purchases, average confidence."""
    counts = {status: 0 for status in MatchStatus}
    for match in matches:
        counts[match.status] += 1

    avg_confidence = (
        round(sum(m.confidence for m in matches) / len(matches), 1)
        if matches else 0.0
    )

    return MatchSummary(
        total_matches=len(matches),
        pending_count=counts[MatchStatus.PENDING],
        approved_count=counts[MatchStatus.APPROVED],
        rejected_count=counts[MatchStatus.REJECTED],
        total_purchases=sum(m.purchase_count for m in matches),
        avg_confidence=avg_confidence,
        total_discrepancy_minor=sum(abs(m.discrepancy_minor) for m in matches),
    )
