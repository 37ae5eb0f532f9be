# cardrecon/routers/matches.py

"""
Match management routes.

Review (approve / reject), unmatch and manual linking.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from cardrecon.config import get_settings
from cardrecon.core.confidence import confidence_level
from cardrecon.core.lifecycle import (
    approve,
    link_manually,
    reject,
    summarize_matches,
    unmatch,
)
from cardrecon.core.vat import net_from_inclusive_total, vat_from_inclusive_total
from cardrecon.dependencies import get_current_user, get_store
from cardrecon.errors import NotFoundError
from cardrecon.models import ManualLinkRequest, MatchResult, MatchStatus, UnmatchRequest
from cardrecon.store import RecordStore

settings = get_settings()
router = APIRouter()


def serialize_match(match: MatchResult, vat_percent: Optional[float] = None) -> dict:
    """Match as JSON plus display annotations (level, count, VAT split)."""
    rate = settings.default_vat_percent if vat_percent is None else vat_percent
    data = match.model_dump(mode="json")
    data["purchase_count"] = match.purchase_count
    data["confidence_level"] = confidence_level(
        match.confidence, settings.matching_confidence_threshold
    )
    data["vat_minor"] = vat_from_inclusive_total(match.bank_amount_minor, rate)
    data["net_minor"] = net_from_inclusive_total(match.bank_amount_minor, rate)
    return data


# ============================================
# Get Matches
# ============================================

@router.get("")
async def list_matches(
    user_id: str = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
    status: Optional[MatchStatus] = Query(None, description="Filter by status"),
    vat_percent: Optional[float] = Query(None, ge=0),
):
    """
    List matches for the authenticated user, newest charge first.
    """
    matches = await store.list_matches(user_id, status)

    return {
        "success": True,
        "matches": [serialize_match(m, vat_percent) for m in matches],
        "count": len(matches),
    }


@router.get("/summary")
async def get_summary(
    user_id: str = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    """
    Totals per status, linked purchases and average confidence.
    """
    matches = await store.list_matches(user_id)

    return {
        "success": True,
        "summary": summarize_matches(matches).model_dump(),
    }


# ============================================
# Manual Linking
# ============================================

@router.post("/manual")
async def create_manual_match(
    request: ManualLinkRequest,
    user_id: str = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    """
    Link purchases to a bank charge by hand. Created as pending.
    """
    match = await link_manually(store, user_id, request.bank_charge_id, request.purchase_ids)

    return {
        "success": True,
        "match": serialize_match(match),
    }


# ============================================
# Get Single Match
# ============================================

@router.get("/{match_id}")
async def get_single_match(
    match_id: str,
    user_id: str = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
    vat_percent: Optional[float] = Query(None, ge=0),
):
    """
    Get a single match by ID.
    """
    match = await store.get_match(user_id, match_id)

    if not match:
        raise NotFoundError(f"Match {match_id} not found")

    return {
        "success": True,
        "match": serialize_match(match, vat_percent),
    }


# ============================================
# Review
# ============================================

@router.post("/{match_id}/approve")
async def approve_match(
    match_id: str,
    user_id: str = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    """
    Approve a pending match. Its purchases become matched.
    """
    match = await approve(store, user_id, match_id)

    return {
        "success": True,
        "match": serialize_match(match),
    }


@router.post("/{match_id}/reject")
async def reject_match(
    match_id: str,
    user_id: str = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    """
    Reject a pending match. Its purchases and charge are free again.
    """
    match = await reject(store, user_id, match_id)

    return {
        "success": True,
        "match": serialize_match(match),
    }


@router.post("/{match_id}/unmatch")
async def unmatch_match(
    match_id: str,
    request: UnmatchRequest,
    user_id: str = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    """
    Release purchases from a match.

    No ids (or every member) deletes the match; a subset shrinks it.
    """
    match = await unmatch(store, user_id, match_id, request.purchase_ids)

    return {
        "success": True,
        "deleted": match is None,
        "match": serialize_match(match) if match else None,
    }
