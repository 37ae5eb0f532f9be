# cardrecon/models/reconciliation.py

from datetime import date
from typing import Optional
from pydantic import BaseModel, Field

from cardrecon.models.match import MatchResult


# ============================================
# Reconciliation Run
# ============================================

class ReconciliationSummary(BaseModel):
    """Summary of a reconciliation run."""

    candidate_purchases: int
    candidate_charges: int
    clusters: int
    matched_groups: int
    matched_purchases: int
    total_discrepancy_minor: int
    skipped_clusters: int = 0
    skipped_charges: int = 0
    duration_ms: int = 0


class ReconciliationOutcome(BaseModel):
    """Matches created by one run plus its summary."""

    matches: list[MatchResult] = Field(default_factory=list)
    summary: ReconciliationSummary


# ============================================
# API Request Models
# ============================================

class ReconcileRequest(BaseModel):
    """Request body for a manual reconcile run. Missing values use settings."""

    date_tolerance_days: Optional[int] = None
    amount_tolerance_percent: Optional[float] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class UnmatchRequest(BaseModel):
    """Purchases to release. Empty means all of them."""

    purchase_ids: list[str] = Field(default_factory=list)


class ManualLinkRequest(BaseModel):
    """Link purchases to a bank charge by hand."""

    bank_charge_id: str
    purchase_ids: list[str] = Field(min_length=1)
