# cardrecon/models/match.py

from datetime import date, datetime
from enum import Enum
from typing import Optional, Literal
from pydantic import BaseModel, Field


# ============================================
# Match Status (state machine)
# ============================================

class MatchStatus(str, Enum):
    """
    Lifecycle of a proposed match.

    pending -> approved | rejected. Leaving approved/rejected is only
    possible by deleting the match (unmatch), never by a status change.
    """

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_active(self) -> bool:
        """Active matches hold on to their bank charge and purchases."""
        return self is not MatchStatus.REJECTED

    def can_transition_to(self, target: "MatchStatus") -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[MatchStatus, frozenset[MatchStatus]] = {
    MatchStatus.PENDING: frozenset({MatchStatus.APPROVED, MatchStatus.REJECTED}),
    MatchStatus.APPROVED: frozenset(),
    MatchStatus.REJECTED: frozenset(),
}

ACTIVE_STATUSES = frozenset(s for s in MatchStatus if s.is_active)

# Statuses a caller may request through set_match_status
ReviewDecision = Literal["approved", "rejected"]


# ============================================
# Confidence Scoring
# ============================================

class ConfidenceBreakdown(BaseModel):
    """Breakdown of how a cluster-to-charge confidence was calculated."""

    date_score: float = Field(ge=0, le=100, description="Date proximity sub-score")
    amount_score: float = Field(ge=0, le=100, description="Amount proximity sub-score")
    total: int = Field(ge=0, le=100, description="Weighted confidence")
    days_apart: int = Field(ge=0)
    factors: list[str] = Field(default_factory=list, description="Human-readable factors")


# ============================================
# Match Result
# ============================================

class MatchResult(BaseModel):
    """A bank card-charge line paired with the purchases it paid for."""

    id: str
    user_id: str
    card_last_four: str
    charge_date: date
    bank_charge_id: str
    purchase_ids: list[str]

    total_purchase_minor: int
    bank_amount_minor: int
    discrepancy_minor: int  # bank - purchases, signed
    discrepancy_percent: float

    confidence: int = Field(ge=0, le=100)
    confidence_breakdown: Optional[ConfidenceBreakdown] = None
    status: MatchStatus = MatchStatus.PENDING
    is_manual: bool = False
    version: int = 1

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @property
    def purchase_count(self) -> int:
        return len(self.purchase_ids)

    @property
    def is_active(self) -> bool:
        return self.status.is_active


class MatchSummary(BaseModel):
    """Dashboard totals over all of an owner's matches."""

    total_matches: int
    pending_count: int
    approved_count: int
    rejected_count: int
    total_purchases: int
    avg_confidence: float
    total_discrepancy_minor: int
