# cardrecon/models/__init__.py

from cardrecon.models.transaction import (
    TransactionType,
    PurchaseStatus,
    ImportSource,
    PurchaseRecord,
    BankChargeRecord,
    ImportRow,
    ImportResult,
)
from cardrecon.models.match import (
    ACTIVE_STATUSES,
    ConfidenceBreakdown,
    MatchResult,
    MatchStatus,
    MatchSummary,
    ReviewDecision,
)
from cardrecon.models.alias import (
    AliasMatchType,
    MerchantAlias,
    MerchantAliasCreate,
    MerchantGroup,
)
from cardrecon.models.reconciliation import (
    ReconciliationSummary,
    ReconciliationOutcome,
    ReconcileRequest,
    UnmatchRequest,
    ManualLinkRequest,
)

__all__ = [
    # Transaction
    "TransactionType",
    "PurchaseStatus",
    "ImportSource",
    "PurchaseRecord",
    "BankChargeRecord",
    "ImportRow",
    "ImportResult",
    # Match
    "ACTIVE_STATUSES",
    "ConfidenceBreakdown",
    "MatchResult",
    "MatchStatus",
    "MatchSummary",
    "ReviewDecision",
    # Alias
    "AliasMatchType",
    "MerchantAlias",
    "MerchantAliasCreate",
    "MerchantGroup",
    # Reconciliation
    "ReconciliationSummary",
    "ReconciliationOutcome",
    "ReconcileRequest",
    "UnmatchRequest",
    "ManualLinkRequest",
]
