# cardrecon/core/__init__.py

from cardrecon.core.confidence import calculate_confidence, confidence_level
from cardrecon.core.fingerprint import transaction_fingerprint, fingerprint_row
from cardrecon.core.importer import import_rows
from cardrecon.core.lifecycle import (
    set_match_status,
    approve,
    reject,
    unmatch,
    link_manually,
    summarize_matches,
)
from cardrecon.core.matching import match_clusters, group_purchases
from cardrecon.core.merchants import (
    parse_merchant_name,
    merchant_key,
    is_same_merchant,
    group_by_merchant,
)
from cardrecon.core.reconciliation import reconcile
from cardrecon.core.vat import vat_from_inclusive_total, net_from_inclusive_total

__all__ = [
    "calculate_confidence",
    "confidence_level",
    "transaction_fingerprint",
    "fingerprint_row",
    "import_rows",
    "set_match_status",
    "approve",
    "reject",
    "unmatch",
    "link_manually",
    "summarize_matches",
    "match_clusters",
    "group_purchases",
    "parse_merchant_name",
    "merchant_key",
    "is_same_merchant",
    "group_by_merchant",
    "reconcile",
    "vat_from_inclusive_total",
    "net_from_inclusive_total",
]
