# cardrecon/core/fingerprint.py

"""
Transaction fingerprinting for import deduplication.

A fingerprint is a stable SHA-256 digest of a row's semantic fields, so
re-uploading the same statement (or a re-exported copy of it) yields the
same fingerprints and nothing is inserted twice.
"""

from datetime import date
import hashlib

from cardrecon.models import ImportRow
from cardrecon.core.normalizers import normalize_string

# ASCII unit separator - never appears in statement text
FIELD_SEPARATOR = "\x1f"

SOURCE_TAGS = {
    "credit_card": "cc",
    "bank": "bank",
}


def transaction_fingerprint(
    source_type: str,
    txn_date: date | str,
    merchant: str,
    amount_minor: int,
    card_identifier: str | None = None,
    reference: str | None = None,
    billing_date: date | str | None = None,
) -> str:
    """
    Fingerprint a transaction from its semantic fields.

    Merchant text is trimmed and its whitespace collapsed; everything else
    is used as-is. Card purchases carry their billing date, so the
    instalments of one purchase stay distinct. Returns a 64-character hex
    digest.
    """
    if isinstance(txn_date, date):
        txn_date = txn_date.isoformat()
    if isinstance(billing_date, date):
        billing_date = billing_date.isoformat()

    parts = [
        source_type,
        txn_date,
        normalize_string(merchant),
        str(int(amount_minor)),
        card_identifier or "",
        reference or "",
        billing_date or "",
    ]
    payload = FIELD_SEPARATOR.join(parts)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def fingerprint_row(row: ImportRow) -> str:
    """Fingerprint a parsed statement row."""
    return transaction_fingerprint(
        SOURCE_TAGS[row.source],
        row.date,
        row.description,
        row.amount_minor,
        card_identifier=row.card_last_four,
        reference=row.reference,
        billing_date=row.billing_date,
    )


def split_new_rows(
    rows: list[ImportRow],
    existing: set[str],
) -> tuple[list[tuple[str, ImportRow]], int]:
    """
    Drop rows whose fingerprint is already stored or repeats within the batch.

    Returns ([(fingerprint, row), ...] to insert, number of duplicates).
    """
    seen = set(existing)
    fresh: list[tuple[str, ImportRow]] = []
    duplicates = 0

    for row in rows:
        fp = fingerprint_row(row)
        if fp in seen:
            duplicates += 1
            continue
        seen.add(fp)
        fresh.append((fp, row))

    return fresh, duplicates
