# cardrecon/core/importer.py

"""
Statement import with fingerprint deduplication.

One bulk fingerprint lookup and one bulk insert per batch, regardless of
batch size.
"""

from typing import Optional
import logging
import uuid

from cardrecon.errors import ValidationError
from cardrecon.models import (
    BankChargeRecord,
    ImportResult,
    ImportRow,
    MerchantAlias,
    PurchaseRecord,
)
from cardrecon.core.fingerprint import fingerprint_row, split_new_rows
from cardrecon.core.merchants import merchant_key
from cardrecon.core.normalizers import (
    detect_card_last_four,
    is_card_charge_description,
    normalize_card_identifier,
)
from cardrecon.core.reconciliation import require_owner
from cardrecon.store import RecordStore

logger = logging.getLogger(__name__)


def _normalize_row(row: ImportRow) -> ImportRow:
    """
    Canonical card field, so fingerprints survive re-exports.

    Descriptions keep their inner spacing: runs of spaces separate the
    merchant from trailing branch metadata.
    """
    return row.model_copy(update={
        "description": row.description.strip(),
        "card_last_four": normalize_card_identifier(row.card_last_four),
    })


def build_purchase(
    user_id: str,
    fingerprint: str,
    row: ImportRow,
    aliases: Optional[list[MerchantAlias]] = None,
) -> PurchaseRecord:
    if not row.card_last_four:
        raise ValidationError(f"Card purchase '{row.description}' has no card identifier")

    return PurchaseRecord(
        id=str(uuid.uuid4()),
        user_id=user_id,
        card_last_four=row.card_last_four,
        transaction_date=row.date,
        billing_date=row.billing_date or row.date,
        merchant_name=row.description,
        amount_minor=row.amount_minor,
        foreign_amount_minor=row.foreign_amount_minor,
        foreign_currency=row.foreign_currency,
        normalized_merchant=merchant_key(row.description, aliases),
        match_status="unmatched",
        hash=fingerprint,
    )


def build_bank_charge(user_id: str, fingerprint: str, row: ImportRow) -> BankChargeRecord:
    is_card_charge = row.is_card_charge
    if is_card_charge is None:
        is_card_charge = is_card_charge_description(row.description)

    card = row.card_last_four
    if is_card_charge and not card:
        card = detect_card_last_four(row.description)

    return BankChargeRecord(
        id=str(uuid.uuid4()),
        user_id=user_id,
        date=row.date,
        description=row.description,
        amount_minor=row.amount_minor,
        is_card_charge=is_card_charge,
        card_last_four=card,
        reference=row.reference,
        hash=fingerprint,
    )


async def import_rows(
    store: RecordStore,
    user_id: str,
    rows: list[ImportRow],
) -> ImportResult:
    """
    Insert statement rows that have not been imported before.

    Re-importing the same rows (in any order) inserts nothing the second
    time. Repeats within one batch count as duplicates.
    """
    require_owner(user_id)
    if not rows:
        return ImportResult(inserted_count=0, duplicate_count=0)

    normalized = [_normalize_row(row) for row in rows]
    hashes = [fingerprint_row(row) for row in normalized]

    existing = await store.existing_fingerprints(user_id, hashes)
    fresh, _ = split_new_rows(normalized, existing)

    aliases = await store.list_aliases(user_id) if any(
        row.source == "credit_card" for _, row in fresh
    ) else []

    purchases: list[PurchaseRecord] = []
    charges: list[BankChargeRecord] = []
    for fingerprint, row in fresh:
        if row.source == "credit_card":
            purchases.append(build_purchase(user_id, fingerprint, row, aliases))
        else:
            charges.append(build_bank_charge(user_id, fingerprint, row))

    inserted = await store.insert_records(user_id, purchases, charges)
    result = ImportResult(
        inserted_count=inserted,
        duplicate_count=len(rows) - inserted,
    )

    logger.info(
        f"Import for {user_id}: {result.inserted_count} inserted, "
        f"{result.duplicate_count} duplicates ({len(purchases)} purchases, {len(charges)} bank rows)"
    )
    return result
