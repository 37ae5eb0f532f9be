# cardrecon/store/supabase_store.py

"""
Supabase-backed RecordStore.

Single-table reads go through the PostgREST query builder. Multi-row writes
(match creation and the lifecycle transitions) call the PL/pgSQL functions
in supabase/migrations/, each of which runs in one transaction under a
per-owner advisory lock.
"""

from datetime import date
from typing import Any, Optional
import logging

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from cardrecon.errors import ConflictError, NotFoundError, PersistenceError
from cardrecon.models import (
    BankChargeRecord,
    MatchResult,
    MatchStatus,
    MerchantAlias,
    MerchantAliasCreate,
    PurchaseRecord,
)
from cardrecon.store.base import RecordStore

logger = logging.getLogger(__name__)

TRANSACTIONS = "transactions"
MATCH_RESULTS = "cc_bank_match_results"
MERCHANT_ALIASES = "merchant_aliases"

UNIQUE_VIOLATION = "23505"
CONFLICT_SIGNAL = "match_conflict"
NOT_FOUND_SIGNAL = "match_not_found"


# ============================================
# Row mapping
# ============================================

def purchase_to_row(purchase: PurchaseRecord) -> dict:
    return {
        "id": purchase.id,
        "user_id": purchase.user_id,
        "transaction_type": "cc_purchase",
        "date": purchase.transaction_date.isoformat(),
        "billing_date": purchase.billing_date.isoformat(),
        "description": purchase.merchant_name,
        "amount_minor": purchase.amount_minor,
        "currency": purchase.currency,
        "foreign_amount_minor": purchase.foreign_amount_minor,
        "foreign_currency": purchase.foreign_currency,
        "card_last_four": purchase.card_last_four,
        "normalized_merchant": purchase.normalized_merchant,
        "match_status": purchase.match_status,
        "hash": purchase.hash,
    }


def row_to_purchase(row: dict) -> PurchaseRecord:
    return PurchaseRecord(
        id=row["id"],
        user_id=row["user_id"],
        card_last_four=row.get("card_last_four") or "",
        transaction_date=row["date"],
        billing_date=row.get("billing_date") or row["date"],
        merchant_name=row.get("description") or "",
        amount_minor=row["amount_minor"],
        currency=row.get("currency") or "ILS",
        foreign_amount_minor=row.get("foreign_amount_minor"),
        foreign_currency=row.get("foreign_currency"),
        normalized_merchant=row.get("normalized_merchant"),
        match_status=row.get("match_status") or "unmatched",
        hash=row.get("hash"),
    )


def charge_to_row(charge: BankChargeRecord) -> dict:
    return {
        "id": charge.id,
        "user_id": charge.user_id,
        "transaction_type": "bank_cc_charge" if charge.is_card_charge else "bank_regular",
        "date": charge.date.isoformat(),
        "description": charge.description,
        "amount_minor": charge.amount_minor,
        "card_last_four": charge.card_last_four,
        "reference": charge.reference,
        "match_status": "unmatched",
        "hash": charge.hash,
    }


def row_to_charge(row: dict) -> BankChargeRecord:
    return BankChargeRecord(
        id=row["id"],
        user_id=row["user_id"],
        date=row["date"],
        description=row.get("description") or "",
        amount_minor=row["amount_minor"],
        is_card_charge=row.get("transaction_type") == "bank_cc_charge",
        card_last_four=row.get("card_last_four"),
        reference=row.get("reference"),
        hash=row.get("hash"),
    )


def match_to_row(match: MatchResult) -> dict:
    row = match.model_dump(mode="json", exclude={"created_at", "updated_at"})
    if not row.get("id"):
        row.pop("id", None)
    return row


# ============================================
# Store
# ============================================

class SupabaseStore(RecordStore):

    def __init__(self, client: Client):
        super().__init__()
        self.client = client

    def _execute(self, request, action: str) -> Any:
        """Run a PostgREST request, mapping failures onto the error taxonomy."""
        try:
            return request.execute()
        except APIError as e:
            message = e.message or str(e)
            if e.code == UNIQUE_VIOLATION or CONFLICT_SIGNAL in message:
                logger.info(f"Conflict during {action}: {message}")
                raise ConflictError(message) from e
            if NOT_FOUND_SIGNAL in message:
                raise NotFoundError(message) from e
            logger.error(f"Database error during {action}: {message}")
            raise PersistenceError(f"{action} failed: {message}") from e
        except httpx.HTTPError as e:
            logger.error(f"Database unreachable during {action}: {e}")
            raise PersistenceError(f"{action} failed: {e}") from e

    # ============================================
    # Import
    # ============================================

    async def existing_fingerprints(self, user_id: str, hashes: list[str]) -> set[str]:
        if not hashes:
            return set()
        response = self._execute(
            self.client.rpc("existing_fingerprints", {
                "p_user_id": user_id,
                "p_hashes": sorted(set(hashes)),
            }),
            "fingerprint lookup",
        )
        return {row["hash"] for row in response.data or []}

    async def insert_records(
        self,
        user_id: str,
        purchases: list[PurchaseRecord],
        charges: list[BankChargeRecord],
    ) -> int:
        rows = [purchase_to_row(p) for p in purchases] + [charge_to_row(c) for c in charges]
        if not rows:
            return 0

        for row in rows:
            row["user_id"] = user_id

        response = self._execute(
            self.client.table(TRANSACTIONS).upsert(
                rows,
                on_conflict="user_id,hash",
                ignore_duplicates=True,
            ),
            "transaction insert",
        )
        return len(response.data) if response.data else 0

    # ============================================
    # Candidates
    # ============================================

    async def get_unmatched_purchases(
        self,
        user_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[PurchaseRecord]:
        query = (
            self.client.table(TRANSACTIONS)
            .select("*")
            .eq("user_id", user_id)
            .eq("transaction_type", "cc_purchase")
            .eq("match_status", "unmatched")
        )
        if start_date:
            query = query.gte("billing_date", start_date.isoformat())
        if end_date:
            query = query.lte("billing_date", end_date.isoformat())

        response = self._execute(query, "purchase load")
        return [row_to_purchase(row) for row in response.data]

    async def get_card_charges(
        self,
        user_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[BankChargeRecord]:
        query = (
            self.client.table(TRANSACTIONS)
            .select("*")
            .eq("user_id", user_id)
            .eq("transaction_type", "bank_cc_charge")
        )
        if start_date:
            query = query.gte("date", start_date.isoformat())
        if end_date:
            query = query.lte("date", end_date.isoformat())

        response = self._execute(query, "bank charge load")
        return [row_to_charge(row) for row in response.data]

    async def get_purchases(self, user_id: str, purchase_ids: list[str]) -> list[PurchaseRecord]:
        if not purchase_ids:
            return []
        response = self._execute(
            self.client.table(TRANSACTIONS)
            .select("*")
            .eq("user_id", user_id)
            .eq("transaction_type", "cc_purchase")
            .in_("id", purchase_ids),
            "purchase lookup",
        )
        return [row_to_purchase(row) for row in response.data]

    async def get_bank_charge(self, user_id: str, charge_id: str) -> Optional[BankChargeRecord]:
        response = self._execute(
            self.client.table(TRANSACTIONS)
            .select("*")
            .eq("user_id", user_id)
            .eq("id", charge_id)
            .in_("transaction_type", ["bank_regular", "bank_cc_charge"]),
            "bank charge lookup",
        )
        return row_to_charge(response.data[0]) if response.data else None

    # ============================================
    # Matches
    # ============================================

    async def list_matches(
        self,
        user_id: str,
        status: Optional[MatchStatus] = None,
    ) -> list[MatchResult]:
        query = self.client.table(MATCH_RESULTS).select("*").eq("user_id", user_id)
        if status:
            query = query.eq("status", status.value)

        response = self._execute(query.order("charge_date", desc=True), "match list")
        return [MatchResult(**row) for row in response.data]

    async def get_match(self, user_id: str, match_id: str) -> Optional[MatchResult]:
        response = self._execute(
            self.client.table(MATCH_RESULTS)
            .select("*")
            .eq("user_id", user_id)
            .eq("id", match_id),
            "match lookup",
        )
        return MatchResult(**response.data[0]) if response.data else None

    async def create_matches(self, user_id: str, matches: list[MatchResult]) -> list[MatchResult]:
        if not matches:
            return []
        response = self._execute(
            self.client.rpc("create_match_results", {
                "p_user_id": user_id,
                "p_matches": [match_to_row(m) for m in matches],
            }),
            "match creation",
        )
        return [MatchResult(**row) for row in response.data or []]

    async def update_match_status(
        self,
        user_id: str,
        match_id: str,
        expected_version: int,
        status: MatchStatus,
    ) -> MatchResult:
        response = self._execute(
            self.client.rpc("set_match_status", {
                "p_user_id": user_id,
                "p_match_id": match_id,
                "p_expected_version": expected_version,
                "p_status": status.value,
            }),
            "match status update",
        )
        return MatchResult(**_single(response.data))

    async def delete_match(self, user_id: str, match_id: str, expected_version: int) -> None:
        self._execute(
            self.client.rpc("delete_match_result", {
                "p_user_id": user_id,
                "p_match_id": match_id,
                "p_expected_version": expected_version,
            }),
            "match delete",
        )

    async def shrink_match(
        self,
        user_id: str,
        updated: MatchResult,
        expected_version: int,
        released_ids: list[str],
    ) -> MatchResult:
        response = self._execute(
            self.client.rpc("shrink_match_result", {
                "p_user_id": user_id,
                "p_match_id": updated.id,
                "p_expected_version": expected_version,
                "p_purchase_ids": updated.purchase_ids,
                "p_released_ids": released_ids,
                "p_total_purchase_minor": updated.total_purchase_minor,
                "p_discrepancy_minor": updated.discrepancy_minor,
                "p_discrepancy_percent": updated.discrepancy_percent,
            }),
            "match shrink",
        )
        return MatchResult(**_single(response.data))

    # ============================================
    # Merchant aliases
    # ============================================

    async def list_aliases(self, user_id: str) -> list[MerchantAlias]:
        response = self._execute(
            self.client.table(MERCHANT_ALIASES)
            .select("*")
            .eq("user_id", user_id)
            .order("priority", desc=True),
            "alias list",
        )
        return [MerchantAlias(**row) for row in response.data]

    async def create_alias(self, user_id: str, alias: MerchantAliasCreate) -> MerchantAlias:
        data = alias.model_dump()
        data["user_id"] = user_id
        response = self._execute(
            self.client.table(MERCHANT_ALIASES).insert(data),
            "alias insert",
        )
        return MerchantAlias(**response.data[0])

    async def delete_alias(self, user_id: str, alias_id: str) -> bool:
        response = self._execute(
            self.client.table(MERCHANT_ALIASES)
            .delete()
            .eq("user_id", user_id)
            .eq("id", alias_id),
            "alias delete",
        )
        return len(response.data) > 0 if response.data else False


def _single(data: Any) -> dict:
    """RPCs returning one row come back as a dict or a one-element list."""
    if isinstance(data, list):
        if not data:
            raise PersistenceError("Database function returned no row")
        return data[0]
    return data
