# cardrecon/store/memory.py

"""
In-process RecordStore.

Backs the test-suite and `store_backend=memory` local runs. Every write
works on the live state under a lock and restores a snapshot if anything
goes wrong, so writes are all-or-nothing like the database functions.
"""

from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Optional
import copy
import logging
import threading
import uuid

from cardrecon.errors import ConflictError, NotFoundError, PersistenceError, ReconciliationError
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


def _in_window(value: date, start_date: Optional[date], end_date: Optional[date]) -> bool:
    if start_date and value < start_date:
        return False
    if end_date and value > end_date:
        return False
    return True


class InMemoryStore(RecordStore):

    def __init__(self):
        super().__init__()
        self._lock = threading.RLock()
        self._purchases: dict[str, PurchaseRecord] = {}
        self._charges: dict[str, BankChargeRecord] = {}
        self._matches: dict[str, MatchResult] = {}
        self._aliases: dict[str, MerchantAlias] = {}

    @contextmanager
    def _transaction(self):
        """Apply a write completely or not at all."""
        with self._lock:
            snapshot = copy.deepcopy(
                (self._purchases, self._charges, self._matches, self._aliases)
            )
            try:
                yield
            except ReconciliationError:
                self._purchases, self._charges, self._matches, self._aliases = snapshot
                raise
            except Exception as e:
                self._purchases, self._charges, self._matches, self._aliases = snapshot
                logger.error(f"In-memory write failed, rolled back: {e}")
                raise PersistenceError(str(e)) from e

    def _owned_match(self, user_id: str, match_id: str) -> MatchResult:
        match = self._matches.get(match_id)
        if match is None or match.user_id != user_id:
            raise NotFoundError(f"Match {match_id} not found")
        return match

    def _check_version(self, match: MatchResult, expected_version: int):
        if match.version != expected_version:
            raise ConflictError(
                f"Match {match.id} changed (version {match.version}, expected {expected_version})"
            )

    def _set_purchase_status(self, purchase_ids: list[str], status: str):
        for pid in purchase_ids:
            purchase = self._purchases.get(pid)
            if purchase is not None:
                self._purchases[pid] = purchase.model_copy(update={"match_status": status})

    def _release_purchases(self, user_id: str, purchase_ids: list[str]):
        """Mark purchases unmatched unless an active match still holds them."""
        held = {
            pid for m in self._matches.values()
            if m.user_id == user_id and m.is_active
            for pid in m.purchase_ids
        }
        self._set_purchase_status([pid for pid in purchase_ids if pid not in held], "unmatched")

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    # ============================================
    # Import
    # ============================================

    async def existing_fingerprints(self, user_id: str, hashes: list[str]) -> set[str]:
        wanted = set(hashes)
        with self._lock:
            stored = {
                r.hash for r in [*self._purchases.values(), *self._charges.values()]
                if r.user_id == user_id and r.hash
            }
        return stored & wanted

    async def insert_records(
        self,
        user_id: str,
        purchases: list[PurchaseRecord],
        charges: list[BankChargeRecord],
    ) -> int:
        inserted = 0
        with self._transaction():
            stored = {
                r.hash for r in [*self._purchases.values(), *self._charges.values()]
                if r.user_id == user_id and r.hash
            }
            for purchase in purchases:
                if purchase.hash and purchase.hash in stored:
                    continue
                self._purchases[purchase.id] = purchase.model_copy(update={"user_id": user_id})
                stored.add(purchase.hash)
                inserted += 1
            for charge in charges:
                if charge.hash and charge.hash in stored:
                    continue
                self._charges[charge.id] = charge.model_copy(update={"user_id": user_id})
                stored.add(charge.hash)
                inserted += 1
        return inserted

    # ============================================
    # Candidates
    # ============================================

    async def get_unmatched_purchases(
        self,
        user_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[PurchaseRecord]:
        with self._lock:
            return [
                p for p in self._purchases.values()
                if p.user_id == user_id
                and p.match_status == "unmatched"
                and _in_window(p.billing_date, start_date, end_date)
            ]

    async def get_card_charges(
        self,
        user_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[BankChargeRecord]:
        with self._lock:
            return [
                c for c in self._charges.values()
                if c.user_id == user_id
                and c.is_card_charge
                and _in_window(c.date, start_date, end_date)
            ]

    async def get_purchases(self, user_id: str, purchase_ids: list[str]) -> list[PurchaseRecord]:
        with self._lock:
            return [
                self._purchases[pid] for pid in purchase_ids
                if pid in self._purchases and self._purchases[pid].user_id == user_id
            ]

    async def get_bank_charge(self, user_id: str, charge_id: str) -> Optional[BankChargeRecord]:
        with self._lock:
            charge = self._charges.get(charge_id)
        if charge is None or charge.user_id != user_id:
            return None
        return charge

    # ============================================
    # Matches
    # ============================================

    async def list_matches(
        self,
        user_id: str,
        status: Optional[MatchStatus] = None,
    ) -> list[MatchResult]:
        with self._lock:
            matches = [
                m for m in self._matches.values()
                if m.user_id == user_id and (status is None or m.status == status)
            ]
        matches.sort(key=lambda m: (m.charge_date, m.id), reverse=True)
        return matches

    async def get_match(self, user_id: str, match_id: str) -> Optional[MatchResult]:
        with self._lock:
            match = self._matches.get(match_id)
        if match is None or match.user_id != user_id:
            return None
        return match

    async def create_matches(self, user_id: str, matches: list[MatchResult]) -> list[MatchResult]:
        created: list[MatchResult] = []
        with self._transaction():
            active = [
                m for m in self._matches.values()
                if m.user_id == user_id and m.is_active
            ]
            taken_charges = {m.bank_charge_id for m in active}
            taken_purchases = {pid for m in active for pid in m.purchase_ids}

            now = self._now()
            for match in matches:
                if match.bank_charge_id in taken_charges:
                    raise ConflictError(f"Bank charge {match.bank_charge_id} is already matched")
                overlap = taken_purchases.intersection(match.purchase_ids)
                if overlap:
                    raise ConflictError(f"Purchases already matched: {sorted(overlap)}")

                stored = match.model_copy(update={
                    "id": match.id or str(uuid.uuid4()),
                    "user_id": user_id,
                    "version": 1,
                    "created_at": now,
                    "updated_at": now,
                })
                self._matches[stored.id] = stored
                taken_charges.add(stored.bank_charge_id)
                taken_purchases.update(stored.purchase_ids)
                created.append(stored)
        return created

    async def update_match_status(
        self,
        user_id: str,
        match_id: str,
        expected_version: int,
        status: MatchStatus,
    ) -> MatchResult:
        with self._transaction():
            match = self._owned_match(user_id, match_id)
            self._check_version(match, expected_version)
            if not match.status.can_transition_to(status):
                raise ConflictError(f"Match {match_id} is {match.status.value}, not pending")

            updated = match.model_copy(update={
                "status": status,
                "version": match.version + 1,
                "updated_at": self._now(),
            })
            self._matches[match_id] = updated
            if status == MatchStatus.APPROVED:
                self._set_purchase_status(updated.purchase_ids, "matched")
        return updated

    async def delete_match(self, user_id: str, match_id: str, expected_version: int) -> None:
        with self._transaction():
            match = self._owned_match(user_id, match_id)
            self._check_version(match, expected_version)
            del self._matches[match_id]
            self._release_purchases(user_id, match.purchase_ids)

    async def shrink_match(
        self,
        user_id: str,
        updated: MatchResult,
        expected_version: int,
        released_ids: list[str],
    ) -> MatchResult:
        with self._transaction():
            match = self._owned_match(user_id, updated.id)
            self._check_version(match, expected_version)

            stored = updated.model_copy(update={
                "user_id": user_id,
                "version": match.version + 1,
                "updated_at": self._now(),
            })
            self._matches[stored.id] = stored
            self._release_purchases(user_id, released_ids)
        return stored

    # ============================================
    # Merchant aliases
    # ============================================

    async def list_aliases(self, user_id: str) -> list[MerchantAlias]:
        with self._lock:
            aliases = [a for a in self._aliases.values() if a.user_id == user_id]
        aliases.sort(key=lambda a: (-a.priority, a.alias_pattern))
        return aliases

    async def create_alias(self, user_id: str, alias: MerchantAliasCreate) -> MerchantAlias:
        stored = MerchantAlias(
            id=str(uuid.uuid4()),
            user_id=user_id,
            created_at=self._now(),
            **alias.model_dump(),
        )
        with self._transaction():
            self._aliases[stored.id] = stored
        return stored

    async def delete_alias(self, user_id: str, alias_id: str) -> bool:
        with self._transaction():
            alias = self._aliases.get(alias_id)
            if alias is None or alias.user_id != user_id:
                return False
            del self._aliases[alias_id]
        return True
