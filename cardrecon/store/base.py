# cardrecon/store/base.py

"""
Record store contract.

Everything the engine reads or writes goes through a RecordStore. Each
write method is all-or-nothing: it either applies completely or raises
(ConflictError / PersistenceError) with nothing changed.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional
import asyncio

from cardrecon.models import (
    BankChargeRecord,
    MatchResult,
    MatchStatus,
    MerchantAlias,
    MerchantAliasCreate,
    PurchaseRecord,
)


class RecordStore(ABC):
    """Owner-scoped persistence for statement rows, matches and aliases."""

    def __init__(self):
        self._owner_locks: dict[str, asyncio.Lock] = {}

    def owner_lock(self, user_id: str) -> asyncio.Lock:
        """
        Lock serializing reconcile runs for one owner in this process.

        Cross-process serialization is the backend's job (advisory locks).
        """
        lock = self._owner_locks.get(user_id)
        if lock is None:
            lock = self._owner_locks.setdefault(user_id, asyncio.Lock())
        return lock

    # ============================================
    # Import
    # ============================================

    @abstractmethod
    async def existing_fingerprints(self, user_id: str, hashes: list[str]) -> set[str]:
        """Subset of `hashes` already stored for the owner. One round trip."""

    @abstractmethod
    async def insert_records(
        self,
        user_id: str,
        purchases: list[PurchaseRecord],
        charges: list[BankChargeRecord],
    ) -> int:
        """
        Bulk-insert statement rows. Rows whose (owner, hash) already exists
        are ignored. Returns how many rows were actually inserted.
        """

    # ============================================
    # Candidates
    # ============================================

    @abstractmethod
    async def get_unmatched_purchases(
        self,
        user_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[PurchaseRecord]:
        """Purchases with match_status 'unmatched', by billing date window."""

    @abstractmethod
    async def get_card_charges(
        self,
        user_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[BankChargeRecord]:
        """Bank rows flagged as card-aggregate charges, by date window."""

    @abstractmethod
    async def get_purchases(self, user_id: str, purchase_ids: list[str]) -> list[PurchaseRecord]:
        """Purchases by id; unknown ids are left out."""

    @abstractmethod
    async def get_bank_charge(self, user_id: str, charge_id: str) -> Optional[BankChargeRecord]:
        ...

    # ============================================
    # Matches
    # ============================================

    @abstractmethod
    async def list_matches(
        self,
        user_id: str,
        status: Optional[MatchStatus] = None,
    ) -> list[MatchResult]:
        ...

    @abstractmethod
    async def get_match(self, user_id: str, match_id: str) -> Optional[MatchResult]:
        ...

    @abstractmethod
    async def create_matches(self, user_id: str, matches: list[MatchResult]) -> list[MatchResult]:
        """
        Persist a batch of new matches atomically.

        Raises ConflictError if any bank charge or purchase is already
        referenced by an active match (or twice within the batch).
        """

    @abstractmethod
    async def update_match_status(
        self,
        user_id: str,
        match_id: str,
        expected_version: int,
        status: MatchStatus,
    ) -> MatchResult:
        """
        Compare-and-set a pending match to `status`.

        Approving marks member purchases 'matched'. Raises ConflictError when
        the stored version differs or the match is no longer pending.
        """

    @abstractmethod
    async def delete_match(self, user_id: str, match_id: str, expected_version: int) -> None:
        """
        Delete a match and reset its purchases to 'unmatched', except those
        another active match holds.
        """

    @abstractmethod
    async def shrink_match(
        self,
        user_id: str,
        updated: MatchResult,
        expected_version: int,
        released_ids: list[str],
    ) -> MatchResult:
        """
        Replace a match's members and totals with `updated` and reset the
        released purchases not held by another active match to 'unmatched'.
        """

    # ============================================
    # Merchant aliases
    # ============================================

    @abstractmethod
    async def list_aliases(self, user_id: str) -> list[MerchantAlias]:
        ...

    @abstractmethod
    async def create_alias(self, user_id: str, alias: MerchantAliasCreate) -> MerchantAlias:
        ...

    @abstractmethod
    async def delete_alias(self, user_id: str, alias_id: str) -> bool:
        """True if an alias was deleted."""
