# tests/conftest.py

import asyncio
from datetime import date
from typing import Optional

import pytest

from cardrecon.models import BankChargeRecord, PurchaseRecord
from cardrecon.store import InMemoryStore

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


# ============================================
# Record factories
# ============================================

def _purchase(
    id: str,
    amount: int,
    billing_date: date,
    card: str = "1234",
    txn_date: Optional[date] = None,
    foreign_amount: Optional[int] = None,
    merchant: str = "Shop",
    user_id: str = USER_ID,
) -> PurchaseRecord:
    return PurchaseRecord(
        id=id,
        user_id=user_id,
        card_last_four=card,
        transaction_date=txn_date or billing_date,
        billing_date=billing_date,
        merchant_name=merchant,
        amount_minor=amount,
        foreign_amount_minor=foreign_amount,
        hash=f"hash-{id}",
    )


def _charge(
    id: str,
    amount: int,
    charge_date: date,
    card: Optional[str] = None,
    is_card_charge: bool = True,
    user_id: str = USER_ID,
) -> BankChargeRecord:
    return BankChargeRecord(
        id=id,
        user_id=user_id,
        date=charge_date,
        description=f"Visa charge {id}",
        amount_minor=amount,
        is_card_charge=is_card_charge,
        card_last_four=card,
        hash=f"hash-{id}",
    )


@pytest.fixture
def make_purchase():
    return _purchase


@pytest.fixture
def make_charge():
    return _charge


# ============================================
# Store
# ============================================

@pytest.fixture
def store():
    """A fresh in-memory store per test."""
    return InMemoryStore()


@pytest.fixture
def seed(store):
    """Insert purchases and charges for an owner."""
    def _seed(purchases=(), charges=(), user_id: str = USER_ID):
        return asyncio.run(store.insert_records(user_id, list(purchases), list(charges)))
    return _seed


@pytest.fixture
def scenario(seed):
    """
    Three purchases on card 1234 billed 2024-03-10 totalling 15000, and a
    Visa charge of 15200 two days later.
    """
    purchases = [
        _purchase("p1", 5000, date(2024, 3, 10), txn_date=date(2024, 2, 14)),
        _purchase("p2", 4000, date(2024, 3, 10), txn_date=date(2024, 2, 20)),
        _purchase("p3", 6000, date(2024, 3, 10), txn_date=date(2024, 3, 1)),
    ]
    charges = [_charge("c1", -15200, date(2024, 3, 12))]
    seed(purchases, charges)
    return purchases, charges
