# cardrecon/models/transaction.py

from datetime import date
from typing import Optional, Literal
from pydantic import BaseModel, Field

# Stored type tag, shared by bank rows and card purchases
TransactionType = Literal["bank_regular", "bank_cc_charge", "cc_purchase"]

PurchaseStatus = Literal["unmatched", "matched"]

ImportSource = Literal["credit_card", "bank"]


class PurchaseRecord(BaseModel):
    """A single credit-card purchase line from a card statement."""

    id: str
    user_id: str
    card_last_four: str
    transaction_date: date
    billing_date: date
    merchant_name: str
    amount_minor: int
    currency: str = "ILS"
    foreign_amount_minor: Optional[int] = None
    foreign_currency: Optional[str] = None
    normalized_merchant: Optional[str] = None
    match_status: PurchaseStatus = "unmatched"
    hash: Optional[str] = None

    class Config:
        from_attributes = True

    @property
    def effective_amount(self) -> int:
        """Foreign amount when present and non-zero, else the local amount."""
        if self.foreign_amount_minor:
            return self.foreign_amount_minor
        return self.amount_minor


class BankChargeRecord(BaseModel):
    """A bank-statement line. `is_card_charge` marks a card-aggregate charge."""

    id: str
    user_id: str
    date: date
    description: str
    amount_minor: int
    is_card_charge: bool = False
    card_last_four: Optional[str] = None
    reference: Optional[str] = None
    hash: Optional[str] = None

    class Config:
        from_attributes = True

    @property
    def charge_amount(self) -> int:
        """Magnitude of the charge; statements record debits with either sign."""
        return abs(self.amount_minor)


class ImportRow(BaseModel):
    """A parsed statement row as handed over by the upload layer."""

    source: ImportSource
    date: date
    description: str
    amount_minor: int

    # Card statement fields
    card_last_four: Optional[str] = None
    billing_date: Optional[date] = None
    foreign_amount_minor: Optional[int] = None
    foreign_currency: Optional[str] = None

    # Bank statement fields
    reference: Optional[str] = None
    is_card_charge: Optional[bool] = Field(
        default=None,
        description="None = detect from the description",
    )


class ImportResult(BaseModel):
    """Outcome of one import batch."""

    inserted_count: int
    duplicate_count: int
    matched_count: int = 0
