# cardrecon/models/alias.py

from datetime import datetime
from typing import Optional, Literal
from pydantic import BaseModel, Field

AliasMatchType = Literal["exact", "contains", "prefix", "suffix"]


class MerchantAliasCreate(BaseModel):
    """Request to create a merchant alias."""

    alias_pattern: str = Field(min_length=1)
    canonical_name: str = Field(min_length=1)
    match_type: AliasMatchType = "contains"
    priority: int = 0


class MerchantAlias(MerchantAliasCreate):
    """A per-owner override of automatic merchant normalization."""

    id: str
    user_id: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MerchantGroup(BaseModel):
    """Unmatched purchases bucketed under one merchant key."""

    merchant_key: str
    display_name: str
    purchase_count: int
    total_minor: int
    purchase_ids: list[str]
