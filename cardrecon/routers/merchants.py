# cardrecon/routers/merchants.py

"""
Merchant alias and normalization routes.
"""

from fastapi import APIRouter, Depends, Query

from cardrecon.core.merchants import group_by_merchant, merchant_key, parse_merchant_name
from cardrecon.dependencies import get_current_user, get_store
from cardrecon.errors import NotFoundError
from cardrecon.models import MerchantAliasCreate
from cardrecon.store import RecordStore

router = APIRouter()


# ============================================
# Aliases
# ============================================

@router.get("/aliases")
async def list_aliases(
    user_id: str = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    aliases = await store.list_aliases(user_id)

    return {
        "success": True,
        "aliases": [a.model_dump(mode="json") for a in aliases],
    }


@router.post("/aliases")
async def create_alias(
    request: MerchantAliasCreate,
    user_id: str = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    """
    Add a per-user override for merchant normalization.

    Highest priority wins when several aliases match a description.
    """
    alias = await store.create_alias(user_id, request)

    return {
        "success": True,
        "alias": alias.model_dump(mode="json"),
    }


@router.delete("/aliases/{alias_id}")
async def delete_alias(
    alias_id: str,
    user_id: str = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    deleted = await store.delete_alias(user_id, alias_id)
    if not deleted:
        raise NotFoundError(f"Alias {alias_id} not found")

    return {"success": True, "deleted": alias_id}


# ============================================
# Normalization
# ============================================

@router.get("/merchants/normalize")
async def normalize_description(
    description: str = Query(..., min_length=1),
    user_id: str = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    """
    Show how a raw description is cleaned and keyed for this user.
    """
    aliases = await store.list_aliases(user_id)

    return {
        "success": True,
        "description": description,
        "merchant_name": parse_merchant_name(description, aliases),
        "merchant_key": merchant_key(description, aliases),
    }


@router.get("/merchants/groups")
async def merchant_groups(
    user_id: str = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    """
    Unmatched purchases bucketed by merchant, largest total first.
    """
    purchases = await store.get_unmatched_purchases(user_id)
    aliases = await store.list_aliases(user_id)
    groups = group_by_merchant(purchases, aliases)

    return {
        "success": True,
        "groups": [g.model_dump() for g in groups],
        "count": len(groups),
    }
