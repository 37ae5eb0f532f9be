# cardrecon/routers/reconcile.py

"""
Import and reconciliation routes.

Uploading statement rows and running the matching engine.
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from cardrecon.config import get_settings
from cardrecon.core.importer import import_rows
from cardrecon.core.reconciliation import reconcile
from cardrecon.dependencies import get_current_user, get_store
from cardrecon.errors import ReconciliationError
from cardrecon.models import ImportRow, ReconcileRequest
from cardrecon.store import RecordStore

settings = get_settings()
router = APIRouter()
logger = logging.getLogger(__name__)


class ImportRequest(BaseModel):
    rows: list[ImportRow] = Field(default_factory=list)


# ============================================
# Import
# ============================================

@router.post("/imports")
async def import_statement_rows(
    request: ImportRequest,
    user_id: str = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    """
    Import parsed statement rows.

    Rows already imported are skipped. With the on-upload trigger, a
    reconcile run with the default tolerances follows the insert. The rows
    stay imported when that run fails; matched_count is then 0.
    """
    result = await import_rows(store, user_id, request.rows)

    if settings.matching_trigger == "on_upload" and result.inserted_count > 0:
        try:
            outcome = await reconcile(
                store,
                user_id,
                settings.date_tolerance_days,
                settings.amount_tolerance_percent,
            )
            result.matched_count = len(outcome.matches)
        except ReconciliationError as e:
            logger.warning(f"Reconcile after import failed for {user_id}: {e}")
            result.matched_count = 0

    return {
        "success": True,
        **result.model_dump(),
    }


# ============================================
# Main Reconciliation Endpoint
# ============================================

@router.post("/reconcile")
async def run_reconciliation(
    request: ReconcileRequest,
    user_id: str = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    """
    Run reconciliation for the authenticated user.

    Tolerances missing from the request fall back to the configured
    defaults. Returns the newly created pending matches.
    """
    date_tolerance = request.date_tolerance_days
    if date_tolerance is None:
        date_tolerance = settings.date_tolerance_days

    amount_tolerance = request.amount_tolerance_percent
    if amount_tolerance is None:
        amount_tolerance = settings.amount_tolerance_percent

    outcome = await reconcile(
        store,
        user_id,
        date_tolerance,
        amount_tolerance,
        start_date=request.start_date,
        end_date=request.end_date,
    )

    return {
        "success": True,
        "matches": [m.model_dump(mode="json") for m in outcome.matches],
        "summary": outcome.summary.model_dump(),
    }
