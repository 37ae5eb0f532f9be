# cardrecon/main.py

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cardrecon.config import get_settings
from cardrecon.errors import (
    ConflictError,
    NotFoundError,
    PersistenceError,
    ReconciliationError,
    ValidationError,
)
from cardrecon.routers import health, reconcile, matches, merchants

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# ============================================
# Create FastAPI app
# ============================================

app = FastAPI(
    title=settings.app_name,
    description="Reconciliation engine for card purchases ↔ bank card charges",
    version="1.0.0",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# ============================================
# CORS middleware
# ============================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.frontend_url,
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================
# Error handlers
# ============================================

ERROR_STATUS = {
    ValidationError: 422,
    NotFoundError: 404,
    ConflictError: 409,
    PersistenceError: 503,
}


@app.exception_handler(ReconciliationError)
async def reconciliation_error_handler(request: Request, exc: ReconciliationError):
    status_code = next(
        (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)),
        500,
    )
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": exc.kind, "detail": exc.message},
    )

# ============================================
# Include routers
# ============================================

app.include_router(health.router, tags=["Health"])
app.include_router(reconcile.router, tags=["Reconciliation"])
app.include_router(matches.router, prefix="/matches", tags=["Matches"])
app.include_router(merchants.router, tags=["Merchants"])

# ============================================
# Root endpoint
# ============================================

@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs" if settings.debug else None,
    }
