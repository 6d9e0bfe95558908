# pyright: reportMissingTypeStubs=false
"""
Clinic Finance Backend API

FastAPI application serving the clinic back-office finance screens.

Features:
- Monthly and range financial summaries, reports and CSV export
- Revenue comparison and annual insurer coverage charts
- Insurance payment tracking and reconciliation
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from api import finance
from core.config import CURRENCY_CODE, ENVIRONMENT
from core.constants import CORS_ORIGINS
from core.database import engine
from services.finance_errors import CalculationValidationError, FinanceError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Check the ledger database is reachable before serving requests."""
    logger.info(f"🚀 Starting Clinic Finance API ({ENVIRONMENT}, {CURRENCY_CODE})")
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        logger.info("✅ Ledger database reachable")
    except SQLAlchemyError as e:
        # Keep serving; requests will surface the database error themselves
        logger.exception(f"❌ Ledger database unreachable at startup: {e}")

    yield

    logger.info("🛑 Shutting down Clinic Finance API")


app = FastAPI(
    title="Clinic Finance Backend",
    description="Financial aggregation and insurance reconciliation for the clinic back-office",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(
    finance.router,
    prefix="/api/finance",
    tags=["finance"],
    responses={
        400: {"description": "Invalid amount or month range"},
        404: {"description": "Insurer not found"},
        409: {"description": "Reconciliation conflicted with a concurrent update"},
        422: {"description": "Nothing to reconcile for the insurer and month"},
    },
)


@app.get("/", summary="Root endpoint")
async def root() -> dict[str, str]:
    return {
        "message": "Clinic Finance Backend API",
        "version": "1.0.0",
        "status": "running"
    }


@app.get("/health", summary="Health check")
async def health_check() -> dict[str, str]:
    """Report liveness together with the configured currency and environment."""
    return {"status": "healthy", "environment": ENVIRONMENT, "currency": CURRENCY_CODE}


@app.exception_handler(CalculationValidationError)
async def calculation_validation_handler(request: Request, exc: CalculationValidationError):
    """Report totals that failed their cross-check instead of returning wrong figures."""
    logger.error(f"Calculation validation failed for {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc), "type": "calculation_error"},
    )


@app.exception_handler(FinanceError)
async def finance_error_handler(request: Request, exc: FinanceError):
    """Finance errors that escaped a route's own mapping."""
    logger.warning(f"Unmapped finance error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "type": "finance_error"},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    logger.warning(f"ValueError: {exc}")
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "type": "validation_error"},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": "internal_error"},
    )
