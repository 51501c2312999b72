"""
Kerbi - FastAPI Application

Main entry point for the PCN appeals backend.

Architecture:
- PCN photo → TicketExtractionAdapter → TicketDetails (SSOT #1)
- Narrative → ComplianceAnalysisPipeline → ComplianceAnalysis (SSOT #2, free)
- EntitlementLedger → PaymentGate → ALLOW_FREE / ALLOW_PAID / REQUIRE_PAYMENT
- Allowed → LetterComposer → AppealLetter, ledger incremented
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from .routers import (
    auth_router,
    usage_router,
    analysis_router,
    appeals_router,
    vehicles_router,
    payments_router,
)
from .database import init_db
from .services.entitlement import AppealEngineError

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

logging.basicConfig(
    level=LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Kerbi PCN Appeals",
    description="""
    Kerbi - Parking Penalty Charge Notice appeals

    ## Pipeline
    1. **Extraction**: PCN photo → ticket fields (vision model, best effort)
    2. **Analysis**: narrative → compliance issues + success estimate (free)
    3. **Gate**: entitlement record → free, prepaid, or payment required
    4. **Letter**: issues → sectioned appeal letter

    ## Key Principles
    - One free appeal per calendar month; further appeals £5
    - One vehicle free; changing it £3
    - Payments unlock actions only after the Stripe webhook confirms them
    - Counter updates are single conditional UPDATE statements
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router)
app.include_router(usage_router)
app.include_router(analysis_router)
app.include_router(appeals_router)
app.include_router(vehicles_router)
app.include_router(payments_router)


# =============================================================================
# ERROR HANDLERS
# =============================================================================
#
# Every error leaves as {"error": "<message>"} plus any structured details.
#
# =============================================================================

@app.exception_handler(AppealEngineError)
async def appeal_engine_error_handler(request: Request, exc: AppealEngineError):
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={"error": f"{location}: {message}" if location else message},
    )


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Kerbi PCN Appeals",
        "version": "1.0.0",
        "description": "Parking ticket appeal letters",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


# For running with: python -m app.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
