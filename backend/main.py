"""
FastAPI application entry point for PanelPass.

Payment and entitlement API of the comic reader: provider webhooks,
payment return endpoints, anonymous Day Pass checkout and access checks.
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from panelpass import __version__
from panelpass.api.routes import (
    auth_daypass,
    health,
    payments_initialize,
    payments_verify,
    subscription,
    webhooks_paypal,
    webhooks_paystack,
)
from panelpass.config.plans import PlanCatalogError, get_plan_catalog
from panelpass.config.settings import get_settings

# Configure structured logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting PanelPass API")

    settings = get_settings()
    env_status = {
        "PAYSTACK_SECRET_KEY": "set" if settings.paystack_configured else "missing",
        "PAYPAL_CLIENT_ID": "set" if settings.paypal_configured else "missing",
        "PAYPAL_WEBHOOK_ID": "set" if settings.paypal_webhook_id else "missing",
        "SUPABASE_JWT_SECRET": "set" if settings.supabase_jwt_secret else "missing",
        "DATABASE_URL": "set" if os.getenv("DATABASE_URL") else "missing",
    }
    missing = [name for name, value in env_status.items() if value == "missing"]
    if missing:
        logger.warning(
            f"Payment configuration incomplete (missing: {missing}). "
            "Affected endpoints will return 503 or skip verification."
        )
    else:
        logger.info("Payment configuration complete", extra={"env_status": env_status})

    try:
        get_plan_catalog()
    except PlanCatalogError as e:
        logger.error("Plan catalog failed to load", extra={"error": str(e)})

    yield

    # Shutdown
    logger.info("Shutting down PanelPass API")


# Create FastAPI app
app = FastAPI(
    title="PanelPass API",
    description="Payments and entitlements for the comic reader",
    version=__version__,
    lifespan=lifespan
)

cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include health route (bypasses authentication)
app.include_router(health.router)

# Provider webhooks (authenticated by signature, not by user)
app.include_router(webhooks_paypal.router)
app.include_router(webhooks_paystack.router)

# Checkout and payment return endpoints
app.include_router(payments_initialize.router)
app.include_router(payments_verify.router)

# Access checks and sign-in hook
app.include_router(subscription.router)
app.include_router(auth_daypass.router)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions with proper logging."""
    logger.error(
        "Unhandled exception",
        extra={
            "error": str(exc),
            "error_type": type(exc).__name__,
            "path": request.url.path
        },
        exc_info=True
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": "An unexpected error occurred"
        }
    )


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("ENV") == "development"
    )
