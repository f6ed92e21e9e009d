"""
HypeConnect Payments Backend - FastAPI Application

Paystack payment initialization, webhook settlement with fraud checks,
and the admin fraud-review surface.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from .config import settings
from .exceptions import HypeConnectError
from .db.init_db import init_engine, initialize_database, dispose_engine
from .services.payment_core import build_payment_core
from .services.scheduler import ReconciliationScheduler
from .api.payments import router as payments_router
from .api.webhooks import router as webhooks_router
from .api.admin import router as admin_router

APP_VERSION = "0.1.0"

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    - Startup: create the database engine and tables, build the payment
      core, start the reconciliation scheduler
    - Shutdown: stop the scheduler, dispose the engine
    """
    logger.info("Starting HypeConnect payments backend...")
    logger.info(f"Environment: {settings.environment}")

    try:
        session_factory = init_engine()
        await initialize_database()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    core = build_payment_core(session_factory)
    app.state.payment_core = core

    scheduler = None
    if settings.enable_scheduler:
        scheduler = ReconciliationScheduler(core.ledger)
        scheduler.start()

    logger.info("Server startup complete")

    yield

    logger.info("Shutting down HypeConnect payments backend...")

    if scheduler is not None:
        try:
            scheduler.shutdown(wait=True)
        except Exception as e:
            logger.error(f"Error during scheduler shutdown: {e}")

    await dispose_engine()


# Initialize FastAPI application
app = FastAPI(
    title="HypeConnect Payments API",
    description="Paystack payment ledger, fraud validation, and booking settlement",
    version=APP_VERSION,
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.app_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HypeConnectError)
async def hypeconnect_error_handler(request: Request, exc: HypeConnectError):
    """
    Handle payment core errors with the standard response format.

    Status code comes from the exception class.
    """
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} - {exc.message}", extra={"details": exc.details})
    else:
        logger.warning(f"{exc.error_code} - {exc.message}", extra={"details": exc.details})

    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Input validation failures not caught by Pydantic."""
    logger.warning(f"Validation error: {str(exc)}")

    return JSONResponse(
        status_code=400,
        content={
            "error_code": "validation_error",
            "message": str(exc),
            "details": {}
        }
    )


@app.exception_handler(Exception)
async def general_error_handler(request: Request, exc: Exception):
    """
    Catch-all handler for unexpected errors.

    Logs full exception for debugging but returns generic message to client.
    """
    logger.error(f"Unexpected error: {str(exc)}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "error_code": "internal_error",
            "message": "An unexpected error occurred",
            "details": {}
        }
    )


@app.get("/api/health")
async def health_check():
    """Health check endpoint for monitoring and load balancers."""
    return {
        "status": "healthy",
        "version": APP_VERSION,
        "environment": settings.environment,
    }


# Include API routers
app.include_router(payments_router, prefix="/api/payments", tags=["Payments"])
app.include_router(webhooks_router, prefix="/api/webhooks", tags=["Webhooks"])
app.include_router(admin_router, prefix="/api/admin", tags=["Admin"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "hypeconnect.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower()
    )
