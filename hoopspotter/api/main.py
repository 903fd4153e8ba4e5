"""
HoopSpotter API Server

FastAPI server for discovering, reviewing and submitting outdoor basketball
courts.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os
import uvicorn
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore

from hoopspotter import __version__
from hoopspotter.api.routes import router, limiter as routes_limiter
from hoopspotter.database import db
from hoopspotter.database.seed_courts import seed_courts
from hoopspotter.services import auth_service, storage_service
from hoopspotter.services.errors import BackendError

# Set up logging
# Allow log level to be configured via environment variable (default: INFO)
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def check_configuration() -> None:
    """
    Fail fast when required settings are missing.

    Raises:
        ConfigurationError: naming the missing setting
    """
    db.check_database_configuration()
    auth_service.check_auth_configuration()
    storage_service.check_storage_configuration()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    # Startup
    logger.info("Starting up HoopSpotter API...")

    # Missing credentials are fatal: the app must not start half-configured
    check_configuration()

    if os.getenv("SEED_DEMO_DATA", "false").lower() == "true":
        try:
            await db.init_database()
            await seed_courts()
            logger.info("Demo court data seeded")
        except Exception as e:
            logger.error(f"Failed to seed demo court data: {e}", exc_info=True)

    yield  # App is running

    logger.info("Shutting down HoopSpotter API...")
    await db.engine.dispose()


app = FastAPI(
    title="HoopSpotter API",
    description="API for finding, rating and submitting outdoor basketball courts",
    version=__version__,
    lifespan=lifespan,
)

# Setup rate limiter
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(BackendError)
async def backend_error_handler(request: Request, exc: BackendError):
    """Render backend failures that escaped a service as a user-facing message."""
    logger.error("Backend error on %s: %s (%s)", request.url.path, exc.message, exc.code)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error_code": exc.code},
    )


# Add CORS middleware - origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
