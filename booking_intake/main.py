"""
FastAPI application entry point.
Taxi Booking Intake Service
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from booking_intake import __version__
from booking_intake.config import get_settings
from booking_intake.api.routes import router


# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Logs which collaborators are configured at startup.
    """
    logger.info("Starting Booking Intake API...")
    settings = get_settings()
    logger.info(f"API Version: {__version__}")

    if not settings.autocab_configured:
        logger.warning("AUTOCAB_API_KEY not set; dispatch calls will be rejected")
    if not settings.fireworks_configured:
        logger.warning("FIREWORKS_API_KEY not set; chat extraction will fall back")
    if not settings.google_maps_api_key:
        logger.warning("GOOGLE_MAPS_API_KEY not set; addresses use the fallback centre")

    yield

    logger.info("Shutting down Booking Intake API...")


# Create FastAPI application
app = FastAPI(
    title="Booking Intake API",
    description="""
    Taxi booking intake for a dispatch system

    - Extract bookings from account-job emails with rule-based parsing
    - Capture bookings from chat with **Fireworks AI**
    - Resolve addresses with Google Geocoding and the dispatch zone lookup
    - Create or update bookings on **AUTOCAB** with duplicate protection

    ## Quick Start

    1. POST an email to `/api/emails/extract` to see what would be booked
    2. POST it to `/api/emails/process` to book it
    """,
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routes
app.include_router(router)


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Booking Intake API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "booking_intake.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
    )
