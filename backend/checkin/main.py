"""
Checkin API - Main FastAPI application.

Check-in, queue tickets, queue calling and seat assignment for
registration-based activities.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from checkin.config import get_settings
from checkin.database import init_db
from checkin.exception_handlers import register_exception_handlers
from checkin.utils.logger import logger

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    logger.info(f"Starting {settings.app_name} in {settings.app_env} mode...")
    await init_db()
    logger.info("Database initialized.")

    yield

    logger.info("Shutting down...")


app = FastAPI(
    title=settings.app_name,
    description="Check-in, queue tickets and seat assignment",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware - admin dashboard and LIFF pages
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",  # Local web dev
        "https://liff.line.me",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.get("/")
async def root():
    """Root endpoint - basic health check."""
    return {
        "app": settings.app_name,
        "version": "0.1.0",
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return {"status": "healthy"}


# Routers
from checkin.routers import checkin, queue, seats  # noqa: E402

app.include_router(checkin.router, prefix="/api/activities", tags=["Check-in"])
app.include_router(queue.router, prefix="/api/queue", tags=["Queue"])
app.include_router(seats.router, prefix="/api/seats", tags=["Seats"])
