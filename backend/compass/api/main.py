"""
FastAPI application entry point.

API server for the Compass portfolio ROI service.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from compass.core.config import settings
from compass.core.logging import setup_logging
from compass.core.database import close_db
from compass.core.redis import close_redis

# Setup logging
setup_logging()

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Model portfolio NAV and ROI analytics",
    debug=settings.DEBUG,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup() -> None:
    """Run on application startup."""
    pass  # Schema managed by Alembic


@app.on_event("shutdown")
async def shutdown() -> None:
    """Run on application shutdown."""
    await close_db()
    await close_redis()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
    }


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.APP_NAME} API",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }


from compass.api.roi import cron_router, router as roi_router
from compass.api.admin import router as admin_router

app.include_router(cron_router, prefix="/api/v1/cron", tags=["cron"])
app.include_router(roi_router, prefix="/api/v1/roi", tags=["roi"])
app.include_router(admin_router, prefix="/api/v1/admin/roi", tags=["admin"])
