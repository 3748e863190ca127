"""
EMI Scheduler API Application Factory
"""

from fastapi import FastAPI

from .. import __version__
from .scheduler import router as scheduler_router
from .notifications import router as notifications_router


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="EMI Scheduler API",
        description="Daily EMI processing, amortization and payment reminders",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    
    app.include_router(scheduler_router, prefix="/scheduler", tags=["Scheduler"])
    app.include_router(notifications_router, prefix="/notifications", tags=["Notifications"])
    
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "emi_scheduler_api",
            "version": __version__
        }
    
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "EMI Scheduler API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "scheduler": "/scheduler",
                "notifications": "/notifications"
            }
        }
    
    return app
