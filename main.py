import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from backoffice.core.config import settings
from backoffice.core.database import engine
from backoffice.core.logging_config import setup_logging
from backoffice.api.v1.api import api_router
from backoffice.services.coordination.event_coordinator import EventCoordinator

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info(f"🚀 Starting back-office consistency service ({settings.ENVIRONMENT})")
    yield
    await engine.dispose()
    logger.info("👋 Back-office consistency service stopped")

# Create FastAPI app
app_config = {
    "title": "Back-office Consistency Service",
    "description": "Barcode authority, consistency checks and repairs for the retail back office",
    "version": "1.0.0",
    "lifespan": lifespan,
}

app = FastAPI(**app_config)

# One coordinator for the application lifetime, shared by request-scoped services
app.state.event_coordinator = EventCoordinator()

# Add middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=settings.ALLOWED_METHODS,
    allow_headers=settings.ALLOWED_HEADERS,
)

# Include routers
app.include_router(api_router, prefix="/api/v1")

@app.get("/")
async def root():
    return {
        "message": "📦 Back-office consistency service",
        "status": "active",
        "version": "1.0.0",
        "docs": "/docs",
    }

@app.get("/health")
async def health_check():
    database = "connected"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"❌ Database health check failed: {e}")
        database = "unavailable"

    return {
        "status": "healthy" if database == "connected" else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {
            "database": database,
            "event_listeners": app.state.event_coordinator.listener_count,
        },
    }

def run_http():
    """Run HTTP server"""
    import uvicorn
    print("🚀 Starting HTTP server on port 9106...")
    uvicorn.run(
        "main:app",  # Use string import
        host="0.0.0.0",
        port=9106,
        reload=settings.DEBUG,
    )

if __name__ == "__main__":
    run_http()
