"""
StockLedger - Multi-warehouse stock reservation and deduction
FastAPI Application Entry Point
"""
import logging
import uvicorn
from fastapi import FastAPI
from contextlib import asynccontextmanager

from stockledger import __version__
from stockledger.core import settings, engine, Base
from stockledger.core.logging import setup_logging
from stockledger.api import api_router, register_exception_handlers
import stockledger.models  # noqa: F401  register tables on Base.metadata

logger = logging.getLogger(__name__)

# Lifespan for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: Create tables if not exist
    setup_logging()
    Base.metadata.create_all(bind=engine)
    logger.info(f"{settings.APP_NAME} starting on port {settings.APP_PORT} (allocation order: {settings.ALLOCATION_ORDER})")
    
    yield
    
    logger.info(f"{settings.APP_NAME} shutting down")

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Multi-warehouse stock reservation, deduction and movement ledger",
    version=__version__,
    lifespan=lifespan
)

register_exception_handlers(app)

# Include routers
app.include_router(api_router, prefix="/api")

# Health check
@app.get("/health")
async def health_check():
    return {"status": "healthy", "app": settings.APP_NAME}

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.APP_PORT,
        reload=settings.DEBUG
    )
