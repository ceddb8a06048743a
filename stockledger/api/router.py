"""
API Router - JSON Endpoints
"""
from fastapi import APIRouter
from datetime import datetime

from stockledger import __version__
from stockledger.api.stock import stock_router
from stockledger.api.catalog import catalog_router

api_router = APIRouter(tags=["API"])

# Include sub-routers
api_router.include_router(stock_router)
api_router.include_router(catalog_router)

# ===================== HEALTH & STATUS =====================

@api_router.get("/status")
async def api_status():
    return {"status": "ok", "version": __version__, "timestamp": datetime.now().isoformat()}
