"""
API Router - JSON Endpoints
"""
from fastapi import APIRouter
from datetime import datetime

from app.api.inventory import inventory_router
from app.api.adjustments import adjustments_router
from app.api.urgent_purchases import urgent_purchases_router
from app.api.stock_takes import stock_takes_router
from app.api.receiving import receiving_router
from app.api.documents import documents_router
from app.api.files import files_router

api_router = APIRouter(tags=["API"])

api_router.include_router(inventory_router)
api_router.include_router(adjustments_router)
api_router.include_router(urgent_purchases_router)
api_router.include_router(stock_takes_router)
api_router.include_router(receiving_router)
api_router.include_router(documents_router)
api_router.include_router(files_router)


@api_router.get("/status")
async def api_status():
    return {"status": "ok", "version": "1.0.0", "timestamp": datetime.now().isoformat()}
