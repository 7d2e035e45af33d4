from fastapi import APIRouter

from stockflow.app.api.v1.endpoints.health import router as health_router
from stockflow.app.api.v1.endpoints.products import router as products_router
from stockflow.app.api.v1.endpoints.barcodes import router as barcodes_router
from stockflow.app.api.v1.endpoints.conversions import router as conversions_router
from stockflow.app.api.v1.endpoints.stock_in import router as stock_in_router
from stockflow.app.api.v1.endpoints.stock_out import router as stock_out_router
from stockflow.app.api.v1.endpoints.locations import router as locations_router
from stockflow.app.api.v1.endpoints.stock import router as stock_router
from stockflow.app.api.v1.endpoints.stock_movements import router as stock_movements_router
from stockflow.app.api.v1.endpoints.defects import router as defects_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(products_router, tags=["products"])
router.include_router(barcodes_router, tags=["barcodes"])
router.include_router(conversions_router, tags=["conversions"])
router.include_router(stock_in_router, tags=["stock_in"])
router.include_router(stock_out_router, tags=["stock_out"])
router.include_router(locations_router, tags=["locations"])
router.include_router(stock_router, tags=["stock"])
router.include_router(stock_movements_router, tags=["stock_movements"])
router.include_router(defects_router, tags=["defects"])
