from fastapi import APIRouter

from backoffice.app.api.v1.endpoints.health import router as health_router
from backoffice.app.api.v1.endpoints.suppliers import router as suppliers_router
from backoffice.app.api.v1.endpoints.supplier_orders import router as supplier_orders_router
from backoffice.app.api.v1.endpoints.stock_transfers import router as stock_transfers_router
from backoffice.app.api.v1.endpoints.inventory_movements import router as inventory_movements_router
from backoffice.app.api.v1.endpoints.locations import router as locations_router
from backoffice.app.api.v1.endpoints.stock import router as stock_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(suppliers_router, tags=["suppliers"])
router.include_router(supplier_orders_router, tags=["supplier_orders"])
router.include_router(stock_transfers_router, tags=["stock_transfers"])
router.include_router(inventory_movements_router, tags=["inventory_movements"])
router.include_router(locations_router, tags=["locations"])
router.include_router(stock_router, tags=["stock"])
