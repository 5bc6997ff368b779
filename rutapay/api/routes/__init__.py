"""
API Routes
"""
from fastapi import APIRouter

from rutapay.api.routes.payments import router as payments_router
from rutapay.api.routes.recharges import router as recharges_router
from rutapay.api.routes.notifications import router as notifications_router
from rutapay.api.routes.drivers import router as drivers_router

router = APIRouter()

router.include_router(payments_router, prefix="/payment", tags=["payments"])
router.include_router(recharges_router, prefix="/recharges", tags=["recharges"])
router.include_router(notifications_router, prefix="/notifications", tags=["notifications"])
router.include_router(drivers_router, prefix="/drivers", tags=["drivers"])
