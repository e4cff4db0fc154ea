"""V1 API router — aggregates all v1 endpoint routers."""

from fastapi import APIRouter

from client_payments.presentation.api.v1.endpoints.health import router as health_router
from client_payments.presentation.api.v1.endpoints.records import router as records_router

router = APIRouter(prefix="/v1")
router.include_router(health_router)
router.include_router(records_router)
