from fastapi import APIRouter

from callrecon.api.v1 import health, reconciliation

api_router = APIRouter()

api_router.include_router(health.router, prefix="/v1", tags=["health"])
api_router.include_router(reconciliation.router, prefix="/v1/reconciliation", tags=["reconciliation"])
