from fastapi import APIRouter

from credit_ledger.api.v1.endpoints import admin, credits, webhooks

api_v1_router = APIRouter()

api_v1_router.include_router(credits.router, prefix="/credits", tags=["credits"])
api_v1_router.include_router(admin.router, prefix="/admin", tags=["admin"])
api_v1_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
