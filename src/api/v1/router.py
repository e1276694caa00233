"""Version 1 API router."""
from fastapi import APIRouter

from src.api.v1.endpoints import billing, limits, users, webhooks


api_router = APIRouter()
api_router.include_router(users.router)
api_router.include_router(billing.router)
api_router.include_router(limits.router)
api_router.include_router(webhooks.router)
