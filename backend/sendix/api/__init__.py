"""
API module for FastAPI routes.
"""
from fastapi import APIRouter

from sendix.api.routes import (
    chat,
    commissions,
    health,
    loads,
    proposals,
    websocket,
)

api_router = APIRouter()

# Include all route modules
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(loads.router, prefix="/loads", tags=["Loads"])
api_router.include_router(proposals.router, prefix="/proposals", tags=["Proposals"])
api_router.include_router(commissions.router, prefix="/commissions", tags=["Commissions"])
api_router.include_router(chat.router)

# WebSocket route (no prefix - connects at /api/ws)
api_router.include_router(websocket.router, tags=["WebSocket"])
