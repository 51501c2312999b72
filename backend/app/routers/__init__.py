"""Kerbi - API Routers"""
from .auth import router as auth_router
from .usage import router as usage_router
from .analysis import router as analysis_router
from .appeals import router as appeals_router
from .vehicles import router as vehicles_router
from .payments import router as payments_router

__all__ = [
    "auth_router",
    "usage_router",
    "analysis_router",
    "appeals_router",
    "vehicles_router",
    "payments_router",
]
