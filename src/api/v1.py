"""Centralized v1 API router: all module routers are included here."""

from fastapi import APIRouter

from src.modules.preferences.router import router as preferences_router
from src.modules.workflow.router import (
    conversation_router,
    design_router,
    eligibility_router,
    quote_router,
)

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(conversation_router)
v1_router.include_router(design_router)
v1_router.include_router(quote_router)
v1_router.include_router(eligibility_router)
v1_router.include_router(preferences_router)
