"""Preferences API router."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.session import get_db
from src.modules.identity.auth import AuthenticatedUser, get_current_user
from src.modules.preferences.schemas import PreferenceResponse, PreferenceUpdate
from src.modules.preferences.service import PreferenceService

router = APIRouter(prefix="/conversations", tags=["preferences"])


@router.get("/{conversation_id}/preferences", response_model=PreferenceResponse)
async def get_preferences(
    conversation_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Workflow panel state of the calling user in a conversation."""
    svc = PreferenceService(db)
    preference = await svc.get_preferences(user.id, conversation_id)
    return PreferenceResponse.model_validate(preference)


@router.put("/{conversation_id}/preferences", response_model=PreferenceResponse)
async def update_preferences(
    conversation_id: uuid.UUID,
    body: PreferenceUpdate,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = PreferenceService(db)
    preference = await svc.update_preferences(
        user.id,
        conversation_id,
        panel_collapsed=body.panel_collapsed,
        intro_dismissed=body.intro_dismissed,
    )
    return PreferenceResponse.model_validate(preference)
