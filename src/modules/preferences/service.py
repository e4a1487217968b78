"""Workflow panel preferences. Display state only; never consulted by the engine."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.exceptions import ForbiddenException, NotFoundException
from src.models.conversation import Conversation
from src.models.workflow_preference import WorkflowPreference

logger = logging.getLogger(__name__)


class PreferenceService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_preferences(
        self, user_id: uuid.UUID, conversation_id: uuid.UUID
    ) -> WorkflowPreference:
        """Stored preferences, or unsaved defaults when none were stored yet."""
        await self._check_participant(user_id, conversation_id)
        preference = await self._find(user_id, conversation_id)
        if preference is None:
            return WorkflowPreference(
                user_id=user_id,
                conversation_id=conversation_id,
                panel_collapsed=False,
                intro_dismissed=False,
            )
        return preference

    async def update_preferences(
        self,
        user_id: uuid.UUID,
        conversation_id: uuid.UUID,
        panel_collapsed: bool | None = None,
        intro_dismissed: bool | None = None,
    ) -> WorkflowPreference:
        """Set either flag; flags left as None keep their current value."""
        await self._check_participant(user_id, conversation_id)
        preference = await self._find(user_id, conversation_id)
        if preference is None:
            preference = WorkflowPreference(
                id=uuid.uuid4(),
                user_id=user_id,
                conversation_id=conversation_id,
                panel_collapsed=False,
                intro_dismissed=False,
            )
            self.db.add(preference)

        if panel_collapsed is not None:
            preference.panel_collapsed = panel_collapsed
        if intro_dismissed is not None:
            preference.intro_dismissed = intro_dismissed
        await self.db.flush()

        logger.debug(
            "Preferences for user %s in conversation %s: collapsed=%s intro_dismissed=%s",
            user_id, conversation_id, preference.panel_collapsed, preference.intro_dismissed,
        )
        return preference

    async def _find(
        self, user_id: uuid.UUID, conversation_id: uuid.UUID
    ) -> WorkflowPreference | None:
        result = await self.db.execute(
            select(WorkflowPreference).where(
                WorkflowPreference.user_id == user_id,
                WorkflowPreference.conversation_id == conversation_id,
            )
        )
        return result.scalar_one_or_none()

    async def _check_participant(self, user_id: uuid.UUID, conversation_id: uuid.UUID) -> None:
        result = await self.db.execute(
            select(Conversation.buyer_id, Conversation.seller_id).where(
                Conversation.id == conversation_id
            )
        )
        row = result.one_or_none()
        if row is None:
            raise NotFoundException(f"Conversation {conversation_id} not found")
        if user_id not in (row.buyer_id, row.seller_id):
            raise ForbiddenException(
                f"User is not a participant of conversation {conversation_id}"
            )
