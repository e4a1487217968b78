"""Pydantic v2 schemas for workflow panel preferences."""

import uuid

from pydantic import BaseModel, ConfigDict


class PreferenceUpdate(BaseModel):
    panel_collapsed: bool | None = None
    intro_dismissed: bool | None = None


class PreferenceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: uuid.UUID
    conversation_id: uuid.UUID
    panel_collapsed: bool
    intro_dismissed: bool
