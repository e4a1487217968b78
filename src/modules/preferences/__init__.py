"""Preferences module: per-user, per-conversation workflow panel state."""

from src.modules.preferences.service import PreferenceService

__all__ = ["PreferenceService"]
