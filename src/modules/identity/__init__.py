"""Identity module: verification of externally issued JWTs."""

from src.modules.identity.auth import AuthenticatedUser, get_current_user

__all__ = [
    "AuthenticatedUser",
    "get_current_user",
]
