"""Authentication module for Minecraft accounts."""

from .offline import OfflineAuthenticator
from .profile import AuthProfile

__all__ = ["AuthProfile", "OfflineAuthenticator"]
