"""Offline authentication for Minecraft."""

import re
import uuid

from .profile import OFFLINE_TOKEN, AuthProfile

USERNAME_RE = re.compile(r"^[A-Za-z0-9_]{1,16}$")


class OfflineAuthenticator:
    """Offline mode authenticator with username only."""

    @staticmethod
    async def authenticate(username: str) -> AuthProfile:
        """Create an offline profile with a fresh random UUID."""
        if not username or not USERNAME_RE.match(username):
            raise ValueError("Invalid username for offline mode")

        return AuthProfile(
            id=str(uuid.uuid4()),
            name=username,
            access_token=OFFLINE_TOKEN,
        )
