"""Authenticated profile handed to the launcher."""

from pydantic import BaseModel

OFFLINE_TOKEN = "offline"


class AuthProfile(BaseModel):
    id: str
    name: str
    access_token: str

    @property
    def is_offline(self) -> bool:
        return self.access_token == OFFLINE_TOKEN
