"""Profile providers: where the turn pipeline gets the current user profile."""

import logging
from typing import Optional

from pydantic import ValidationError

from ..config import PulpaConfig
from ..exceptions import BackendError
from ..models.profile import UserProfile
from .client import BackendClient
from .models import ProfileRecord

logger = logging.getLogger(__name__)


class StaticProfileProvider:
    """Serves a fixed profile, typically from the `profile` config section."""

    def __init__(self, profile: Optional[UserProfile] = None):
        self.profile = profile

    @classmethod
    def from_config(cls, config: PulpaConfig) -> "StaticProfileProvider":
        section = config.get('profile') or {}
        return cls(UserProfile.from_dict(section) if section else None)

    def __call__(self) -> Optional[UserProfile]:
        return self.profile


class RemoteProfileProvider:
    """Loads the signed-in user's row from the `profiles` table once and caches it."""

    def __init__(self, client: BackendClient, user_id: Optional[str] = None):
        self.client = client
        self.user_id = user_id if user_id is not None else client.user_id
        self.profile: Optional[UserProfile] = None

    async def load(self) -> Optional[UserProfile]:
        if not self.user_id:
            logger.warning("No user id configured, profile not loaded")
            return None
        try:
            rows = await self.client.select("profiles", {"select": "*", "id": f"eq.{self.user_id}"})
            record = ProfileRecord.model_validate(rows[0]) if rows else None
        except (BackendError, ValidationError) as e:
            logger.error(f"Failed to load profile for {self.user_id}: {e}")
            return None

        if record is None:
            logger.warning(f"No profile row for user {self.user_id}")
            return None
        self.profile = UserProfile.from_dict(record.model_dump())
        self.profile.id = str(record.id)
        logger.info(f"Loaded profile for {self.profile.full_name or self.user_id}")
        return self.profile

    def clear(self) -> None:
        self.profile = None

    def __call__(self) -> Optional[UserProfile]:
        return self.profile
