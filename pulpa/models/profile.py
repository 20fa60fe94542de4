"""User profile models."""

from dataclasses import dataclass
from typing import Any, Dict, Optional


DEFAULT_LANGUAGE = "es-AR"
DEFAULT_FULL_NAME = "Usuario"
DEFAULT_ROLE = "Persona reflexiva"
DEFAULT_GOALS = "Crecimiento personal y autoconocimiento"

DEFAULT_VOICES = {
    "es-AR": "Nln7vOQhlEPq2ntWRsrb",
}
FALLBACK_VOICE = "INV8b5mw32tMbdlGeZ5E"


def default_voice_for(language: str) -> str:
    return DEFAULT_VOICES.get(language, FALLBACK_VOICE)


@dataclass
class UserProfile:
    """Snapshot of the signed-in user's profile."""
    id: Optional[str] = None
    full_name: Optional[str] = None
    role: Optional[str] = None
    goals: Optional[str] = None
    timezone: Optional[str] = None
    preferred_language: Optional[str] = None
    preferred_voice_id: Optional[str] = None
    onboarding_completed: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProfile":
        known = {name: data.get(name) for name in cls.__dataclass_fields__}
        return cls(**known)

    @property
    def language(self) -> str:
        return self.preferred_language or DEFAULT_LANGUAGE

    def voice_id(self, language: Optional[str] = None) -> str:
        if self.preferred_voice_id:
            return self.preferred_voice_id
        return default_voice_for(language or self.language)

    def context(self) -> "ProfileContext":
        return ProfileContext(
            full_name=self.full_name or DEFAULT_FULL_NAME,
            role=self.role or DEFAULT_ROLE,
            goals=self.goals or DEFAULT_GOALS,
        )


@dataclass(frozen=True)
class ProfileContext:
    """Profile block sent with every chat request."""
    full_name: str = DEFAULT_FULL_NAME
    role: str = DEFAULT_ROLE
    goals: str = DEFAULT_GOALS

    def to_payload(self) -> Dict[str, str]:
        return {"fullName": self.full_name, "role": self.role, "goals": self.goals}
