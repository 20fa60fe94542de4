"""Data models for the pulpa voice-turn core."""

from .state import RecordingState, Phase, MetaReflectionState
from .conversation import Role, ConversationTurn, ConversationSession
from .profile import UserProfile, ProfileContext
from .events import AudioEvent
from .transcription import TranscriptionResult
from .settings import AudioSettings, DetectionSettings, TimingSettings

__all__ = [
    "RecordingState",
    "Phase",
    "MetaReflectionState",
    "Role",
    "ConversationTurn",
    "ConversationSession",
    "UserProfile",
    "ProfileContext",
    "AudioEvent",
    "TranscriptionResult",
    "AudioSettings",
    "DetectionSettings",
    "TimingSettings",
]
