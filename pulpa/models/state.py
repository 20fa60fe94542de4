"""Recording state models."""

from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Optional


INITIAL_STATUS = "Tap the pulse to begin your reflection"
READY_STATUS = "Ready for your next thought"
PERMISSION_NEEDED_STATUS = "Microphone access needed"
PERMISSION_GRANTED_STATUS = "Tap the microphone to begin your reflection"
PERMISSION_DENIED_STATUS = "Microphone access denied. Please enable microphone permissions."
LISTENING_STATUS = "Listening..."
TRANSCRIBING_STATUS = "Transcribing your thoughts..."
NOTHING_HEARD_STATUS = "Could not hear anything clearly. Try again."
AI_THINKING_STATUS = "AI is thinking..."
GENERATING_AUDIO_STATUS = "Generating audio..."
PLAYING_STATUS = "Playing response... (tap to pause)"
SUMMARIZING_STATUS = "Saving your reflection..."
SESSION_SAVED_STATUS = "Reflection saved. Start a new one whenever you like."
SESSION_SUMMARY_FAILED = "Could not summarize the session."


class Phase(Enum):
    """Pipeline phase. Each maps onto exactly one RecordingState flag."""
    IDLE = "idle"
    RECORDING = "recording"
    PROCESSING = "processing"
    AI_THINKING = "ai_thinking"
    GENERATING_AUDIO = "generating_audio"
    PLAYING_AUDIO = "playing_audio"


PHASE_FLAGS = {
    Phase.RECORDING: "is_recording",
    Phase.PROCESSING: "is_processing",
    Phase.AI_THINKING: "is_ai_thinking",
    Phase.GENERATING_AUDIO: "is_generating_audio",
    Phase.PLAYING_AUDIO: "is_playing_audio",
}


@dataclass
class RecordingState:
    """Single mutable snapshot of the voice-turn controller."""
    is_recording: bool = False
    is_processing: bool = False
    is_ai_thinking: bool = False
    is_generating_audio: bool = False
    is_playing_audio: bool = False

    has_permission: bool = False
    permission_denied: bool = False
    error: str = ""
    status: str = INITIAL_STATUS
    recording_duration: int = 0  # milliseconds
    audio_level: float = 0.0     # normalized [0, 1]

    @property
    def phase(self) -> Phase:
        for phase, flag in PHASE_FLAGS.items():
            if getattr(self, flag):
                return phase
        return Phase.IDLE

    def active_phases(self) -> List[Phase]:
        return [phase for phase, flag in PHASE_FLAGS.items() if getattr(self, flag)]

    @property
    def is_busy(self) -> bool:
        return self.is_processing or self.is_ai_thinking or self.is_generating_audio

    @property
    def ready_status(self) -> str:
        return READY_STATUS if self.has_permission else PERMISSION_NEEDED_STATUS

    def set_phase(self, phase: Phase) -> None:
        """Switch all phase flags at once so at most one is ever set."""
        for candidate, flag in PHASE_FLAGS.items():
            setattr(self, flag, candidate is phase)

    def snapshot(self) -> "RecordingState":
        return replace(self)


@dataclass
class MetaReflectionState:
    """Progress of a meta-reflection request."""
    is_analyzing: bool = False
    result: Optional[str] = None
    error: Optional[str] = None
