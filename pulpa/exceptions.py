"""Error types raised by pulpa components.

Hierarchy:
    PulpaError
    ├── MicrophonePermissionError
    ├── CaptureError
    ├── ProfileNotLoadedError
    ├── PipelineError
    │   ├── TranscriptionError
    │   ├── ChatAiError
    │   └── SynthesisError
    ├── PlaybackError
    ├── PersistenceError
    └── BackendError
"""

from typing import Optional


class PulpaError(Exception):
    """Base class for all pulpa errors."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or ""


class MicrophonePermissionError(PulpaError):
    """Microphone access was denied or no input device is available."""


class CaptureError(PulpaError):
    """The microphone stream or the encoder failed mid-capture."""


class ProfileNotLoadedError(PulpaError):
    """Profile not loaded."""


class PipelineError(PulpaError):
    """A turn pipeline step failed."""


class TranscriptionError(PipelineError):
    """Transcription service failed."""


class ChatAiError(PipelineError):
    """Conversational AI service failed."""


class SynthesisError(PipelineError):
    """Speech synthesis service failed."""


class PlaybackError(PulpaError):
    """Synthesized audio could not be played."""


class PersistenceError(PulpaError):
    """The conversation store rejected a write."""


class BackendError(PulpaError):
    """HTTP call to a backend function failed."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status
