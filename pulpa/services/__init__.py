"""Voice-turn services: state, recording, turn pipeline and session control."""

from .state_publisher import StatePublisher
from .state_store import SessionStore
from .recording_session import RecordingSession, CaptureState
from .turn_pipeline import TurnPipeline
from .session_controller import SessionController

__all__ = [
    "StatePublisher",
    "SessionStore",
    "RecordingSession",
    "CaptureState",
    "TurnPipeline",
    "SessionController",
]
