"""Single owner of the observable session state."""

import logging
from dataclasses import replace
from typing import List, Optional

from ..models.conversation import ConversationSession, ConversationTurn, Role
from ..models.state import (
    MetaReflectionState,
    Phase,
    RecordingState,
    PERMISSION_DENIED_STATUS,
)
from ..timers import Scheduler
from .state_publisher import StatePublisher

logger = logging.getLogger(__name__)


class SessionStore:
    """Holds RecordingState, the active conversation and the UI flags.

    Every mutation goes through this class so the phase flags stay mutually
    exclusive and every change is published. A pending delayed reset is
    cancelled as soon as a new phase is entered.
    """

    def __init__(self, scheduler: Scheduler, publisher: Optional[StatePublisher] = None):
        self.scheduler = scheduler
        self.publisher = publisher

        self.recording = RecordingState()
        self.conversation: Optional[ConversationSession] = None
        self.is_summarizing = False
        self.show_conversation = False
        self.reflection = MetaReflectionState()

        # Bumped whenever the conversation is cleared so in-flight turns can notice
        self.conversation_epoch = 0
        self._reset_handle = None

    # State

    @property
    def state(self) -> RecordingState:
        return self.recording.snapshot()

    def update(self, **changes) -> None:
        for name, value in changes.items():
            if not hasattr(self.recording, name):
                raise AttributeError(f"RecordingState has no field '{name}'")
            setattr(self.recording, name, value)
        self._publish_state()

    def enter_phase(self, phase: Phase, status: str) -> None:
        self.cancel_pending_reset()
        self.recording.set_phase(phase)
        self.recording.status = status
        self.recording.error = ""
        if phase is not Phase.RECORDING:
            self.recording.audio_level = 0.0
        logger.debug(f"Phase -> {phase.value}: {status}")
        self._publish_state()

    def set_level(self, level: float) -> None:
        self.recording.audio_level = min(1.0, max(0.0, level))
        self._publish_state()

    def reset_to_ready(self, status: Optional[str] = None) -> None:
        """Clear phases, error and level and show the ready status."""
        self.cancel_pending_reset()
        self.recording.set_phase(Phase.IDLE)
        self.recording.error = ""
        self.recording.audio_level = 0.0
        self.recording.recording_duration = 0
        self.recording.status = status or self.recording.ready_status
        self._publish_state()

    def fail(self, message: str, reset_after_ms: Optional[int] = None) -> None:
        """Show an error and drop back to idle, optionally resetting later."""
        logger.debug(f"Session error: {message}")
        self.cancel_pending_reset()
        self.recording.set_phase(Phase.IDLE)
        self.recording.audio_level = 0.0
        self.recording.error = message
        self.recording.status = self.recording.ready_status
        self._publish_state()
        if reset_after_ms is not None:
            self.schedule_reset(reset_after_ms)

    def notify(self, status: str, reset_after_ms: Optional[int] = None) -> None:
        """Show a transient status while idle, optionally resetting later."""
        self.cancel_pending_reset()
        self.recording.set_phase(Phase.IDLE)
        self.recording.audio_level = 0.0
        self.recording.error = ""
        self.recording.status = status
        self._publish_state()
        if reset_after_ms is not None:
            self.schedule_reset(reset_after_ms)

    def grant_permission(self, status: str) -> None:
        self.recording.has_permission = True
        self.recording.permission_denied = False
        self.recording.error = ""
        self.recording.status = status
        self._publish_state()

    def deny_permission(self, message: str = "Microphone permission denied.") -> None:
        self.cancel_pending_reset()
        self.recording.set_phase(Phase.IDLE)
        self.recording.has_permission = False
        self.recording.permission_denied = True
        self.recording.audio_level = 0.0
        self.recording.error = message
        self.recording.status = PERMISSION_DENIED_STATUS
        self._publish_state()

    # Delayed reset

    def schedule_reset(self, delay_ms: int) -> None:
        self.cancel_pending_reset()
        self._reset_handle = self.scheduler.call_later(delay_ms, self._delayed_reset)

    def cancel_pending_reset(self) -> None:
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None

    @property
    def has_pending_reset(self) -> bool:
        return self._reset_handle is not None

    def _delayed_reset(self) -> None:
        self._reset_handle = None
        self.reset_to_ready()

    # Conversation

    @property
    def conversation_id(self) -> Optional[str]:
        return self.conversation.conversation_id if self.conversation else None

    @property
    def history(self) -> List[ConversationTurn]:
        return list(self.conversation.turns) if self.conversation else []

    def start_conversation(self, conversation_id: str, language: Optional[str] = None) -> ConversationSession:
        self.conversation = ConversationSession(conversation_id=conversation_id, language=language)
        logger.info(f"🆕 Conversation started: {conversation_id}")
        self._publish_conversation()
        return self.conversation

    def append_turn(self, role: Role, content: str) -> ConversationTurn:
        if self.conversation is None:
            raise RuntimeError("No active conversation to append to")
        turn = self.conversation.append(role, content)
        if self.conversation.turn_count == 1:
            self.show_conversation = True
        self._publish_conversation()
        return turn

    def clear_conversation(self) -> None:
        self.conversation = None
        self.conversation_epoch += 1
        self.show_conversation = False
        self._publish_conversation()

    def set_summarizing(self, value: bool) -> None:
        self.is_summarizing = value
        self._publish_state()

    def set_reflection(self, **changes) -> MetaReflectionState:
        """Replace the meta-reflection progress and publish it."""
        self.reflection = MetaReflectionState(**changes)
        if self.publisher:
            self.publisher.publish_reflection(replace(self.reflection))
        return self.reflection

    def toggle_conversation(self) -> bool:
        self.show_conversation = not self.show_conversation
        self._publish_conversation()
        return self.show_conversation

    # Publication

    def _publish_state(self) -> None:
        if self.publisher:
            self.publisher.publish_state(self.recording.snapshot(), self.is_summarizing)

    def _publish_conversation(self) -> None:
        if self.publisher:
            self.publisher.publish_conversation(self.conversation_id, self.history, self.show_conversation)
