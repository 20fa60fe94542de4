"""Top-level controller: one main action, session finish and lifecycle hooks."""

import asyncio
import logging
from typing import Callable, List, Optional, Sequence

from ..audio.capture import Microphone
from ..audio.playback import AudioPlayer, PlaybackController
from ..backend.chat import ChatAiClient
from ..backend.speech import TextToSpeechClient
from ..backend.store import ConversationStore
from ..config import PulpaConfig
from ..exceptions import ProfileNotLoadedError, PulpaError
from ..models.conversation import ConversationTurn
from ..models.settings import AudioSettings, DetectionSettings, TimingSettings
from ..models.state import (
    Phase,
    RecordingState,
    SESSION_SAVED_STATUS,
    SESSION_SUMMARY_FAILED,
    SUMMARIZING_STATUS,
)
from ..timers import Scheduler
from ..transcription.base import AbstractTranscriptionBackend
from .recording_session import RecordingSession
from .state_publisher import StatePublisher
from .state_store import SessionStore
from .turn_pipeline import ProfileProvider, TurnPipeline

logger = logging.getLogger(__name__)


class SessionController:
    """Arbitrates the single user-facing action based on the current phase.

    The controller owns the session store; recording, the turn pipeline and
    playback all report back through it.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        store: SessionStore,
        recording: RecordingSession,
        pipeline: TurnPipeline,
        playback: PlaybackController,
        conversations: ConversationStore,
        chat: ChatAiClient,
        profile_provider: ProfileProvider,
        timing: TimingSettings,
    ):
        self.scheduler = scheduler
        self.store = store
        self.recording = recording
        self.pipeline = pipeline
        self.playback = playback
        self.conversations = conversations
        self.chat = chat
        self.profile_provider = profile_provider
        self.timing = timing

        self._resume_handle = None

    @classmethod
    def build(
        cls,
        config: PulpaConfig,
        scheduler: Scheduler,
        transcriber: AbstractTranscriptionBackend,
        chat: ChatAiClient,
        synthesizer: TextToSpeechClient,
        conversations: ConversationStore,
        profile_provider: ProfileProvider,
        microphone_factory: Optional[Callable[[], Microphone]] = None,
        player: Optional[AudioPlayer] = None,
        publisher: Optional[StatePublisher] = None,
    ) -> "SessionController":
        """Wire the components together from configuration."""
        audio = AudioSettings.from_config(config)
        detection = DetectionSettings.from_config(config)
        timing = TimingSettings.from_config(config)

        store = SessionStore(scheduler, publisher)
        playback = PlaybackController(store, scheduler, player or AudioPlayer(audio.frames_per_buffer), timing)
        pipeline = TurnPipeline(
            scheduler, store, transcriber, chat, synthesizer,
            conversations, playback, profile_provider, timing,
        )
        recording = RecordingSession(
            scheduler, store, audio, detection, timing,
            on_audio_ready=pipeline.submit,
            microphone_factory=microphone_factory,
            publisher=publisher,
        )
        return cls(scheduler, store, recording, pipeline, playback,
                   conversations, chat, profile_provider, timing)

    # Observable state

    @property
    def state(self) -> RecordingState:
        return self.store.state

    @property
    def history(self) -> List[ConversationTurn]:
        return self.store.history

    @property
    def conversation_id(self) -> Optional[str]:
        return self.store.conversation_id

    @property
    def is_summarizing(self) -> bool:
        return self.store.is_summarizing

    # Actions

    async def bootstrap(self) -> bool:
        """Request microphone access eagerly so the first tap can record."""
        return await self.recording.request_permission()

    def handle_main_action(self) -> Optional[asyncio.Task]:
        """Respond to the primary button according to the current phase."""
        state = self.store.recording

        if state.error:
            logger.info("Dismissing error")
            self.store.reset_to_ready()
            return None

        if state.is_playing_audio:
            self.handle_interrupt_audio()
            if state.has_permission:
                self._cancel_resume()
                self._resume_handle = self.scheduler.call_later(self.timing.resume_delay_ms, self._resume_recording)
            return None

        if state.is_recording:
            self.recording.stop(True)
            return None

        if state.is_busy or self.pipeline.is_running:
            logger.info("⏳ Busy processing, ignoring main action")
            return None

        if state.has_permission:
            return self.scheduler.spawn(self.recording.start(), name="start-recording")

        return self.scheduler.spawn(self.recording.request_permission(), name="request-permission")

    def handle_interrupt_audio(self) -> None:
        """Stop reply playback and return to ready."""
        self.playback.interrupt()

    def _resume_recording(self) -> None:
        self._resume_handle = None
        state = self.store.recording
        if state.has_permission and state.phase is Phase.IDLE and not self.pipeline.is_running:
            self.scheduler.spawn(self.recording.start(), name="resume-recording")

    def _cancel_resume(self) -> None:
        if self._resume_handle is not None:
            self._resume_handle.cancel()
            self._resume_handle = None

    async def finish_session(self) -> bool:
        """Summarize and close the active conversation.

        Local history is cleared whether or not summarization succeeds.

        Returns:
            True if a session was finished, False if none was active or it
            is already being summarized
        """
        conversation_id = self.store.conversation_id
        if not conversation_id:
            logger.info("No active session to finish")
            return False
        if self.store.is_summarizing:
            logger.info(f"Session {conversation_id} is already being summarized")
            return False

        logger.info(f"📚 Finishing session {conversation_id}")
        self.store.set_summarizing(True)
        idle = self.store.recording.phase is Phase.IDLE
        if idle:
            self.store.notify(SUMMARIZING_STATUS)

        failed = False
        try:
            await self.conversations.summarize(conversation_id)
        except PulpaError as e:
            logger.error(f"❌ Failed to summarize {conversation_id}: {e.message}")
            failed = True
        except Exception as e:
            logger.error(f"❌ Failed to summarize {conversation_id}: {e}", exc_info=True)
            failed = True
        finally:
            self.store.clear_conversation()
            self.store.set_summarizing(False)

        if self.store.recording.phase is not Phase.IDLE:
            return True
        if failed:
            self.store.fail(SESSION_SUMMARY_FAILED, reset_after_ms=self.timing.finish_status_reset_ms)
        else:
            self.store.notify(SESSION_SAVED_STATUS, reset_after_ms=self.timing.finish_status_reset_ms)
        return True

    async def reflect(self, user_query: str, memories: Sequence[str]) -> Optional[str]:
        """Ask the AI to reflect on previously retrieved memories."""
        self.store.set_reflection(is_analyzing=True)
        try:
            profile = self.profile_provider()
            if profile is None:
                raise ProfileNotLoadedError()
            result = await self.chat.reflect(user_query, memories, profile.language, profile.context())
        except PulpaError as e:
            logger.error(f"❌ Meta-reflection failed: {e.message}")
            self.store.set_reflection(error=e.message)
            return None
        except Exception as e:
            logger.error(f"❌ Meta-reflection failed: {e}", exc_info=True)
            self.store.set_reflection(error=str(e))
            raise

        self.store.set_reflection(result=result)
        logger.info("🪞 Meta-reflection ready")
        return result

    # Lifecycle

    def sign_out(self) -> None:
        """Drop the local session and stop any audio in progress."""
        logger.info("👋 Signing out, clearing session")
        self._cancel_resume()
        if self.recording.is_active:
            self.recording.stop(False)
        self.playback.interrupt()
        self.store.clear_conversation()
        self.store.set_reflection()
        self.store.reset_to_ready()

    def shutdown(self) -> None:
        """Release every audio resource and cancel timers and tasks."""
        logger.info("Shutting down session controller")
        self._cancel_resume()
        self.recording.stop(False)
        self.playback.interrupt()
        self.store.cancel_pending_reset()
        self.scheduler.cancel_all()
