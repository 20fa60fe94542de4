"""One conversational turn: transcribe, reply, synthesize, play."""

import asyncio
import logging
from typing import Callable, Optional

from ..audio.playback import PlaybackController
from ..backend.chat import ChatAiClient
from ..backend.speech import TextToSpeechClient
from ..backend.store import ConversationStore
from ..exceptions import PersistenceError, ProfileNotLoadedError, PulpaError
from ..models.conversation import ConversationSession, Role
from ..models.profile import UserProfile
from ..models.settings import TimingSettings
from ..models.state import (
    Phase,
    AI_THINKING_STATUS,
    GENERATING_AUDIO_STATUS,
    NOTHING_HEARD_STATUS,
    TRANSCRIBING_STATUS,
)
from ..timers import Scheduler
from ..transcription.base import AbstractTranscriptionBackend
from ..utils.language import detect_language
from .state_store import SessionStore

logger = logging.getLogger(__name__)

ProfileProvider = Callable[[], Optional[UserProfile]]


class TurnAbandoned(Exception):
    """The conversation was cleared while the turn was in flight."""


class TurnPipeline:
    """Drives one recorded blob to a spoken reply, strictly in order.

    Idle -> Processing (transcribe) -> [empty: nothing heard] -> AiThinking
    -> GeneratingAudio -> handoff to PlaybackController.

    Every failure funnels into `_handle_error`, which shows the message and
    schedules a delayed reset to ready.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        store: SessionStore,
        transcriber: AbstractTranscriptionBackend,
        chat: ChatAiClient,
        synthesizer: TextToSpeechClient,
        conversations: ConversationStore,
        playback: PlaybackController,
        profile_provider: ProfileProvider,
        timing: TimingSettings,
    ):
        self.scheduler = scheduler
        self.store = store
        self.transcriber = transcriber
        self.chat = chat
        self.synthesizer = synthesizer
        self.conversations = conversations
        self.playback = playback
        self.profile_provider = profile_provider
        self.timing = timing

        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def submit(self, audio: bytes) -> Optional[asyncio.Task]:
        """Mark the session busy and process `audio` in a background task."""
        if not self._begin(audio):
            return None
        return self.scheduler.spawn(self._execute(audio), name="turn-pipeline")

    async def run(self, audio: bytes) -> None:
        """Process `audio` and wait for the turn to finish (up to playback handoff)."""
        if not self._begin(audio):
            return
        await self._execute(audio)

    def _begin(self, audio: bytes) -> bool:
        if self._running:
            logger.warning("Turn already in progress, dropping new audio")
            return False
        self._running = True
        logger.info(f"📝 Processing turn audio ({len(audio)} bytes)")
        self.store.enter_phase(Phase.PROCESSING, TRANSCRIBING_STATUS)
        return True

    async def _execute(self, audio: bytes) -> None:
        try:
            profile = self.profile_provider()
            if profile is None:
                raise ProfileNotLoadedError()
            await self._process(audio, profile)
        except ProfileNotLoadedError as e:
            logger.error(f"❌ {e.message}")
            self.store.fail(e.message, reset_after_ms=self.timing.capture_error_reset_ms)
        except TurnAbandoned:
            logger.info("Conversation cleared during turn, dropping result")
            if self.store.recording.is_busy:
                self.store.reset_to_ready()
        except Exception as e:
            self._handle_error(e)
        finally:
            self._running = False

    async def _process(self, audio: bytes, profile: UserProfile) -> None:
        epoch = self.store.conversation_epoch

        # Transcribe
        result = await self.transcriber.transcribe(audio, profile.language)
        self._check_epoch(epoch)
        if result.is_empty:
            logger.info("🔇 Empty transcript, nothing heard")
            self.store.notify(NOTHING_HEARD_STATUS, reset_after_ms=self.timing.nothing_heard_reset_ms)
            return
        text = result.text.strip()
        logger.info(f"🗣️ Transcribed: '{text}'")

        # Lazily open the conversation on the first non-empty transcript
        session = self.store.conversation
        if session is None:
            session = await self._open_conversation(profile, text)
            self._check_epoch(epoch)

        # Persist the user turn before it becomes part of the history
        try:
            await self.conversations.append_turn(session.conversation_id, Role.USER, text)
        except PulpaError as e:
            raise PersistenceError(f"Could not save your message: {e.message}") from e
        self._check_epoch(epoch)
        self.store.append_turn(Role.USER, text)

        # Generate the reply
        language = session.language or profile.language
        self.store.enter_phase(Phase.AI_THINKING, AI_THINKING_STATUS)
        reply = await self.chat.generate_reply(self.store.history, language, profile.context())
        self._check_epoch(epoch)
        logger.info(f"🤖 Reply received ({len(reply)} chars)")

        self.store.append_turn(Role.MODEL, reply)
        try:
            await self.conversations.append_turn(session.conversation_id, Role.MODEL, reply)
        except PulpaError as e:
            logger.warning(f"⚠️ Could not save AI reply for {session.conversation_id}: {e.message}")
        self._check_epoch(epoch)

        # Synthesize and hand off
        self.store.enter_phase(Phase.GENERATING_AUDIO, GENERATING_AUDIO_STATUS)
        speech = await self.synthesizer.synthesize(reply, language, profile.voice_id(language))
        self._check_epoch(epoch)
        self.playback.play(speech)

    async def _open_conversation(self, profile: UserProfile, text: str) -> ConversationSession:
        try:
            conversation_id = await self.conversations.create_conversation()
        except PulpaError as e:
            logger.error(f"❌ Could not create conversation: {e.message}")
            raise PersistenceError("Could not start a new conversation.") from e
        language = profile.preferred_language or detect_language(text)
        return self.store.start_conversation(conversation_id, language=language)

    def _check_epoch(self, epoch: int) -> None:
        if self.store.conversation_epoch != epoch:
            raise TurnAbandoned()

    def _handle_error(self, error: Exception) -> None:
        message = error.message if isinstance(error, PulpaError) else (str(error) or error.__class__.__name__)
        logger.error(f"❌ Error processing turn: {message}", exc_info=not isinstance(error, PulpaError))
        self.store.fail(f"Error: {message}", reset_after_ms=self.timing.pipeline_error_reset_ms)
