"""Microphone capture for one conversational turn."""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from ..audio.analysis import AudioAnalyser
from ..audio.capture import Microphone
from ..audio.encoder import WavEncoder
from ..audio.monitor import AudioLevelMonitor
from ..audio.noise import reduce_noise
from ..exceptions import CaptureError, MicrophonePermissionError
from ..models.events import AudioEvent
from ..models.settings import AudioSettings, DetectionSettings, TimingSettings
from ..models.state import Phase, LISTENING_STATUS, PERMISSION_GRANTED_STATUS
from ..timers import Scheduler
from .state_publisher import StatePublisher
from .state_store import SessionStore

logger = logging.getLogger(__name__)


class CaptureState(Enum):
    IDLE = "idle"
    STARTING = "starting"
    RECORDING = "recording"


class RecordingSession:
    """Owns the microphone, the analyser and the encoder while a turn is recorded.

    Transitions:
        IDLE -> STARTING     start(): microphone is being opened
        STARTING -> RECORDING  stream open, analysis graph and timers running
        * -> IDLE            stop(), capture failure or shutdown; teardown runs

    A finished recording is handed by value to `on_audio_ready`. Nothing keeps
    a reference to the stream after teardown.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        store: SessionStore,
        audio: AudioSettings,
        detection: DetectionSettings,
        timing: TimingSettings,
        on_audio_ready: Callable[[bytes], None],
        microphone_factory: Optional[Callable[[], Microphone]] = None,
        publisher: Optional[StatePublisher] = None,
    ):
        """Initialize recording session.

        Args:
            scheduler: Loop facade used for timers and thread hops
            store: Session state owner
            audio: Capture format and analyser parameters
            detection: Silence detection and turn length limits
            timing: Error reset delays
            on_audio_ready: Receives the WAV blob of a finished turn
            microphone_factory: Builds a fresh Microphone per recording
            publisher: Optional pub/sub publisher for encoded chunks
        """
        self.scheduler = scheduler
        self.store = store
        self.audio = audio
        self.detection = detection
        self.timing = timing
        self.on_audio_ready = on_audio_ready
        self.microphone_factory = microphone_factory or self._default_microphone
        self.publisher = publisher

        self.monitor = AudioLevelMonitor(scheduler, detection, on_level=self._on_level)

        self.state = CaptureState.IDLE
        self._generation = 0
        self._microphone: Optional[Microphone] = None
        self._opening: Optional[Microphone] = None
        self._analyser: Optional[AudioAnalyser] = None
        self._encoder: Optional[WavEncoder] = None
        self._duration_timer = None
        self._started_at = 0.0

    def _default_microphone(self) -> Microphone:
        return Microphone(
            sample_rate=self.audio.sample_rate,
            channels=self.audio.channels,
            frames_per_buffer=self.audio.frames_per_buffer,
        )

    @property
    def is_active(self) -> bool:
        return self.state is not CaptureState.IDLE

    async def request_permission(self) -> bool:
        """Probe the microphone once and record the outcome in the store."""
        microphone = self.microphone_factory()
        try:
            await self.scheduler.loop.run_in_executor(None, microphone.probe)
        except MicrophonePermissionError as e:
            logger.warning(f"🚫 Microphone permission denied: {e.message}")
            self.store.deny_permission()
            return False

        logger.info("🎤 Microphone permission granted")
        self.store.grant_permission(PERMISSION_GRANTED_STATUS)
        return True

    async def start(self) -> bool:
        """Start recording a new turn. Returns False when refused."""
        if self.state is not CaptureState.IDLE or self.store.recording.is_busy:
            logger.info("Already recording or processing, ignoring start request")
            return False

        self.state = CaptureState.STARTING
        self._generation += 1
        generation = self._generation
        microphone = self.microphone_factory()
        self._microphone = microphone

        def on_frames(data: bytes) -> None:
            self.scheduler.call_soon_threadsafe(self._on_frames, generation, data)

        self._opening = microphone
        opening = self.scheduler.loop.run_in_executor(None, microphone.open, on_frames)
        try:
            await asyncio.shield(opening)
        except asyncio.CancelledError:
            opening.add_done_callback(lambda _: microphone.close())
            if generation == self._generation:
                self.state = CaptureState.IDLE
                self._microphone = None
            raise
        except MicrophonePermissionError as e:
            microphone.close()
            if self._microphone is microphone:
                self._microphone = None
            if self.state is CaptureState.STARTING:
                self.state = CaptureState.IDLE
                logger.error(f"❌ Could not open microphone: {e.message}")
                self.store.deny_permission()
            return False
        finally:
            if self._opening is microphone:
                self._opening = None

        if self.state is not CaptureState.STARTING or generation != self._generation:
            # Stopped while the device was opening
            microphone.close()
            return False

        self._analyser = AudioAnalyser(
            fft_size=self.audio.fft_size,
            smoothing_time_constant=self.audio.smoothing_time_constant,
            min_decibels=self.audio.min_decibels,
            max_decibels=self.audio.max_decibels,
            channels=self.audio.channels,
        )
        self._encoder = WavEncoder(
            sample_rate=self.audio.sample_rate,
            channels=self.audio.channels,
            time_slice_ms=self.audio.time_slice_ms,
            on_data=self._on_chunk,
            clock=self.scheduler.now,
        )
        self._encoder.start()

        self.state = CaptureState.RECORDING
        self._started_at = self.scheduler.now()
        self.store.grant_permission(LISTENING_STATUS)
        self.store.enter_phase(Phase.RECORDING, LISTENING_STATUS)
        self.store.update(recording_duration=0, audio_level=0.0)

        self._duration_timer = self.scheduler.call_every(self.detection.duration_tick_ms, self._on_tick)
        self.monitor.start(self._analyser, self._on_auto_stop)
        logger.info("🎙️ Recording started")
        return True

    def stop(self, should_process: bool = True) -> None:
        """Stop capture and either hand the audio on or return to ready."""
        if self.state is CaptureState.IDLE:
            self.teardown()
            return

        was_recording = self.state is CaptureState.RECORDING
        self.state = CaptureState.IDLE
        encoder = self._encoder
        chunks = encoder.stop() if encoder is not None else []
        self.teardown()
        audio = None
        if encoder is not None and should_process and encoder.has_data():
            audio = encoder.to_wav(self._suppress_noise if self.audio.noise_suppression else None)

        duration = self.scheduler.now() - self._started_at if was_recording else 0.0
        logger.info(f"🛑 Recording stopped after {duration:.0f}ms with {len(chunks)} chunks")

        if audio is not None:
            self.on_audio_ready(audio)
        else:
            if should_process and was_recording:
                logger.info("No audio captured, nothing to process")
            self.store.reset_to_ready()

    def _suppress_noise(self, pcm: bytes) -> bytes:
        return reduce_noise(pcm, self.audio.sample_rate, self.audio.channels, self.audio.noise_reduction)

    def teardown(self) -> None:
        """Release every capture resource. Safe to call repeatedly."""
        self._generation += 1
        if self._duration_timer is not None:
            self._duration_timer.cancel()
            self._duration_timer = None
        self.monitor.stop()
        microphone, self._microphone = self._microphone, None
        # A device still opening on the executor is closed by start() once open() returns
        if microphone is not None and microphone is not self._opening:
            microphone.close()
        analyser, self._analyser = self._analyser, None
        if analyser is not None:
            analyser.close()
        self._encoder = None

    def _on_frames(self, generation: int, data: bytes) -> None:
        if generation != self._generation or self.state is not CaptureState.RECORDING:
            return
        try:
            self._encoder.write(data)
        except ValueError as e:
            self._fail(CaptureError(f"Encoder failed: {e}"))
            return
        self._analyser.push(data)

    def _on_chunk(self, event: AudioEvent) -> None:
        logger.debug(f"Encoded {event.chunk_id} ({len(event.audio_data)} bytes)")
        if self.publisher:
            self.publisher.publish_audio_chunk(event)

    def _on_level(self, level: float) -> None:
        if self.state is CaptureState.RECORDING:
            self.store.set_level(level)

    def _on_tick(self) -> None:
        if self.state is not CaptureState.RECORDING:
            return
        elapsed = self.scheduler.now() - self._started_at
        self.store.update(recording_duration=int(elapsed))

        if self._microphone is None or not self._microphone.is_active():
            self._fail(CaptureError("Microphone stream ended unexpectedly"))
            return

        if elapsed >= self.detection.max_turn_duration_ms:
            logger.info(f"⏱️ Max turn duration ({self.detection.max_turn_duration_ms}ms) reached, stopping")
            self.stop(True)

    def _on_auto_stop(self) -> None:
        if self.state is CaptureState.RECORDING:
            self.stop(True)

    def _fail(self, error: CaptureError) -> None:
        if self.state is CaptureState.IDLE:
            return
        logger.error(f"❌ Recording failed: {error.message}")
        self.state = CaptureState.IDLE
        if self._encoder is not None:
            self._encoder.stop()
        self.teardown()
        self.store.fail(f"Recording failed: {error.message}", reset_after_ms=self.timing.capture_error_reset_ms)
