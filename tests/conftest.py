"""Pytest configuration and fixtures for pulpa tests."""

import asyncio
import heapq
import logging
import tempfile
from types import SimpleNamespace
from typing import List, Optional
from unittest.mock import Mock, patch

import numpy as np
import pytest

from pulpa.config import PulpaConfig
from pulpa.exceptions import MicrophonePermissionError, PersistenceError
from pulpa.models.conversation import Role
from pulpa.models.profile import UserProfile
from pulpa.models.transcription import TranscriptionResult
from pulpa.services.session_controller import SessionController
from pulpa.services.state_publisher import StatePublisher
from pulpa.timers import Scheduler


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SAMPLE_RATE = 16000


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests with no hardware or network")
    config.addinivalue_line("markers", "integration: full voice turns over fakes")
    config.addinivalue_line("markers", "hardware: needs a real microphone")


# Audio generators

def noise_pcm(duration_ms: float, amplitude: float = 0.3, seed: int = 7) -> bytes:
    """White noise, loud enough to register as speech."""
    samples = int(SAMPLE_RATE * duration_ms / 1000)
    rng = np.random.default_rng(seed)
    data = rng.uniform(-amplitude, amplitude, samples)
    return (data * 32767).astype(np.int16).tobytes()


def silence_pcm(duration_ms: float) -> bytes:
    return b'\x00\x00' * int(SAMPLE_RATE * duration_ms / 1000)


# Virtual clock

class ManualHandle:
    """Timer handle compatible with asyncio.TimerHandle.cancel()."""

    def __init__(self, when: float, callback, args):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Scheduler whose timers only fire when the test advances the clock.

    Tasks still run on the real event loop; thread hops run inline.
    """

    def __init__(self, frame_interval_ms: float = 16.0):
        super().__init__(frame_interval_ms=frame_interval_ms)
        self.clock = 0.0
        self._timers = []
        self._seq = 0

    def now(self) -> float:
        return self.clock

    def call_later(self, delay_ms, callback, *args):
        handle = ManualHandle(self.clock + max(0.0, delay_ms), callback, args)
        self._seq += 1
        heapq.heappush(self._timers, (handle.when, self._seq, handle))
        return handle

    def call_soon_threadsafe(self, callback, *args) -> None:
        callback(*args)

    def advance(self, ms: float) -> None:
        target = self.clock + ms
        while self._timers and self._timers[0][0] <= target:
            when, _, handle = heapq.heappop(self._timers)
            if handle.cancelled:
                continue
            self.clock = when
            handle.callback(*handle.args)
        self.clock = target

    @property
    def pending_timers(self) -> int:
        return sum(1 for _, _, handle in self._timers if not handle.cancelled)


async def wait_for(predicate, timeout: float = 2.0) -> None:
    """Yield to the loop until `predicate()` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not reached in time")
        await asyncio.sleep(0.001)


# Hardware fakes

class FakeMicrophone:
    """Stands in for pulpa.audio.capture.Microphone."""

    def __init__(self, deny: bool = False):
        self.deny = deny
        self.on_frames = None
        self.active = False
        self.open_calls = 0
        self.close_calls = 0
        self.probe_calls = 0

    def probe(self) -> None:
        self.probe_calls += 1
        if self.deny:
            raise MicrophonePermissionError("Permission denied by user")

    def open(self, on_frames) -> None:
        self.open_calls += 1
        if self.deny:
            raise MicrophonePermissionError("Permission denied by user")
        self.on_frames = on_frames
        self.active = True

    def is_active(self) -> bool:
        return self.active

    def close(self) -> None:
        self.close_calls += 1
        self.on_frames = None
        self.active = False

    def emit(self, pcm: bytes) -> None:
        if self.on_frames is not None:
            self.on_frames(pcm)


class FakePlayer:
    """Stands in for AudioPlayer; optionally holds until stopped or finished."""

    def __init__(self, hold: bool = False, error: Optional[Exception] = None):
        self.hold = hold
        self.error = error
        self.played: List[bytes] = []
        self.paths: List[str] = []
        self.stop_calls = 0
        self._done: Optional[asyncio.Event] = None

    async def play(self, path: str) -> None:
        with open(path, 'rb') as f:
            self.played.append(f.read())
        self.paths.append(path)
        if self.error is not None:
            raise self.error
        if self.hold:
            self._done = asyncio.Event()
            await self._done.wait()

    def finish(self) -> None:
        if self._done is not None:
            self._done.set()

    def stop(self) -> None:
        self.stop_calls += 1
        self.finish()


class FakeAnalyser:
    """Analysis node reporting a flat spectrum at `level`."""

    def __init__(self, level: float = 0.0, bins: int = 128):
        self.level = level
        self.bins = bins
        self.closed = False

    def get_byte_frequency_data(self) -> np.ndarray:
        if self.closed:
            return np.empty(0, dtype=np.uint8)
        return np.full(self.bins, int(round(self.level * 255)), dtype=np.uint8)

    def close(self) -> None:
        self.closed = True


# Collaborator fakes

class FakeTranscriber:
    def __init__(self, texts=None, error: Optional[Exception] = None):
        self.texts = list(texts or [])
        self.error = error
        self.calls = []

    async def transcribe(self, audio: bytes, language: str) -> TranscriptionResult:
        self.calls.append((audio, language))
        if self.error is not None:
            raise self.error
        text = self.texts.pop(0) if self.texts else ""
        return TranscriptionResult(text=text, service="fake", language=language)


class FakeChat:
    def __init__(self, replies=None, error: Optional[Exception] = None):
        self.replies = list(replies or [])
        self.error = error
        self.calls = []
        self.reflections = []

    async def generate_reply(self, history, language, profile) -> str:
        self.calls.append((list(history), language, profile))
        if self.error is not None:
            raise self.error
        return self.replies.pop(0) if self.replies else "Tell me more."

    async def reflect(self, user_query, memories, language, profile) -> str:
        self.reflections.append((user_query, list(memories), language))
        if self.error is not None:
            raise self.error
        return f"Reflection on {user_query}"


class FakeSynthesizer:
    def __init__(self, audio: bytes = b'ID3fake-mp3-bytes', error: Optional[Exception] = None):
        self.audio = audio
        self.error = error
        self.calls = []

    async def synthesize(self, text, language, voice_id) -> bytes:
        self.calls.append((text, language, voice_id))
        if self.error is not None:
            raise self.error
        return self.audio


class FakeConversationStore:
    def __init__(self, fail_create: bool = False, fail_roles=(), fail_summary: bool = False):
        self.fail_create = fail_create
        self.fail_roles = set(fail_roles)
        self.fail_summary = fail_summary
        self.created = []
        self.saved = []
        self.summarized = []

    async def create_conversation(self) -> str:
        if self.fail_create:
            raise PersistenceError("insert rejected")
        conversation_id = f"conv-{len(self.created) + 1}"
        self.created.append(conversation_id)
        return conversation_id

    async def append_turn(self, conversation_id: str, role: Role, text: str) -> None:
        if role in self.fail_roles:
            raise PersistenceError(f"{role.value} message rejected")
        self.saved.append((conversation_id, role, text))

    async def summarize(self, conversation_id: str):
        self.summarized.append(conversation_id)
        if self.fail_summary:
            raise PersistenceError("summary failed")
        return "A short summary"


class RecordingPublisher(StatePublisher):
    """Keeps every published snapshot instead of broadcasting it."""

    def __init__(self):
        super().__init__()
        self.states = []
        self.conversations = []
        self.chunks = []
        self.reflections = []

    def publish_state(self, state, is_summarizing=False) -> None:
        self.states.append(state)

    def publish_conversation(self, conversation_id, turns, visible=True) -> None:
        self.conversations.append((conversation_id, list(turns), visible))

    def publish_audio_chunk(self, event) -> None:
        self.chunks.append(event)

    def publish_reflection(self, reflection) -> None:
        self.reflections.append(reflection)


TEST_CONFIG = {
    "detection": {
        "silence_duration_ms": 4000,
        "max_turn_duration_ms": 50000,
    },
    "timing": {
        "capture_error_reset_ms": 2000,
        "nothing_heard_reset_ms": 2000,
        "pipeline_error_reset_ms": 4000,
        "resume_delay_ms": 100,
        "finish_status_reset_ms": 2500,
    },
}


def build_harness(config_overrides=None, profile: Optional[UserProfile] = UserProfile(preferred_language="en-US"),
                  **fakes) -> SimpleNamespace:
    config = PulpaConfig.from_dict(config_overrides or TEST_CONFIG)
    h = SimpleNamespace(
        scheduler=ManualScheduler(),
        mic=fakes.get('mic') or FakeMicrophone(),
        player=fakes.get('player') or FakePlayer(),
        transcriber=fakes.get('transcriber') or FakeTranscriber(),
        chat=fakes.get('chat') or FakeChat(),
        synthesizer=fakes.get('synthesizer') or FakeSynthesizer(),
        conversations=fakes.get('conversations') or FakeConversationStore(),
        publisher=RecordingPublisher(),
        profile=profile,
    )
    h.controller = SessionController.build(
        config,
        h.scheduler,
        transcriber=h.transcriber,
        chat=h.chat,
        synthesizer=h.synthesizer,
        conversations=h.conversations,
        profile_provider=lambda: h.profile,
        microphone_factory=lambda: h.mic,
        player=h.player,
        publisher=h.publisher,
    )
    h.store = h.controller.store

    def feed(pcm_factory, duration_ms: float, step_ms: float = 16.0) -> None:
        """Emit audio and advance the clock in frame-sized steps."""
        elapsed = 0.0
        while elapsed < duration_ms:
            h.mic.emit(pcm_factory(step_ms))
            h.scheduler.advance(step_ms)
            elapsed += step_ms

    h.feed = feed
    return h


@pytest.fixture
def harness():
    """Factory for a SessionController wired to fakes and a virtual clock."""
    return build_harness


@pytest.fixture
def manual_scheduler():
    return ManualScheduler()


@pytest.fixture
def fake_microphone():
    return FakeMicrophone()


@pytest.fixture
def fake_analyser():
    return FakeAnalyser()


@pytest.fixture
def fake_player():
    return FakePlayer()


@pytest.fixture
def audio_factory():
    """Noise/silence PCM generators."""
    return SimpleNamespace(noise=noise_pcm, silence=silence_pcm)


@pytest.fixture
def waiter():
    return wait_for


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def sample_audio_chunk():
    """Generate a sample audio chunk for testing."""
    # 1024 samples of a 440Hz sine at 16kHz
    duration = 1024 / SAMPLE_RATE
    t = np.linspace(0, duration, 1024, False)
    wave_data = np.sin(2 * np.pi * 440 * t)
    audio_data = (wave_data * 32767 * 0.5).astype(np.int16)
    return audio_data.tobytes()


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        mock_stream.is_active.return_value = True
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_sample_size.return_value = 2

        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


@pytest.fixture
def fakes():
    """Collaborator fake classes for tests that configure their own."""
    return SimpleNamespace(
        Microphone=FakeMicrophone,
        Player=FakePlayer,
        Analyser=FakeAnalyser,
        Transcriber=FakeTranscriber,
        Chat=FakeChat,
        Synthesizer=FakeSynthesizer,
        ConversationStore=FakeConversationStore,
        Publisher=RecordingPublisher,
        Scheduler=ManualScheduler,
    )
