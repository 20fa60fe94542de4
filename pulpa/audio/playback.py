"""Playback of synthesized replies."""

import asyncio
import logging
import os
import tempfile
import threading
from typing import TYPE_CHECKING, Optional

import pyaudio
import soundfile as sf

from ..exceptions import PlaybackError
from ..models.settings import TimingSettings
from ..models.state import Phase, PLAYING_STATUS
from ..timers import Scheduler

if TYPE_CHECKING:
    from ..services.state_store import SessionStore

logger = logging.getLogger(__name__)


def guess_suffix(audio: bytes) -> str:
    if audio[:4] == b"RIFF":
        return ".wav"
    if audio[:4] == b"OggS":
        return ".ogg"
    if audio[:4] == b"fLaC":
        return ".flac"
    return ".mp3"


class PlaybackResource:
    """Temporary file holding one reply's audio. Released at most once."""

    def __init__(self, path: str):
        self.path = path
        self.released = False

    @classmethod
    def create(cls, audio: bytes) -> "PlaybackResource":
        fd, path = tempfile.mkstemp(prefix="pulpa_reply_", suffix=guess_suffix(audio))
        with os.fdopen(fd, "wb") as f:
            f.write(audio)
        return cls(path)

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
        logger.debug(f"Released playback resource {self.path}")


class AudioPlayer:
    """Decodes an audio file and writes it to a PyAudio output stream."""

    def __init__(self, frames_per_buffer: int = 1024):
        self.frames_per_buffer = frames_per_buffer
        self._stop_event = threading.Event()

    async def play(self, path: str) -> None:
        """Play `path` to completion or until `stop()` is called."""
        stop_event = threading.Event()
        self._stop_event = stop_event
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._play_blocking, path, stop_event)

    def _play_blocking(self, path: str, stop_event: threading.Event) -> None:
        try:
            data, samplerate = sf.read(path, dtype="int16", always_2d=True)
        except (RuntimeError, OSError) as e:
            raise PlaybackError(f"Could not decode reply audio: {e}") from e
        if data.size == 0:
            raise PlaybackError("Reply audio contains no frames")

        instance = pyaudio.PyAudio()
        stream = None
        try:
            stream = instance.open(
                format=pyaudio.paInt16,
                channels=data.shape[1],
                rate=samplerate,
                output=True,
                frames_per_buffer=self.frames_per_buffer,
            )
            for start in range(0, len(data), self.frames_per_buffer):
                if stop_event.is_set():
                    logger.debug("Playback stopped before completion")
                    break
                stream.write(data[start:start + self.frames_per_buffer].tobytes())
        except OSError as e:
            raise PlaybackError(f"Audio output failed: {e}") from e
        finally:
            try:
                if stream is not None:
                    stream.stop_stream()
                    stream.close()
            except OSError as e:
                raise PlaybackError(f"Could not close audio output: {e}") from e
            finally:
                instance.terminate()

    def stop(self) -> None:
        self._stop_event.set()


class PlaybackController:
    """Plays the reply for a turn and returns the session to ready when done."""

    def __init__(self, store: "SessionStore", scheduler: Scheduler, player: AudioPlayer, timing: TimingSettings):
        self.store = store
        self.scheduler = scheduler
        self.player = player
        self.timing = timing

        self._resource: Optional[PlaybackResource] = None
        self._task: Optional[asyncio.Task] = None
        self._token: Optional[object] = None

    @property
    def is_playing(self) -> bool:
        return self._token is not None

    def play(self, audio: bytes) -> Optional[asyncio.Task]:
        """Start playing `audio`. An empty blob is reported as a recoverable error."""
        if not audio:
            logger.error("❌ Received an empty audio reply")
            self.store.fail("Error: Received an empty audio reply.",
                            reset_after_ms=self.timing.capture_error_reset_ms)
            return None

        self._stop_current()
        try:
            resource = PlaybackResource.create(audio)
        except OSError as e:
            logger.error(f"❌ Could not stage reply audio: {e}")
            self.store.fail(f"Error: {e}", reset_after_ms=self.timing.capture_error_reset_ms)
            return None

        token = object()
        self._token = token
        self._resource = resource
        self.store.enter_phase(Phase.PLAYING_AUDIO, PLAYING_STATUS)
        logger.info(f"🔊 Playing reply ({len(audio)} bytes)")
        self._task = self.scheduler.spawn(self._run(token, resource), name="playback")
        return self._task

    async def _run(self, token: object, resource: PlaybackResource) -> None:
        try:
            await self.player.play(resource.path)
        except PlaybackError as e:
            self._fail(token, resource, e.message)
            return
        except Exception as e:
            logger.exception("Unexpected playback failure")
            self._fail(token, resource, str(e) or type(e).__name__)
            return

        resource.release()
        if token is not self._token:
            return
        self._clear()
        logger.info("✅ Reply playback finished")
        self.store.reset_to_ready()

    def _fail(self, token: object, resource: PlaybackResource, message: str) -> None:
        resource.release()
        if token is not self._token:
            return
        self._clear()
        logger.error(f"❌ {message}")
        self.store.fail(f"Error: {message}", reset_after_ms=self.timing.capture_error_reset_ms)

    def interrupt(self) -> None:
        """Stop playback immediately and return to ready."""
        was_playing = self.is_playing
        self._stop_current()
        if was_playing:
            logger.info("⏹️ Playback interrupted by user")
        self.store.reset_to_ready()

    def _stop_current(self) -> None:
        self._token = None
        self.player.stop()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
        if self._resource is not None:
            self._resource.release()
            self._resource = None

    def _clear(self) -> None:
        self._token = None
        self._task = None
        self._resource = None
