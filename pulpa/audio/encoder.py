"""Time-sliced PCM encoder producing a WAV blob."""

import io
import wave
import logging
from typing import Callable, List, Optional

from ..models.events import AudioEvent

logger = logging.getLogger(__name__)


def encode_wav(pcm: bytes, sample_rate: int, channels: int = 1, sample_width: int = 2) -> bytes:
    """Wrap raw PCM in a WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, 'wb') as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return buffer.getvalue()


class WavEncoder:
    """Accumulates PCM and delivers it in chunks every `time_slice_ms` of audio."""

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        time_slice_ms: int = 500,
        sample_width: int = 2,
        on_data: Optional[Callable[[AudioEvent], None]] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.sample_rate = sample_rate
        self.channels = channels
        self.sample_width = sample_width
        self.time_slice_ms = time_slice_ms
        self.on_data = on_data
        self.clock = clock or (lambda: 0.0)

        frame_bytes = channels * sample_width
        self.slice_bytes = max(frame_bytes, int(sample_rate * time_slice_ms / 1000) * frame_bytes)

        self.state = "inactive"
        self.chunks: List[AudioEvent] = []
        self._pending = bytearray()

    def start(self) -> None:
        self.chunks = []
        self._pending = bytearray()
        self.state = "recording"
        logger.debug(f"Encoder started: {self.time_slice_ms}ms slices ({self.slice_bytes} bytes)")

    def write(self, pcm: bytes) -> None:
        if self.state != "recording":
            return
        if len(pcm) % self.sample_width:
            raise ValueError(f"PCM buffer of {len(pcm)} bytes is not aligned to {self.sample_width}-byte samples")
        self._pending.extend(pcm)
        while len(self._pending) >= self.slice_bytes:
            data = bytes(self._pending[:self.slice_bytes])
            del self._pending[:self.slice_bytes]
            self._deliver(data, final=False)

    def stop(self) -> List[AudioEvent]:
        """Flush the remainder and return every delivered chunk."""
        if self.state != "recording":
            return self.chunks
        self.state = "inactive"
        if self._pending:
            self._deliver(bytes(self._pending), final=True)
            self._pending = bytearray()
        logger.debug(f"Encoder stopped with {len(self.chunks)} chunks")
        return self.chunks

    def _deliver(self, data: bytes, final: bool) -> None:
        event = AudioEvent(
            chunk_id=f"chunk_{len(self.chunks) + 1}",
            audio_data=data,
            timestamp=self.clock(),
            sequence_number=len(self.chunks) + 1,
            sample_rate=self.sample_rate,
            channels=self.channels,
            final=final,
        )
        self.chunks.append(event)
        if self.on_data:
            self.on_data(event)

    def has_data(self) -> bool:
        return any(len(chunk.audio_data) > 0 for chunk in self.chunks)

    def to_wav(self, process: Optional[Callable[[bytes], bytes]] = None) -> bytes:
        """Build the WAV blob, optionally passing the joined PCM through `process` first."""
        pcm = b''.join(chunk.audio_data for chunk in self.chunks)
        if process is not None:
            pcm = process(pcm)
        return encode_wav(pcm, self.sample_rate, self.channels, self.sample_width)
