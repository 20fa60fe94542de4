"""Event models for pub/sub audio and state publication."""

from dataclasses import dataclass
from typing import Optional


@dataclass
class AudioEvent:
    """Encoded audio chunk delivered by the encoder every time slice."""
    chunk_id: str
    audio_data: bytes
    timestamp: float  # Loop time (ms) when the chunk was delivered
    sequence_number: int
    sample_rate: int = 16000
    channels: int = 1
    chunk_duration_ms: Optional[int] = None
    final: bool = False  # True for the chunk flushed on stop

    def __post_init__(self):
        """Calculate chunk duration if not provided."""
        if self.chunk_duration_ms is None and self.audio_data:
            # 16-bit audio (2 bytes per sample)
            bytes_per_second = self.sample_rate * self.channels * 2
            self.chunk_duration_ms = int(len(self.audio_data) * 1000 / bytes_per_second)
