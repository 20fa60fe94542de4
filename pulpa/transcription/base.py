"""Abstract base class for transcription backends."""

from abc import ABC, abstractmethod
import logging

from ..models.transcription import TranscriptionResult

logger = logging.getLogger(__name__)


class AbstractTranscriptionBackend(ABC):
    """Turns one recorded turn into text."""

    service_name = "transcription"

    def __init__(self, sample_rate: int = 16000):
        """Initialize backend with the capture sample rate."""
        self.sample_rate = sample_rate

    @abstractmethod
    async def transcribe(self, audio: bytes, language: str) -> TranscriptionResult:
        """Transcribe a WAV blob.

        Args:
            audio: Encoded audio for the whole turn
            language: BCP-47 language tag, e.g. 'es-AR'

        Returns:
            TranscriptionResult whose text may be empty when nothing was heard

        Raises:
            TranscriptionError: If the service fails
        """
        pass

    def initialize(self) -> bool:
        """Initialize backend resources and verify configuration.

        Returns:
            True if initialization successful, False otherwise
        """
        return True

    def cleanup(self) -> None:
        """Clean up backend resources."""
        pass
