"""Google Speech-to-Text transcription backend."""

import asyncio
import time
import logging
from typing import Optional

from .base import AbstractTranscriptionBackend
from ..exceptions import TranscriptionError
from ..models.transcription import TranscriptionResult

from google.cloud import speech
from google.api_core import exceptions as gax_exceptions
from google.oauth2 import service_account

logger = logging.getLogger(__name__)


class GoogleSpeechBackend(AbstractTranscriptionBackend):
    """Google Speech-to-Text API backend, called directly with a service account."""

    service_name = "Google Speech-to-Text"

    def __init__(self,
                 credentials_path: Optional[str] = None,
                 sample_rate: int = 16000,
                 use_enhanced: bool = True,
                 enable_automatic_punctuation: bool = True,
                 timeout_s: Optional[float] = None):
        """Initialize Google Speech backend.

        Args:
            credentials_path: Path to Google Cloud service account JSON file
            sample_rate: Sample rate of the recorded audio in Hz
            use_enhanced: Whether to use enhanced model (costs more but better quality)
            enable_automatic_punctuation: Enable automatic punctuation
            timeout_s: Per-request deadline, None to wait for the service
        """
        super().__init__(sample_rate)
        self.credentials_path = credentials_path
        if not self.credentials_path:
            raise ValueError("Google credentials path is required - cannot initialize without credentials")
        self.use_enhanced = use_enhanced
        self.enable_automatic_punctuation = enable_automatic_punctuation
        self.timeout_s = timeout_s
        self.client = None
        self.project_id = None

    def initialize(self) -> bool:
        """Initialize Google Speech client and verify credentials."""
        logger.info(f"Loading Google credentials from: {self.credentials_path}")
        credentials = service_account.Credentials.from_service_account_file(self.credentials_path)
        self.client = speech.SpeechClient(credentials=credentials)
        self.project_id = credentials.project_id
        logger.info(f"Google Speech-to-Text backend initialized for project {self.project_id}")
        return True

    def _recognition_config(self, language: str) -> speech.RecognitionConfig:
        return speech.RecognitionConfig(
            encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
            sample_rate_hertz=self.sample_rate,
            language_code=language,
            use_enhanced=self.use_enhanced,
            enable_automatic_punctuation=self.enable_automatic_punctuation,
        )

    async def transcribe(self, audio: bytes, language: str) -> TranscriptionResult:
        if self.client is None:
            raise TranscriptionError("Google Speech backend is not initialized")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._recognize, audio, language)

    def _recognize(self, audio: bytes, language: str) -> TranscriptionResult:
        start_time = time.time()
        logger.debug(f"Audio size: {len(audio)} bytes; Language: {language}; Enhanced model: {self.use_enhanced}")

        try:
            response = self.client.recognize(
                config=self._recognition_config(language),
                audio=speech.RecognitionAudio(content=audio),
                timeout=self.timeout_s,
            )
        except gax_exceptions.DeadlineExceeded as e:
            logger.error("Google STT recognize deadline exceeded")
            raise TranscriptionError(f"Google Speech recognize timeout: {e}") from e
        except gax_exceptions.ServiceUnavailable as e:
            logger.error("Google STT service unavailable")
            raise TranscriptionError(f"Google Speech service unavailable: {e}") from e
        except gax_exceptions.GoogleAPICallError as e:
            logger.error(f"Google STT API call error: {e}")
            raise TranscriptionError(f"Google Speech API error: {e}") from e
        processing_time = time.time() - start_time

        if not response.results:
            logger.debug("--- NO SPEECH DETECTED ---")
            return TranscriptionResult(text="", service=self.service_name, language=language,
                                       processing_time=processing_time, confidence=0.0)

        # Each result covers a consecutive stretch of the turn
        parts = [result.alternatives[0].transcript.strip()
                 for result in response.results if result.alternatives]
        confidence = response.results[0].alternatives[0].confidence if response.results[0].alternatives else None
        text = " ".join(part for part in parts if part)
        logger.debug(f"✅ TRANSCRIPTION SUCCESS: '{text}' (processing_time: {processing_time:.3f}s)")
        return TranscriptionResult(
            text=text,
            service=self.service_name,
            language=language,
            processing_time=processing_time,
            confidence=confidence,
        )
