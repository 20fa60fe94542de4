"""Transcription through the backend's `transcribe` function."""

import asyncio
import base64
import logging
import time

from pydantic import ValidationError

from ..backend.client import BackendClient
from ..backend.models import TranscribeResponse, TranscriptionStatusResponse
from ..exceptions import BackendError, TranscriptionError
from ..models.transcription import TranscriptionResult
from .base import AbstractTranscriptionBackend

logger = logging.getLogger(__name__)


class ServiceTranscriptionBackend(AbstractTranscriptionBackend):
    """Posts the turn audio to the hosted transcription function.

    Long recordings come back as a long-running operation, which is polled
    through `get-transcription-status` until done.
    """

    service_name = "Backend transcribe"

    def __init__(self, client: BackendClient, sample_rate: int = 16000,
                 poll_interval_s: float = 1.0, poll_attempts: int = 60):
        super().__init__(sample_rate)
        self.client = client
        self.poll_interval_s = poll_interval_s
        self.poll_attempts = poll_attempts

    async def transcribe(self, audio: bytes, language: str) -> TranscriptionResult:
        start_time = time.time()
        body = {
            "audioContent": base64.b64encode(audio).decode("ascii"),
            "languageCode": language,
            "encoding": "LINEAR16",
            "sampleRateHertz": self.sample_rate,
            "isLastChunk": True,
        }
        logger.debug(f"Sending {len(audio)} bytes for transcription ({language})")

        try:
            response = TranscribeResponse.model_validate(await self.client.invoke("transcribe", body))
        except BackendError as e:
            raise TranscriptionError(f"Transcription failed: {e.message}") from e
        except ValidationError as e:
            raise TranscriptionError(f"Unexpected transcription payload: {e}") from e

        text = response.transcript
        if text is None and response.operation_name:
            logger.info(f"Long-running transcription started: {response.operation_name}")
            text = await self._poll(response.operation_name, response.gcs_file_name)

        return TranscriptionResult(
            text=text or "",
            service=self.service_name,
            language=language,
            processing_time=time.time() - start_time,
            operation_name=response.operation_name,
        )

    async def _poll(self, operation_name: str, gcs_file_name) -> str:
        body = {"operationName": operation_name, "gcsFileName": gcs_file_name}
        for attempt in range(1, self.poll_attempts + 1):
            await asyncio.sleep(self.poll_interval_s)
            try:
                data = await self.client.invoke("get-transcription-status", body)
                status = TranscriptionStatusResponse.model_validate(data)
            except BackendError as e:
                raise TranscriptionError(f"Transcription status check failed: {e.message}") from e
            except ValidationError as e:
                raise TranscriptionError(f"Unexpected transcription status payload: {e}") from e

            if status.done:
                logger.debug(f"Operation {operation_name} finished after {attempt} checks")
                return status.transcript or ""

        raise TranscriptionError(f"Transcription did not finish after {self.poll_attempts} status checks")
