"""Speech synthesis collaborator (the `text-to-speech` function)."""

import base64
import binascii
import logging

from pydantic import ValidationError

from ..exceptions import BackendError, SynthesisError
from .client import BackendClient
from .models import SpeechResponse

logger = logging.getLogger(__name__)

INVALID_AUDIO = "Received invalid or empty audio data from server."


class TextToSpeechClient:
    """Turns reply text into audio bytes (MP3 from the provider)."""

    def __init__(self, client: BackendClient, function_name: str = "text-to-speech"):
        self.client = client
        self.function_name = function_name

    async def synthesize(self, text: str, language: str, voice_id: str) -> bytes:
        """Synthesize `text` with the given voice.

        Raises:
            SynthesisError: On call failure or when no audio comes back
        """
        if not text:
            raise SynthesisError("No text provided.")

        try:
            data = await self.client.invoke(
                self.function_name,
                {"text": text, "languageCode": language, "voiceId": voice_id},
            )
            encoded = SpeechResponse.model_validate(data).audio_data
        except BackendError as e:
            raise SynthesisError(f"TTS function invocation error: {e.message}") from e
        except ValidationError as e:
            raise SynthesisError(INVALID_AUDIO) from e

        if not encoded:
            raise SynthesisError(INVALID_AUDIO)
        try:
            audio = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise SynthesisError(INVALID_AUDIO) from e
        if not audio:
            raise SynthesisError(INVALID_AUDIO)

        logger.debug(f"Synthesized {len(audio)} bytes with voice {voice_id}")
        return audio
