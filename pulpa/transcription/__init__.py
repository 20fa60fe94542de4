"""Transcription backends."""

from .base import AbstractTranscriptionBackend
from .service_backend import ServiceTranscriptionBackend

__all__ = ["AbstractTranscriptionBackend", "ServiceTranscriptionBackend"]
