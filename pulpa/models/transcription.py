"""Transcription-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class TranscriptionResult:
    """Result of transcribing one recorded turn."""
    text: str
    service: str
    language: str
    processing_time: float = 0.0
    confidence: Optional[float] = None
    timestamp: datetime = field(default_factory=datetime.now)
    operation_name: Optional[str] = None  # Set when the service ran a long-running job

    @property
    def is_empty(self) -> bool:
        return not self.text or not self.text.strip()
