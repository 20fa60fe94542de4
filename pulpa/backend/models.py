"""Response payloads returned by the backend functions and tables."""

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class BackendPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TranscribeResponse(BackendPayload):
    transcript: Optional[str] = None
    operation_name: Optional[str] = Field(None, alias="operationName")
    gcs_file_name: Optional[str] = Field(None, alias="gcsFileName")


class TranscriptionStatusResponse(BackendPayload):
    done: bool = False
    transcript: Optional[str] = None


class ChatResponse(BackendPayload):
    response: Optional[str] = None


class SpeechResponse(BackendPayload):
    audio_data: Optional[str] = Field(None, alias="audioData")


class SummaryResponse(BackendPayload):
    summary: Optional[str] = None


class MessageRecord(BackendPayload):
    id: Union[int, str]
    role: str
    text: str = ""
    created_at: Optional[str] = None


class ConversationRecord(BackendPayload):
    id: Union[int, str]
    created_at: Optional[str] = None
    summary: Optional[str] = None
    messages: List[MessageRecord] = Field(default_factory=list)

    @property
    def ordered_messages(self) -> List[MessageRecord]:
        return sorted(self.messages, key=lambda m: m.created_at or "")


class ProfileRecord(BackendPayload):
    id: Union[int, str]
    full_name: Optional[str] = None
    role: Optional[str] = None
    goals: Optional[str] = None
    timezone: Optional[str] = None
    preferred_language: Optional[str] = None
    preferred_voice_id: Optional[str] = None
    onboarding_completed: Optional[bool] = None
