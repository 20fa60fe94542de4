"""Conversation turn and session models."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class Role(Enum):
    USER = "user"
    MODEL = "model"


@dataclass(frozen=True)
class ConversationTurn:
    """One message of a conversation. Never mutated after creation."""
    role: Role
    content: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_payload(self) -> dict:
        """Wire shape expected by the chat function's history."""
        return {
            "id": self.id,
            "role": self.role.value,
            "text": self.content,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ConversationSession:
    """Ordered, append-only turns sharing one conversation identifier."""
    conversation_id: str
    turns: List[ConversationTurn] = field(default_factory=list)
    language: Optional[str] = None

    def append(self, role: Role, content: str) -> ConversationTurn:
        turn = ConversationTurn(role=role, content=content)
        self.turns.append(turn)
        return turn

    @property
    def turn_count(self) -> int:
        return len(self.turns)
