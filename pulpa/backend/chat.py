"""Conversational AI collaborator (the `chat-ai` function)."""

import logging
from typing import Any, Dict, List, Sequence

from pydantic import ValidationError

from ..exceptions import BackendError, ChatAiError
from ..models.conversation import ConversationTurn, Role
from ..models.profile import ProfileContext
from .client import BackendClient
from .models import ChatResponse

logger = logging.getLogger(__name__)

EMPTY_RESPONSE = "Invalid or empty AI response."


class ChatAiClient:
    """Asks the chat function for the next empathetic follow-up."""

    def __init__(self, client: BackendClient, function_name: str = "chat-ai"):
        self.client = client
        self.function_name = function_name

    async def generate_reply(self, history: Sequence[ConversationTurn], language: str,
                             profile: ProfileContext) -> str:
        """Generate the model's reply to the last user turn.

        Args:
            history: Ordered turns, ending with the user turn being answered
            language: BCP-47 language tag for the reply
            profile: Name/role/goals block

        Returns:
            Reply text. A safety block comes back as an apology string.

        Raises:
            ChatAiError: If the call fails or the reply is empty
        """
        if not history or history[-1].role is not Role.USER:
            raise ChatAiError("Conversation history must end with a user turn")

        body = {
            "languageCode": language,
            "userProfile": profile.to_payload(),
            "userMessage": history[-1].content,
            "conversationHistory": [turn.to_payload() for turn in history[:-1]],
        }
        return await self._call(body)

    async def reflect(self, user_query: str, memories: Sequence[str], language: str,
                      profile: ProfileContext) -> str:
        """Synthesize an answer to `user_query` from previously retrieved memories."""
        relevant: List[Dict[str, Any]] = [{"content": memory} for memory in memories]
        body = {
            "languageCode": language,
            "userProfile": profile.to_payload(),
            "metaContext": {"userQuery": user_query, "relevantMemories": relevant},
        }
        return await self._call(body)

    async def _call(self, body: Dict[str, Any]) -> str:
        try:
            data = await self.client.invoke(self.function_name, body)
            reply = ChatResponse.model_validate(data).response
        except BackendError as e:
            logger.error(f"Chat function failed: {e.message}")
            raise ChatAiError(e.message) from e
        except ValidationError as e:
            raise ChatAiError(EMPTY_RESPONSE) from e

        if not reply or not reply.strip():
            raise ChatAiError(EMPTY_RESPONSE)
        return reply.strip()
