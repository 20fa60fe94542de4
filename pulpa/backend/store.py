"""Conversation persistence collaborator."""

import logging
from typing import List, Optional

from pydantic import ValidationError

from ..exceptions import BackendError, PersistenceError
from ..models.conversation import Role
from .client import BackendClient
from .models import ConversationRecord, SummaryResponse

logger = logging.getLogger(__name__)

CONVERSATION_COLUMNS = "id,created_at,summary,messages(id,role,text,created_at)"
SEARCH_COLUMNS = "id,created_at,summary,messages!inner(id,role,text,created_at)"


class ConversationStore:
    """Creates, appends to, summarizes and fetches the user's conversations."""

    def __init__(self, client: BackendClient, user_id: Optional[str] = None):
        self.client = client
        self.user_id = user_id if user_id is not None else client.user_id

    async def create_conversation(self) -> str:
        """Create an empty conversation owned by the current user.

        Returns:
            The new conversation id
        """
        if not self.user_id:
            raise PersistenceError("User not authenticated to create a conversation.")
        try:
            rows = await self.client.insert("conversations", {"user_id": self.user_id}, returning="id")
        except BackendError as e:
            raise PersistenceError(e.message) from e
        if not rows or "id" not in rows[0]:
            raise PersistenceError("Conversation insert returned no id")
        conversation_id = str(rows[0]["id"])
        logger.info(f"Created conversation {conversation_id}")
        return conversation_id

    async def append_turn(self, conversation_id: str, role: Role, text: str) -> None:
        try:
            await self.client.invoke(
                "add-message",
                {"conversation_id": conversation_id, "role": role.value, "text": text},
            )
        except BackendError as e:
            raise PersistenceError(e.message) from e
        logger.debug(f"Saved {role.value} message to {conversation_id}")

    async def summarize(self, conversation_id: str) -> Optional[str]:
        """Ask the backend to summarize (and close) a conversation."""
        try:
            data = await self.client.invoke("summarize-conversation", {"conversationId": conversation_id})
            summary = SummaryResponse.model_validate(data).summary
        except BackendError as e:
            raise PersistenceError(e.message) from e
        except ValidationError as e:
            raise PersistenceError(f"Unexpected summary payload: {e}") from e
        logger.info(f"Summarized conversation {conversation_id}")
        return summary

    async def fetch_conversations(self, search_term: Optional[str] = None) -> List[ConversationRecord]:
        """List the user's conversations, newest first.

        Args:
            search_term: Only return conversations with a message containing
                this text (case-insensitive)
        """
        if not self.user_id:
            logger.info("No user authenticated, returning no conversations")
            return []

        searching = bool(search_term and search_term.strip())
        params = {
            "select": SEARCH_COLUMNS if searching else CONVERSATION_COLUMNS,
            "user_id": f"eq.{self.user_id}",
            "order": "created_at.desc",
        }
        if searching:
            params["messages.text"] = f"ilike.*{search_term.strip()}*"

        rows = await self._select(params)
        return [self._parse(row) for row in rows]

    async def fetch_conversation(self, conversation_id: str) -> Optional[ConversationRecord]:
        if not self.user_id:
            logger.info("No user authenticated, returning no conversation")
            return None
        rows = await self._select({
            "select": CONVERSATION_COLUMNS,
            "id": f"eq.{conversation_id}",
            "user_id": f"eq.{self.user_id}",
        })
        return self._parse(rows[0]) if rows else None

    async def _select(self, params) -> list:
        try:
            return await self.client.select("conversations", params)
        except BackendError as e:
            raise PersistenceError(e.message) from e

    @staticmethod
    def _parse(row) -> ConversationRecord:
        try:
            return ConversationRecord.model_validate(row)
        except ValidationError as e:
            raise PersistenceError(f"Unexpected conversation payload: {e}") from e
