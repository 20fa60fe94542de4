"""Publishes state and conversation updates over pub/sub."""

import logging
from typing import List, Optional

from pubsub import pub

from ..models.conversation import ConversationTurn
from ..models.events import AudioEvent
from ..models.state import MetaReflectionState, RecordingState

logger = logging.getLogger(__name__)

STATE_TOPIC = "session.state"
CONVERSATION_TOPIC = "session.conversation"
AUDIO_TOPIC = "audio.chunk"
REFLECTION_TOPIC = "session.reflection"


class StatePublisher:
    """Publishes observable session state using pubsub.pub."""

    def __init__(
        self,
        state_topic: str = STATE_TOPIC,
        conversation_topic: str = CONVERSATION_TOPIC,
        audio_topic: str = AUDIO_TOPIC,
        reflection_topic: str = REFLECTION_TOPIC,
    ):
        """Initialize state publisher.

        Args:
            state_topic: Topic for RecordingState snapshots
            conversation_topic: Topic for conversation history changes
            audio_topic: Topic for encoded audio chunks
            reflection_topic: Topic for meta-reflection progress
        """
        self.state_topic = state_topic
        self.conversation_topic = conversation_topic
        self.audio_topic = audio_topic
        self.reflection_topic = reflection_topic
        logger.info(f"StatePublisher initialized with topics: {state_topic}, {conversation_topic}")

    def publish_state(self, state: RecordingState, is_summarizing: bool = False) -> None:
        pub.sendMessage(self.state_topic, state=state, is_summarizing=is_summarizing)

    def publish_conversation(self, conversation_id: Optional[str], turns: List[ConversationTurn], visible: bool = True) -> None:
        pub.sendMessage(self.conversation_topic, conversation_id=conversation_id, turns=turns, visible=visible)

    def publish_reflection(self, reflection: MetaReflectionState) -> None:
        pub.sendMessage(self.reflection_topic, reflection=reflection)

    def publish_audio_chunk(self, event: AudioEvent) -> None:
        pub.sendMessage(self.audio_topic, event=event)
