"""Clients for the hosted backend collaborators."""

from .client import BackendClient
from .chat import ChatAiClient
from .speech import TextToSpeechClient
from .store import ConversationStore
from .profiles import StaticProfileProvider, RemoteProfileProvider

__all__ = [
    "BackendClient",
    "ChatAiClient",
    "TextToSpeechClient",
    "ConversationStore",
    "StaticProfileProvider",
    "RemoteProfileProvider",
]
