"""Conversation orchestration: engine, compaction, and conversation stores.

Import the engine from pai.agent.engine; this package only re-exports the
store types so the event and storage layers can depend on them.
"""

from pai.agent.store import (
    Conversation,
    ConversationNotFoundError,
    ConversationState,
    ConversationStore,
    MemoryStore,
    StoredMessage,
)

__all__ = [
    "Conversation",
    "ConversationNotFoundError",
    "ConversationState",
    "ConversationStore",
    "MemoryStore",
    "StoredMessage",
]
