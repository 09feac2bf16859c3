"""
Conversation history for analyst rooms.

Usage:
    from analyst.conversation import InMemoryConversationStore, conversation_key

    store = InMemoryConversationStore(window=12)
    key = conversation_key(room_id, match)
    history = await store.recent(key)
    await store.append_exchange(key, question, answer)
"""

from analyst.conversation.store import (
    ASSISTANT,
    USER,
    ConversationStore,
    ConversationTurn,
    InMemoryConversationStore,
    SQLConversationStore,
    conversation_key,
)

__all__ = [
    "ASSISTANT",
    "USER",
    "ConversationStore",
    "ConversationTurn",
    "InMemoryConversationStore",
    "SQLConversationStore",
    "conversation_key",
]
