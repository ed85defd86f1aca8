"""Storage backends for the chat pipeline."""

from persona_chat.storage.chroma_store import ChromaMemoryIndex
from persona_chat.storage.sqlite_store import SQLiteChatStore

__all__ = ["ChromaMemoryIndex", "SQLiteChatStore"]
