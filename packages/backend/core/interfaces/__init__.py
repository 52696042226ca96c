"""Core interfaces for the adapter pattern.

These interfaces define the value types and protocol contract shared by
the gateway services and the engine wire-protocol adapters.
"""

from .ai import (
    ChatMessage,
    ChatOptions,
    ChatResponse,
    ChatStreamChunk,
    ChunkCallback,
    DownloadProgress,
    IChatProtocol,
    InstalledModel,
    ProgressCallback,
)

__all__ = [
    # Chat
    "IChatProtocol",
    "ChatMessage",
    "ChatOptions",
    "ChatResponse",
    "ChatStreamChunk",
    "ChunkCallback",
    # Models
    "DownloadProgress",
    "InstalledModel",
    "ProgressCallback",
]
