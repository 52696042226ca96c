"""AI gateway interface definitions.

This module defines the value types passed across the gateway and the
contract for engine wire protocols, allowing different request shapes
(llama-server /completion, OpenAI-compatible chat, etc.) to be swapped
transparently.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass
class ChatMessage:
    """A message in a chat conversation."""

    role: str  # system, user, assistant
    content: str


@dataclass
class ChatOptions:
    """Options for chat completion."""

    temperature: float = 0.7
    max_tokens: int = 1024
    stop: list[str] | None = None  # Overrides the protocol's default stop set


@dataclass
class ChatResponse:
    """A fully collected chat completion."""

    content: str
    model: str


@dataclass
class ChatStreamChunk:
    """A chunk from streaming chat completion."""

    content: str
    done: bool = False


@dataclass
class DownloadProgress:
    """Progress report for a model download."""

    status: str  # starting download, downloading, success
    completed: int
    total: int  # 0 when the source sent no Content-Length

    @property
    def percent(self) -> float | None:
        if not self.total:
            return None
        return self.completed * 100 / self.total


ProgressCallback = Callable[[DownloadProgress], None]
ChunkCallback = Callable[[str, bool], None]


@dataclass
class InstalledModel:
    """A model file found in the storage directory."""

    name: str
    filename: str
    size: int
    modified_at: datetime
    digest: str
    active: bool = False


class IChatProtocol(ABC):
    """Wire protocol for talking to an inference engine.

    Implementations build the engine-native request body and decode one
    line of the streaming response at a time.
    """

    name: str = ""

    @property
    @abstractmethod
    def path(self) -> str:
        """Endpoint path the request is POSTed to."""
        ...

    @abstractmethod
    def build_request(
        self,
        model: str,
        messages: list[ChatMessage],
        options: ChatOptions,
    ) -> dict[str, Any]:
        """Build the JSON request body.

        Args:
            model: Model name the caller asked for
            messages: Ordered conversation history
            options: Sampling options

        Returns:
            JSON-serializable request body with streaming enabled
        """
        ...

    @abstractmethod
    def parse_fragment(self, data: dict[str, Any]) -> ChatStreamChunk | None:
        """Decode one JSON fragment of the stream.

        Returns:
            The chunk, or None when the fragment carries nothing to deliver
        """
        ...
