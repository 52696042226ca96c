"""llama-server protocol adapter.

Translates a role-tagged conversation into the engine's native request
shape and normalizes its streaming response into ChatStreamChunk values.

Two wire protocols are supported:
- CompletionProtocol: POST /completion with a flattened "User:/Assistant:"
  transcript. Used for models without a chat template (RWKV).
- ChatCompletionsProtocol: POST /v1/chat/completions, OpenAI-compatible,
  messages passed through unchanged.
"""

import json
import logging
from collections.abc import Iterable, Iterator
from typing import Any

import httpx

from core.exceptions import EngineUnreachableError, UpstreamStatusError
from core.interfaces import ChatMessage, ChatOptions, ChatStreamChunk, IChatProtocol
from core.model_catalog import find_by_name

logger = logging.getLogger(__name__)

# Architectures that only understand a raw prompt
PROMPT_ARCHITECTURES = frozenset({"rwkv"})


class CompletionProtocol(IChatProtocol):
    """llama-server /completion endpoint with a flattened prompt.

    The history is rendered as a plain transcript ending in an open
    assistant turn. Stop sequences halt generation at the next user turn,
    so assistant output that itself contains "User:" is cut short there.
    """

    name = "completion"
    path = "/completion"
    STOP_SEQUENCES = ("User:", "User :", "\nUser")

    @staticmethod
    def format_prompt(messages: list[ChatMessage]) -> str:
        """Render messages as a User:/Assistant: transcript."""
        parts = []
        for msg in messages:
            if msg.role == "system":
                parts.append(f"{msg.content}\n\n")
            elif msg.role == "user":
                parts.append(f"User: {msg.content}\n\n")
            elif msg.role == "assistant":
                parts.append(f"Assistant: {msg.content}\n\n")
            else:
                logger.debug("Dropping message with unknown role %r", msg.role)
        parts.append("Assistant:")
        return "".join(parts)

    def build_request(
        self,
        model: str,
        messages: list[ChatMessage],
        options: ChatOptions,
    ) -> dict[str, Any]:
        return {
            "prompt": self.format_prompt(messages),
            "n_predict": options.max_tokens,
            "stream": True,
            "stop": list(options.stop) if options.stop is not None else list(self.STOP_SEQUENCES),
            "temperature": options.temperature,
        }

    def parse_fragment(self, data: dict[str, Any]) -> ChatStreamChunk | None:
        return ChatStreamChunk(
            content=str(data.get("content") or ""),
            done=bool(data.get("stop", False)),
        )


class ChatCompletionsProtocol(IChatProtocol):
    """OpenAI-compatible /v1/chat/completions endpoint."""

    name = "chat"
    path = "/v1/chat/completions"

    def build_request(
        self,
        model: str,
        messages: list[ChatMessage],
        options: ChatOptions,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "stream": True,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
        }
        if options.stop:
            body["stop"] = list(options.stop)
        return body

    def parse_fragment(self, data: dict[str, Any]) -> ChatStreamChunk | None:
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return None
        choice = choices[0]
        delta = choice.get("delta") or {}
        if not isinstance(delta, dict):
            return None
        return ChatStreamChunk(
            content=str(delta.get("content") or ""),
            done=choice.get("finish_reason") is not None,
        )


def select_protocol(model: str, mode: str = "auto") -> IChatProtocol:
    """Choose the wire protocol for a model.

    Args:
        model: Model name or filename
        mode: "completion", "chat", or "auto" (decide from the catalog)

    Returns:
        Protocol instance. In auto mode, models unknown to the catalog
        use the completion protocol.
    """
    if mode == "completion":
        return CompletionProtocol()
    if mode == "chat":
        return ChatCompletionsProtocol()

    entry = find_by_name(model)
    if entry is None or entry.architecture in PROMPT_ARCHITECTURES:
        return CompletionProtocol()
    return ChatCompletionsProtocol()


def iter_stream_chunks(lines: Iterable[str], protocol: IChatProtocol) -> Iterator[ChatStreamChunk]:
    """Decode newline-delimited JSON (optionally SSE "data:" prefixed).

    Stops after the first chunk marked done. If the stream ends without
    one, a closing empty chunk is emitted so the last chunk is always final;
    a truncated stream is therefore indistinguishable from a completed one.
    Lines that are not JSON objects, or fragments of the wrong shape, are
    skipped.
    """
    for raw in lines:
        line = raw.strip()
        if line.startswith("data:"):
            line = line[len("data:"):].strip()
        if not line or line == "[DONE]":
            continue

        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("Skipping non-JSON stream line: %.80s", line)
            continue
        if not isinstance(data, dict):
            continue

        chunk = protocol.parse_fragment(data)
        if chunk is None:
            continue
        yield chunk
        if chunk.done:
            return

    yield ChatStreamChunk(content="", done=True)


class LlamaServerAdapter:
    """Streams chat completions from a running llama-server."""

    def __init__(self, base_url: str, client: httpx.Client):
        """Initialize the adapter.

        Args:
            base_url: Engine base URL (e.g., http://localhost:8085)
            client: HTTP client; must not have a read timeout
        """
        self._base_url = base_url.rstrip("/")
        self._client = client

    def chat_stream(
        self,
        model: str,
        messages: list[ChatMessage],
        options: ChatOptions,
        protocol: IChatProtocol,
    ) -> Iterator[ChatStreamChunk]:
        """Send a streaming chat request.

        Nothing is sent until the first chunk is requested. A non-2xx
        status raises UpstreamStatusError before any chunk is yielded.
        Closing the generator closes the connection.

        Raises:
            UpstreamStatusError: Engine answered with a non-2xx status
            EngineUnreachableError: Connection failed or dropped mid-stream
        """
        url = f"{self._base_url}{protocol.path}"
        body = protocol.build_request(model, messages, options)

        try:
            with self._client.stream(
                "POST",
                url,
                json=body,
                headers={"Accept-Encoding": "identity"},
            ) as response:
                if not response.is_success:
                    response.read()
                    raise UpstreamStatusError(response.status_code, response.text.strip(), url)
                yield from iter_stream_chunks(response.iter_lines(), protocol)
        except httpx.TransportError as e:
            raise EngineUnreachableError(f"Failed to talk to llama-server at {url}: {e}") from e
