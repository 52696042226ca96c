"""AI engine protocol adapters.

CompletionProtocol: llama-server /completion (flattened transcript)
ChatCompletionsProtocol: OpenAI-compatible /v1/chat/completions
"""

from .llama_server import (
    ChatCompletionsProtocol,
    CompletionProtocol,
    LlamaServerAdapter,
    iter_stream_chunks,
    select_protocol,
)

__all__ = [
    "ChatCompletionsProtocol",
    "CompletionProtocol",
    "LlamaServerAdapter",
    "iter_stream_chunks",
    "select_protocol",
]
