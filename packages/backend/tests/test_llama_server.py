"""Tests for the llama-server protocol adapter."""

import json

import httpx
import pytest

from adapters.ai import (
    ChatCompletionsProtocol,
    CompletionProtocol,
    LlamaServerAdapter,
    iter_stream_chunks,
    select_protocol,
)
from core.exceptions import EngineUnreachableError, UpstreamStatusError
from core.interfaces import ChatMessage, ChatOptions


def _line(content: str, stop: bool = False) -> str:
    return json.dumps({"content": content, "stop": stop})


def test_format_prompt_transcript():
    messages = [
        ChatMessage(role="system", content="Be brief."),
        ChatMessage(role="user", content="Hi"),
        ChatMessage(role="assistant", content="Hello!"),
        ChatMessage(role="user", content="How are you?"),
    ]
    prompt = CompletionProtocol.format_prompt(messages)
    assert prompt == (
        "Be brief.\n\n"
        "User: Hi\n\n"
        "Assistant: Hello!\n\n"
        "User: How are you?\n\n"
        "Assistant:"
    )


def test_completion_request_body():
    protocol = CompletionProtocol()
    body = protocol.build_request(
        "rwkv7-2.9B",
        [ChatMessage(role="user", content="Hi")],
        ChatOptions(temperature=0.5, max_tokens=64),
    )
    assert body == {
        "prompt": "User: Hi\n\nAssistant:",
        "n_predict": 64,
        "stream": True,
        "stop": ["User:", "User :", "\nUser"],
        "temperature": 0.5,
    }


def test_completion_request_custom_stop():
    body = CompletionProtocol().build_request(
        "m", [ChatMessage(role="user", content="Hi")], ChatOptions(stop=["###"]),
    )
    assert body["stop"] == ["###"]


def test_chat_request_passes_messages_through():
    messages = [
        ChatMessage(role="system", content="Be brief."),
        ChatMessage(role="user", content="Hi"),
    ]
    body = ChatCompletionsProtocol().build_request("qwen2.5:7b", messages, ChatOptions())
    assert body["messages"] == [
        {"role": "system", "content": "Be brief."},
        {"role": "user", "content": "Hi"},
    ]
    assert body["stream"] is True
    assert body["model"] == "qwen2.5:7b"
    assert "stop" not in body


def test_chat_parse_fragment():
    protocol = ChatCompletionsProtocol()
    chunk = protocol.parse_fragment({"choices": [{"delta": {"content": "Hel"}, "finish_reason": None}]})
    assert chunk.content == "Hel"
    assert chunk.done is False

    final = protocol.parse_fragment({"choices": [{"delta": {}, "finish_reason": "stop"}]})
    assert final.content == ""
    assert final.done is True

    assert protocol.parse_fragment({"choices": []}) is None


@pytest.mark.parametrize("fragment", [
    {"choices": [None]},
    {"choices": ["text"]},
    {"choices": {"delta": {}}},
    {"choices": [{"delta": "text", "finish_reason": None}]},
    {"error": "oops"},
])
def test_chat_parse_fragment_wrong_shape(fragment):
    assert ChatCompletionsProtocol().parse_fragment(fragment) is None


def test_chat_stream_skips_wrong_shape_fragments():
    lines = [
        'data: {"choices": [{"delta": {"content": "a"}, "finish_reason": null}]}',
        'data: {"choices": [null]}',
        'data: {"choices": [{"delta": 5}]}',
        'data: {"choices": [{"delta": {"content": "b"}, "finish_reason": "stop"}]}',
    ]
    chunks = list(iter_stream_chunks(lines, ChatCompletionsProtocol()))
    assert [(c.content, c.done) for c in chunks] == [("a", False), ("b", True)]


@pytest.mark.parametrize("model,mode,expected", [
    ("rwkv7-2.9B", "auto", CompletionProtocol),
    ("qwen2.5:7b", "auto", ChatCompletionsProtocol),
    ("Qwen2.5-7B-Instruct-Q4_K_M", "auto", ChatCompletionsProtocol),
    ("my-custom-model", "auto", CompletionProtocol),
    ("qwen2.5:7b", "completion", CompletionProtocol),
    ("rwkv7-2.9B", "chat", ChatCompletionsProtocol),
])
def test_select_protocol(model, mode, expected):
    assert isinstance(select_protocol(model, mode), expected)


def test_stream_stops_at_final_chunk():
    lines = [_line("a"), _line("b"), _line("c", stop=True), _line("ignored")]
    chunks = list(iter_stream_chunks(lines, CompletionProtocol()))
    assert [(c.content, c.done) for c in chunks] == [("a", False), ("b", False), ("c", True)]


def test_stream_tolerates_sse_prefix_and_noise():
    lines = [
        "",
        ": keepalive",
        f"data: {_line('Hel')}",
        "not json at all",
        "data: [1, 2, 3]",
        f"data:{_line('lo')}",
        "data: [DONE]",
        f"data: {_line('', stop=True)}",
    ]
    chunks = list(iter_stream_chunks(lines, CompletionProtocol()))
    assert [c.content for c in chunks] == ["Hel", "lo", ""]
    assert chunks[-1].done is True


def test_stream_eof_without_final_chunk():
    """A stream that ends early still finishes with a done chunk."""
    chunks = list(iter_stream_chunks([_line("partial")], CompletionProtocol()))
    assert [(c.content, c.done) for c in chunks] == [("partial", False), ("", True)]


def _adapter(handler) -> LlamaServerAdapter:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return LlamaServerAdapter("http://engine:8085/", client)


def test_adapter_posts_to_protocol_path():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=(_line("ok", stop=True) + "\n").encode())

    chunks = list(_adapter(handler).chat_stream(
        "rwkv7-2.9B",
        [ChatMessage(role="user", content="Hi")],
        ChatOptions(),
        CompletionProtocol(),
    ))

    assert [c.content for c in chunks] == ["ok"]
    assert str(seen[0].url) == "http://engine:8085/completion"
    assert seen[0].headers["accept-encoding"] == "identity"
    assert json.loads(seen[0].content)["stream"] is True


def test_adapter_non_2xx_raises_before_chunks():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="loading model")

    stream = _adapter(handler).chat_stream(
        "m", [ChatMessage(role="user", content="Hi")], ChatOptions(), CompletionProtocol(),
    )
    with pytest.raises(UpstreamStatusError) as exc_info:
        next(stream)
    assert exc_info.value.status_code == 503
    assert exc_info.value.body == "loading model"


def test_adapter_connection_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    stream = _adapter(handler).chat_stream(
        "m", [ChatMessage(role="user", content="Hi")], ChatOptions(), CompletionProtocol(),
    )
    with pytest.raises(EngineUnreachableError):
        next(stream)


def test_adapter_close_stops_iteration():
    """Closing the generator mid-stream delivers no further chunks."""
    body = "".join(_line(str(i)) + "\n" for i in range(10))

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=body.encode())

    stream = _adapter(handler).chat_stream(
        "m", [ChatMessage(role="user", content="Hi")], ChatOptions(), CompletionProtocol(),
    )
    assert next(stream).content == "0"
    stream.close()
    with pytest.raises(StopIteration):
        next(stream)


class _DroppedStream(httpx.SyncByteStream):
    """Response body that delivers one line, then loses the connection."""

    def __iter__(self):
        yield (_line("a") + "\n").encode()
        raise httpx.ReadError("connection reset")


def test_adapter_read_error_mid_stream():
    """Chunks already delivered stand; the drop surfaces as unreachable."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, stream=_DroppedStream())

    stream = _adapter(handler).chat_stream(
        "m", [ChatMessage(role="user", content="Hi")], ChatOptions(), CompletionProtocol(),
    )
    received = []
    with pytest.raises(EngineUnreachableError):
        for chunk in stream:
            received.append((chunk.content, chunk.done))

    assert received == [("a", False)]
    with pytest.raises(StopIteration):
        next(stream)
