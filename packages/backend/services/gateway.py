"""Local AI gateway.

GatewayClient is the composition root for on-device inference: it lists,
pulls, and deletes model files, switches the model the engine serves, and
streams chat completions. All calls block; run long operations (pull,
switch_model, chat streams) from their own thread or task.

Usage:
    from services.gateway import get_gateway

    gateway = get_gateway()
    gateway.pull("qwen2.5:0.5b", on_progress=print)
    gateway.switch_model("qwen2.5:0.5b")
    for chunk in gateway.generate_stream(None, "Hello"):
        print(chunk.content, end="")
"""

import logging
import subprocess
import threading
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import httpx

from adapters.ai import LlamaServerAdapter, select_protocol
from core.config import Settings, settings
from core.interfaces import (
    ChatMessage,
    ChatOptions,
    ChatResponse,
    ChatStreamChunk,
    ChunkCallback,
    InstalledModel,
    ProgressCallback,
)
from core.model_catalog import find_by_name, strip_extension

from .downloader import ModelDownloader
from .model_store import ModelStore
from .supervisor import EngineState, EngineSupervisor

logger = logging.getLogger(__name__)

DEFAULT_ENGINE_PORT = "8085"
HEALTH_PATH = "/health"


def normalize_base_url(host: str) -> str:
    """Prefix http:// when the host has no scheme."""
    host = host.rstrip("/")
    if not host.startswith(("http://", "https://")):
        host = f"http://{host}"
    return host


def extract_port(host: str) -> str:
    """Port component of a host string, defaulting to 8085."""
    try:
        port = urlsplit(normalize_base_url(host)).port
    except ValueError:
        port = None
    return str(port) if port else DEFAULT_ENGINE_PORT


class GatewayClient:
    """Public entry point for model management and chat."""

    def __init__(
        self,
        config: Settings | None = None,
        transport: httpx.BaseTransport | None = None,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ):
        """Initialize the gateway.

        Args:
            config: Settings to use (defaults to the process settings)
            transport: Optional httpx transport (tests inject a MockTransport)
            popen: Process factory for the engine
        """
        self._config = config or settings
        self.host = self._config.ENGINE_HOST
        self.base_url = normalize_base_url(self.host)
        self.models_dir = Path(self._config.MODELS_DIR)
        self.engine_bin = self._config.ENGINE_BIN

        # No read timeout: generations and downloads may stream for minutes
        self._http = httpx.Client(
            transport=transport,
            timeout=httpx.Timeout(10.0, read=None),
        )

        self._active_model: str | None = None
        self._lock = threading.Lock()

        self._store = ModelStore(self.models_dir)
        self._downloader = ModelDownloader(
            self._store,
            self._http,
            chunk_size=self._config.DOWNLOAD_CHUNK_SIZE,
            progress_interval=self._config.PROGRESS_INTERVAL,
        )
        self._supervisor = EngineSupervisor(
            self._store,
            binary=self.engine_bin,
            port=extract_port(self.host),
            probe=self.is_running,
            bind_host=self._config.ENGINE_BIND_HOST,
            threads=self._config.ENGINE_THREADS,
            ctx_size=self._config.ENGINE_CTX_SIZE,
            ready_timeout=self._config.READY_TIMEOUT,
            poll_interval=self._config.READY_POLL_INTERVAL,
            port_release_delay=self._config.PORT_RELEASE_DELAY,
            kill_orphans=self._config.ENGINE_KILL_ORPHANS,
            popen=popen,
        )
        self._adapter = LlamaServerAdapter(self.base_url, self._http)

    @property
    def engine_state(self) -> EngineState:
        return self._supervisor.state

    @property
    def default_model(self) -> str:
        return self._config.DEFAULT_MODEL

    # ── Status ─────────────────────────────────────────────────────────

    def is_running(self) -> bool:
        """Check if llama-server answers its health endpoint. Never raises."""
        try:
            resp = self._http.get(
                self.base_url + HEALTH_PATH,
                timeout=self._config.HEALTH_TIMEOUT,
            )
        except (httpx.HTTPError, httpx.InvalidURL):
            return False
        return resp.status_code == 200

    def active_model(self) -> str | None:
        """Name of the model the engine was last started with."""
        with self._lock:
            return self._active_model

    def _active_model_loaded(self) -> bool:
        """True while the engine is serving the active model."""
        return self.active_model() is not None and self.engine_state is EngineState.READY

    def status(self) -> dict[str, Any]:
        """Summary for status displays.

        active_model is the last model switched to successfully;
        active_model_loaded is False unless the engine is READY.
        """
        models = self.list_models()
        return {
            "running": self.is_running(),
            "host": self.host,
            "engine": "llama-server",
            "engine_state": self.engine_state.value,
            "active_model": self.active_model(),
            "active_model_loaded": self._active_model_loaded(),
            "default_model": self.default_model,
            "models_dir": str(self.models_dir),
            "installed_models": len(models),
        }

    # ── Model management ───────────────────────────────────────────────

    def list_models(self) -> list[InstalledModel]:
        """Installed models, rescanned from disk on every call.

        A model is only marked active while the engine is serving it.
        """
        active = self.active_model()
        active_filename = self._store.filename_for(active) if self._active_model_loaded() else None
        return self._store.list_models(active_filename)

    def pull(self, name: str, on_progress: ProgressCallback | None = None) -> Path:
        """Download a catalog model into the models directory."""
        return self._downloader.download(name, on_progress)

    def delete(self, name: str) -> Path:
        """Remove an installed model file."""
        return self._store.delete(name)

    def switch_model(self, name: str) -> str:
        """Restart the engine with a model and wait for it to become ready.

        The active model only changes once the engine is healthy; on
        failure it keeps its previous value and engine_state is FAILED.
        """
        self._supervisor.switch_model(name)

        entry = find_by_name(name)
        canonical = entry.name if entry else strip_extension(name)
        with self._lock:
            self._active_model = canonical
        logger.info("Active model is now %s", canonical)
        return canonical

    def stop_engine(self) -> None:
        """Stop the supervised engine and clear the active model."""
        self._supervisor.stop()
        with self._lock:
            self._active_model = None

    # ── Chat ───────────────────────────────────────────────────────────

    def default_options(self) -> ChatOptions:
        return ChatOptions(
            temperature=self._config.TEMPERATURE,
            max_tokens=self._config.N_PREDICT,
        )

    def _resolve_model(self, model: str | None) -> str:
        return model or self.active_model() or self.default_model

    def chat_stream(
        self,
        model: str | None,
        messages: list[ChatMessage],
        options: ChatOptions | None = None,
    ) -> Iterator[ChatStreamChunk]:
        """Stream a chat completion. The last chunk has done=True."""
        model = self._resolve_model(model)
        protocol = select_protocol(model, self._config.ENGINE_PROTOCOL)
        return self._adapter.chat_stream(
            model,
            messages,
            options or self.default_options(),
            protocol,
        )

    def chat(
        self,
        model: str | None,
        messages: list[ChatMessage],
        on_chunk: ChunkCallback | None = None,
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        """Run a chat completion, optionally reporting each chunk.

        Returns:
            The concatenated response text
        """
        model = self._resolve_model(model)
        parts = []
        for chunk in self.chat_stream(model, messages, options):
            parts.append(chunk.content)
            if on_chunk is not None:
                on_chunk(chunk.content, chunk.done)
        return ChatResponse(content="".join(parts), model=model)

    def generate_stream(
        self,
        model: str | None,
        prompt: str,
        options: ChatOptions | None = None,
    ) -> Iterator[ChatStreamChunk]:
        """Stream a completion for a single user prompt."""
        return self.chat_stream(model, [ChatMessage(role="user", content=prompt)], options)

    def generate(
        self,
        model: str | None,
        prompt: str,
        on_chunk: ChunkCallback | None = None,
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        """Run a completion for a single user prompt."""
        return self.chat(model, [ChatMessage(role="user", content=prompt)], on_chunk, options)

    def close(self) -> None:
        """Release the HTTP client. Does not stop the engine."""
        self._http.close()


# Process-wide gateway, created on first use
_gateway: GatewayClient | None = None
_gateway_lock = threading.Lock()


def get_gateway() -> GatewayClient:
    """Get the process-wide GatewayClient."""
    global _gateway
    with _gateway_lock:
        if _gateway is None:
            logger.info("Creating GatewayClient (engine=%s, models=%s)", settings.ENGINE_HOST, settings.MODELS_DIR)
            _gateway = GatewayClient(settings)
        return _gateway


def reset_gateway() -> None:
    """Close and drop the process-wide gateway. Used on shutdown and in tests."""
    global _gateway
    with _gateway_lock:
        if _gateway is not None:
            _gateway.close()
        _gateway = None
