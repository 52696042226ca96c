"""Pytest configuration and fixtures."""

import json
from collections.abc import AsyncGenerator, Generator
from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from core.config import Settings
from services import gateway as gateway_module
from services.gateway import GatewayClient


class FakeEngine:
    """In-memory stand-in for llama-server and the model download host."""

    def __init__(self):
        self.healthy = True
        self.stream_status = 200
        self.stream_body = "model not loaded"
        self.stream_lines: list[str] = []
        self.downloads: dict[str, httpx.Response] = {}
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/health":
            if not self.healthy:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"status": "ok"})

        if path in ("/completion", "/v1/chat/completions"):
            if self.stream_status != 200:
                return httpx.Response(self.stream_status, text=self.stream_body)
            body = "".join(f"{line}\n" for line in self.stream_lines)
            return httpx.Response(
                200,
                content=body.encode(),
                headers={"content-type": "text/event-stream"},
            )

        url = str(request.url)
        if url in self.downloads:
            return self.downloads[url]
        return httpx.Response(404, text="not found")

    def last_json(self) -> dict:
        """JSON body of the most recent request."""
        return json.loads(self.requests[-1].content)


@pytest.fixture
def models_dir(tmp_path: Path) -> Path:
    """Models directory that does not exist yet."""
    return tmp_path / "models"


@pytest.fixture
def test_settings(models_dir: Path) -> Settings:
    """Settings with short timeouts for fast tests."""
    return Settings(
        MODELS_DIR=models_dir,
        ENGINE_HOST="localhost:8085",
        ENGINE_BIN="/opt/llama/llama-server",
        READY_TIMEOUT=0.05,
        READY_POLL_INTERVAL=0.01,
        PORT_RELEASE_DELAY=0,
        ENGINE_KILL_ORPHANS=False,
        DOWNLOAD_CHUNK_SIZE=4,
    )


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def popen() -> MagicMock:
    """Fake process factory; spawned processes report as running."""
    factory = MagicMock()
    factory.return_value.poll.return_value = None
    factory.return_value.pid = 4242
    return factory


@pytest.fixture
def gateway(test_settings: Settings, engine: FakeEngine, popen: MagicMock) -> Generator[GatewayClient, None, None]:
    """Gateway wired to the fake engine."""
    client = GatewayClient(
        test_settings,
        transport=httpx.MockTransport(engine.handler),
        popen=popen,
    )
    yield client
    client.close()


@pytest_asyncio.fixture
async def client(gateway: GatewayClient, monkeypatch) -> AsyncGenerator[AsyncClient, None]:
    """API test client bound to the fake-engine gateway."""
    from api.main import app

    monkeypatch.setattr(gateway_module, "_gateway", gateway)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def place_model(models_dir: Path):
    """Factory that drops a fake model file into the models directory."""

    def _place(filename: str, size: int = 16) -> Path:
        models_dir.mkdir(parents=True, exist_ok=True)
        path = models_dir / filename
        path.write_bytes(b"\x00" * size)
        return path

    return _place
