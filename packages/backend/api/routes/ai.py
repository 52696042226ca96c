"""AI gateway endpoints.

Thin HTTP boundary over GatewayClient. Gateway calls block, so they run in
worker threads; streaming responses are sent as server-sent events.
"""

import asyncio
import json
import logging
from collections.abc import Iterator
from datetime import datetime
from itertools import chain
from typing import Literal

import httpx
from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from core.exceptions import (
    EngineStartTimeoutError,
    EngineUnreachableError,
    GatewayError,
    ModelNotFoundError,
    UpstreamStatusError,
)
from core.hardware import HardwareProfile, recommended_model, recommended_model_description, tier_for_profile
from core.interfaces import ChatMessage, ChatOptions, DownloadProgress
from core.model_catalog import MODEL_CATALOG, Tier, entries_for_tier, find_by_name
from services.gateway import get_gateway

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/ai", tags=["ai"])


def _http_error(exc: GatewayError) -> HTTPException:
    """Map a gateway error onto an HTTP status."""
    if isinstance(exc, ModelNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, EngineStartTimeoutError):
        return HTTPException(status_code=504, detail=str(exc))
    if isinstance(exc, (EngineUnreachableError, UpstreamStatusError)):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def _sse(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


# ── Schemas ────────────────────────────────────────────────────────────

class AIStatusResponse(BaseModel):
    """Response model for AI gateway status."""

    running: bool
    host: str
    engine: str
    engine_state: str
    active_model: str | None
    active_model_loaded: bool
    default_model: str
    models_dir: str
    installed_models: int


class CatalogModelInfo(BaseModel):
    """Info about a catalog model."""

    name: str
    display_name: str
    filename: str
    size_bytes: int
    size_gb: float
    min_ram_mb: int
    tier: str
    architecture: str
    description: str
    downloadable: bool


class CatalogResponse(BaseModel):
    """Catalog models available for a tier."""

    tier: str
    models: list[CatalogModelInfo]


class HardwareProfileRequest(BaseModel):
    """Hardware profile as reported by the inventory probe."""

    os: str = ""
    arch: str = ""
    cpu_model: str = ""
    cpu_cores: int = 0
    ram_total_mb: int = 0
    disk_total_gb: int = 0
    disk_free_gb: int = 0
    gpu_type: str = "none"
    gpu_name: str = ""
    gpu_memory_mb: int = 0


class RecommendationResponse(BaseModel):
    """Model recommendation for a hardware profile."""

    tier: str
    model: str | None
    description: str


class InstalledModelInfo(BaseModel):
    """Info about an installed model file."""

    name: str
    filename: str
    size: int
    modified_at: datetime
    digest: str
    active: bool


class InstalledModelListResponse(BaseModel):
    """Installed models."""

    models: list[InstalledModelInfo]


class ChatMessageModel(BaseModel):
    """A chat message."""

    role: Literal["system", "user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    """Request model for chat."""

    messages: list[ChatMessageModel] = Field(min_length=1)
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None


class ChatResponseModel(BaseModel):
    """Response model for chat."""

    content: str
    model: str


def _chat_args(request: ChatRequest) -> tuple[list[ChatMessage], ChatOptions]:
    gateway = get_gateway()
    options = gateway.default_options()
    if request.temperature is not None:
        options.temperature = request.temperature
    if request.max_tokens is not None:
        options.max_tokens = request.max_tokens
    messages = [ChatMessage(role=m.role, content=m.content) for m in request.messages]
    return messages, options


# ── Status and catalog ─────────────────────────────────────────────────

@router.get("/status", response_model=AIStatusResponse)
async def get_ai_status() -> AIStatusResponse:
    """Engine reachability, active model, and installed model count."""
    status = await asyncio.to_thread(get_gateway().status)
    return AIStatusResponse(**status)


@router.get("/catalog", response_model=CatalogResponse)
async def get_catalog(tier: str = Query("apex", description="Highest tier to include")) -> CatalogResponse:
    """Catalog models that run on the given tier."""
    try:
        parsed = Tier.parse(tier)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    models = [
        CatalogModelInfo(
            name=entry.name,
            display_name=entry.display_name,
            filename=entry.filename,
            size_bytes=entry.size_bytes,
            size_gb=round(entry.size_gb, 2),
            min_ram_mb=entry.min_ram_mb,
            tier=entry.tier.label,
            architecture=entry.architecture,
            description=entry.description,
            downloadable=entry.source_url is not None,
        )
        for entry in entries_for_tier(parsed, MODEL_CATALOG)
    ]
    return CatalogResponse(tier=parsed.label, models=models)


@router.post("/recommendation", response_model=RecommendationResponse)
async def get_recommendation(request: HardwareProfileRequest) -> RecommendationResponse:
    """Recommend a catalog model for a hardware profile."""
    profile = HardwareProfile(**request.model_dump())
    return RecommendationResponse(
        tier=tier_for_profile(profile).label,
        model=recommended_model(profile),
        description=recommended_model_description(profile),
    )


# ── Model management ───────────────────────────────────────────────────

@router.get("/models", response_model=InstalledModelListResponse)
async def list_models() -> InstalledModelListResponse:
    """Installed model files."""
    try:
        models = await asyncio.to_thread(get_gateway().list_models)
    except GatewayError as e:
        raise _http_error(e)
    return InstalledModelListResponse(
        models=[InstalledModelInfo(**vars(m)) for m in models],
    )


@router.post("/models/{name}/pull")
async def pull_model(name: str) -> StreamingResponse:
    """Download a catalog model, streaming progress via SSE."""
    entry = find_by_name(name)
    if entry is None:
        raise HTTPException(status_code=404, detail="Model not in catalog")
    if entry.source_url is None:
        raise HTTPException(status_code=404, detail="Model has no download URL")

    gateway = get_gateway()

    async def _stream_progress():
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[dict | None] = asyncio.Queue()

        def on_progress(progress: DownloadProgress) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, {
                "status": progress.status,
                "model": entry.name,
                "completed": progress.completed,
                "total": progress.total,
            })

        async def run() -> None:
            try:
                path = await asyncio.to_thread(gateway.pull, entry.name, on_progress)
                await queue.put({"status": "complete", "model": entry.name, "path": str(path)})
            except (GatewayError, httpx.HTTPError) as exc:
                logger.exception("Model download failed")
                await queue.put({"status": "error", "model": entry.name, "error": str(exc)})
            finally:
                await queue.put(None)

        task = asyncio.create_task(run())
        while (event := await queue.get()) is not None:
            yield _sse(event)
        await task

    return StreamingResponse(_stream_progress(), media_type="text/event-stream")


@router.delete("/models/{name}")
async def delete_model(name: str):
    """Delete an installed model file."""
    try:
        path = await asyncio.to_thread(get_gateway().delete, name)
    except GatewayError as e:
        raise _http_error(e)
    return {"status": "deleted", "model": name, "path": str(path)}


@router.post("/models/{name}/activate")
async def activate_model(name: str):
    """Restart the engine with an installed model."""
    try:
        active = await asyncio.to_thread(get_gateway().switch_model, name)
    except GatewayError as e:
        raise _http_error(e)
    return {"status": "activated", "model": active}


@router.post("/engine/stop")
async def stop_engine():
    """Stop the supervised engine."""
    await asyncio.to_thread(get_gateway().stop_engine)
    return {"status": "stopped"}


# ── Chat ───────────────────────────────────────────────────────────────

@router.post("/chat", response_model=ChatResponseModel)
async def chat(request: ChatRequest) -> ChatResponseModel:
    """Run a chat completion and return the full response."""
    messages, options = _chat_args(request)
    try:
        response = await asyncio.to_thread(
            get_gateway().chat, request.model, messages, None, options,
        )
    except GatewayError as e:
        raise _http_error(e)
    return ChatResponseModel(content=response.content, model=response.model)


@router.post("/chat/stream")
async def chat_stream(request: ChatRequest) -> StreamingResponse:
    """Stream a chat completion via SSE.

    The first chunk is fetched before the response starts so engine
    errors surface as HTTP status codes rather than mid-stream.
    """
    messages, options = _chat_args(request)
    stream = get_gateway().chat_stream(request.model, messages, options)

    try:
        first = await asyncio.to_thread(next, stream, None)
    except GatewayError as e:
        raise _http_error(e)

    def generate() -> Iterator[str]:
        try:
            if first is None:
                return
            for chunk in chain((first,), stream):
                yield _sse({"content": chunk.content, "done": chunk.done})
        except GatewayError as e:
            logger.exception("Stream chat failed")
            yield _sse({"error": str(e), "done": True})
        finally:
            stream.close()

    return StreamingResponse(generate(), media_type="text/event-stream")
