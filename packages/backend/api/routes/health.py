"""Health check endpoints."""

import asyncio

from fastapi import APIRouter

from services.gateway import get_gateway

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict:
    """Basic health check."""
    return {"status": "healthy"}


@router.get("/health/ready")
async def readiness_check() -> dict:
    """Readiness check including the inference engine."""
    gateway = get_gateway()
    running = await asyncio.to_thread(gateway.is_running)
    return {
        "status": "ready",
        "services": {
            "gateway": "healthy",
            "llama": "healthy" if running else "unreachable",
        },
        "engine_state": gateway.engine_state.value,
    }
