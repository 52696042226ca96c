"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import ai, health
from core.config import settings
from services.gateway import reset_gateway

logger = logging.getLogger(__name__)


def _get_version() -> str:
    """Installed package version, or "dev" when running from a checkout."""
    try:
        return f"v{version('sovereign-gateway')}"
    except PackageNotFoundError:
        return "dev"


APP_VERSION = _get_version()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info(
        "Sovereign gateway %s (engine=%s, models=%s)",
        APP_VERSION, settings.ENGINE_HOST, settings.MODELS_DIR,
    )

    yield

    # Shutdown: release HTTP connections; a running engine keeps serving
    reset_gateway()


app = FastAPI(
    title="Sovereign Gateway API",
    description="Local LLM model management and streaming chat",
    version=APP_VERSION,
    lifespan=lifespan,
)

# CORS - wide open. This API only binds to 127.0.0.1 and is accessed by
# the local dashboard.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
app.include_router(health.router)
app.include_router(ai.router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Sovereign Gateway API",
        "version": APP_VERSION,
        "engine_host": settings.ENGINE_HOST,
    }


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT)
