"""Application configuration."""

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings


def _default_data_dir() -> Path:
    """Return the default data directory (~/.sovereign/data)."""
    return Path.home() / ".sovereign" / "data"


class Settings(BaseSettings):
    """Application settings."""

    # API settings
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8080

    # Data paths
    DATA_DIR: Path = _default_data_dir()
    MODELS_DIR: Path | None = None

    # Inference engine (llama-server)
    ENGINE_HOST: str = "localhost:8085"  # host:port the gateway talks to
    ENGINE_BIND_HOST: str = "0.0.0.0"  # --host passed to the engine
    ENGINE_BIN: str = "llama-server"  # Path to the llama-server binary
    ENGINE_THREADS: int = 8
    ENGINE_CTX_SIZE: int = 2048
    ENGINE_PROTOCOL: Literal["auto", "completion", "chat"] = "auto"

    # Model selection
    DEFAULT_MODEL: str = "qwen2.5:0.5b"

    # Timeouts (seconds)
    HEALTH_TIMEOUT: float = 3.0
    READY_TIMEOUT: float = 30.0
    READY_POLL_INTERVAL: float = 1.0
    PORT_RELEASE_DELAY: float = 1.0
    ENGINE_KILL_ORPHANS: bool = True  # pkill stray engines when no handle is held

    # Downloads
    DOWNLOAD_CHUNK_SIZE: int = 256 * 1024
    PROGRESS_INTERVAL: float = 0.5

    # Generation defaults
    N_PREDICT: int = 1024
    TEMPERATURE: float = 0.7

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Set derived paths
        if self.MODELS_DIR is None:
            self.MODELS_DIR = self.DATA_DIR / "models"

    model_config = {"env_prefix": "SOVEREIGN_", "env_file": ".env"}


settings = Settings()
