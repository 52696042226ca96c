"""Core configuration, catalog, tier selection, and interfaces.

- Settings: Application configuration
- Model catalog and hardware tiers
- Interfaces: Value types and the engine protocol contract
"""

from .config import Settings, settings
from .exceptions import (
    EngineStartError,
    EngineStartTimeoutError,
    EngineUnreachableError,
    GatewayError,
    ModelIOError,
    ModelNotFoundError,
    UpstreamStatusError,
)

__all__ = [
    # Configuration
    "Settings",
    "settings",
    # Errors
    "GatewayError",
    "ModelNotFoundError",
    "EngineUnreachableError",
    "UpstreamStatusError",
    "EngineStartError",
    "EngineStartTimeoutError",
    "ModelIOError",
]
