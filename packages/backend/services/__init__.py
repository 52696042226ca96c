"""Services layer.

GatewayClient composes the model store, download manager, and engine
supervisor:
    from services.gateway import GatewayClient, get_gateway
"""

from .downloader import ModelDownloader
from .gateway import GatewayClient, get_gateway, reset_gateway
from .model_store import ModelStore
from .supervisor import EngineState, EngineSupervisor

__all__ = [
    "EngineState",
    "EngineSupervisor",
    "GatewayClient",
    "ModelDownloader",
    "ModelStore",
    "get_gateway",
    "reset_gateway",
]
