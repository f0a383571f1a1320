from chatbridge.client_cache import ClientCache
from chatbridge.config import AppConfig, ChatSettings, ConnectionConfig, get_config
from chatbridge.errors import BackendError, ChatBridgeError, ConfigurationError
from chatbridge.service import ChatResponse, ChatService, ServiceInfo
from chatbridge.session.store import SessionStore

__version__ = "0.1.0"

__all__ = [
    "AppConfig",
    "BackendError",
    "ChatBridgeError",
    "ChatResponse",
    "ChatService",
    "ChatSettings",
    "ClientCache",
    "ConfigurationError",
    "ConnectionConfig",
    "ServiceInfo",
    "SessionStore",
    "get_config",
]
