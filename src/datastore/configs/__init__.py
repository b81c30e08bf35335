from .models import DatastoreConfig, LoggingConfig, ServerEndpoint, PRIMARY, RANDOM_READER
from .manager import ConfigManager, normalize_store, resolve_secrets

__all__ = [
    "ConfigManager",
    "DatastoreConfig",
    "LoggingConfig",
    "ServerEndpoint",
    "normalize_store",
    "resolve_secrets",
    "PRIMARY",
    "RANDOM_READER",
]
