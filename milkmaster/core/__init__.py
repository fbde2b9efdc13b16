# Core modules

from .config import settings
from .identity import IdentityResolver
from .session import CheckoutSession, SessionManager, session_manager
from .storage import JsonFileStorage, MemoryStorage, StoragePort

__all__ = [
    "settings",
    "IdentityResolver",
    "CheckoutSession",
    "SessionManager",
    "session_manager",
    "JsonFileStorage",
    "MemoryStorage",
    "StoragePort",
]
