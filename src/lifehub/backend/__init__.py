"""Backend adapter layer -- one contract, three hosted backends.

Provides the BackendService contract and the provider seam:
- BackendService / AuthService / DatabaseService / StorageService: the contract
- SupabaseBackend, FirebaseBackend, AppwriteBackend: adapters (imported on demand
  from their modules so only the selected SDK is loaded)
- init_backend / get_backend / close_backend: process-wide shared instance

Architecture: consumers depend only on the contract; the active adapter is
chosen from settings at startup.
"""

from src.lifehub.backend.provider import close_backend, create_backend, get_backend, init_backend
from src.lifehub.backend.service import (
    AuthService,
    BackendError,
    BackendService,
    DatabaseService,
    StorageService,
    Unsubscribe,
)

__all__ = [
    "AuthService",
    "BackendError",
    "BackendService",
    "DatabaseService",
    "StorageService",
    "Unsubscribe",
    "create_backend",
    "init_backend",
    "get_backend",
    "close_backend",
]
