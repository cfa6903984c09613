"""Session lifecycle services built on the Skland connector."""

from .credential_cache import CredentialCache, RefreshAttemptState
from .errors import ERROR_CATALOG, AuthError, CredentialError, ErrorCatalogEntry, UserAction
from .orchestrator import AuthOrchestrator, AuthSnapshot, AuthState, CredentialStatus
from .session_store import STORAGE_KEY, SessionStore, StorageCorruptError, StoredSession

__all__ = [
    "AuthError",
    "AuthOrchestrator",
    "AuthSnapshot",
    "AuthState",
    "CredentialCache",
    "CredentialError",
    "CredentialStatus",
    "ERROR_CATALOG",
    "ErrorCatalogEntry",
    "RefreshAttemptState",
    "STORAGE_KEY",
    "SessionStore",
    "StorageCorruptError",
    "StoredSession",
    "UserAction",
]
