"""Classified errors surfaced across the session boundary."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from connectors.skland.errors import CredentialClass, ErrorKind, classify_kind


class UserAction(str, Enum):
    RELOGIN = "relogin"
    TRANSIENT_NOTICE = "transient_notice"
    FORM_ERROR = "form_error"
    NONE = "none"


@dataclass(frozen=True)
class ErrorCatalogEntry:
    code: str
    user_message: str
    user_action: UserAction


ERROR_CATALOG: dict[ErrorKind, ErrorCatalogEntry] = {
    ErrorKind.PROOF_REJECTED: ErrorCatalogEntry(
        "SK-AUTH-001", "Phone number, password or code was not accepted.", UserAction.FORM_ERROR
    ),
    ErrorKind.AUTH_EXPIRED: ErrorCatalogEntry("SK-AUTH-002", "Login has expired, please sign in again.", UserAction.RELOGIN),
    ErrorKind.NETWORK_FAILURE: ErrorCatalogEntry(
        "SK-NET-001", "Cannot reach Skland right now. Showing the last known data.", UserAction.TRANSIENT_NOTICE
    ),
    ErrorKind.MALFORMED_RESPONSE: ErrorCatalogEntry(
        "SK-NET-002", "Skland returned an unexpected response. Please try again.", UserAction.TRANSIENT_NOTICE
    ),
    ErrorKind.STORAGE_CORRUPT: ErrorCatalogEntry("SK-STO-001", "Saved login could not be read.", UserAction.NONE),
    ErrorKind.UNKNOWN: ErrorCatalogEntry("SK-INT-001", "Unexpected error occurred.", UserAction.TRANSIENT_NOTICE),
}


class CredentialError(Exception):
    """Raised by the credential cache when an exchange did not yield a credential."""

    def __init__(self, kind: ErrorKind, message: str, *, cause: Exception | None = None):
        super().__init__(message)
        self.kind = kind
        self.cause = cause

    @property
    def classification(self) -> CredentialClass:
        return classify_kind(self.kind)


class AuthError(Exception):
    """The only exception type raised by the session orchestrator's entry points."""

    def __init__(self, kind: ErrorKind, message: str | None = None, *, cause: Exception | None = None):
        self.kind = kind
        self.cause = cause
        super().__init__(message or self.catalog.user_message)

    @property
    def catalog(self) -> ErrorCatalogEntry:
        return ERROR_CATALOG.get(self.kind, ERROR_CATALOG[ErrorKind.UNKNOWN])

    @property
    def classification(self) -> CredentialClass:
        return classify_kind(self.kind)

    def to_dict(self) -> dict[str, Any]:
        entry = self.catalog
        return {
            "error": {
                "kind": self.kind.value,
                "code": entry.code,
                "message": entry.user_message,
                "action": entry.user_action.value,
                "details": str(self),
            }
        }
