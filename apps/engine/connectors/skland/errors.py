"""Error normalization for Skland integrations."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    PROOF_REJECTED = "proof_rejected"
    AUTH_EXPIRED = "auth_expired"
    NETWORK_FAILURE = "network_failure"
    MALFORMED_RESPONSE = "malformed_response"
    STORAGE_CORRUPT = "storage_corrupt"
    UNKNOWN = "unknown"


class CredentialClass(str, Enum):
    """Coarse classification used to pick retry and logout behavior."""

    AUTH = "auth"
    NETWORK = "network"
    UNKNOWN = "unknown"


def classify_kind(kind: ErrorKind) -> CredentialClass:
    if kind in {ErrorKind.PROOF_REJECTED, ErrorKind.AUTH_EXPIRED}:
        return CredentialClass.AUTH
    if kind in {ErrorKind.NETWORK_FAILURE, ErrorKind.MALFORMED_RESPONSE}:
        return CredentialClass.NETWORK
    return CredentialClass.UNKNOWN


class ExchangeStage(str, Enum):
    PROVE_IDENTITY = "prove_identity"
    REQUEST_GRANT = "request_grant"
    REDEEM_GRANT = "redeem_grant"
    BINDING_LOOKUP = "binding_lookup"
    SEND_SMS_CODE = "send_sms_code"
    CHECK_CRED = "check_cred"
    SIGNED_CALL = "signed_call"


class NetworkError(OSError):
    """Raised by transports when no HTTP response could be obtained."""

    def __init__(self, message: str, *, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out


class HttpStatusError(Exception):
    def __init__(self, status_code: int, body: str):
        super().__init__(f"HTTP {status_code}: {body[:200]}")
        self.status_code = status_code
        self.body = body


class BusinessError(Exception):
    """The server answered 2xx but its success discriminator reports failure."""

    def __init__(self, business_code: Any, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.business_code = business_code
        self.status_code = status_code


class ExchangeError(Exception):
    """Connector-level normalized exchange error."""

    def __init__(
        self,
        stage: ExchangeStage,
        kind: ErrorKind,
        message: str,
        *,
        cause: Exception | None = None,
        status_code: int | None = None,
        business_code: Any = None,
    ):
        super().__init__(message)
        self.stage = stage
        self.kind = kind
        self.cause = cause
        self.status_code = status_code
        self.business_code = business_code

    @property
    def classification(self) -> CredentialClass:
        return classify_kind(self.kind)


_AUTH_MARKERS = ("token", "cred", "login", "unauthorized", "expired", "登录", "认证", "过期", "失效")


def _looks_auth_related(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in _AUTH_MARKERS)


def map_exchange_error(error: Exception | Any, stage: ExchangeStage) -> ExchangeError:
    """Map transport, HTTP, business and schema failures to one exchange error.

    A failure while proving identity means the proof itself was refused, so
    client-side rejections at that stage are PROOF_REJECTED instead of
    AUTH_EXPIRED.
    """

    if isinstance(error, ExchangeError):
        return error

    status_code = getattr(error, "status_code", None)
    business_code = getattr(error, "business_code", None)
    message = str(error)
    rejected = ErrorKind.PROOF_REJECTED if stage == ExchangeStage.PROVE_IDENTITY else ErrorKind.AUTH_EXPIRED

    def _build(kind: ErrorKind) -> ExchangeError:
        return ExchangeError(
            stage,
            kind,
            message,
            cause=error,
            status_code=status_code,
            business_code=business_code,
        )

    if isinstance(error, BusinessError):
        if stage == ExchangeStage.PROVE_IDENTITY:
            return _build(ErrorKind.PROOF_REJECTED)
        if status_code in {401, 403} or _looks_auth_related(message):
            return _build(ErrorKind.AUTH_EXPIRED)
        return _build(ErrorKind.UNKNOWN)

    if status_code in {401, 403}:
        return _build(rejected)
    if status_code == 429:
        return _build(ErrorKind.NETWORK_FAILURE)
    if status_code and int(status_code) >= 500:
        return _build(ErrorKind.NETWORK_FAILURE)
    if status_code and int(status_code) >= 400:
        if stage == ExchangeStage.PROVE_IDENTITY:
            return _build(ErrorKind.PROOF_REJECTED)
        if _looks_auth_related(message):
            return _build(ErrorKind.AUTH_EXPIRED)
        return _build(ErrorKind.UNKNOWN)
    if isinstance(error, (TimeoutError, OSError)):
        return _build(ErrorKind.NETWORK_FAILURE)
    if isinstance(error, ValueError):
        return _build(ErrorKind.MALFORMED_RESPONSE)

    return _build(ErrorKind.UNKNOWN)
