"""Skland connector package."""

from .client import SklandApiClient, TokenExchangeChain
from .config import RetryConfig, SessionPolicy, SklandConfig
from .dependencies import SklandDependencies, build_skland_dependencies
from .errors import (
    CredentialClass,
    ErrorKind,
    ExchangeError,
    ExchangeStage,
    NetworkError,
    classify_kind,
    map_exchange_error,
)
from .models import (
    AttendanceResult,
    BindingRole,
    CredentialResult,
    GrantResult,
    HttpRequest,
    HttpResponse,
    IdentityProof,
    PasswordProof,
    ProofResult,
    SessionCredential,
    SmsCodeProof,
    SuccessPredicate,
)
from .signing import ClientMeta, RequestSigner, sign
from .transport import HttpxTransport

__all__ = [
    "AttendanceResult",
    "BindingRole",
    "ClientMeta",
    "CredentialClass",
    "CredentialResult",
    "ErrorKind",
    "ExchangeError",
    "ExchangeStage",
    "GrantResult",
    "HttpRequest",
    "HttpResponse",
    "HttpxTransport",
    "IdentityProof",
    "NetworkError",
    "PasswordProof",
    "ProofResult",
    "RequestSigner",
    "RetryConfig",
    "SessionCredential",
    "SessionPolicy",
    "SklandApiClient",
    "SklandConfig",
    "SklandDependencies",
    "SmsCodeProof",
    "SuccessPredicate",
    "TokenExchangeChain",
    "build_skland_dependencies",
    "classify_kind",
    "map_exchange_error",
    "sign",
]
