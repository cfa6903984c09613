"""Typed request/response models and schema validation for Skland exchange endpoints."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class ValidationError(ValueError):
    """Raised when a response fails schema validation."""


class SuccessPredicate(str, Enum):
    """Which discriminator field an endpoint family uses to report success.

    The identity host answers ``{"status": 0, "msg": ...}`` while the platform
    host answers ``{"code": 0, "message": ...}``.
    """

    STATUS = "status"
    CODE = "code"

    def is_success(self, body: Mapping[str, Any]) -> bool:
        return body.get(self.value) == 0

    def business_code(self, body: Mapping[str, Any]) -> Any:
        return body.get(self.value)

    @staticmethod
    def message(body: Mapping[str, Any]) -> str:
        return str(body.get("msg") or body.get("message") or "")


@dataclass(frozen=True)
class HttpRequest:
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: str | None = None
    timeout: float = 10.0


@dataclass(frozen=True)
class HttpResponse:
    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""
    raw_headers: tuple[tuple[str, str], ...] = ()

    def header_values(self, name: str) -> list[str]:
        """Every value of ``name`` in arrival order, one entry per header line."""

        lowered = name.lower()
        if self.raw_headers:
            return [value for key, value in self.raw_headers if key.lower() == lowered]
        return [value for key, value in self.headers.items() if key.lower() == lowered]

    def json(self) -> dict[str, Any]:
        if not self.body:
            return {}
        payload = json.loads(self.body.decode("utf-8"))
        if not isinstance(payload, dict):
            raise ValidationError("response body must be a JSON object")
        return payload


@dataclass(frozen=True)
class PasswordProof:
    phone: str
    password: str

    endpoint_path = "/user/auth/v1/token_by_phone_password"

    def to_payload(self) -> dict[str, str]:
        return {"phone": self.phone, "password": self.password}


@dataclass(frozen=True)
class SmsCodeProof:
    phone: str
    code: str

    endpoint_path = "/user/auth/v2/token_by_phone_code"

    def to_payload(self) -> dict[str, str]:
        return {"phone": self.phone, "code": self.code}


IdentityProof = PasswordProof | SmsCodeProof


def _data_section(body: Mapping[str, Any]) -> Mapping[str, Any]:
    data = body.get("data")
    if not isinstance(data, Mapping):
        raise ValidationError("response is missing the data object")
    return data


def _required_str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None or (isinstance(value, str) and not value):
        raise ValidationError(f"response is missing required field '{key}'")
    return str(value)


@dataclass(frozen=True)
class ProofResult:
    platform_token: str

    @classmethod
    def from_exchange(cls, body: Mapping[str, Any]) -> "ProofResult":
        return cls(platform_token=_required_str(_data_section(body), "token"))


@dataclass(frozen=True)
class GrantResult:
    grant_code: str

    @classmethod
    def from_exchange(cls, body: Mapping[str, Any]) -> "GrantResult":
        return cls(grant_code=_required_str(_data_section(body), "code"))


@dataclass(frozen=True)
class CredentialResult:
    cred: str
    sign_token: str
    account_id: str

    @classmethod
    def from_exchange(cls, body: Mapping[str, Any]) -> "CredentialResult":
        data = _data_section(body)
        return cls(
            cred=_required_str(data, "cred"),
            sign_token=_required_str(data, "token"),
            account_id=_required_str(data, "userId"),
        )


@dataclass(frozen=True)
class SessionCredential:
    """Short-lived credential pair. Never persisted."""

    cred: str
    sign_token: str
    account_id: str
    acquired_at: float

    def is_fresh(self, now: float, window_seconds: float) -> bool:
        return now - self.acquired_at < window_seconds


@dataclass(frozen=True)
class BindingRole:
    uid: str
    nickname: str
    channel_name: str
    is_default: bool = False
    is_official: bool = False

    @classmethod
    def from_exchange(cls, payload: Mapping[str, Any]) -> "BindingRole":
        return cls(
            uid=_required_str(payload, "uid"),
            nickname=str(payload.get("nickName") or ""),
            channel_name=str(payload.get("channelName") or ""),
            is_default=bool(payload.get("isDefault", False)),
            is_official=bool(payload.get("isOfficial", False)),
        )

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "uid": self.uid,
            "nickName": self.nickname,
            "channelName": self.channel_name,
            "isDefault": self.is_default,
            "isOfficial": self.is_official,
        }


def parse_binding_roles(body: Mapping[str, Any], *, app_code: str) -> list[BindingRole]:
    """Return the bindings of ``app_code`` from a binding lookup response."""

    entries = _data_section(body).get("list")
    if not isinstance(entries, list):
        raise ValidationError("binding response is missing the list array")
    for entry in entries:
        if isinstance(entry, Mapping) and entry.get("appCode") == app_code:
            return [BindingRole.from_exchange(role) for role in entry.get("bindingList") or [] if isinstance(role, Mapping)]
    return []


def pick_default_role(roles: list[BindingRole]) -> BindingRole | None:
    for role in roles:
        if role.is_default:
            return role
    return roles[0] if roles else None


@dataclass(frozen=True)
class AttendanceResult:
    already_attended: bool
    awards: list[dict[str, Any]]

    @classmethod
    def from_exchange(cls, body: Mapping[str, Any]) -> "AttendanceResult":
        data = body.get("data")
        awards = data.get("awards") if isinstance(data, Mapping) else None
        return cls(already_attended=False, awards=[dict(item) for item in awards or [] if isinstance(item, Mapping)])
