"""Per-request signature algorithm for session-scoped Skland calls."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping
from urllib.parse import urlsplit

from .models import SessionCredential

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientMeta:
    platform: str
    timestamp: str
    device_id: str
    version_name: str

    def to_json(self) -> str:
        # Key order is part of the signed string.
        return json.dumps(
            {
                "platform": self.platform,
                "timestamp": self.timestamp,
                "dId": self.device_id,
                "vName": self.version_name,
            },
            separators=(",", ":"),
            ensure_ascii=False,
        )


def sign(secret: str, path: str, canonical_params: str, timestamp_seconds: str, client_meta: ClientMeta) -> str:
    """Return ``MD5(HMAC-SHA256(secret, path + params + timestamp + meta_json))`` as hex.

    An empty secret still produces a signature; rejecting it is the server's job.
    """

    canonical = f"{path}{canonical_params}{timestamp_seconds}{client_meta.to_json()}"
    hmac_hex = hmac.new(secret.encode("utf-8"), canonical.encode("utf-8"), hashlib.sha256).hexdigest()
    return hashlib.md5(hmac_hex.encode("utf-8")).hexdigest()


def encode_body(payload: Mapping[str, Any] | None) -> str:
    """Serialize a request body exactly as it is both signed and transmitted."""

    return json.dumps(dict(payload or {}), separators=(",", ":"), ensure_ascii=False)


def canonical_params_for(method: str, url: str, body: str | None) -> str:
    if method.upper() == "GET":
        return urlsplit(url).query
    return body if body is not None else encode_body(None)


def generate_device_id() -> str:
    return "BL" + base64.b64encode(secrets.token_bytes(32)).decode("ascii")


class RequestSigner:
    """Builds the signed header set attached to every session-scoped call."""

    def __init__(
        self,
        *,
        platform: str = "3",
        version_name: str = "1.0.0",
        clock: Callable[[], float] = time.time,
        device_id_factory: Callable[[], str] = generate_device_id,
    ):
        self._platform = platform
        self._version_name = version_name
        self._clock = clock
        self._device_id_factory = device_id_factory

    def signed_headers(self, *, method: str, url: str, body: str | None, credential: SessionCredential) -> dict[str, str]:
        timestamp = str(int(self._clock()))
        meta = ClientMeta(
            platform=self._platform,
            timestamp=timestamp,
            device_id=self._device_id_factory(),
            version_name=self._version_name,
        )
        path = urlsplit(url).path
        signature = sign(credential.sign_token, path, canonical_params_for(method, url, body), timestamp, meta)
        logger.debug(
            "skland_request_signed",
            extra={"event": "sign", "method": method.upper(), "path": path, "timestamp": timestamp},
        )
        return {
            "cred": credential.cred,
            "sign": signature,
            "platform": meta.platform,
            "timestamp": meta.timestamp,
            "dId": meta.device_id,
            "vName": meta.version_name,
        }

    def client_headers(self) -> dict[str, str]:
        """Unsigned identity headers used by the pre-credential exchange steps."""

        return {
            "platform": self._platform,
            "dId": self._device_id_factory(),
            "vName": self._version_name,
        }
