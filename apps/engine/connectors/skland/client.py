"""Skland token exchange chain and signed session-scoped API client."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

from .config import SklandConfig
from .errors import BusinessError, CredentialClass, ExchangeError, ExchangeStage, HttpStatusError, map_exchange_error
from .interfaces import HttpClient
from .models import (
    AttendanceResult,
    BindingRole,
    CredentialResult,
    GrantResult,
    HttpRequest,
    HttpResponse,
    IdentityProof,
    ProofResult,
    SessionCredential,
    SuccessPredicate,
    ValidationError,
    parse_binding_roles,
)
from .signing import RequestSigner, encode_body

logger = logging.getLogger(__name__)

ALREADY_ATTENDED_CODE = 10001


def _mask_phone(phone: str) -> str:
    if len(phone) <= 4:
        return "*" * len(phone)
    return f"{phone[:3]}{'*' * (len(phone) - 5)}{phone[-2:]}"


class _SklandEndpoints:
    """Shared request building and response checking for both API hosts."""

    def __init__(self, *, config: SklandConfig, transport: HttpClient, signer: RequestSigner) -> None:
        self._config = config
        self._transport = transport
        self._signer = signer

    def _unsigned_request(
        self,
        base_url: str,
        path: str,
        *,
        method: str = "POST",
        payload: Mapping[str, Any] | None = None,
        extra_headers: Mapping[str, str] | None = None,
    ) -> HttpRequest:
        headers = {"Content-Type": "application/json", **self._signer.client_headers()}
        if extra_headers:
            headers.update(extra_headers)
        return HttpRequest(
            method=method,
            url=f"{base_url.rstrip('/')}{path}",
            headers=headers,
            body=encode_body(payload) if method.upper() != "GET" else None,
            timeout=self._config.timeout_seconds,
        )

    def _signed_request(
        self,
        method: str,
        path: str,
        credential: SessionCredential,
        *,
        params: Mapping[str, Any] | None = None,
        payload: Mapping[str, Any] | None = None,
    ) -> HttpRequest:
        url = f"{self._config.skland_base_url.rstrip('/')}{path}"
        if params:
            url = f"{url}?{urlencode(params)}"
        body = encode_body(payload) if method.upper() != "GET" else None
        headers = {
            "Content-Type": "application/json",
            **self._signer.signed_headers(method=method, url=url, body=body, credential=credential),
        }
        return HttpRequest(method=method.upper(), url=url, headers=headers, body=body, timeout=self._config.timeout_seconds)

    async def _call(
        self,
        stage: ExchangeStage,
        request: HttpRequest,
        predicate: SuccessPredicate,
        *,
        tolerated_codes: frozenset[Any] = frozenset(),
    ) -> dict[str, Any]:
        try:
            response = await self._transport.send(request)
            body = self._checked_body(response, predicate, tolerated_codes)
        except Exception as exc:  # normalized for the session layer
            mapped = map_exchange_error(exc, stage)
            logger.warning(
                "skland_exchange_failed",
                extra={
                    "event": "exchange",
                    "stage": stage.value,
                    "kind": mapped.kind.value,
                    "status_code": mapped.status_code,
                    "business_code": mapped.business_code,
                },
            )
            raise mapped from exc
        logger.debug("skland_exchange_ok", extra={"event": "exchange", "stage": stage.value})
        return body

    @staticmethod
    def _checked_body(
        response: HttpResponse,
        predicate: SuccessPredicate,
        tolerated_codes: frozenset[Any],
    ) -> dict[str, Any]:
        if response.status_code >= 400:
            if tolerated_codes:
                try:
                    body = response.json()
                except ValueError:
                    body = {}
                if predicate.business_code(body) in tolerated_codes:
                    return body
            raise HttpStatusError(response.status_code, response.body.decode("utf-8", errors="ignore"))

        body = response.json()
        if predicate.value not in body:
            raise ValidationError(f"response is missing the '{predicate.value}' discriminator")
        code = predicate.business_code(body)
        if code in tolerated_codes or predicate.is_success(body):
            return body
        raise BusinessError(code, predicate.message(body) or f"business code {code}", status_code=response.status_code)

    @staticmethod
    def _parse(stage: ExchangeStage, parser: Any, body: Mapping[str, Any]) -> Any:
        try:
            return parser(body)
        except (ValueError, TypeError) as exc:
            mapped = map_exchange_error(ValidationError(str(exc)), stage)
            logger.warning(
                "skland_exchange_malformed_response",
                extra={"event": "exchange", "stage": stage.value, "kind": mapped.kind.value, "reason": str(exc)},
            )
            raise mapped from exc


class TokenExchangeChain(_SklandEndpoints):
    """Stateless steps turning an identity proof into a session credential.

    Every step is exactly one HTTP round trip and never retries; retry policy
    belongs to the session orchestrator.
    """

    async def prove_identity(self, proof: IdentityProof) -> ProofResult:
        request = self._unsigned_request(self._config.hg_auth_base_url, proof.endpoint_path, payload=proof.to_payload())
        logger.info(
            "skland_prove_identity",
            extra={"event": "exchange", "stage": "prove_identity", "phone": _mask_phone(proof.phone), "proof": type(proof).__name__},
        )
        body = await self._call(ExchangeStage.PROVE_IDENTITY, request, SuccessPredicate.STATUS)
        return self._parse(ExchangeStage.PROVE_IDENTITY, ProofResult.from_exchange, body)

    async def request_grant(self, platform_token: str) -> GrantResult:
        request = self._unsigned_request(
            self._config.hg_auth_base_url,
            "/user/oauth2/v2/grant",
            payload={"token": platform_token, "appCode": self._config.app_code, "type": 0},
        )
        body = await self._call(ExchangeStage.REQUEST_GRANT, request, SuccessPredicate.STATUS)
        return self._parse(ExchangeStage.REQUEST_GRANT, GrantResult.from_exchange, body)

    async def redeem_grant(self, grant_code: str) -> CredentialResult:
        request = self._unsigned_request(
            self._config.skland_base_url,
            "/api/v1/user/auth/generate_cred_by_code",
            payload={"kind": 1, "code": grant_code},
        )
        body = await self._call(ExchangeStage.REDEEM_GRANT, request, SuccessPredicate.CODE)
        return self._parse(ExchangeStage.REDEEM_GRANT, CredentialResult.from_exchange, body)

    async def binding_lookup(self, credential: SessionCredential) -> list[BindingRole]:
        request = self._signed_request("GET", "/api/v1/game/player/binding", credential)
        body = await self._call(ExchangeStage.BINDING_LOOKUP, request, SuccessPredicate.CODE)
        roles = self._parse(
            ExchangeStage.BINDING_LOOKUP,
            lambda payload: parse_binding_roles(payload, app_code=self._config.game_app_code),
            body,
        )
        logger.info("skland_binding_lookup", extra={"event": "exchange", "stage": "binding_lookup", "roles": len(roles)})
        return roles

    async def send_sms_code(self, phone: str) -> None:
        request = self._unsigned_request(
            self._config.hg_auth_base_url,
            "/general/v1/send_phone_code",
            payload={"phone": phone, "type": 2},
        )
        await self._call(ExchangeStage.SEND_SMS_CODE, request, SuccessPredicate.STATUS)
        logger.info("skland_sms_code_sent", extra={"event": "exchange", "phone": _mask_phone(phone)})

    async def check_cred(self, cred: str) -> bool:
        """Return False when the server no longer accepts ``cred``."""

        request = self._unsigned_request(
            self._config.skland_base_url,
            "/api/v1/user/check",
            method="GET",
            extra_headers={"Cred": cred},
        )
        try:
            await self._call(ExchangeStage.CHECK_CRED, request, SuccessPredicate.CODE)
        except ExchangeError as exc:
            if exc.classification == CredentialClass.AUTH:
                return False
            raise
        return True


class SklandApiClient(_SklandEndpoints):
    """Signed calls against the session-scoped API family."""

    async def get_player_info(self, credential: SessionCredential, uid: str) -> dict[str, Any]:
        request = self._signed_request("GET", "/api/v1/game/player/info", credential, params={"uid": uid})
        body = await self._call(ExchangeStage.SIGNED_CALL, request, SuccessPredicate.CODE)

        def _player(payload: Mapping[str, Any]) -> dict[str, Any]:
            data = payload.get("data")
            if not isinstance(data, Mapping):
                raise ValidationError("player info response is missing the data object")
            return dict(data)

        return self._parse(ExchangeStage.SIGNED_CALL, _player, body)

    async def attend(self, credential: SessionCredential, uid: str, game_id: str | int) -> AttendanceResult:
        request = self._signed_request(
            "POST",
            "/api/v1/game/attendance",
            credential,
            payload={"uid": uid, "gameId": int(game_id)},
        )
        body = await self._call(
            ExchangeStage.SIGNED_CALL,
            request,
            SuccessPredicate.CODE,
            tolerated_codes=frozenset({ALREADY_ATTENDED_CODE}),
        )
        if body.get("code") == ALREADY_ATTENDED_CODE:
            logger.info("skland_attendance_already_done", extra={"event": "attendance", "uid": uid})
            return AttendanceResult(already_attended=True, awards=[])
        return self._parse(ExchangeStage.SIGNED_CALL, AttendanceResult.from_exchange, body)
