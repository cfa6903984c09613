from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from connectors.skland.client import SklandApiClient, TokenExchangeChain
from connectors.skland.config import SklandConfig
from connectors.skland.errors import ErrorKind, ExchangeError, ExchangeStage, NetworkError
from connectors.skland.models import HttpRequest, HttpResponse, PasswordProof, SessionCredential, SmsCodeProof
from connectors.skland.signing import RequestSigner

CREDENTIAL = SessionCredential(cred="credC", sign_token="signD", account_id="id1", acquired_at=0.0)


class DummyTransport:
    def __init__(self, responses: list[dict[str, Any]] | None = None):
        self.responses = responses or []
        self.requests: list[HttpRequest] = []

    async def send(self, request: HttpRequest) -> HttpResponse:
        self.requests.append(request)
        if not self.responses:
            return HttpResponse(200, {}, b'{"code":0,"data":{}}')
        response = self.responses.pop(0)
        if "raise" in response:
            raise response["raise"]
        body = response.get("raw")
        if body is None:
            body = json.dumps(response.get("payload", {})).encode("utf-8")
        return HttpResponse(status_code=int(response.get("status_code", 200)), headers={}, body=body)


def _signer() -> RequestSigner:
    return RequestSigner(clock=lambda: 1700000000, device_id_factory=lambda: "BLdevice")


def _chain(transport: DummyTransport) -> TokenExchangeChain:
    return TokenExchangeChain(config=SklandConfig(), transport=transport, signer=_signer())


def _api(transport: DummyTransport) -> SklandApiClient:
    return SklandApiClient(config=SklandConfig(), transport=transport, signer=_signer())


def _expect_exchange_error(coro: Any) -> ExchangeError:
    with pytest.raises(ExchangeError) as info:
        asyncio.run(coro)
    return info.value


def test_prove_identity_posts_password_proof_and_reads_status_discriminator() -> None:
    transport = DummyTransport([{"payload": {"status": 0, "msg": "OK", "data": {"token": "tokA"}}}])

    result = asyncio.run(_chain(transport).prove_identity(PasswordProof(phone="123", password="x")))

    request = transport.requests[0]
    assert result.platform_token == "tokA"
    assert request.method == "POST"
    assert request.url == "https://as.hypergryph.com/user/auth/v1/token_by_phone_password"
    assert json.loads(request.body or "") == {"phone": "123", "password": "x"}
    assert request.headers["platform"] == "3"
    assert request.headers["dId"] == "BLdevice"
    assert request.timeout == 10.0


def test_prove_identity_with_sms_code_uses_code_endpoint() -> None:
    transport = DummyTransport([{"payload": {"status": 0, "data": {"token": "tokA"}}}])

    asyncio.run(_chain(transport).prove_identity(SmsCodeProof(phone="123", code="9999")))

    assert transport.requests[0].url.endswith("/user/auth/v2/token_by_phone_code")


def test_rejected_proof_is_classified_as_proof_rejected() -> None:
    transport = DummyTransport([{"payload": {"status": 100, "msg": "密码错误"}}])

    error = _expect_exchange_error(_chain(transport).prove_identity(PasswordProof(phone="123", password="bad")))

    assert error.stage == ExchangeStage.PROVE_IDENTITY
    assert error.kind == ErrorKind.PROOF_REJECTED
    assert error.business_code == 100


def test_request_grant_sends_app_code_and_returns_grant() -> None:
    transport = DummyTransport([{"payload": {"status": 0, "data": {"code": "grantB", "uid": "u"}}}])

    result = asyncio.run(_chain(transport).request_grant("tokA"))

    assert result.grant_code == "grantB"
    assert json.loads(transport.requests[0].body or "") == {"token": "tokA", "appCode": "4ca99fa6b56cc2ba", "type": 0}


def test_request_grant_with_rejected_token_is_auth_expired() -> None:
    transport = DummyTransport([{"payload": {"status": 3, "msg": "token expired"}}])

    error = _expect_exchange_error(_chain(transport).request_grant("tokA"))

    assert error.kind == ErrorKind.AUTH_EXPIRED


def test_redeem_grant_reads_code_discriminator() -> None:
    transport = DummyTransport(
        [{"payload": {"code": 0, "message": "OK", "data": {"cred": "credC", "token": "signD", "userId": "id1"}}}]
    )

    result = asyncio.run(_chain(transport).redeem_grant("grantB"))

    assert (result.cred, result.sign_token, result.account_id) == ("credC", "signD", "id1")
    assert transport.requests[0].url == "https://zonai.skland.com/api/v1/user/auth/generate_cred_by_code"
    assert json.loads(transport.requests[0].body or "") == {"kind": 1, "code": "grantB"}


def test_missing_fields_are_malformed_response() -> None:
    transport = DummyTransport([{"payload": {"code": 0, "data": {"cred": "credC"}}}])

    error = _expect_exchange_error(_chain(transport).redeem_grant("grantB"))

    assert error.kind == ErrorKind.MALFORMED_RESPONSE
    assert error.stage == ExchangeStage.REDEEM_GRANT


def test_missing_discriminator_and_invalid_json_are_malformed() -> None:
    transport = DummyTransport([{"payload": {"data": {"code": "g"}}}, {"raw": b"<html>"}])
    chain = _chain(transport)

    assert _expect_exchange_error(chain.request_grant("tokA")).kind == ErrorKind.MALFORMED_RESPONSE
    assert _expect_exchange_error(chain.request_grant("tokA")).kind == ErrorKind.MALFORMED_RESPONSE


def test_transport_and_server_failures_are_network_failures() -> None:
    transport = DummyTransport(
        [
            {"raise": NetworkError("timed out", timed_out=True)},
            {"status_code": 502, "raw": b"bad gateway"},
            {"status_code": 429, "payload": {}},
        ]
    )
    chain = _chain(transport)

    kinds = [_expect_exchange_error(chain.request_grant("tokA")).kind for _ in range(3)]

    assert kinds == [ErrorKind.NETWORK_FAILURE] * 3


def test_http_401_is_auth_expired_after_identity_stage() -> None:
    transport = DummyTransport([{"status_code": 401, "payload": {"code": 10002, "message": "用户未登录"}}])

    error = _expect_exchange_error(_chain(transport).binding_lookup(CREDENTIAL))

    assert error.kind == ErrorKind.AUTH_EXPIRED
    assert error.status_code == 401


def test_binding_lookup_is_signed_and_filters_game_bindings() -> None:
    transport = DummyTransport(
        [
            {
                "payload": {
                    "code": 0,
                    "data": {
                        "list": [
                            {"appCode": "other", "bindingList": [{"uid": "999"}]},
                            {
                                "appCode": "arknights",
                                "bindingList": [
                                    {"uid": "1", "nickName": "Doctor#1", "channelName": "官服", "isDefault": False},
                                    {"uid": "2", "nickName": "Doctor#2", "channelName": "B服", "isDefault": True},
                                ],
                            },
                        ]
                    },
                }
            }
        ]
    )

    roles = asyncio.run(_chain(transport).binding_lookup(CREDENTIAL))

    request = transport.requests[0]
    assert [role.uid for role in roles] == ["1", "2"]
    assert roles[1].is_default is True
    assert request.method == "GET"
    assert request.body is None
    assert request.headers["cred"] == "credC"
    assert request.headers["timestamp"] == "1700000000"
    assert len(request.headers["sign"]) == 32


def test_send_sms_code_and_check_cred() -> None:
    transport = DummyTransport(
        [
            {"payload": {"status": 0, "msg": "OK"}},
            {"payload": {"code": 0, "data": {}}},
            {"status_code": 401, "payload": {"code": 10002, "message": "用户未登录"}},
        ]
    )
    chain = _chain(transport)

    asyncio.run(chain.send_sms_code("13800000000"))
    valid = asyncio.run(chain.check_cred("credC"))
    invalid = asyncio.run(chain.check_cred("credC"))

    assert json.loads(transport.requests[0].body or "") == {"phone": "13800000000", "type": 2}
    assert transport.requests[1].headers["Cred"] == "credC"
    assert (valid, invalid) == (True, False)


def test_check_cred_surfaces_network_failures() -> None:
    transport = DummyTransport([{"raise": NetworkError("connection reset")}])

    error = _expect_exchange_error(_chain(transport).check_cred("credC"))

    assert error.kind == ErrorKind.NETWORK_FAILURE


def test_player_info_query_is_signed_from_query_string() -> None:
    transport = DummyTransport([{"payload": {"code": 0, "data": {"status": {"name": "Doctor", "level": 120}}}}])

    player = asyncio.run(_api(transport).get_player_info(CREDENTIAL, "123456789"))

    request = transport.requests[0]
    assert player["status"]["name"] == "Doctor"
    assert request.url == "https://zonai.skland.com/api/v1/game/player/info?uid=123456789"
    assert request.headers["sign"] == "4c5c933dc5b1b75f0099e7bccc2e6ebb"


def test_attendance_signs_exact_body_and_tolerates_repeat() -> None:
    transport = DummyTransport(
        [
            {"payload": {"code": 0, "data": {"awards": [{"count": 200, "type": "daily"}]}}},
            {"status_code": 403, "payload": {"code": 10001, "message": "请勿重复签到！"}},
        ]
    )
    api = _api(transport)

    first = asyncio.run(api.attend(CREDENTIAL, "123456789", "1"))
    second = asyncio.run(api.attend(CREDENTIAL, "123456789", 1))

    assert first.already_attended is False
    assert first.awards == [{"count": 200, "type": "daily"}]
    assert second.already_attended is True
    assert transport.requests[0].body == '{"uid":"123456789","gameId":1}'
    assert transport.requests[0].headers["sign"] == "cdc216dcc689df2d1d00e5596a86940a"
