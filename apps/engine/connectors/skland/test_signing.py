from __future__ import annotations

import re

from connectors.skland.models import SessionCredential
from connectors.skland.signing import ClientMeta, RequestSigner, canonical_params_for, encode_body, generate_device_id, sign

META = ClientMeta(platform="3", timestamp="1700000000", device_id="BLdevice", version_name="1.0.0")


def test_client_meta_json_is_compact_and_ordered() -> None:
    assert META.to_json() == '{"platform":"3","timestamp":"1700000000","dId":"BLdevice","vName":"1.0.0"}'


def test_sign_matches_known_get_vector() -> None:
    signature = sign("signD", "/api/v1/game/player/info", "uid=123456789", "1700000000", META)

    assert signature == "4c5c933dc5b1b75f0099e7bccc2e6ebb"


def test_sign_matches_known_post_vector() -> None:
    body = encode_body({"uid": "123456789", "gameId": 1})
    signature = sign("signD", "/api/v1/game/attendance", body, "1700000000", META)

    assert body == '{"uid":"123456789","gameId":1}'
    assert signature == "cdc216dcc689df2d1d00e5596a86940a"


def test_sign_is_deterministic() -> None:
    first = sign("secret", "/p", "a=1", "1", META)
    second = sign("secret", "/p", "a=1", "1", ClientMeta("3", "1700000000", "BLdevice", "1.0.0"))

    assert first == second
    assert sign("other", "/p", "a=1", "1", META) != first


def test_empty_secret_still_signs() -> None:
    signature = sign("", "/api/v1/game/player/binding", "", "1700000000", META)

    assert re.fullmatch(r"[0-9a-f]{32}", signature)


def test_canonical_params_strip_query_marker_and_use_body_for_writes() -> None:
    assert canonical_params_for("GET", "https://zonai.skland.com/api/v1/game/player/info?uid=1", None) == "uid=1"
    assert canonical_params_for("get", "https://zonai.skland.com/api/v1/game/player/binding", None) == ""
    assert canonical_params_for("POST", "https://zonai.skland.com/x", '{"b":2,"a":1}') == '{"b":2,"a":1}'
    assert canonical_params_for("PUT", "https://zonai.skland.com/x", None) == "{}"


def test_signed_headers_carry_full_header_set() -> None:
    signer = RequestSigner(clock=lambda: 1700000000.7, device_id_factory=lambda: "BLdevice")
    credential = SessionCredential(cred="credC", sign_token="signD", account_id="id1", acquired_at=0.0)

    headers = signer.signed_headers(
        method="GET",
        url="https://zonai.skland.com/api/v1/game/player/info?uid=123456789",
        body=None,
        credential=credential,
    )

    assert headers == {
        "cred": "credC",
        "sign": "4c5c933dc5b1b75f0099e7bccc2e6ebb",
        "platform": "3",
        "timestamp": "1700000000",
        "dId": "BLdevice",
        "vName": "1.0.0",
    }


def test_device_ids_are_random_nonces() -> None:
    first = generate_device_id()

    assert first.startswith("BL")
    assert first != generate_device_id()
