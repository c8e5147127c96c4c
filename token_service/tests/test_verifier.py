"""
Tests for bearer token verification against a trusted key set.
"""
import json
import math
import time

import jwt
import pytest

from token_service.config import ISSUER
from token_service.errors import (
    Expired,
    InsufficientScope,
    KeyNotFound,
    MissingOrInvalidHeader,
    NoKeysAvailable,
    SignatureOrIssuerInvalid,
)
from token_service.issuer import TokenIssuer
from token_service.keys import KeyMaterialSource, to_crypto_key
from token_service.verifier import TokenVerifier

AUDIENCE = "https://tools.local/weather"


def _bearer(token: str) -> str:
    return f"Bearer {token}"


def _raw_token(private_jwk: dict, **overrides) -> str:
    now = int(time.time())
    payload = {
        "iss": ISSUER,
        "sub": "agent",
        "aud": AUDIENCE,
        "iat": now,
        "exp": now + 3600,
        "scopes": ["weather.read"],
        "client_id": "agent",
    }
    payload.update(overrides)
    return jwt.encode(payload, to_crypto_key(private_jwk), algorithm="EdDSA", headers={"kid": private_jwk["kid"]})


def test_round_trip(jwk_pair, key_source):
    private, _ = jwk_pair
    token = TokenIssuer.sign(private, "agent", AUDIENCE, ["weather.read", "tool.read"])
    verified = TokenVerifier(key_source).verify(_bearer(token), ["weather.read"])
    assert verified.client_id == "agent"
    assert verified.scopes == ["weather.read", "tool.read"]
    assert verified.kid == private["kid"]
    assert verified.claims["aud"] == AUDIENCE


def test_unknown_kid_in_other_key_set(jwk_pair, jwk_pair_factory, tmp_path):
    private, _ = jwk_pair
    _, other_public = jwk_pair_factory(kid="other-kid")
    other = KeyMaterialSource(env_public=json.dumps(other_public), keys_dir=tmp_path)
    token = TokenIssuer.sign(private, "agent", AUDIENCE, ["weather.read"])
    with pytest.raises(KeyNotFound):
        TokenVerifier(other).verify(_bearer(token))


def test_same_kid_different_key_fails_signature(jwk_pair_factory, tmp_path):
    private, _ = jwk_pair_factory(kid="shared")
    _, impostor_public = jwk_pair_factory(kid="shared")
    source = KeyMaterialSource(env_public=json.dumps(impostor_public), keys_dir=tmp_path)
    token = TokenIssuer.sign(private, "agent", AUDIENCE, [])
    with pytest.raises(SignatureOrIssuerInvalid):
        TokenVerifier(source).verify(_bearer(token))


def test_expiry_boundary(jwk_pair, key_source):
    private, _ = jwk_pair
    verifier = TokenVerifier(key_source)

    # exp one second in the past
    expired = TokenIssuer.sign(private, "agent", AUDIENCE, [], now=int(time.time()) - 3600 - 1)
    with pytest.raises(Expired):
        verifier.verify(_bearer(expired))

    # exp at least one second in the future
    valid = TokenIssuer.sign(private, "agent", AUDIENCE, [], now=math.ceil(time.time()) - 3600 + 1)
    assert verifier.verify(_bearer(valid)).client_id == "agent"


@pytest.mark.parametrize("header", [None, "", "Basic abc", "bearer abc", "Token abc"])
def test_missing_or_invalid_header(key_source, header):
    with pytest.raises(MissingOrInvalidHeader):
        TokenVerifier(key_source).verify(header)


def test_no_keys_available(jwk_pair, empty_key_source):
    private, _ = jwk_pair
    token = TokenIssuer.sign(private, "agent", AUDIENCE, [])
    with pytest.raises(NoKeysAvailable):
        TokenVerifier(empty_key_source).verify(_bearer(token))


def test_malformed_token(key_source):
    with pytest.raises(SignatureOrIssuerInvalid):
        TokenVerifier(key_source).verify("Bearer not-a-jwt")


def test_wrong_issuer(jwk_pair, key_source):
    private, _ = jwk_pair
    token = _raw_token(private, iss="https://evil.example")
    with pytest.raises(SignatureOrIssuerInvalid):
        TokenVerifier(key_source).verify(_bearer(token))


def test_scopes_claim_must_be_array(jwk_pair, key_source):
    private, _ = jwk_pair
    token = _raw_token(private, scopes="weather.read")
    with pytest.raises(SignatureOrIssuerInvalid):
        TokenVerifier(key_source).verify(_bearer(token))


def test_insufficient_scope_names_first_missing(jwk_pair, key_source):
    private, _ = jwk_pair
    token = TokenIssuer.sign(private, "agent", AUDIENCE, ["admin.read"])
    with pytest.raises(InsufficientScope) as excinfo:
        TokenVerifier(key_source).verify(_bearer(token), ["admin.read", "admin.write", "tool.write"])
    assert excinfo.value.scope == "admin.write"
    assert excinfo.value.status_code == 403


def test_audience_checked_only_when_given(jwk_pair, key_source):
    private, _ = jwk_pair
    token = TokenIssuer.sign(private, "agent", "https://other.example", ["weather.read"])
    verifier = TokenVerifier(key_source)
    assert verifier.verify(_bearer(token)).client_id == "agent"
    with pytest.raises(SignatureOrIssuerInvalid):
        verifier.verify(_bearer(token), audience=AUDIENCE)
    assert verifier.verify(_bearer(token), audience="https://other.example").client_id == "agent"


def test_expired_token_with_wrong_issuer_reports_issuer(jwk_pair, key_source):
    private, _ = jwk_pair
    past = int(time.time()) - 7200
    token = _raw_token(private, iss="https://evil.example", iat=past, exp=past + 3600)
    with pytest.raises(SignatureOrIssuerInvalid):
        TokenVerifier(key_source).verify(_bearer(token))


def test_expired_token_with_wrong_audience_reports_audience(jwk_pair, key_source):
    private, _ = jwk_pair
    token = TokenIssuer.sign(private, "agent", "https://other.example", [], now=int(time.time()) - 7200)
    verifier = TokenVerifier(key_source)
    with pytest.raises(SignatureOrIssuerInvalid):
        verifier.verify(_bearer(token), audience=AUDIENCE)
    with pytest.raises(Expired):
        verifier.verify(_bearer(token), audience="https://other.example")
