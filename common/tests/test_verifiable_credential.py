# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import time
import uuid

import pytest

from common import jwt_utils, parsing
import common.key_configuration as key
import common.verifiable_credential as vc

ISSUER_DID = "did:web:localhost%3A8000"
SUBJECT = "did:jwk:holder"

ADA = vc.PIDClaims(
    given_name="Ada",
    family_name="Lovelace",
    birth_date="1815-12-10",
    age_over_18=True,
    issuing_country="EU",
)


@pytest.fixture()
def key_configuration() -> key.KeyConfiguration:
    return key.generate_issuer_key_pair("issuer-key-1", ISSUER_DID)


def test_credential_round_trip(key_configuration: key.KeyConfiguration):
    credential_id = uuid.uuid4()
    token = vc.create_jwt_verifiable_credential(
        ADA,
        key_configuration,
        SUBJECT,
        audience="http://localhost:8000",
        schema_url="http://localhost:8000/schemas/pid",
        credential_id=credential_id,
    )
    assert len(jwt_utils.split_jwt(token)) == 3

    result = vc.verify_jwt_verifiable_credential(token, key_configuration.public_jwk_dict)
    assert result.is_valid, result.error
    body = vc.JsonWebTokenBodyVCData.model_validate(result.payload)
    assert body.iss == ISSUER_DID
    assert body.sub == SUBJECT
    assert body.aud == "http://localhost:8000"
    assert body.jti == f"urn:uuid:{credential_id}"
    assert body.exp - body.iat == vc.CREDENTIAL_VALIDITY_SECONDS
    assert body.vc.type == ["VerifiableCredential", vc.PID_CREDENTIAL_TYPE]
    assert body.vc.credentialSchema == {"id": "http://localhost:8000/schemas/pid", "type": "JsonSchemaValidator2018"}
    assert result.payload["vc"]["@context"][0] == "https://www.w3.org/2018/credentials/v1"

    subject = body.vc.credentialSubject
    assert subject["id"] == SUBJECT
    assert subject["givenName"] == "Ada"
    assert subject["ageOver18"] == "true"
    assert subject["ageOver21"] == "false", "Absent age claims are encoded as false"
    assert "documentNumber" not in subject

    recovered = vc.PIDClaims.from_credential_subject(subject)
    assert recovered.given_name == ADA.given_name
    assert recovered.family_name == ADA.family_name
    assert recovered.birth_date == ADA.birth_date
    assert recovered.age_over_18 is True
    assert recovered.issuing_country == "EU"


def test_header_names_issuer_key(key_configuration: key.KeyConfiguration):
    token = vc.create_jwt_verifiable_credential(ADA, key_configuration, SUBJECT)
    header, _ = jwt_utils.decode_unverified(token)
    assert header == {"alg": "ES256", "kid": "issuer-key-1", "typ": "JWT"}


def test_tampered_signature_is_rejected(key_configuration: key.KeyConfiguration):
    token = vc.create_jwt_verifiable_credential(ADA, key_configuration, SUBJECT)
    header, payload, signature = jwt_utils.split_jwt(token)
    signature_bytes = bytearray(parsing.bytes_from_url_safe(signature))
    signature_bytes[len(signature_bytes) // 2] ^= 0x01
    tampered = ".".join([header, payload, parsing.bytes_to_url_safe(bytes(signature_bytes))])

    result = vc.verify_jwt_verifiable_credential(tampered, key_configuration.public_jwk_dict)
    assert not result.is_valid
    assert "JWT verification failed" in result.error


def test_tampered_payload_is_rejected(key_configuration: key.KeyConfiguration):
    token = vc.create_jwt_verifiable_credential(ADA, key_configuration, SUBJECT)
    header, payload, signature = jwt_utils.split_jwt(token)
    claims = parsing.object_from_url_safe(payload)
    claims["vc"]["credentialSubject"]["givenName"] = "Eve"
    tampered = ".".join([header, parsing.object_to_url_safe(claims), signature])

    assert not vc.verify_jwt_verifiable_credential(tampered, key_configuration.public_jwk_dict).is_valid


def test_wrong_key_is_rejected(key_configuration: key.KeyConfiguration):
    token = vc.create_jwt_verifiable_credential(ADA, key_configuration, SUBJECT)
    other = key.generate_issuer_key_pair("issuer-key-2", ISSUER_DID)
    assert not vc.verify_jwt_verifiable_credential(token, other.public_jwk).is_valid


def test_expired_credential_is_rejected(key_configuration: key.KeyConfiguration):
    issued_at = int(time.time()) - vc.CREDENTIAL_VALIDITY_SECONDS - 60
    token = vc.create_jwt_verifiable_credential(ADA, key_configuration, SUBJECT, issued_at=issued_at)

    result = vc.verify_jwt_verifiable_credential(token, key_configuration.public_jwk_dict)
    assert not result.is_valid
    assert result.error == "Credential has expired"


def test_verification_never_raises():
    result = vc.verify_jwt_verifiable_credential("not.a.jwt", {"kty": "EC"})
    assert not result.is_valid
    assert result.error

    result = vc.verify_jwt_verifiable_credential("garbage", "not a key")
    assert not result.is_valid


def test_check_credential_payload():
    now = time.time()
    assert vc.check_credential_payload({"vc": {"credentialSubject": {"givenName": "Ada"}}, "exp": now + 10}, now) is None
    assert vc.check_credential_payload({"vc": {"credentialSubject": {"givenName": "Ada"}}}, now) is None, "Credentials without exp do not expire"
    assert vc.check_credential_payload({"vc": {}}, now) == "Invalid credential structure"
    assert vc.check_credential_payload({"sub": "x"}, now) == "Invalid credential structure"
    assert vc.check_credential_payload([], now) == "Invalid credential structure"
    assert vc.check_credential_payload({"vc": {"credentialSubject": "Ada"}}, now) == "Invalid credential structure"
    assert vc.check_credential_payload({"vc": {"credentialSubject": {"a": 1}, "type": "VerifiableCredential"}}, now) == "Invalid credential structure"
    assert vc.check_credential_payload({"vc": {"credentialSubject": {"a": 1}}, "iss": ["did:web:x"]}, now) == "Invalid credential structure"
    assert vc.check_credential_payload({"vc": {"credentialSubject": {"a": 1}}, "exp": now}, now) == "Credential has expired"
