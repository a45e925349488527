# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Tests Verification Flow, Digital Credentials API & SIOPv2
"""

import json
import re
import time
import urllib.parse
import uuid

import pytest
from sqlalchemy import select
import sqlalchemy.orm as sa_orm
from fastapi import status
from fastapi.testclient import TestClient
from jwcrypto import jwk, jws

from common import jwt_utils, parsing, verifiable_credential as vc
import common.db.database as db
from common.test_helpers import agent_helper
from common.test_helpers.wallet_helper import ADA, HolderWallet, device_response, unknown_issuer_credential

from agent.cleanup import ArtifactCleanupTimer
import verifier.db.verification as store

PID = "eu.europa.ec.eudi.pid.1"
UUID_PATTERN = "^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"
RESULT_PAGE = f"{agent_helper.EXTERNAL_URL}/verify"


@pytest.fixture()
def engine():
    yield agent_helper.create_test_engine()


@pytest.fixture()
def client(engine) -> TestClient:
    client = agent_helper.create_test_client(engine)
    yield client
    client.close()
    agent_helper.reset_overrides()


@pytest.fixture()
def lenient_client(engine) -> TestClient:
    """Accepts credentials of issuers without a known key"""
    client = agent_helper.create_test_client(engine, allow_unknown_issuer=True)
    yield client
    client.close()
    agent_helper.reset_overrides()


def _start(client: TestClient, **params) -> dict:
    response = client.get("/verify/start", params=params)
    assert response.status_code == 200, response.text
    return response.json()


def _finish(client: TestClient, started: dict, credential: str, credential_id: str = "cred1"):
    return client.post("/verify/finish", json={"vp_token": {credential_id: credential}, "state": started["state"]})


def _status(client: TestClient, session_id: str) -> dict:
    response = client.get(f"/verify/openid4vci/status/{session_id}")
    assert response.status_code == 200, response.text
    return response.json()


def _tamper(credential: str) -> str:
    """Changes the given name without signing again"""
    header, payload, signature = credential.split(".")
    claims = parsing.object_from_url_safe(payload)
    claims["vc"]["credentialSubject"]["givenName"] = "Eve"
    return ".".join([header, parsing.object_to_url_safe(claims), signature])


def _rewrite(credential: str, header: dict = None, payload: dict = None, vc_claims: dict = None) -> str:
    """Replaces header fields, payload fields or vc fields without signing again"""
    encoded_header, encoded_payload, signature = credential.split(".")
    decoded_header = parsing.object_from_url_safe(encoded_header) | (header or {})
    decoded_payload = parsing.object_from_url_safe(encoded_payload) | (payload or {})
    decoded_payload["vc"] = decoded_payload["vc"] | (vc_claims or {})
    return ".".join([parsing.object_to_url_safe(decoded_header), parsing.object_to_url_safe(decoded_payload), signature])


###########################
# Digital Credentials API #
###########################


def test_start_verification(client: TestClient):
    started = _start(client)
    assert started["challenge"]
    assert re.match(UUID_PATTERN, started["sessionId"])
    assert started["protocol"] == "openid4vp"
    assert started["expiresAt"]
    assert "presentationDefinition" not in started

    request = started["request"]
    assert request["response_type"] == "vp_token"
    assert request["response_mode"] == "dc_api"
    assert request["nonce"] == started["challenge"]
    credential_query = request["dcql_query"]["credentials"][0]
    assert credential_query["id"] == "cred1"
    assert credential_query["format"] == "jwt_vc"
    assert ["vc", "credentialSubject", "givenName"] in [claim["path"] for claim in credential_query["claims"]]

    state = started["state"]
    assert state["nonce"] == started["challenge"]
    assert state["credential_type"] == PID
    assert state["format"] == "jwt_vc"


def test_start_verification_mdoc(client: TestClient):
    credential_query = _start(client, format="mso_mdoc")["request"]["dcql_query"]["credentials"][0]
    assert credential_query["format"] == "mso_mdoc"
    assert credential_query["meta"]["doctype_value"] == PID
    assert [PID, "given_name"] in [claim["path"] for claim in credential_query["claims"]]


def test_start_verification_legacy(client: TestClient):
    started = _start(client, legacy=True)
    assert "request" not in started
    assert started["presentationDefinition"]["id"] == "pid-legacy-verification"


def test_unknown_issuer_allowed(lenient_client: TestClient):
    started = _start(lenient_client)
    response = _finish(lenient_client, started, unknown_issuer_credential())
    assert response.status_code == 200, response.text
    result = response.json()
    assert result["verified"] is True
    assert result["sessionId"] == started["sessionId"]
    assert result["details"]["signature_verified"] is False
    assert result["details"]["issuer"] == "did:web:unknown-issuer.example"
    assert result["credentialData"]["requested_claims"]["vc.credentialSubject.givenName"] == "Ada"


def test_unknown_issuer_rejected(client: TestClient):
    started = _start(client)
    response = _finish(client, started, unknown_issuer_credential())
    assert response.status_code == 400
    result = response.json()
    assert result["verified"] is False
    assert "Unknown issuer did:web:unknown-issuer.example" in result["message"]

    verification_status = _status(client, started["sessionId"])
    assert verification_status["status"] == "failed"
    assert "Unknown issuer" in verification_status["error"]


def test_challenge_single_use(lenient_client: TestClient):
    started = _start(lenient_client)
    credential = unknown_issuer_credential()
    assert _finish(lenient_client, started, credential).status_code == 200

    response = _finish(lenient_client, started, credential)
    assert response.status_code == 400
    assert response.json() == {"verified": False, "message": "Invalid or expired challenge."}


def test_unknown_challenge(client: TestClient):
    started = _start(client)
    started["state"]["nonce"] = str(uuid.uuid4())
    response = _finish(client, started, unknown_issuer_credential())
    assert response.status_code == 400
    assert "Invalid or expired challenge" in response.json()["message"]


def test_issued_credential_verification(client: TestClient):
    credential = agent_helper.issue_pid_credential(client, ADA)
    started = _start(client)
    response = _finish(client, started, credential)
    assert response.status_code == 200, response.text
    result = response.json()
    assert result["verified"] is True
    assert result["message"] == "JWT credential verified successfully!"

    details = result["details"]
    assert details["signature_verified"] is True
    assert details["challenge_verified"] is True
    assert details["issuer"] == agent_helper.ISSUER_DID
    assert details["docType"] == PID
    assert details["token_length"] == len(credential)

    credential_data = result["credentialData"]
    assert credential_data["format"] == "jwt_vc"
    assert credential_data["raw_credential"] == credential
    assert credential_data["decoded_credential"]["credential_subject"]["familyName"] == "Lovelace"
    assert credential_data["requested_claims"]["vc.credentialSubject.birthDate"] == "1815-12-10"

    verification_status = _status(client, started["sessionId"])
    assert verification_status["status"] == "verified"
    assert verification_status["error"] is None
    assert verification_status["credentialData"]["credential"] == credential

    response = client.get(f"/verify/credential/{started['sessionId']}")
    assert response.status_code == 200
    verified = response.json()
    assert verified["count"] == 1
    verified_credential = verified["verifiedCredentials"][0]
    assert verified_credential["claims"]["givenName"] == "Ada"
    assert verified_credential["issuer"] == agent_helper.ISSUER_DID

    response = client.get(f"/verify/credential/id/{verified_credential['id']}")
    assert response.status_code == 200
    assert response.json()["verifiedCredential"] == verified_credential


def test_tampered_credential(client: TestClient):
    credential = _tamper(agent_helper.issue_pid_credential(client, ADA))
    started = _start(client)
    response = _finish(client, started, credential)
    assert response.status_code == 400
    assert "Credential verification failed" in response.json()["message"]
    assert _status(client, started["sessionId"])["status"] == "failed"

    # A failed session can not be finished anymore
    response = _finish(client, started, credential)
    assert response.status_code == 400
    assert response.json()["message"] == "Verification session is already finished"


def test_expired_credential(lenient_client: TestClient):
    credential = unknown_issuer_credential(issued_at=int(time.time()) - 2 * vc.CREDENTIAL_VALIDITY_SECONDS)
    started = _start(lenient_client)
    response = _finish(lenient_client, started, credential)
    assert response.status_code == 400
    assert response.json()["message"] == "Credential verification failed: Credential has expired"


@pytest.mark.parametrize(
    "changes",
    [
        {"payload": {"iss": {"id": "did:web:unknown-issuer.example"}}},
        {"vc_claims": {"credentialSubject": "Ada"}},
        {"vc_claims": {"credentialSubject": ["Ada"]}},
        {"vc_claims": {"credentialSubject": 5}},
        {"vc_claims": {"type": "VerifiableCredential"}},
    ],
)
def test_credential_with_invalid_claim_types(lenient_client: TestClient, changes: dict):
    credential = _rewrite(unknown_issuer_credential(), **changes)
    started = _start(lenient_client)
    response = _finish(lenient_client, started, credential)
    assert response.status_code == 400
    assert response.json() == {"verified": False, "message": "Credential verification failed: Invalid credential structure"}
    assert _status(lenient_client, started["sessionId"])["status"] == "failed"


def test_credential_with_invalid_key_id(client: TestClient):
    credential = _rewrite(agent_helper.issue_pid_credential(client, ADA), header={"kid": ["issuer-key-1"]})
    started = _start(client)
    response = _finish(client, started, credential)
    assert response.status_code == 400
    assert response.json()["message"] == "Credential verification failed: Invalid credential header: kid must be a string"
    assert _status(client, started["sessionId"])["status"] == "failed"


def test_malformed_credential(lenient_client: TestClient):
    started = _start(lenient_client)
    response = _finish(lenient_client, started, "not-a-jwt")
    assert response.status_code == 400
    assert response.json()["message"].startswith("Credential verification failed")


def test_missing_vp_token(client: TestClient):
    started = _start(client)
    response = client.post("/verify/finish", json={"state": started["state"]})
    assert response.status_code == 400
    assert response.json() == {"verified": False, "message": "No vp_token provided"}


def test_missing_credential_id(client: TestClient):
    started = _start(client)
    response = _finish(client, started, unknown_issuer_credential(), credential_id="other")
    assert response.status_code == 400
    message = response.json()["message"]
    assert "Expected credential 'cred1' not found in vp_token" in message
    assert "other" in message


def test_browser_wrapped_response(lenient_client: TestClient):
    """Browsers hand over the response in `data`, the vp_token serialized with the presentation as list"""
    started = _start(lenient_client)
    vp_token = json.dumps({"cred1": [unknown_issuer_credential()]})
    response = lenient_client.post("/verify/finish", json={"data": {"vp_token": vp_token}, "state": started["state"]})
    assert response.status_code == 200, response.text
    assert response.json()["verified"] is True


def test_mdoc_verification(client: TestClient):
    started = _start(client, format="mso_mdoc")
    elements = {"given_name": "Ada", "family_name": "Lovelace", "birth_date": "1815-12-10", "age_over_18": True}
    response = _finish(client, started, device_response(PID, elements))
    assert response.status_code == 200, response.text
    result = response.json()
    assert result["message"] == "mdoc credential decoded successfully!"
    assert result["details"]["verification_method"] == "mdoc_structure"
    assert result["details"]["docType"] == PID
    assert result["details"]["issuer"] is None
    assert result["credentialData"]["requested_claims"][f"{PID}.given_name"] == "Ada"
    assert result["credentialData"]["decoded_credential"]["doc_types"] == [PID]

    response = client.get(f"/verify/credential/{started['sessionId']}")
    assert response.json()["verifiedCredentials"][0]["claims"][PID]["age_over_18"] is True


def test_mdoc_invalid_device_response(client: TestClient):
    started = _start(client, format="mso_mdoc")
    response = _finish(client, started, parsing.bytes_to_url_safe(b"\x01\x02"))
    assert response.status_code == 400
    assert response.json()["message"].startswith("Credential verification failed")


##########
# SIOPv2 #
##########


def _start_siop(client: TestClient) -> dict:
    response = client.post("/verify/openid4vci/start")
    assert response.status_code == 200, response.text
    return response.json()


def _request_object(client: TestClient, started: dict) -> tuple[dict, dict]:
    response = client.get(started["requestUri"].removeprefix(agent_helper.EXTERNAL_URL))
    assert response.status_code == 200, response.text
    assert response.headers["content-type"].startswith("text/plain")
    return jwt_utils.decode_unverified(response.text)


def _callback(client: TestClient, **data) -> dict:
    response = client.post("/verify/openid4vci/callback", data=data, follow_redirects=False)
    assert response.status_code == status.HTTP_303_SEE_OTHER
    location = response.headers["location"]
    assert location.startswith(f"{RESULT_PAGE}?")
    return dict(urllib.parse.parse_qsl(urllib.parse.urlparse(location).query))


def test_siop_start(client: TestClient):
    started = _start_siop(client)
    assert re.match(UUID_PATTERN, started["sessionId"])
    assert started["requestUri"] == f"{agent_helper.EXTERNAL_URL}/verify/openid4vci/request/{started['sessionId']}"
    verification_url = urllib.parse.urlparse(started["verificationUrl"])
    assert verification_url.path == "/verify/openid4vci/auth"
    query = dict(urllib.parse.parse_qsl(verification_url.query))
    assert query["request_uri"] == started["requestUri"]
    assert query["response_uri"] == f"{agent_helper.EXTERNAL_URL}/verify/openid4vci/callback"
    assert query["client_id"] == f"{agent_helper.EXTERNAL_URL}/verify/openid4vci"
    assert _status(client, started["sessionId"])["status"] == "pending"


def test_siop_request_object(client: TestClient):
    started = _start_siop(client)
    response = client.get(started["requestUri"].removeprefix(agent_helper.EXTERNAL_URL))
    header, payload = jwt_utils.decode_unverified(response.text)
    assert header["typ"] == "JWT"
    assert header["kid"].startswith(f"{agent_helper.ISSUER_DID}:verifier#")

    jwks = client.get("/verify/openid4vci/jwks").json()
    assert header["jwk"]["x"] == jwks["keys"][0]["x"]
    token = jws.JWS()
    token.deserialize(response.text)
    token.verify(jwk.JWK(**jwks["keys"][0]))

    assert payload["state"] == started["sessionId"]
    assert payload["client_id"] == f"{agent_helper.EXTERNAL_URL}/verify/openid4vci"
    assert payload["response_mode"] == "form_post"
    assert payload["response_type"] == "id_token"
    assert payload["nonce"]
    assert payload["exp"] - payload["iat"] == 300
    descriptor = payload["vp_token"]["presentation_definition"]["input_descriptors"][0]
    assert descriptor["id"] == "pid-credential"
    assert "jwt_vc" in payload["registration"]["vp_formats"]


def test_siop_request_object_unknown_session(client: TestClient):
    response = client.get(f"/verify/openid4vci/request/{uuid.uuid4()}")
    assert response.status_code == 404
    assert response.json()["error"] == "verification_not_found"


def test_siop_flow(client: TestClient):
    wallet = HolderWallet()
    credential = agent_helper.issue_pid_credential(client, ADA, wallet)
    started = _start_siop(client)
    _, request_object = _request_object(client, started)

    presentation = wallet.presentation_jwt([credential], request_object["nonce"], request_object["client_id"])
    result = _callback(client, state=request_object["state"], vp_token=presentation)
    assert result == {"success": "true", "sessionId": started["sessionId"]}

    verification_status = _status(client, started["sessionId"])
    assert verification_status["status"] == "verified"
    details = verification_status["credentialData"]["verificationDetails"]
    assert details["protocol"] == "siopv2"
    assert details["signature_verified"] is True
    assert details["subject"] == wallet.did
    assert {"givenName", "familyName", "birthDate"}.issubset(details["validated_attributes"])

    response = client.get(f"/verify/credential/{started['sessionId']}")
    assert response.status_code == 200
    assert response.json()["verifiedCredentials"][0]["subject"] == wallet.did

    # The session is finished, a second post is rejected
    result = _callback(client, state=request_object["state"], vp_token=presentation)
    assert result == {"error": "Invalid verification session"}


def test_siop_presentation_wrong_nonce(client: TestClient):
    wallet = HolderWallet()
    credential = agent_helper.issue_pid_credential(client, ADA, wallet)
    started = _start_siop(client)
    _, request_object = _request_object(client, started)

    presentation = wallet.presentation_jwt([credential], "other-nonce", request_object["client_id"])
    result = _callback(client, state=started["sessionId"], vp_token=presentation)
    assert result == {"error": "Credential processing failed"}

    verification_status = _status(client, started["sessionId"])
    assert verification_status["status"] == "failed"
    assert verification_status["error"] == "Presentation nonce does not match the request"


def test_siop_presentation_missing_attribute(lenient_client: TestClient):
    started = _start_siop(lenient_client)
    _, request_object = _request_object(lenient_client, started)
    credential = unknown_issuer_credential()
    header, payload, signature = credential.split(".")
    claims = parsing.object_from_url_safe(payload)
    del claims["vc"]["credentialSubject"]["birthDate"]
    credential = ".".join([header, parsing.object_to_url_safe(claims), signature])

    presentation = HolderWallet().presentation_jwt([credential], request_object["nonce"], request_object["client_id"])
    result = _callback(lenient_client, state=started["sessionId"], vp_token=presentation)
    assert result == {"error": "Credential processing failed"}
    assert "birthDate" in _status(lenient_client, started["sessionId"])["error"]


@pytest.mark.parametrize(
    "data,error",
    [
        ({}, "Missing state parameter"),
        ({"state": "not-a-uuid"}, "Invalid verification session"),
        ({"state": "00000000-0000-0000-0000-000000000000"}, "Invalid verification session"),
    ],
)
def test_siop_callback_invalid_state(client: TestClient, data: dict, error: str):
    assert _callback(client, **data) == {"error": error}


def test_siop_callback_wallet_error(client: TestClient):
    started = _start_siop(client)
    result = _callback(client, state=started["sessionId"], error="access_denied", error_description="User declined")
    assert result == {"error": "User declined"}
    verification_status = _status(client, started["sessionId"])
    assert verification_status["status"] == "failed"
    assert verification_status["error"] == "User declined"


def test_siop_callback_missing_vp_token(client: TestClient):
    started = _start_siop(client)
    assert _callback(client, state=started["sessionId"]) == {"error": "Missing verifiable presentation token"}
    assert _status(client, started["sessionId"])["status"] == "pending"


def test_siop_auth(client: TestClient):
    started = _start_siop(client)
    response = client.get("/verify/openid4vci/auth", params={"session_id": started["sessionId"]})
    assert response.status_code == 200
    invocation = response.json()
    assert invocation["requestUri"] == started["requestUri"]
    assert invocation["verificationUrl"] == started["verificationUrl"]
    assert invocation["walletLinks"]["openid4vci"].startswith("openid4vp://?client_id=")
    assert invocation["walletLinks"]["haip"].startswith("haip://?client_id=")

    response = client.get("/verify/openid4vci/auth")
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request"


def test_verifier_metadata(client: TestClient):
    metadata = client.get("/verify/openid4vci").json()
    assert metadata["client_id"] == f"{agent_helper.EXTERNAL_URL}/verify/openid4vci"
    assert metadata["jwks_uri"] == f"{agent_helper.EXTERNAL_URL}/verify/openid4vci/jwks"
    assert metadata["response_modes_supported"] == ["form_post"]
    assert "givenName" in metadata["claims_supported"]
    assert metadata["jwks"] == client.get("/verify/openid4vci/jwks").json()


@pytest.mark.parametrize(
    "path",
    [
        "/verify/openid4vci/status/{id}",
        "/verify/credential/{id}",
        "/verify/credential/id/{id}",
    ],
)
def test_not_found(client: TestClient, path: str):
    response = client.get(path.format(id=uuid.uuid4()))
    assert response.status_code == 404
    assert response.json()["error"] in ("verification_not_found", "verified_credential_not_found")


##############
# Challenges #
##############


def test_challenge_expiry(engine):
    with sa_orm.Session(bind=engine) as session:
        challenge = store.create_challenge(session, uuid.uuid4(), "challenge-1", expires_at=1000.0)
        session.commit()

        assert store.get_valid_challenge(session, "challenge-1", now=999.0) is not None
        assert store.get_valid_challenge(session, "challenge-1", now=1000.0) is None, "Challenge expires at expires_at"
        assert store.get_valid_challenge_by_id(session, challenge.id, now=999.0) is not None
        assert store.get_valid_challenge_by_id(session, challenge.id, now=1000.0) is None

        assert not store.try_consume_challenge(session, challenge.id, now=1000.0), "Expired challenges can not be consumed"
        assert store.try_consume_challenge(session, challenge.id, now=999.0)
        assert not store.try_consume_challenge(session, challenge.id, now=999.0)
        session.commit()
        assert store.get_valid_challenge(session, "challenge-1", now=999.0) is None


###########
# Cleanup #
###########


def test_cleanup(client: TestClient, engine):
    _start(client)
    _start_siop(client)
    client.post("/issue/authorize", json={"user_data": ADA})

    cleanup_timer = ArtifactCleanupTimer(
        issuer_config=agent_helper.t_issuer_config(),
        verifier_config=agent_helper.t_verifier_config_factory()(),
    )
    now = db.now()
    with sa_orm.Session(bind=engine) as session:
        counts = cleanup_timer.cleanup(session, now=now)
        assert counts["challenges"] == 0
        assert counts["expired_verification_sessions"] == 0

        counts = cleanup_timer.cleanup(session, now=now + 1000)
        assert counts["challenges"] == 2
        assert counts["pending_offers"] == 1
        assert counts["authorization_codes"] == 1
        assert counts["expired_verification_sessions"] == 2
        assert counts["deleted_verification_sessions"] == 0

        counts = cleanup_timer.cleanup(session, now=now + 31 * 24 * 60 * 60)
        assert counts["deleted_verification_sessions"] == 2

        assert session.scalars(select(store.VerificationSession)).all() == []
