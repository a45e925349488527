# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Verification of presented PID credentials.

Two flows end here:
 - Digital Credentials API (`/verify/finish`): the browser posts the vp_token mapping the
   credential query id to a JWT VC or an mdoc device response.
 - SIOPv2 (`/verify/openid4vci/callback`): the wallet form-posts a VP JWT wrapping the JWT VC.
"""

import datetime
import json
import logging
import uuid
from dataclasses import dataclass, field

from jwcrypto import jws
import sqlalchemy.orm as sa_orm

from common import jwt_utils, mdoc
from common.db.model import issuer_key as key_store
import common.model.dif_presentation_exchange as dif
import common.verifiable_credential as vc
from common.verifiable_credential import CredentialFormat

import verifier.config as conf
import verifier.exception as err
import verifier.models as models
import verifier.presentation_request as pr
from verifier.db import verification as store
from verifier.logging import VerifierOperationsLogEntry

_logger = logging.getLogger(__name__)


class CredentialRejectedError(ValueError):
    """The presented credential failed the structural, expiry or signature checks"""


@dataclass
class CheckedCredential:
    """A presented credential which passed the checks of its format"""

    format: CredentialFormat
    raw: str
    payload: dict
    """JWT payload or the decoded namespaces of the device response"""
    claims: dict
    doctype: str
    issuer: str | None = None
    subject: str | None = None
    signature_verified: bool = False
    decoded: dict = field(default_factory=dict)


def _iso(timestamp: object) -> str | None:
    if not isinstance(timestamp, (int, float)):
        return None
    return datetime.datetime.fromtimestamp(timestamp, tz=datetime.timezone.utc).isoformat()


##################
# Format checks  #
##################


def verify_jwt_credential(session: sa_orm.Session, config: conf.VerifierConfig, token: str, now: float = None) -> CheckedCredential:
    """
    Checks a JWT VC: three segments, credentialSubject present, not expired and signed by a known issuer.

    Credentials of issuers without a stored key are only accepted unverified if `allow_unknown_issuer` is set.
    """
    if not isinstance(token, str) or not token:
        raise CredentialRejectedError("Credential must be a compact JWT")
    try:
        header, payload = jwt_utils.decode_unverified(token)
    except jwt_utils.MalformedJWTError as e:
        raise CredentialRejectedError(str(e)) from e

    error = vc.check_credential_payload(payload, now)
    if error:
        raise CredentialRejectedError(error)

    issuer_did = payload.get("iss")
    if not issuer_did:
        raise CredentialRejectedError("No issuer DID found in credential")
    key_id = header.get("kid")
    if key_id is not None and not isinstance(key_id, str):
        raise CredentialRejectedError("Invalid credential header: kid must be a string")

    issuer_key = key_store.get_issuer_key_by_issuer_did(session, issuer_did, key_id)
    if issuer_key is None:
        if not config.allow_unknown_issuer:
            raise CredentialRejectedError(f"Unknown issuer {issuer_did}")
        _logger.warning(f"No key known for issuer {issuer_did}, accepting credential without signature verification")
        signature_verified = False
    else:
        result = vc.verify_jwt_verifiable_credential(token, issuer_key.public_jwk, now)
        if not result.is_valid:
            raise CredentialRejectedError(result.error)
        payload = result.payload
        signature_verified = True

    credential = payload["vc"]
    credential_types = credential.get("type") or []
    return CheckedCredential(
        format=CredentialFormat.jwt_vc,
        raw=token,
        payload=payload,
        claims=credential["credentialSubject"],
        doctype=credential_types[1] if len(credential_types) > 1 else config.credential_type,
        issuer=issuer_did,
        subject=payload.get("sub"),
        signature_verified=signature_verified,
        decoded={
            "issuer": issuer_did,
            "subject": payload.get("sub"),
            "issued_at": _iso(payload.get("iat")),
            "expires_at": _iso(payload.get("exp")),
            "credential_subject": credential["credentialSubject"],
            "credential_type": credential_types,
            "credential_schema": credential.get("credentialSchema"),
        },
    )


def decode_mdoc_credential(config: conf.VerifierConfig, token: str, nonce: str) -> CheckedCredential:
    """
    Structural check of an mdoc device response and decoding of its namespaces.

    issuerAuth and deviceAuth are not verified.
    """
    if not isinstance(token, str) or not token:
        raise CredentialRejectedError("Empty mdoc credential")
    if not nonce:
        raise CredentialRejectedError("Missing nonce for mdoc verification")
    try:
        device_response = mdoc.decode_digital_credential(token)
        namespaces = mdoc.namespace_claims(mdoc.decode_all_namespaces(device_response))
    except mdoc.MdocDecodingError as e:
        raise CredentialRejectedError(str(e)) from e

    doc_types = [doc_type for doc_type in mdoc.document_types(device_response) if doc_type]
    return CheckedCredential(
        format=CredentialFormat.mso_mdoc,
        raw=token,
        payload=namespaces,
        claims=namespaces,
        doctype=doc_types[0] if doc_types else config.credential_type,
        decoded={
            "version": mdoc.to_jsonable(device_response.get("version")),
            "status": mdoc.to_jsonable(device_response.get("status")),
            "doc_types": doc_types,
            "namespaces": namespaces,
        },
    )


def build_credential_data(checked: CheckedCredential, credential_query: dif.DCQLCredentialQuery | None) -> dict:
    """Display data of a verified credential, including the values of the requested claims"""
    return {
        "credential_id": credential_query.id if credential_query else None,
        "extracted_at": datetime.datetime.now(tz=datetime.timezone.utc).isoformat(),
        "format": checked.format.value,
        "doctype": checked.doctype,
        "raw_credential": checked.raw,
        "decoded_credential": checked.decoded,
        "requested_claims": dif.extract_requested_claims(credential_query, checked.payload) if credential_query else {},
    }


def _verification_details(checked: CheckedCredential, credential_id: str) -> dict:
    return {
        "protocol": "openid4vp",
        "format": checked.format.value,
        "docType": checked.doctype,
        "credential_type": checked.doctype,
        "verification_method": "jwt_validation" if checked.format == CredentialFormat.jwt_vc else "mdoc_structure",
        "signature_verified": checked.signature_verified,
        "challenge_verified": True,
        "processed_credential_id": credential_id,
        "token_length": len(checked.raw),
        "issuer": checked.issuer,
        "subject": checked.subject,
    }


def _log(message: str, status: VerifierOperationsLogEntry.Status, step: VerifierOperationsLogEntry.Step, session_id: uuid.UUID, **kwargs) -> None:
    _logger.info(
        VerifierOperationsLogEntry(
            message=message,
            status=status,
            step=step,
            session_id=session_id,
            **kwargs,
        )
    )


def _fail_session(session: sa_orm.Session, session_id: uuid.UUID, error: str, credential_format: CredentialFormat = None) -> None:
    store.finish_verification_session(session, session_id, store.VerificationStatus.FAILED, {"error": error})
    session.commit()
    _log(
        "Verification failed.",
        VerifierOperationsLogEntry.Status.error,
        VerifierOperationsLogEntry.Step.verification_evaluation,
        session_id,
        credential_format=credential_format.value if credential_format else None,
        error_code="invalid_credential",
    )


def _complete_session(
    session: sa_orm.Session,
    verification_session: store.VerificationSession,
    challenge: store.Challenge,
    checked: CheckedCredential,
    presentation_data: dict,
) -> store.VerifiedCredential:
    """
    Consumes the challenge, stores the verified credential and finishes the session.
    Raises InvalidChallengeError if a concurrent request consumed the challenge first.
    """
    if not store.try_consume_challenge(session, challenge.id):
        session.rollback()
        raise err.InvalidChallengeError()
    verified_credential = store.create_verified_credential(
        session,
        credential_id=uuid.uuid4(),
        session_id=verification_session.id,
        credential_type=checked.doctype,
        issuer=checked.issuer,
        subject=checked.subject,
        claims=checked.claims,
    )
    if not store.finish_verification_session(session, verification_session.id, store.VerificationStatus.VERIFIED, presentation_data):
        session.rollback()
        raise err.PresentationVerificationError("Verification session is already finished")
    session.commit()
    _log(
        "Verification successful.",
        VerifierOperationsLogEntry.Status.success,
        VerifierOperationsLogEntry.Step.verification_evaluation,
        verification_session.id,
        credential_format=checked.format.value,
    )
    return verified_credential


##################################
# Digital Credentials API flow   #
##################################


def presented_credential(vp_token: object, credential_id: str) -> str:
    """
    The presentation for `credential_id` out of the vp_token map.
    Browsers may hand over the map serialized and the presentation as a one element list.
    """
    if isinstance(vp_token, str):
        try:
            vp_token = json.loads(vp_token)
        except ValueError:
            raise err.PresentationVerificationError("vp_token must map the credential query ids to the presentations")
    if not isinstance(vp_token, dict):
        raise err.PresentationVerificationError("vp_token must map the credential query ids to the presentations")
    if credential_id not in vp_token:
        available = ", ".join(str(key) for key in vp_token.keys()) or "none"
        raise err.PresentationVerificationError(f"Expected credential '{credential_id}' not found in vp_token. Available credential ids: {available}")
    presentation = vp_token[credential_id]
    if isinstance(presentation, list):
        presentation = presentation[0] if presentation else None
    return presentation


def finish_verification(session: sa_orm.Session, config: conf.VerifierConfig, request: models.VerificationFinishRequest) -> models.VerificationFinishResponse:
    """
    Verifies the presentation answering a `/verify/start` request.

    The challenge named by `state.nonce` is checked before the credential is inspected and
    consumed only once the credential passed.
    """
    vp_token = request.get_vp_token()
    if vp_token is None:
        raise err.PresentationVerificationError("No vp_token provided")
    presentation = presented_credential(vp_token, config.expected_credential_id)

    state = request.state or models.VerificationState()
    if not state.nonce:
        raise err.InvalidChallengeError()
    challenge = store.get_valid_challenge(session, state.nonce)
    if challenge is None:
        raise err.InvalidChallengeError()

    verification_session = store.get_verification_session_by_challenge_id(session, challenge.id)
    if verification_session is None:
        verification_session = store.create_verification_session(session, uuid.uuid4(), challenge.id)
    elif verification_session.status != store.VerificationStatus.PENDING.value:
        raise err.PresentationVerificationError("Verification session is already finished")

    session_id = verification_session.id
    credential_format = state.format or request.format or CredentialFormat.jwt_vc
    try:
        if credential_format == CredentialFormat.mso_mdoc:
            checked = decode_mdoc_credential(config, presentation, state.nonce)
        else:
            checked = verify_jwt_credential(session, config, presentation)
    except CredentialRejectedError as e:
        _fail_session(session, session_id, str(e), credential_format)
        raise err.PresentationVerificationError(f"Credential verification failed: {e}")

    credential_query = pr.build_dcql_query(config, credential_format).credentials[0]
    credential_data = build_credential_data(checked, credential_query)
    details = _verification_details(checked, config.expected_credential_id)
    _complete_session(
        session,
        verification_session,
        challenge,
        checked,
        {"credential": checked.raw, "verificationDetails": details, "credentialData": credential_data},
    )
    message = "JWT credential verified successfully!" if credential_format == CredentialFormat.jwt_vc else "mdoc credential decoded successfully!"
    return models.VerificationFinishResponse(
        verified=True,
        message=message,
        session_id=session_id,
        details=details,
        credential_data=credential_data,
    )


###############
# SIOPv2 flow #
###############


def _verify_presentation_signature(presentation: str, holder: str) -> None:
    """Presentations of did:jwk holders are checked against the key in the identifier"""
    if not jwt_utils.is_did_jwk_identifier(holder):
        return
    try:
        token = jws.JWS()
        token.deserialize(presentation)
        token.verify(jwt_utils.get_jwk_from_did_jwk(holder).as_crypto_jwk())
    except Exception as e:  # jwcrypto can throw a great range of errors...
        raise CredentialRejectedError(f"Presentation signature verification failed: {e!r}") from e


def credential_from_presentation(vp_token: str, nonce: str) -> str:
    """
    The first credential of the VP JWT. A VP carrying a nonce must carry the one of the request.
    A bare JWT VC is accepted as its own presentation.
    """
    try:
        _, payload = jwt_utils.decode_unverified(vp_token)
    except jwt_utils.MalformedJWTError as e:
        raise CredentialRejectedError(str(e)) from e

    presentation = payload.get("vp")
    if presentation is None and "vc" in payload:
        return vp_token
    if not isinstance(presentation, dict):
        raise CredentialRejectedError("No verifiable presentation found in vp_token")
    if "nonce" in payload and payload["nonce"] != nonce:
        raise CredentialRejectedError("Presentation nonce does not match the request")
    if payload.get("iss"):
        _verify_presentation_signature(vp_token, payload["iss"])

    credentials = presentation.get("verifiableCredential")
    if isinstance(credentials, list):
        credentials = credentials[0] if credentials else None
    if not isinstance(credentials, str) or not credentials:
        raise CredentialRejectedError("No verifiable credential found in the presentation")
    return credentials


def process_siop_callback(
    session: sa_orm.Session,
    config: conf.VerifierConfig,
    state: str | None,
    vp_token: str | None,
    error: str | None = None,
    error_description: str | None = None,
) -> str:
    """
    Handles the form post of the wallet. Returns the url of the result page the wallet is redirected to,
    carrying either `success` & `sessionId` or `error`.
    """
    if not state:
        return config.result_url(error="Missing state parameter")
    try:
        session_id = uuid.UUID(state)
    except ValueError:
        return config.result_url(error="Invalid verification session")
    verification_session = store.get_verification_session(session, session_id)
    if verification_session is None or verification_session.status != store.VerificationStatus.PENDING.value:
        return config.result_url(error="Invalid verification session")

    if error:
        _fail_session(session, session_id, error_description or error)
        return config.result_url(error=error_description or error)
    if not vp_token:
        return config.result_url(error="Missing verifiable presentation token")

    challenge = store.get_valid_challenge_by_id(session, verification_session.challenge_id)
    if challenge is None:
        _fail_session(session, session_id, "Invalid or expired challenge")
        return config.result_url(error="Invalid or expired challenge")

    input_descriptor = pr.build_pid_presentation_definition().input_descriptors[0]
    try:
        credential = credential_from_presentation(vp_token, str(challenge.id))
        checked = verify_jwt_credential(session, config, credential)
        validated_attributes = dif.get_validated_attributes(input_descriptor, checked.payload)
    except dif.MissingAttributeException as e:
        _fail_session(session, session_id, f"Missing required attribute {e.attribute}", CredentialFormat.jwt_vc)
        return config.result_url(error="Credential processing failed")
    except (CredentialRejectedError, dif.FilterMismatchException) as e:
        _fail_session(session, session_id, str(e), CredentialFormat.jwt_vc)
        return config.result_url(error="Credential processing failed")

    details = _verification_details(checked, input_descriptor.id)
    details["protocol"] = "siopv2"
    details["validated_attributes"] = validated_attributes
    credential_data = build_credential_data(checked, pr.build_dcql_query(config, CredentialFormat.jwt_vc).credentials[0])
    try:
        _complete_session(
            session,
            verification_session,
            challenge,
            checked,
            {"credential": checked.raw, "verificationDetails": details, "credentialData": credential_data},
        )
    except err.PresentationVerificationError as e:
        return config.result_url(error=e.message)
    return config.result_url(success="true", sessionId=str(session_id))
