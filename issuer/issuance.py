# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Issuance of PID credentials:
authorization (credential offer) -> token (access token & c_nonce) -> credential
"""

import uuid
import secrets
import logging
import datetime
from urllib.parse import urlencode, urlparse, urlunparse, parse_qsl

import sqlalchemy.orm as sa_orm

import common.db.database as db
import common.key_configuration as key
import common.verifiable_credential as vc
from common import parsing
from common.model import ietf
from common.model import openid4vc as cr

import issuer.config as conf
import issuer.proof as proof
import issuer.db.authorization as db_auth
import issuer.db.issuance as db_issuance
import issuer.exception.credential_error_responses as ex
from issuer.logging import IssuerOperationsLogEntry

_logger = logging.getLogger(__name__)

MANDATORY_USER_DATA = ("given_name", "family_name", "birth_date")


def _generate_tx_code() -> str:
    """4 digit transaction code, 1000 - 9999"""
    return str(secrets.randbelow(9000) + 1000)


def _validate_user_data(user_data: dict | None) -> dict:
    if not isinstance(user_data, dict) or not all(user_data.get(claim) for claim in MANDATORY_USER_DATA):
        raise ex.MissingUserDataException("Required user data (given_name, family_name, birth_date) is missing")
    return user_data


########################
# Authorization        #
########################


def build_credential_offer(config: conf.IssuerConfig, pre_authorized_code: str, tx_code: str) -> cr.CredentialOfferParameters:
    return cr.CredentialOfferParameters(
        credential_issuer=config.credential_issuer,
        credential_configuration_ids=[config.credential_type],
        grants=cr.CredentialOfferGrant(
            pre_authorized_code=cr.OfferPreauthorizedGrantType(
                pre_authorized_code=pre_authorized_code,
                user_pin_required=True,
                tx_code=tx_code,
            )
        ),
        supported_formats={vc.CredentialFormat.jwt_vc.value: {"alg": [key.SIGNING_ALGORITHM]}},
    )


def credential_offer_uri(offer: cr.CredentialOfferParameters) -> str:
    return f"{cr.CREDENTIAL_OFFER_SCHEME}?credential_offer={parsing.encode_uri_component(parsing.compact_json(offer.to_json_dict()))}"


def create_pre_authorized_offer(session: sa_orm.Session, config: conf.IssuerConfig, user_data: dict | None) -> dict:
    """
    Registers a pre-authorized code bound to a transaction code and the holder data.
    Returns the credential offer for the wallet together with the transaction code for the holder.
    """
    user_data = _validate_user_data(user_data)
    code = str(uuid.uuid4())
    code_id = uuid.uuid4()
    expires_at = db.now() + config.pre_authorized_code_ttl
    tx_code = _generate_tx_code()

    db_auth.create_authorization_code(
        session,
        code_id=code_id,
        code=code,
        expires_at=expires_at,
        scope=config.credential_type,
    )
    db_auth.create_pending_offer(session, authorization_code_id=code_id, tx_code=tx_code, user_data=user_data, expires_at=expires_at)
    session.commit()

    offer = build_credential_offer(config, code, tx_code)
    offer_uri = credential_offer_uri(offer)
    _logger.info(
        IssuerOperationsLogEntry(
            message="Created pre-authorized credential offer.",
            status=IssuerOperationsLogEntry.Status.success,
            step=IssuerOperationsLogEntry.Step.issuance_authorization,
            session_id=code_id,
        )
    )
    return {
        "success": True,
        "credential_offer": offer.to_json_dict(),
        "credential_offer_uri": offer_uri,
        "pre_authorized_code": code,
        "tx_code": tx_code,
        "expires_in": config.pre_authorized_code_ttl,
        "qr_code_data": offer_uri,
    }


def create_authorization_code_redirect(
    session: sa_orm.Session,
    config: conf.IssuerConfig,
    response_type: str | None,
    client_id: str | None,
    redirect_uri: str | None,
    scope: str | None = None,
    state: str | None = None,
    code_challenge: str | None = None,
    code_challenge_method: str | None = None,
) -> str:
    """
    Authorization endpoint of the authorization code flow. Approves every request
    and returns the redirect uri carrying the code (and state).
    """
    if response_type != "code":
        raise ex.UnsupportedResponseTypeException()
    if not client_id or not redirect_uri:
        raise ex.InvalidRequestException("client_id and redirect_uri are required")
    if code_challenge and (code_challenge_method or db_auth.CodeChallengeMethod.S256.value) != db_auth.CodeChallengeMethod.S256.value:
        raise ex.InvalidRequestException("Only code_challenge_method S256 is supported")

    code = str(uuid.uuid4())
    code_id = uuid.uuid4()
    db_auth.create_authorization_code(
        session,
        code_id=code_id,
        code=code,
        expires_at=db.now() + config.authorization_code_ttl,
        client_id=client_id,
        scope=scope or config.credential_type,
        code_challenge=code_challenge,
        code_challenge_method=db_auth.CodeChallengeMethod.S256.value if code_challenge else None,
        redirect_uri=redirect_uri,
    )
    session.commit()
    _logger.info(
        IssuerOperationsLogEntry(
            message="Issued authorization code.",
            status=IssuerOperationsLogEntry.Status.success,
            step=IssuerOperationsLogEntry.Step.issuance_authorization,
            session_id=code_id,
        )
    )

    parsed = urlparse(redirect_uri)
    query = parse_qsl(parsed.query)
    query.append(("code", code))
    if state:
        query.append(("state", state))
    return urlunparse(parsed._replace(query=urlencode(query)))


#########
# Token #
#########


def _check_authorization_code_grant(
    authorization_code: db_auth.AuthorizationCode,
    client_id: str | None,
    redirect_uri: str | None,
    code_verifier: str | None,
) -> None:
    if authorization_code.client_id is None:
        # Pre-authorized codes can only be redeemed with the pre-authorized grant
        raise ex.InvalidGrantException()
    if authorization_code.client_id != client_id:
        raise ex.InvalidClientException("Invalid client ID")
    if authorization_code.redirect_uri != redirect_uri:
        raise ex.InvalidRequestException("Invalid redirect URI")
    if authorization_code.code_challenge:
        if not code_verifier:
            raise ex.InvalidRequestException("Code verifier is required for PKCE")
        if parsing.s256(code_verifier) != authorization_code.code_challenge:
            raise ex.InvalidGrantException("Code verifier does not match the code challenge")


def exchange_token(
    session: sa_orm.Session,
    config: conf.IssuerConfig,
    grant_type: str | None,
    code: str | None,
    user_pin: str | None = None,
    client_id: str | None = None,
    redirect_uri: str | None = None,
    code_verifier: str | None = None,
) -> ietf.OpenID4VCToken:
    """
    Redeems an authorization code (pre-authorized or standard) for an access token.
    The code is consumed exactly once, a concurrent second redemption fails with invalid_grant.
    """
    try:
        if grant_type not in (cr.PRE_AUTHORIZED_CODE_GRANT, cr.AUTHORIZATION_CODE_GRANT):
            raise ex.UnsupportedGrantTypeException("Unsupported grant type")
        if not code:
            raise ex.InvalidRequestException("Authorization code is required")

        authorization_code = db_auth.get_valid_authorization_code(session, code)
        if authorization_code is None:
            raise ex.InvalidGrantException("Invalid or expired authorization code")

        user_data = None
        if grant_type == cr.PRE_AUTHORIZED_CODE_GRANT:
            pending_offer = db_auth.get_pending_offer(session, authorization_code.id)
            if pending_offer is None:
                raise ex.InvalidGrantException("Invalid or expired authorization code")
            if user_pin != pending_offer.tx_code:
                raise ex.InvalidGrantException("Invalid transaction code (user_pin)")
            user_data = pending_offer.user_data
        else:
            _check_authorization_code_grant(authorization_code, client_id, redirect_uri, code_verifier)

        if not db_auth.try_consume_authorization_code(session, code):
            session.rollback()
            raise ex.InvalidGrantException("Invalid or expired authorization code")
    except ex.OpenIdIssuanceException as e:
        _logger.info(
            IssuerOperationsLogEntry(
                message="Token request rejected.",
                status=IssuerOperationsLogEntry.Status.error,
                step=IssuerOperationsLogEntry.Step.issuance_token,
                error_code=e.error,
            )
        )
        raise

    db_auth.delete_pending_offer(session, authorization_code.id)
    now = db.now()
    issuance_session = db_issuance.create_issuance_session(
        session,
        session_id=uuid.uuid4(),
        authorization_code_id=authorization_code.id,
        access_token=str(uuid.uuid4()),
        access_token_expires_at=now + config.access_token_ttl,
        c_nonce=str(uuid.uuid4()),
        c_nonce_expires_at=now + config.c_nonce_ttl,
        user_data=user_data,
    )
    session.commit()

    _logger.info(
        IssuerOperationsLogEntry(
            message="Issued access token.",
            status=IssuerOperationsLogEntry.Status.success,
            step=IssuerOperationsLogEntry.Step.issuance_token,
            session_id=issuance_session.id,
        )
    )
    return ietf.OpenID4VCToken(
        access_token=issuance_session.access_token,
        token_type="Bearer",
        expires_in=config.access_token_ttl,
        refresh_token=str(uuid.uuid4()) if grant_type == cr.AUTHORIZATION_CODE_GRANT else None,
        c_nonce=issuance_session.c_nonce,
        c_nonce_expires_in=config.c_nonce_ttl,
    )


##############
# Credential #
##############


def extract_bearer_token(authorization_header: str | None) -> str:
    if not authorization_header or not authorization_header.startswith("Bearer "):
        raise ex.InvalidTokenException("Bearer token required")
    return authorization_header.removeprefix("Bearer ").strip()


def build_claims(config: conf.IssuerConfig, user_data: dict, today: datetime.date = None) -> vc.PIDClaims:
    """Holder data completed with the default values of the claims the holder did not provide"""
    today = today or datetime.date.today()
    return vc.PIDClaims(
        given_name=user_data["given_name"],
        family_name=user_data["family_name"],
        birth_date=user_data["birth_date"],
        age_over_18=user_data.get("age_over_18", True),
        age_over_21=user_data.get("age_over_21", True),
        document_number=user_data.get("document_number") or config.default_document_number,
        expiry_date=user_data.get("expiry_date") or config.default_expiry_date,
        issue_date=today.isoformat(),
        issuing_country=user_data.get("issuing_country") or config.default_issuing_country,
        issuing_authority=user_data.get("issuing_authority") or config.default_issuing_authority,
    )


def _rotate_c_nonce(session: sa_orm.Session, config: conf.IssuerConfig, issuance_session: db_issuance.IssuanceSession, status: db_issuance.IssuanceStatus) -> str:
    c_nonce = str(uuid.uuid4())
    db_issuance.update_issuance_session(session, issuance_session, status, c_nonce=c_nonce, c_nonce_expires_at=db.now() + config.c_nonce_ttl)
    session.commit()
    return c_nonce


def _bind_holder(
    session: sa_orm.Session,
    config: conf.IssuerConfig,
    issuance_session: db_issuance.IssuanceSession,
    credential_request: cr.CredentialRequest,
    credential_id: uuid.UUID,
) -> str:
    """Subject id of the credential, checks the proof against the current c_nonce"""
    if credential_request.proof is None:
        return f"urn:uuid:{credential_id}"
    try:
        binding = proof.process_credential_request_proof(credential_request.proof)
        if not binding.nonce or not issuance_session.has_valid_c_nonce(binding.nonce):
            raise proof.ProofError("Proof must contain the current c_nonce as \"nonce\"")
    except proof.ProofError as e:
        status = db_issuance.IssuanceStatus(issuance_session.status)
        c_nonce = _rotate_c_nonce(session, config, issuance_session, status)
        raise ex.InvalidOrMissingProofException(str(e), c_nonce=c_nonce, c_nonce_expires_in=config.c_nonce_ttl)
    return binding.subject_id or f"urn:uuid:{credential_id}"


def issue_credential(
    session: sa_orm.Session,
    config: conf.IssuerConfig,
    authorization_header: str | None,
    credential_request: cr.CredentialRequest,
) -> cr.CredentialResponse:
    """
    Signs the PID credential for the holder data of the issuance session the access token belongs to.
    Every issuance rotates the c_nonce of the session.
    """
    try:
        access_token = extract_bearer_token(authorization_header)
        issuance_session = db_issuance.get_issuance_session_by_access_token(session, access_token)
        if issuance_session is None:
            raise ex.InvalidTokenException("Invalid access token")
        if credential_request.format != vc.CredentialFormat.jwt_vc.value:
            raise ex.UnsupportedCredentialFormatException("Only jwt_vc format is supported")
        credential_type = credential_request.credential_type or config.credential_type
        if credential_type != config.credential_type:
            raise ex.UnsupportedCredentialTypeException(f"Only {config.credential_type} credential type is supported")
        if not issuance_session.user_data:
            raise ex.MissingUserDataException("User data not found in issuance session")

        credential_id = uuid.uuid4()
        subject_id = _bind_holder(session, config, issuance_session, credential_request, credential_id)
    except ex.OpenIdIssuanceException as e:
        _logger.info(
            IssuerOperationsLogEntry(
                message="Credential request rejected.",
                status=IssuerOperationsLogEntry.Status.error,
                step=IssuerOperationsLogEntry.Step.issuance_delivery,
                error_code=e.error,
            )
        )
        raise

    claims = build_claims(config, issuance_session.user_data)
    key_configuration = key.get_or_create_active_issuer_key(session, config.issuer_key_id, config.issuer_did)
    issued_at = int(db.now())
    credential = vc.create_jwt_verifiable_credential(
        claims,
        key_configuration,
        subject_id,
        audience=config.credential_issuer,
        credential_type=credential_type,
        schema_url=config.schema_url,
        issued_at=issued_at,
        credential_id=credential_id,
    )
    db_issuance.create_issued_credential(
        session,
        session_id=issuance_session.id,
        credential_id=str(credential_id),
        credential_format=vc.CredentialFormat.jwt_vc.value,
        credential_type=credential_type,
        credential=credential,
        claims=claims.model_dump(mode="json"),
        issuer_key_id=key_configuration.key_id,
        subject_id=subject_id,
        issued_at=issued_at,
        expires_at=issued_at + vc.CREDENTIAL_VALIDITY_SECONDS,
    )
    c_nonce = _rotate_c_nonce(session, config, issuance_session, db_issuance.IssuanceStatus.CREDENTIAL_ISSUED)

    _logger.info(
        IssuerOperationsLogEntry(
            message="Successfully delivered credential.",
            status=IssuerOperationsLogEntry.Status.success,
            step=IssuerOperationsLogEntry.Step.issuance_delivery,
            session_id=issuance_session.id,
            credential_id=str(credential_id),
        )
    )
    return cr.CredentialResponse(
        format=vc.CredentialFormat.jwt_vc.value,
        credential=credential,
        c_nonce=c_nonce,
        c_nonce_expires_in=config.c_nonce_ttl,
    )
