# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Endpoints of the verifier: Digital Credentials API flow (OpenID4VP with DCQL),
SIOPv2 flow with signed request objects & result lookups
"""

import datetime
import logging
import uuid
from typing import Annotated, NamedTuple, Optional

import fastapi
from fastapi import BackgroundTasks, Form, Response, status
from fastapi.responses import RedirectResponse
import sqlalchemy.orm as sa_orm

import common.db.database as db
import common.key_configuration as key
from common.parsing import encode_uri_component
from common.verifiable_credential import CredentialFormat

import verifier.config as conf
import verifier.exception as err
import verifier.models as models
import verifier.presentation_request as pr
import verifier.verification as verification
from verifier.db import verification as store
from verifier.logging import VerifierOperationsLogEntry

TAG = "OpenID4VP"

_logger = logging.getLogger(__name__)

router = fastapi.APIRouter(prefix="/verify", tags=[TAG])


def _iso(timestamp: float) -> str:
    return datetime.datetime.fromtimestamp(timestamp, tz=datetime.timezone.utc).isoformat()


def cleanup_expired_challenges(bind) -> None:
    """Runs after the response was sent, a failure only gets logged"""
    try:
        with sa_orm.Session(bind=bind) as cleanup_session:
            deleted = store.delete_expired_challenges(cleanup_session)
            cleanup_session.commit()
        _logger.debug(f"Deleted {deleted} expired challenges")
    except Exception:
        _logger.exception("Cleanup of expired challenges failed")


class StartedSession(NamedTuple):
    session_id: uuid.UUID
    challenge_id: uuid.UUID
    challenge: str
    expires_at: float


def _start_session(session: sa_orm.Session, ttl: int) -> StartedSession:
    """Creates and commits a challenge with a pending verification session referencing it"""
    started = StartedSession(uuid.uuid4(), uuid.uuid4(), str(uuid.uuid4()), db.now() + ttl)
    store.create_challenge(session, started.challenge_id, started.challenge, started.expires_at)
    store.create_verification_session(session, started.session_id, started.challenge_id)
    session.commit()
    return started


###########################
# Digital Credentials API #
###########################


@router.get("/start", response_model_exclude_none=True)
def start_verification(
    session: db.inject,
    config: conf.inject,
    background_tasks: BackgroundTasks,
    format: CredentialFormat = CredentialFormat.jwt_vc,
    legacy: bool = False,
) -> models.VerificationStartResponse:
    """
    Creates a challenge and a pending verification session.
    Returns the OpenID4VP request for the Digital Credentials API, or with `legacy` a presentation definition.
    """
    started = _start_session(session, config.challenge_ttl)
    background_tasks.add_task(cleanup_expired_challenges, session.get_bind())

    _logger.info(
        VerifierOperationsLogEntry(
            message="Verification started.",
            status=VerifierOperationsLogEntry.Status.success,
            step=VerifierOperationsLogEntry.Step.verification_request,
            session_id=started.session_id,
            credential_format=format.value,
        )
    )
    return models.VerificationStartResponse(
        challenge=started.challenge,
        session_id=started.session_id,
        request=None if legacy else models.PresentationRequest(nonce=started.challenge, dcql_query=pr.build_dcql_query(config, format)),
        presentation_definition=pr.build_legacy_presentation_definition(config) if legacy else None,
        state=models.VerificationState(
            credential_type=config.credential_type,
            nonce=started.challenge,
            challenge_id=str(started.challenge_id),
            format=format,
        ),
        expires_at=_iso(started.expires_at),
    )


@router.post(
    "/finish",
    responses={status.HTTP_400_BAD_REQUEST: {"description": "Presentation not verified, body is `{verified: false, message}`"}},
)
def finish_verification(
    request: models.VerificationFinishRequest,
    session: db.inject,
    config: conf.inject,
) -> models.VerificationFinishResponse:
    """Verifies the response of the wallet, the `state` is the one returned by `/verify/start`"""
    return verification.finish_verification(session, config, request)


##########
# SIOPv2 #
##########


def _authorization_url(config: conf.VerifierConfig, session_id: uuid.UUID) -> str:
    request_uri = config.endpoint(f"openid4vci/request/{session_id}")
    return (
        f"{config.endpoint('openid4vci/auth')}"
        f"?client_id={encode_uri_component(config.client_id)}"
        f"&response_uri={encode_uri_component(config.response_uri)}"
        f"&request_uri={encode_uri_component(request_uri)}"
    )


@router.post("/openid4vci/start")
def start_siop_verification(session: db.inject, config: conf.inject) -> models.SiopStartResponse:
    """Creates the session for a wallet on another device, the verification url is shown as QR code"""
    started = _start_session(session, config.siop_challenge_ttl)
    _logger.info(
        VerifierOperationsLogEntry(
            message="SIOPv2 verification started.",
            status=VerifierOperationsLogEntry.Status.success,
            step=VerifierOperationsLogEntry.Step.verification_request,
            session_id=started.session_id,
            credential_format=CredentialFormat.jwt_vc.value,
        )
    )
    return models.SiopStartResponse(
        session_id=started.session_id,
        verification_url=_authorization_url(config, started.session_id),
        request_uri=config.endpoint(f"openid4vci/request/{started.session_id}"),
        challenge=started.challenge,
        expires_at=_iso(started.expires_at),
    )


@router.get(
    "/openid4vci/request/{session_id}",
    response_class=Response,
    responses={
        status.HTTP_200_OK: {"content": {"text/plain": {}}, "description": "Signed request object"},
        status.HTTP_404_NOT_FOUND: {"model": err.OpenIdError},
    },
)
def get_request_object(
    session_id: uuid.UUID,
    session: db.inject,
    config: conf.inject,
    verifier_key: key.inject_verifier_key,
) -> Response:
    """
    Signed SIOPv2 authorization request of the session, the nonce is the id of the challenge.
    """
    verification_session = store.get_verification_session(session, session_id)
    if verification_session is None:
        raise err.VerificationNotFoundError()
    request_object = pr.build_request_object(config, str(session_id), str(verification_session.challenge_id))
    return Response(content=pr.sign_request_object(request_object, verifier_key), media_type="text/plain")


@router.post("/openid4vci/callback", response_class=RedirectResponse, status_code=status.HTTP_303_SEE_OTHER)
def siop_callback(
    session: db.inject,
    config: conf.inject,
    state: Annotated[Optional[str], Form()] = None,
    vp_token: Annotated[Optional[str], Form()] = None,
    id_token: Annotated[Optional[str], Form()] = None,
    error: Annotated[Optional[str], Form()] = None,
    error_description: Annotated[Optional[str], Form()] = None,
) -> RedirectResponse:
    """
    Direct post of the wallet. Always redirects to the result page, failures are reported in the `error` parameter.
    """
    result_url = verification.process_siop_callback(session, config, state, vp_token, error=error, error_description=error_description)
    return RedirectResponse(result_url, status_code=status.HTTP_303_SEE_OTHER)


@router.get(
    "/openid4vci/status/{session_id}",
    responses={status.HTTP_404_NOT_FOUND: {"model": err.OpenIdError}},
)
def get_verification_status(session_id: uuid.UUID, session: db.inject) -> models.VerificationStatusResponse:
    """Polled by the page showing the QR code"""
    verification_session = store.get_verification_session(session, session_id)
    if verification_session is None:
        raise err.VerificationNotFoundError()
    data = verification_session.presentation_data
    return models.VerificationStatusResponse(
        session_id=verification_session.id,
        status=verification_session.status,
        credential_data=data,
        error=data.get("error") if isinstance(data, dict) else None,
        created_at=verification_session.created_at,
        updated_at=verification_session.updated_at,
    )


@router.get("/openid4vci")
def get_verifier_metadata(config: conf.inject, verifier_key: key.inject_verifier_key) -> dict:
    """Client metadata of the verifier"""
    return {
        "issuer": config.client_id,
        "client_id": config.client_id,
        "client_name": config.client_name,
        "jwks_uri": config.jwks_uri,
        "authorization_endpoint": config.endpoint("openid4vci/auth"),
        "token_endpoint": config.response_uri,
        "response_types_supported": ["id_token"],
        "response_modes_supported": ["form_post"],
        "subject_types_supported": ["public"],
        "id_token_signing_alg_values_supported": [verifier_key.signing_algorithm],
        "scopes_supported": ["openid"],
        "claims_supported": ["sub", "iss", "aud", "exp", "iat", "nonce", *pr.PID_SUBJECT_FIELDS],
        "grant_types_supported": ["authorization_code"],
        "vp_formats": pr.client_metadata(config)["vp_formats"],
        "jwks": verifier_key.jwks,
    }


@router.get(
    "/openid4vci/auth",
    responses={status.HTTP_400_BAD_REQUEST: {"model": err.OpenIdError}},
)
def get_wallet_invocation(
    config: conf.inject,
    session_id: Optional[uuid.UUID] = None,
    client_id: Optional[str] = None,
    response_uri: Optional[str] = None,
    request_uri: Optional[str] = None,
) -> dict:
    """
    Links opening a wallet with the authorization request, either of a `session_id` or of the given parameters.
    """
    if session_id is not None:
        client_id = client_id or config.client_id
        response_uri = response_uri or config.response_uri
        request_uri = request_uri or config.endpoint(f"openid4vci/request/{session_id}")
    if not (client_id and response_uri and request_uri):
        raise err.InvalidRequestError(additional_error_description="client_id, response_uri and request_uri are required")

    query = (
        f"client_id={encode_uri_component(client_id)}"
        f"&response_uri={encode_uri_component(response_uri)}"
        f"&request_uri={encode_uri_component(request_uri)}"
    )
    return {
        "clientId": client_id,
        "responseUri": response_uri,
        "requestUri": request_uri,
        "verificationUrl": f"{config.endpoint('openid4vci/auth')}?{query}",
        "walletLinks": {
            "openid4vci": f"openid4vp://?{query}",
            "haip": f"haip://?{query}",
        },
    }


@router.get("/openid4vci/jwks")
def get_verifier_jwks(verifier_key: key.inject_verifier_key) -> dict:
    return verifier_key.jwks


########################
# Verified Credentials #
########################


@router.get(
    "/credential/{session_id}",
    responses={status.HTTP_404_NOT_FOUND: {"model": err.OpenIdError}},
)
def get_verified_credentials_of_session(session_id: uuid.UUID, session: db.inject) -> dict:
    verified_credentials = store.get_verified_credentials_by_session(session, session_id)
    if not verified_credentials:
        raise err.VerifiedCredentialNotFoundError()
    return {
        "sessionId": str(session_id),
        "verifiedCredentials": [verified_credential.to_dict() for verified_credential in verified_credentials],
        "count": len(verified_credentials),
    }


@router.get(
    "/credential/id/{credential_id}",
    responses={status.HTTP_404_NOT_FOUND: {"model": err.OpenIdError}},
)
def get_verified_credential(credential_id: uuid.UUID, session: db.inject) -> dict:
    verified_credential = store.get_verified_credential(session, credential_id)
    if verified_credential is None:
        raise err.VerifiedCredentialNotFoundError()
    return {"verifiedCredential": verified_credential.to_dict()}
