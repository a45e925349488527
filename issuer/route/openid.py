# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Endpoints relating to the OpenID4VCI & OAuth 2.0 issuance flow
"""

import logging
from typing import Annotated, Any, Optional

import fastapi
from fastapi import status, Form, Header
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

import common.db.database as db
import common.model.ietf as ietf
import common.model.openid4vc as cr

import issuer.config as conf
import issuer.issuance as issuance
import issuer.exception.credential_error_responses as ex

TAG = "OpenID4VCI"

_logger = logging.getLogger(__name__)

router = fastapi.APIRouter(prefix="/issue", tags=[TAG])


class AuthorizationRequest(BaseModel):
    user_data: Optional[dict[str, Any]] = None
    """Claims of the holder, given_name, family_name & birth_date are mandatory"""


class CredentialOfferResponse(BaseModel):
    success: bool
    credential_offer: dict
    credential_offer_uri: str
    pre_authorized_code: str
    tx_code: str
    expires_in: int
    qr_code_data: str


#################
# Authorization #
#################


@router.post(
    "/authorize",
    responses={status.HTTP_400_BAD_REQUEST: {"model": ex.OpenIdError}},
)
def create_credential_offer(
    authorization_request: AuthorizationRequest,
    session: db.inject,
    config: conf.inject,
) -> CredentialOfferResponse:
    """
    Creates a pre-authorized credential offer for the holder data.

    The transaction code is returned to be shown to the holder, the wallet has to send it back as `user_pin`.
    """
    return issuance.create_pre_authorized_offer(session, config, authorization_request.user_data)


@router.get(
    "/authorize",
    status_code=status.HTTP_302_FOUND,
    responses={status.HTTP_400_BAD_REQUEST: {"model": ex.OpenIdError}},
)
def authorize(
    session: db.inject,
    config: conf.inject,
    response_type: str = None,
    client_id: str = None,
    redirect_uri: str = None,
    scope: str = None,
    state: str = None,
    code_challenge: str = None,
    code_challenge_method: str = None,
):
    """
    https://www.rfc-editor.org/rfc/rfc6749#section-4.1.1
    Authorization is granted without user interaction, the client is redirected with the code.
    """
    redirect_url = issuance.create_authorization_code_redirect(
        session,
        config,
        response_type=response_type,
        client_id=client_id,
        redirect_uri=redirect_uri,
        scope=scope,
        state=state,
        code_challenge=code_challenge,
        code_challenge_method=code_challenge_method,
    )
    return RedirectResponse(redirect_url, status_code=status.HTTP_302_FOUND)


#############
# OAuth 2.0 #
#############


@router.post(
    "/token",
    response_model_exclude_none=True,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ex.OpenIdError},
    },
)
def issue_access_token(
    session: db.inject,
    config: conf.inject,
    grant_type: Annotated[str | None, Form()] = None,
    pre_authorized_code: Annotated[str | None, Form(alias="pre-authorized_code")] = None,
    code: Annotated[str | None, Form()] = None,
    user_pin: Annotated[str | None, Form()] = None,
    tx_code: Annotated[str | None, Form()] = None,
    client_id: Annotated[str | None, Form()] = None,
    redirect_uri: Annotated[str | None, Form()] = None,
    code_verifier: Annotated[str | None, Form()] = None,
) -> ietf.OpenID4VCToken:
    """
    https://www.rfc-editor.org/rfc/rfc6749#section-4.1.3
    https://openid.net/specs/openid-4-verifiable-credential-issuance-1_0.html#name-token-request

    Data is transmitted form encoded. The pre-authorized flow sends the transaction code as `user_pin` (or `tx_code`).
    """
    return issuance.exchange_token(
        session,
        config,
        grant_type=grant_type,
        code=pre_authorized_code or code,
        user_pin=user_pin if user_pin is not None else tx_code,
        client_id=client_id,
        redirect_uri=redirect_uri,
        code_verifier=code_verifier,
    )


##############
# OpenID4VCI #
##############


@router.post(
    "/credential",
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ex.OpenIdError | ex.OpenIdErrorNonce},
        status.HTTP_401_UNAUTHORIZED: {"model": ex.OpenIdError},
    },
)
def credential_issue(
    credential_request: cr.CredentialRequest,
    session: db.inject,
    config: conf.inject,
    authorization: Annotated[str | None, Header()] = None,
) -> cr.CredentialResponse:
    """
    Issuing Credential using the access token to find the holder data
    https://openid.net/specs/openid-4-verifiable-credential-issuance-1_0.html#name-credential-response

    Proof must be shaped as https://openid.net/specs/openid-4-verifiable-credential-issuance-1_0.html#name-jwt-proof-type
    """
    return issuance.issue_credential(session, config, authorization, credential_request)
