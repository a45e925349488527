# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Discovery documents: OpenID configuration, issuer metadata, DID documents & credential schema
"""

import json
import logging

import fastapi
from fastapi import status, HTTPException
from fastapi.responses import JSONResponse

import common.db.database as db
import common.key_configuration as key
import common.model.openid as oid
import common.model.openid4vc as cr
from common.db.model import issuer_key as key_store

import issuer.config as conf
import issuer.metadata as metadata

TAG = "Metadata"

_logger = logging.getLogger(__name__)

router = fastapi.APIRouter(tags=[TAG])

NO_CACHE_HEADERS = {"Cache-Control": "no-cache, no-store, must-revalidate"}


@router.get("/.well-known/openid-configuration", response_model_exclude_none=True)
def get_openid_configuration(config: conf.inject, response: fastapi.Response) -> oid.OpenIdConfiguration:
    """
    Authorization server metadata, wallets look up the token & authorization endpoints here.
    """
    response.headers.update(NO_CACHE_HEADERS)
    return metadata.get_openid_configuration(config)


@router.get("/.well-known/openid-credential-issuer", response_model_exclude_none=True)
def get_issuer_metadata(config: conf.inject, response: fastapi.Response) -> cr.OpenIDCredentialIssuerData:
    """
    Issuer Metadata; What credentials can be received & where
    https://openid.net/specs/openid-4-verifiable-credential-issuance-1_0.html#name-credential-issuer-metadata
    """
    response.headers.update(NO_CACHE_HEADERS)
    return metadata.get_credential_issuer_metadata(config)


@router.get(
    "/.well-known/did.json",
    responses={status.HTTP_404_NOT_FOUND: {"model": None}},
)
def get_did_document(
    config: conf.inject,
    session: db.inject,
    verifier_key: key.inject_verifier_key,
    service: str = None,
) -> JSONResponse:
    """
    did:web document of the issuer, holding the public key of the active issuer key.
    With `service=verifier` the document of the verifier DID is returned.
    """
    if service == "verifier":
        return JSONResponse(metadata.verifier_did_document(config, verifier_key), media_type="application/did+json")

    issuer_key = key_store.get_active_issuer_key(session)
    if issuer_key is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active issuer key found")
    document = metadata.issuer_did_document(config, issuer_key.key_id, json.loads(issuer_key.public_jwk))
    return JSONResponse(document, media_type="application/did+json", headers=NO_CACHE_HEADERS)


@router.get("/schemas/pid")
def get_pid_schema(config: conf.inject) -> JSONResponse:
    return JSONResponse(metadata.pid_credential_schema(config), media_type="application/schema+json")
