# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Proof of possession sent by the wallet with the credential request
https://openid.net/specs/openid-4-verifiable-credential-issuance-1_0.html#name-proof-types
"""

import json
import logging
from dataclasses import dataclass

from jwcrypto import jws

from common import jwt_utils, parsing
from common.model import ietf
from common.model import openid4vc as cr

_logger = logging.getLogger(__name__)


class ProofError(ValueError):
    """The proof can not be used to bind the credential"""


@dataclass
class HolderBinding:
    subject_id: str | None
    """Identifier of the holder the credential is bound to, None if the proof does not name one"""
    nonce: str | None
    key_verified: bool
    """The proof signature was checked with the holder key"""


def _holder_key(header: dict) -> tuple[ietf.JSONWebKey, str] | None:
    """Holder key and the did:jwk naming it, from the `jwk` or a did:jwk `kid` header"""
    if isinstance(header.get("jwk"), dict):
        holder_jwk = ietf.JSONWebKey.model_validate(header["jwk"])
        public_parameters = holder_jwk.as_crypto_jwk().export_public(as_dict=True)
        did = "did:jwk:" + parsing.object_to_url_safe(public_parameters)
        return holder_jwk, did
    kid = header.get("kid")
    if isinstance(kid, str) and jwt_utils.is_did_jwk_identifier(kid):
        return jwt_utils.get_jwk_from_did_jwk(kid), kid.split("#")[0]
    return None


def process_credential_request_proof(proof: cr.CredentialProof) -> HolderBinding:
    """
    Reads the holder binding and the c_nonce from a jwt proof.

    If the holder key is embedded (`jwk` header or did:jwk `kid`) the signature is verified
    and the holder is identified by its did:jwk. Otherwise the `kid` or `iss` is taken as is.

    Raises ProofError for proofs which are not usable.
    """
    if proof.proof_type.lower() != "jwt":
        raise ProofError("Only supporting jwt proofs")
    if not proof.jwt:
        raise ProofError("Proof of type jwt must contain the jwt")
    try:
        header, payload = jwt_utils.decode_unverified(proof.jwt)
    except jwt_utils.MalformedJWTError as e:
        raise ProofError(str(e)) from e

    try:
        holder_key = _holder_key(header)
    except Exception as e:  # jwcrypto can throw a great range of errors...
        raise ProofError(f"Holder key in proof is invalid - {e!r}") from e

    if holder_key is None:
        subject_id = header.get("kid") or payload.get("iss")
        if subject_id is not None and not isinstance(subject_id, str):
            raise ProofError("Holder identifier (kid or iss) of the proof must be a string")
        _logger.warning("Proof does not contain a holder key, binding credential without verifying the proof signature")
        return HolderBinding(subject_id=subject_id, nonce=payload.get("nonce"), key_verified=False)

    holder_jwk, did = holder_key
    try:
        token = jws.JWS()
        token.deserialize(proof.jwt)
        token.verify(holder_jwk.as_crypto_jwk())
        claims = json.loads(token.payload)
    except Exception as e:  # jwcrypto can throw a great range of errors...
        raise ProofError(f"JWT Decoding failed - {e!r}") from e
    return HolderBinding(subject_id=did, nonce=claims.get("nonce"), key_verified=True)
