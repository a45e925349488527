# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import binascii
import json

from common import parsing as prs
from common.model import ietf


class MalformedJWTError(ValueError):
    """Token is not a compact serialized JWT"""


def split_jwt(jwt: str) -> list[str]:
    """
    Splits a JWT into its head at index 0, body at index 1, signature at index 2.
    """
    return jwt.split(".")


def decode_unverified(jwt: str) -> tuple[dict, dict]:
    """
    Decodes header and payload of a compact JWT without checking the signature.

    Raises MalformedJWTError if the token has not exactly 3 segments or
    header / payload are no base64url encoded JSON objects.
    """
    parts = split_jwt(jwt)
    if len(parts) != 3:
        raise MalformedJWTError("Invalid JWT format")
    try:
        header = prs.object_from_url_safe(parts[0])
        payload = prs.object_from_url_safe(parts[1])
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedJWTError(f"JWT segments are not base64url encoded JSON: {e}") from e
    if not isinstance(header, dict) or not isinstance(payload, dict):
        raise MalformedJWTError("JWT header and payload must be JSON objects")
    return header, payload


def get_jwk_from_did_jwk(did_jwk: str) -> ietf.JSONWebKey:
    """
    Returns the JWK from a DID JWK. Key fragments (#0) are ignored.
    """
    encoded = did_jwk.removeprefix("did:jwk:").split("#")[0]
    return ietf.JSONWebKey(**prs.object_from_url_safe(encoded))


def is_did_identifier(identifier: str) -> bool:
    """
    Checks if the identifier is a valid DID identifier.
    """
    return identifier.startswith("did:")


def is_did_jwk_identifier(identifier: str) -> bool:
    """
    Checks if the identifier is a did:jwk identifier.
    """
    return identifier.startswith("did:jwk:")
