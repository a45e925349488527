# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import base64
import hashlib
import json
import re
from urllib.parse import quote


def object_to_url_safe(data: dict | str | list) -> str:
    """Convert the object to an url safe base64 encoded JSON string without padding."""
    return remove_padding(base64.urlsafe_b64encode(json.dumps(data).encode()).decode())


def object_from_url_safe(data: str) -> dict | str | list:
    """Load an JSON object from an url safe base64 encoded string. Adds padding as needed."""
    return json.loads(bytes_from_url_safe(data))


def bytes_from_url_safe(data: str) -> bytes:
    """Decode url safe base64, with or without padding.

    Throws binascii.Error if the data is not valid base64.
    """
    return base64.urlsafe_b64decode(add_padding(data))


def bytes_to_url_safe(data: bytes) -> str:
    return remove_padding(base64.urlsafe_b64encode(data).decode())


def s256(value: str) -> str:
    """PKCE S256 transformation, BASE64URL(SHA256(ASCII(value)))"""
    return bytes_to_url_safe(hashlib.sha256(value.encode("ascii")).digest())


def remove_padding(base64_encoded: str) -> str:
    """Remove padding form b64 encoded string"""
    return base64_encoded.rstrip('=')


def add_padding(base64_encoded: str) -> str:
    """Add padding (=) for b64 encoded string, so it can be decoded"""
    return f'{base64_encoded}==='


def encode_uri_component(data: str) -> str:
    """Percent encode everything but the unreserved characters, like a browsers encodeURIComponent"""
    return quote(data, safe="-_.!~*'()")


def compact_json(data: dict | list) -> str:
    return json.dumps(data, separators=(",", ":"))


def interpret_as_bool(boolify: str) -> bool:
    """
    Converts an inpput to an boolean according to commonly used patterns.
    """
    if isinstance(boolify, bool):
        return boolify
    if isinstance(boolify, int):
        return boolify > 0
    elif isinstance(boolify, str):
        return re.match(r"^(y|yes|1|true)$", boolify, re.IGNORECASE | re.MULTILINE) is not None
    raise Exception(f"Can't boolify a {boolify}.")
