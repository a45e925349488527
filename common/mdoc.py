# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Decoding of ISO 18013-5 mdoc device responses as presented through the Digital Credentials API.

Only decodes for display, issuerAuth and deviceAuth are not verified.
"""

import binascii
import datetime

import cbor2

from common.parsing import bytes_from_url_safe, bytes_to_url_safe

ENCODED_CBOR_TAG = 24
"""Tag of embedded CBOR data items (`#6.24(bstr .cbor ...)`)"""


class MdocDecodingError(ValueError):
    """The presented value is no base64url encoded CBOR device response"""


def decode_digital_credential(encoded_credential: str) -> dict:
    """Decodes the base64url encoded CBOR device response"""
    try:
        decoded = cbor2.loads(bytes_from_url_safe(encoded_credential))
    except (binascii.Error, cbor2.CBORDecodeError, ValueError) as e:
        raise MdocDecodingError(f"Failed to decode mdoc credential: {e}") from e
    if not isinstance(decoded, dict):
        raise MdocDecodingError("Failed to decode mdoc credential: device response must be a map")
    return decoded


def _decode_embedded(item: object) -> object:
    if isinstance(item, cbor2.CBORTag) and item.tag == ENCODED_CBOR_TAG:
        item = item.value
    if isinstance(item, (bytes, bytearray)):
        return cbor2.loads(item)
    return item


def decode_all_namespaces(device_response: dict) -> dict[str, object]:
    """
    Decodes the issuer signed items of every document, keyed by namespace.

    Device signed namespaces are added as `deviceSigned_ns_<document index>`.
    """
    decoded: dict[str, object] = {}
    try:
        for index, document in enumerate(device_response.get("documents", [])):
            issuer_namespaces = document.get("issuerSigned", {}).get("nameSpaces", {})
            for namespace, items in issuer_namespaces.items():
                decoded[namespace] = [_decode_embedded(item) for item in items]
            device_namespaces = document.get("deviceSigned", {}).get("nameSpaces")
            if device_namespaces is not None:
                decoded[f"deviceSigned_ns_{index}"] = _decode_embedded(device_namespaces)
    except (AttributeError, TypeError, cbor2.CBORDecodeError) as e:
        raise MdocDecodingError(f"Failed to decode mdoc namespaces: {e}") from e
    return decoded


def namespace_claims(decoded_namespaces: dict[str, object]) -> dict[str, dict]:
    """Reduces decoded issuer signed items to `{namespace: {elementIdentifier: elementValue}}`"""
    claims = {}
    for namespace, items in decoded_namespaces.items():
        if not isinstance(items, list):
            continue
        claims[namespace] = {
            item["elementIdentifier"]: to_jsonable(item.get("elementValue")) for item in items if isinstance(item, dict) and "elementIdentifier" in item
        }
    return claims


def document_types(device_response: dict) -> list[str]:
    return [document.get("docType") for document in device_response.get("documents", []) if isinstance(document, dict)]


def to_jsonable(value: object) -> object:
    """Converts decoded CBOR values into JSON compatible ones"""
    if isinstance(value, cbor2.CBORTag):
        return to_jsonable(value.value)
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return bytes_to_url_safe(bytes(value))
    if isinstance(value, dict):
        return {str(to_jsonable(key)): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    return value
