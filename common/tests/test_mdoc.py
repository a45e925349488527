# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import datetime

import cbor2
import pytest

from common import mdoc
from common.parsing import bytes_to_url_safe
from common.test_helpers.wallet_helper import device_response
from common.verifiable_credential import PID_CREDENTIAL_TYPE


def test_decode_device_response():
    encoded = device_response(
        PID_CREDENTIAL_TYPE,
        {
            "given_name": "Ada",
            "family_name": "Lovelace",
            "birth_date": cbor2.CBORTag(1004, "1815-12-10"),
            "age_over_18": True,
            "portrait": b"\x00\x01",
        },
        device_namespaces={"device": "signed"},
    )
    decoded = mdoc.decode_digital_credential(encoded)
    assert mdoc.document_types(decoded) == [PID_CREDENTIAL_TYPE]

    namespaces = mdoc.decode_all_namespaces(decoded)
    assert "deviceSigned_ns_0" in namespaces
    assert namespaces["deviceSigned_ns_0"] == {"device": "signed"}

    claims = mdoc.namespace_claims(namespaces)
    assert claims[PID_CREDENTIAL_TYPE] == {
        "given_name": "Ada",
        "family_name": "Lovelace",
        "birth_date": "1815-12-10",
        "age_over_18": True,
        "portrait": "AAE",
    }
    assert "deviceSigned_ns_0" not in claims, "Only issuer signed item lists are claims"


def test_to_jsonable():
    assert mdoc.to_jsonable(datetime.date(2024, 1, 31)) == "2024-01-31"
    assert mdoc.to_jsonable({1: [b"\xff"]}) == {"1": ["_w"]}
    assert mdoc.to_jsonable(cbor2.CBORTag(0, "2024-01-31T00:00:00Z")) == "2024-01-31T00:00:00Z"


@pytest.mark.parametrize(
    "encoded",
    [
        "%%%",
        bytes_to_url_safe(b"\xff\xff"),
        bytes_to_url_safe(cbor2.dumps(["not", "a", "map"])),
    ],
)
def test_decode_invalid_device_response(encoded: str):
    with pytest.raises(mdoc.MdocDecodingError):
        mdoc.decode_digital_credential(encoded)


def test_decode_invalid_namespaces():
    with pytest.raises(mdoc.MdocDecodingError):
        mdoc.decode_all_namespaces({"documents": [{"issuerSigned": {"nameSpaces": {"ns": [cbor2.CBORTag(24, b"\xa1")]}}}]})
