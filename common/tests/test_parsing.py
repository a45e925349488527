# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import binascii
import urllib.parse

import pytest

from common import parsing


def test_object_parsing():
    test_object = {
        "str": "Hello World",
        "int": 5,
        "bool": True,
        "dict": {"inner": "data"},
    }
    b64 = parsing.object_to_url_safe(test_object)
    assert isinstance(b64, str)
    assert '=' not in b64, "JOSE style base64 has no padding"
    assert test_object == parsing.object_from_url_safe(b64)
    # Test some superfluous padding
    b64_overpadded = parsing.add_padding(b64)
    decoded_overpadded = parsing.object_from_url_safe(b64_overpadded)
    assert test_object == decoded_overpadded, "Unnecessary padding should not matter to the parser"


def test_invalid_base64():
    with pytest.raises(binascii.Error):
        parsing.bytes_from_url_safe("a")


def test_s256():
    # Example from RFC 7636 Appendix B
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
    assert parsing.s256(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


def test_encode_uri_component():
    encoded = parsing.encode_uri_component(parsing.compact_json({"a": "b c", "d": ["e"]}))
    assert " " not in encoded
    assert "%20" in encoded
    assert urllib.parse.unquote(encoded) == '{"a":"b c","d":["e"]}'


def test_interpret_as_bool():
    assert parsing.interpret_as_bool("True")
    assert parsing.interpret_as_bool("true")
    assert parsing.interpret_as_bool("TrUe")
    assert parsing.interpret_as_bool("yes")
    assert parsing.interpret_as_bool("y")
    assert parsing.interpret_as_bool("1")
    assert parsing.interpret_as_bool(1)
    assert parsing.interpret_as_bool(True)
    assert not parsing.interpret_as_bool("False")
    assert not parsing.interpret_as_bool("Falee")
    assert not parsing.interpret_as_bool("Truee")
    assert not parsing.interpret_as_bool("no")
    assert not parsing.interpret_as_bool("n")
    assert not parsing.interpret_as_bool("0")
    assert not parsing.interpret_as_bool(0)
    assert not parsing.interpret_as_bool(False)
