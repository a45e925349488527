# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import json
from jwcrypto import jwk
from common.model import ietf


def test_serialization_of_jwk():
    k1 = jwk.JWK.generate(kty='EC', crv='P-256', kid="key-1")
    k2 = jwk.JWK.generate(kty='EC', crv='P-256', kid="key-2")

    key1 = ietf.JSONWebKey.model_validate(k1.export_public(as_dict=True))
    # Same Key but different order
    key2 = ietf.JSONWebKey(**dict(reversed(list(json.loads(k1.export_public()).items()))))
    key3 = ietf.JSONWebKey.model_validate_json(k2.export_public())
    assert key1 == key2
    assert key1 != key3
    assert key1.kid == "key-1"
    assert "x" in key1.model_dump(), "Curve points are kept as extra fields"


def test_key_set_lookup():
    k1 = jwk.JWK.generate(kty='EC', crv='P-256', kid="key-1")
    key_set = ietf.JSONWebKeySet(keys=[k1.export_public(as_dict=True)])
    assert key_set.find("key-1") == ietf.JSONWebKey.model_validate(k1.export_public(as_dict=True))
    assert key_set.find("unknown") is None
