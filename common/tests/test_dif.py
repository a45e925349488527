# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import pytest

import common.model.dif_presentation_exchange as dif

CREDENTIAL = {
    "iss": "did:web:localhost%3A8000",
    "vc": {
        "type": ["VerifiableCredential", "eu.europa.ec.eudi.pid.1"],
        "credentialSubject": {
            "givenName": "Ada",
            "familyName": "Lovelace",
            "birthDate": "1815-12-10",
            "ageOver18": "true",
        },
    },
}


def _descriptor(*constraints: dif.Constraint) -> dif.InputDescriptor:
    return dif.InputDescriptor(id="pid-credential", constraints=dif.Fields(fields=list(constraints)))


def test_validated_attributes():
    descriptor = _descriptor(
        dif.Constraint(path=["$.vc.credentialSubject.givenName"]),
        dif.Constraint(path=["$.vc.credentialSubject.birthDate"], filter=dif.Filter(type="string", pattern="\\d{4}-\\d{2}-\\d{2}")),
        dif.Constraint(path=["$.vc.credentialSubject.ageOver18"], filter=dif.Filter(type="string", const="true")),
        dif.Constraint(path=["$.vc.credentialSubject.documentNumber"], optional=True),
        dif.Constraint(path=["$.iss"]),
    )
    assert dif.get_validated_attributes(descriptor, CREDENTIAL) == ["givenName", "birthDate", "ageOver18"]


def test_missing_mandatory_attribute():
    descriptor = _descriptor(dif.Constraint(path=["$.vc.credentialSubject.documentNumber"]))
    with pytest.raises(dif.MissingAttributeException) as exc_info:
        dif.get_validated_attributes(descriptor, CREDENTIAL)
    assert exc_info.value.attribute == "$.vc.credentialSubject.documentNumber"


def test_filter_mismatch():
    descriptor = _descriptor(dif.Constraint(path=["$.vc.credentialSubject.givenName"], filter=dif.Filter(type="string", pattern="\\d+")))
    with pytest.raises(dif.FilterMismatchException) as exc_info:
        dif.get_validated_attributes(descriptor, CREDENTIAL)
    assert exc_info.value.attribute == "givenName"


def test_extract_requested_claims():
    query = dif.DCQLCredentialQuery(
        id="cred1",
        format="jwt_vc",
        claims=[
            dif.DCQLClaim(path=["vc", "credentialSubject", "givenName"]),
            dif.DCQLClaim(path=["vc", "credentialSubject", "documentNumber"]),
            dif.DCQLClaim(path=["iss"]),
        ],
    )
    assert dif.extract_requested_claims(query, CREDENTIAL) == {
        "vc.credentialSubject.givenName": "Ada",
        "iss": "did:web:localhost%3A8000",
    }


def test_extract_claims_with_dotted_namespace():
    query = dif.DCQLCredentialQuery(
        id="cred1",
        format="mso_mdoc",
        claims=[dif.DCQLClaim(path=["eu.europa.ec.eudi.pid.1", "given_name"])],
    )
    document = {"eu.europa.ec.eudi.pid.1": {"given_name": "Ada"}}
    assert dif.extract_requested_claims(query, document) == {"eu.europa.ec.eudi.pid.1.given_name": "Ada"}
