# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Presentation requests of the verifier: DCQL queries for the Digital Credentials API,
presentation definitions and the signed SIOPv2 request object.
"""

import time

from common.key_configuration import KeyConfiguration
import common.model.dif_presentation_exchange as dif
from common.verifiable_credential import CredentialFormat

import verifier.config as conf

ACCEPTED_ALGORITHMS = ["ES256", "ES384", "ES512", "RS256", "RS384", "RS512"]

PID_SUBJECT_FIELDS = [
    "givenName",
    "familyName",
    "birthDate",
    "ageOver18",
    "ageOver21",
    "documentNumber",
    "issuingCountry",
    "issuingAuthority",
    "issueDate",
    "expiryDate",
]
REQUIRED_SUBJECT_FIELDS = {"givenName", "familyName", "birthDate"}
DATE_SUBJECT_FIELDS = {"birthDate", "issueDate", "expiryDate"}

MDOC_ELEMENTS = ["given_name", "family_name", "birth_date", "age_over_18", "issuing_country"]

DATE_PATTERN = "\\d{4}-\\d{2}-\\d{2}"


########
# DCQL #
########


def build_dcql_query(config: conf.VerifierConfig, credential_format: CredentialFormat) -> dif.DCQLQuery:
    """Query for the PID credential in the given format, answered under the id `cred1`"""
    if credential_format == CredentialFormat.mso_mdoc:
        query = dif.DCQLCredentialQuery(
            id=config.expected_credential_id,
            format=CredentialFormat.mso_mdoc.value,
            meta={"doctype_value": config.credential_type},
            claims=[dif.DCQLClaim(path=[config.credential_type, element]) for element in MDOC_ELEMENTS],
        )
    else:
        query = dif.DCQLCredentialQuery(
            id=config.expected_credential_id,
            format=CredentialFormat.jwt_vc.value,
            meta={"type_values": [["VerifiableCredential", config.credential_type]]},
            claims=[dif.DCQLClaim(path=["vc", "credentialSubject", field]) for field in PID_SUBJECT_FIELDS],
        )
    return dif.DCQLQuery(credentials=[query])


############################
# Presentation Definitions #
############################


def _alg_formats() -> dict:
    return {
        "jwt_vc": {"alg": ACCEPTED_ALGORITHMS},
        "jwt_vp": {"alg": ACCEPTED_ALGORITHMS},
        "jwt": {"alg": ACCEPTED_ALGORITHMS},
    }


def build_pid_presentation_definition() -> dif.PresentationDefinition:
    """
    Presentation definition of the SIOPv2 request. Names and birth date are required,
    the other PID claims are only checked if disclosed.
    """
    fields = [
        dif.Constraint(
            path=[f"$.vc.credentialSubject.{field}"],
            filter=dif.Filter(type="string", pattern=DATE_PATTERN if field in DATE_SUBJECT_FIELDS else ".*"),
            optional=None if field in REQUIRED_SUBJECT_FIELDS else True,
        )
        for field in PID_SUBJECT_FIELDS
    ]
    return dif.PresentationDefinition(
        id="pid-verification",
        input_descriptors=[
            dif.InputDescriptor(
                id="pid-credential",
                name="EU Digital Identity (PID)",
                purpose="We need to verify your EU Digital Identity credential",
                format={**_alg_formats(), "vc+sd-jwt": {}},
                constraints=dif.Fields(fields=fields),
            )
        ],
    )


def build_legacy_presentation_definition(config: conf.VerifierConfig) -> dif.PresentationDefinition:
    """Static definition for browsers which do not support DCQL"""
    return dif.PresentationDefinition(
        id="pid-legacy-verification",
        input_descriptors=[
            dif.InputDescriptor(
                id="pid-credential",
                name="EU Digital Identity (PID)",
                purpose="We need to verify your EU Digital Identity credential",
                constraints=dif.Fields(
                    fields=[
                        dif.Constraint(path=["$.vc.type"], filter=dif.Filter(type="string", const=config.credential_type)),
                        dif.Constraint(path=["$.vc.credentialSubject.givenName"], purpose="The credential must contain the given name."),
                    ]
                ),
            )
        ],
    )


##################
# Request Object #
##################


def client_metadata(config: conf.VerifierConfig) -> dict:
    return {
        "jwks_uri": config.jwks_uri,
        "client_name": config.client_name,
        "client_uri": config.external_url,
        "logo_uri": f"{config.external_url}/logo.png",
        "vp_formats": _alg_formats(),
    }


def build_request_object(config: conf.VerifierConfig, session_id: str, nonce: str, issued_at: int = None) -> dict:
    """
    SIOPv2 + OpenID4VP authorization request, answered with a form post to the callback.
    `nonce` is the identifier of the challenge of the session.
    """
    iat = issued_at if issued_at is not None else int(time.time())
    return {
        "client_id": config.client_id,
        "iss": config.client_id,
        "aud": config.verifier_did,
        "iat": iat,
        "exp": iat + config.request_object_ttl,
        "nonce": nonce,
        "response_type": "id_token",
        "scope": "openid",
        "version": "2.0",
        "siop_version": "2.0",
        "state": session_id,
        "response_mode": "form_post",
        "response_uri": config.response_uri,
        "vp_token": {"presentation_definition": build_pid_presentation_definition().model_dump(exclude_none=True)},
        "registration": client_metadata(config),
    }


def sign_request_object(request_object: dict, verifier_key: KeyConfiguration) -> str:
    """Signs the request object, the header embeds the public key so wallets need no key lookup"""
    return verifier_key.encode_jwt(
        request_object,
        {
            "alg": verifier_key.signing_algorithm,
            "typ": "JWT",
            "kid": verifier_key.verification_method_id,
            "jwk": verifier_key.public_jwk_dict,
        },
    )
