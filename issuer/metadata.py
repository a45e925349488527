# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Published documents of the issuer: OpenID4VCI metadata, DID documents and the PID credential schema
"""

from common.key_configuration import KeyConfiguration, SIGNING_ALGORITHM
import common.model.openid as oid
import common.model.openid4vc as cr
import common.verifiable_credential as vc

import issuer.config as conf

DID_CONTEXT = [
    "https://www.w3.org/ns/did/v1",
    "https://w3id.org/security/suites/jws-2020/v1",
]
PROOF_SIGNING_ALGORITHMS = ["ES256", "ES384", "ES512"]
DISPLAY_ORDER = ["given_name", "family_name", "birth_date", "issuing_country"]

_CLAIM_DISPLAY_NAMES = {
    "given_name": "Given Name",
    "family_name": "Family Name",
    "birth_date": "Date of Birth",
    "age_over_18": "Over 18",
    "document_number": "Document Number",
    "expiry_date": "Expiry Date",
    "issuing_country": "Issuing Country",
}


def _claims_metadata(mandatory: set[str]) -> dict[str, cr.MetadataClaim]:
    return {
        claim: cr.MetadataClaim(
            mandatory=claim in mandatory,
            value_type="string",
            display=[cr.MetadataDisplay(name=name, locale="en-US")],
        )
        for claim, name in _CLAIM_DISPLAY_NAMES.items()
    }


def credential_configuration(config: conf.IssuerConfig, namespaced_claims: bool = True) -> cr.MetadataCredentialConfiguration:
    """
    The single offered configuration. The issuer metadata nests the claims by namespace (doctype),
    the authorization server metadata lists them flat.
    """
    claims = _claims_metadata({"given_name", "family_name", "birth_date"})
    return cr.MetadataCredentialConfiguration(
        format=vc.CredentialFormat.jwt_vc.value,
        doctype=config.credential_type,
        scope=config.credential_type,
        cryptographic_binding_methods_supported=["jwk", "did"],
        credential_signing_alg_values_supported=[SIGNING_ALGORITHM],
        proof_types_supported={"jwt": {"proof_signing_alg_values_supported": PROOF_SIGNING_ALGORITHMS}},
        order=DISPLAY_ORDER,
        display=[
            cr.MetadataDisplay(
                name=config.issuer_display_name,
                locale="en-US",
                logo=cr.MetadataDisplayLogo(uri=f"{config.external_url}/logo.png", alt_text="EU Digital Identity"),
                background_color="#003399",
                text_color="#FFFFFF",
            )
        ],
        claims={config.credential_type: claims} if namespaced_claims else claims,
    )


def get_credential_issuer_metadata(config: conf.IssuerConfig) -> cr.OpenIDCredentialIssuerData:
    return cr.OpenIDCredentialIssuerData(
        issuer=config.credential_issuer,
        credential_issuer=config.credential_issuer,
        authorization_servers=[config.credential_issuer],
        authorization_endpoint=config.endpoint("authorize"),
        token_endpoint=config.endpoint("token"),
        credential_endpoint=config.endpoint("credential"),
        pre_authorized_grant_anonymous_access_supported=True,
        display=[cr.MetadataDisplay(name=config.issuer_display_name, locale="en-US")],
        credential_configurations_supported={config.credential_type: credential_configuration(config)},
        token_endpoint_auth_methods_supported=["none"],
        code_challenge_methods_supported=["S256"],
        grant_types_supported=[cr.AUTHORIZATION_CODE_GRANT, cr.PRE_AUTHORIZED_CODE_GRANT],
    )


def get_openid_configuration(config: conf.IssuerConfig) -> oid.OpenIdConfiguration:
    return oid.OpenIdConfiguration(
        issuer=config.credential_issuer,
        credential_issuer=config.credential_issuer,
        authorization_endpoint=config.endpoint("authorize"),
        token_endpoint=config.endpoint("token"),
        credential_endpoint=config.endpoint("credential"),
        credential_configurations_supported={config.credential_type: credential_configuration(config, namespaced_claims=False)},
        grant_types_supported=[cr.AUTHORIZATION_CODE_GRANT, cr.PRE_AUTHORIZED_CODE_GRANT],
        pre_authorized_grant_anonymous_access_supported=True,
        code_challenge_methods_supported=["S256"],
        token_endpoint_auth_methods_supported=["none"],
        response_types_supported=["code"],
        response_modes_supported=["query"],
        scopes_supported=[config.credential_type],
        display=[cr.MetadataDisplay(name=config.issuer_display_name, locale="en-US")],
    )


#################
# DID Documents #
#################


def _did_document(did: str, key_id: str, public_jwk: dict, service: dict) -> dict:
    method_id = f"{did}#{key_id}"
    return {
        "@context": DID_CONTEXT,
        "id": did,
        "controller": did,
        "verificationMethod": [
            {
                "id": method_id,
                "type": "JsonWebKey2020",
                "controller": did,
                "publicKeyJwk": public_jwk,
            }
        ],
        "authentication": [method_id],
        "assertionMethod": [method_id],
        "service": [service],
    }


def issuer_did_document(config: conf.IssuerConfig, key_id: str, public_jwk: dict) -> dict:
    did = config.issuer_did
    document = _did_document(
        did,
        key_id,
        public_jwk,
        {
            "id": f"{did}#openid-credential-issuer",
            "type": "OpenIDCredentialIssuer",
            "serviceEndpoint": f"{config.external_url}/.well-known/openid-credential-issuer",
        },
    )
    document.update({"keyAgreement": [], "capabilityInvocation": [], "capabilityDelegation": []})
    return document


def verifier_did_document(config: conf.IssuerConfig, verifier_key: KeyConfiguration) -> dict:
    did = verifier_key.did
    return _did_document(
        did,
        verifier_key.key_id,
        verifier_key.jwks["keys"][0],
        {
            "id": f"{did}#verifier-service",
            "type": "VerifierService",
            "serviceEndpoint": f"{config.external_url}/verify",
        },
    )


##########
# Schema #
##########


def _date_property(description: str) -> dict:
    return {"description": description, "type": "string", "format": "date"}


def _string_property(description: str) -> dict:
    return {"description": description, "type": "string"}


def _one_or_many(reference: str, description: str) -> dict:
    return {
        "description": description,
        "anyOf": [{"$ref": reference}, {"type": "array", "items": {"$ref": reference}}],
    }


def pid_credential_schema(config: conf.IssuerConfig) -> dict:
    """JSON Schema (2020-12) of a PID verifiable credential"""
    return {
        "$schema": "https://json-schema.org/draft/2020-12/schema",
        "$id": config.schema_url,
        "title": "PID",
        "description": "VCDM v1.1 compliant, minimal implementation of the EUDI Wallet PID rulebook",
        "type": "object",
        "properties": {
            "@context": {
                "description": "Semantic context for the issued credential. First element MUST be https://www.w3.org/2018/credentials/v1",
                "type": "array",
                "items": {"type": "string", "format": "uri"},
                "contains": {"const": vc.VC_CONTEXT[0]},
                "minItems": 1,
                "uniqueItems": True,
            },
            "type": {
                "description": "Full type chain, used to identify the credential base types",
                "type": "array",
                "items": {"type": "string"},
                "contains": {"type": "string", "const": config.credential_type},
                "uniqueItems": True,
            },
            "issuer": _string_property("Defines the issuer of a Verifiable Credential"),
            "issuanceDate": {
                "description": "Defines the date and time, when the issued credential becomes valid",
                "type": "string",
                "format": "date-time",
            },
            "expirationDate": {
                "description": "Defines the date and time, when the issued credential expires",
                "type": "string",
                "format": "date-time",
            },
            "credentialSubject": _one_or_many("#/$defs/PID", "Defines information about the subject that is defined by the type chain"),
            "credentialSchema": _one_or_many("#/$defs/credentialSchema", "One or more schemas that validate the Verifiable Credential."),
        },
        "required": ["@context", "type", "issuer", "issuanceDate", "expirationDate", "credentialSubject", "credentialSchema"],
        "$defs": {
            "PID": {
                "description": "Defines information about the subject that is defined by the type chain",
                "type": "object",
                "properties": {
                    "id": _string_property("The subject identifier"),
                    "givenName": _string_property("The current first name(s), including middle name(s), of the PID user"),
                    "familyName": _string_property("The current last name(s) or surname(s) of the PID user"),
                    "birthDate": _date_property("Day, month, and year on which the PID user was born"),
                    "ageOver18": _string_property("Attesting whether the PID user is currently an adult (true) or a minor (false)"),
                    "ageOver21": _string_property("Attesting whether the PID user is over 21 years old"),
                    "documentNumber": _string_property("The document number of the PID"),
                    "expiryDate": _date_property("The expiry date of the document"),
                    "issueDate": _date_property("The issue date of the document"),
                    "issuingCountry": _string_property("The country that issued the document"),
                    "issuingAuthority": _string_property("The authority that issued the document"),
                },
                "required": ["id", *vc.CLAIM_MAPPING.values()],
            },
            "credentialSchema": {
                "description": "Contains information about the credential schema on which the issued credential is based",
                "type": "object",
                "properties": {
                    "id": {"description": "References the credential schema", "type": "string", "format": "uri"},
                    "type": _string_property("Defines credential schema type"),
                },
                "required": ["id", "type"],
            },
        },
    }
