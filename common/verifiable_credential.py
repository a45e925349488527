# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Person Identification Data (PID) credentials as W3C Verifiable Credentials secured with JWT (VC-JWT).

https://www.w3.org/TR/vc-data-model/#json-web-token
"""

import json
import time
import uuid
import datetime
from enum import Enum
from typing import Optional

from jwcrypto import jwk, jws
from pydantic import BaseModel, ConfigDict, Field

from common.key_configuration import KeyConfiguration, SIGNING_ALGORITHM
from common.model import ietf

PID_CREDENTIAL_TYPE = "eu.europa.ec.eudi.pid.1"
VC_CONTEXT = ["https://www.w3.org/2018/credentials/v1", "https://europa.eu/eudi/pid/v1"]
CREDENTIAL_VALIDITY_SECONDS = 365 * 24 * 60 * 60


class CredentialFormat(str, Enum):
    """Credential formats accepted by the verifier"""

    jwt_vc = "jwt_vc"
    mso_mdoc = "mso_mdoc"


CLAIM_MAPPING: dict[str, str] = {
    "given_name": "givenName",
    "family_name": "familyName",
    "birth_date": "birthDate",
    "age_over_18": "ageOver18",
    "age_over_21": "ageOver21",
    "document_number": "documentNumber",
    "expiry_date": "expiryDate",
    "issue_date": "issueDate",
    "issuing_country": "issuingCountry",
    "issuing_authority": "issuingAuthority",
}
"""PID claim names to their credentialSubject field"""

_BOOLEAN_CLAIMS = {"age_over_18", "age_over_21"}


class PIDClaims(BaseModel):
    """Claims of a PID credential as supplied by the holder, in snake case"""

    model_config = ConfigDict(extra='ignore')

    given_name: str
    family_name: str
    birth_date: str
    age_over_18: Optional[bool] = None
    age_over_21: Optional[bool] = None
    document_number: Optional[str] = None
    expiry_date: Optional[str] = None
    issue_date: Optional[str] = None
    issuing_country: Optional[str] = None
    issuing_authority: Optional[str] = None

    def to_credential_subject(self, subject_id: str) -> dict:
        """
        credentialSubject of the VC. Age claims are stringified booleans,
        an absent age claim is encoded as "false".
        """
        subject = {"id": subject_id}
        for claim, field in CLAIM_MAPPING.items():
            value = getattr(self, claim)
            if claim in _BOOLEAN_CLAIMS:
                value = "true" if value else "false"
            if value is not None:
                subject[field] = value
        return subject

    @staticmethod
    def from_credential_subject(credential_subject: dict) -> "PIDClaims":
        claims = {}
        for claim, field in CLAIM_MAPPING.items():
            if field not in credential_subject:
                continue
            value = credential_subject[field]
            if claim in _BOOLEAN_CLAIMS and isinstance(value, str):
                value = value.lower() == "true"
            claims[claim] = value
        return PIDClaims.model_validate(claims)


class VerifiableCredentialData(BaseModel):
    """The `vc` claim of a VC-JWT"""

    model_config = ConfigDict(extra='allow', populate_by_name=True)

    context: list[str] = Field(default=VC_CONTEXT, alias="@context")
    type: list[str]
    issuer: str
    issuanceDate: str
    expirationDate: str
    credentialSubject: dict
    credentialSchema: Optional[dict] = None


class JsonWebTokenBodyVCData(BaseModel):
    """Payload of a VC-JWT"""

    model_config = ConfigDict(extra='allow')

    iss: str
    sub: str
    aud: Optional[str] = None
    iat: int
    exp: int
    jti: str
    vc: VerifiableCredentialData


class VerificationResult(BaseModel):
    """Outcome of a credential verification, failures are reported through `error`"""

    is_valid: bool
    payload: Optional[dict] = None
    error: Optional[str] = None


def _iso_date(timestamp: int) -> str:
    return datetime.datetime.fromtimestamp(timestamp, tz=datetime.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def create_jwt_verifiable_credential(
    claims: PIDClaims,
    key_configuration: KeyConfiguration,
    subject_id: str,
    audience: str | None = None,
    credential_type: str = PID_CREDENTIAL_TYPE,
    schema_url: str | None = None,
    issued_at: int | None = None,
    credential_id: uuid.UUID | None = None,
) -> str:
    """
    Builds and signs the VC-JWT, issued by the DID of the key and valid for one year from `issued_at` (default now).
    The `jti` is the URN of `credential_id`, a random one if not given.
    """
    iat = issued_at if issued_at is not None else int(time.time())
    exp = iat + CREDENTIAL_VALIDITY_SECONDS
    vc = VerifiableCredentialData(
        type=["VerifiableCredential", credential_type],
        issuer=key_configuration.did,
        issuanceDate=_iso_date(iat),
        expirationDate=_iso_date(exp),
        credentialSubject=claims.to_credential_subject(subject_id),
        credentialSchema={"id": schema_url, "type": "JsonSchemaValidator2018"} if schema_url else None,
    )
    body = JsonWebTokenBodyVCData(
        iss=key_configuration.did,
        sub=subject_id,
        aud=audience,
        iat=iat,
        exp=exp,
        jti=f"urn:uuid:{credential_id or uuid.uuid4()}",
        vc=vc,
    )
    return key_configuration.encode_jwt(
        body.model_dump(by_alias=True, exclude_none=True),
        {"alg": key_configuration.signing_algorithm, "kid": key_configuration.key_id, "typ": "JWT"},
    )


def _as_crypto_jwk(public_jwk: dict | str | ietf.JSONWebKey | jwk.JWK) -> jwk.JWK:
    if isinstance(public_jwk, jwk.JWK):
        return public_jwk
    if isinstance(public_jwk, ietf.JSONWebKey):
        return public_jwk.as_crypto_jwk()
    if isinstance(public_jwk, str):
        return jwk.JWK.from_json(public_jwk)
    return jwk.JWK(**public_jwk)


def _has_valid_structure(payload: object) -> bool:
    if not isinstance(payload, dict) or not isinstance(payload.get("vc"), dict):
        return False
    credential = payload["vc"]
    return (
        isinstance(credential.get("credentialSubject"), dict)
        and bool(credential["credentialSubject"])
        and isinstance(credential.get("type", []), list)
        and isinstance(payload.get("iss", ""), str)
    )


def check_credential_payload(payload: object, now: float | None = None) -> str | None:
    """Structural and expiry check of a VC-JWT payload, returns the error if any"""
    if not _has_valid_structure(payload):
        return "Invalid credential structure"
    exp = payload.get("exp")
    if exp is not None and (not isinstance(exp, (int, float)) or exp <= (now if now is not None else time.time())):
        return "Credential has expired"
    return None


def verify_jwt_verifiable_credential(jwt: str, issuer_public_jwk: dict | str | ietf.JSONWebKey | jwk.JWK, now: float | None = None) -> VerificationResult:
    """
    Verifies the signature of the VC-JWT with the issuers public key and checks structure & expiry.

    Never raises, every problem is reported in the result.
    """
    try:
        key = _as_crypto_jwk(issuer_public_jwk)
        token = jws.JWS()
        token.deserialize(jwt)
        token.verify(key, alg=SIGNING_ALGORITHM)
        payload = json.loads(token.payload)
    except Exception as e:  # jwcrypto can throw a great range of errors...
        return VerificationResult(is_valid=False, error=f"JWT verification failed: {e!r}")

    error = check_credential_payload(payload, now)
    if error:
        return VerificationResult(is_valid=False, payload=payload if isinstance(payload, dict) else None, error=error)
    return VerificationResult(is_valid=True, payload=payload)
