# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
OpenID for Verifiable Credential Issuance (OpenID4VCI) data models.
https://openid.net/specs/openid-4-verifiable-credential-issuance-1_0.html
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

PRE_AUTHORIZED_CODE_GRANT = "urn:ietf:params:oauth:grant-type:pre-authorized_code"
AUTHORIZATION_CODE_GRANT = "authorization_code"
CREDENTIAL_OFFER_SCHEME = "openid-credential-offer://"


##########################
# Openid Issuer Metadata #
##########################


class MetadataDisplayLogo(BaseModel):
    model_config = ConfigDict(extra='allow')

    uri: Optional[str] = None
    alt_text: Optional[str] = None


class MetadataDisplay(BaseModel):
    """
    https://openid.net/specs/openid-4-verifiable-credential-issuance-1_0.html#name-credential-issuer-metadata-p
    """

    model_config = ConfigDict(extra='allow')

    name: Optional[str] = None
    locale: Optional[str] = None
    logo: Optional[MetadataDisplayLogo] = None
    background_color: Optional[str] = None
    text_color: Optional[str] = None


class MetadataClaim(BaseModel):
    mandatory: Optional[bool] = None
    value_type: Optional[str] = None
    display: Optional[list[MetadataDisplay]] = None


class MetadataCredentialConfiguration(BaseModel):
    """
    Entry of `credential_configurations_supported`
    """

    format: str
    doctype: Optional[str] = None
    scope: Optional[str] = None
    cryptographic_binding_methods_supported: Optional[list[str]] = None
    credential_signing_alg_values_supported: Optional[list[str]] = None
    proof_types_supported: Optional[dict[str, dict[str, list[str]]]] = None
    order: Optional[list[str]] = None
    """
    List of the claim fieldnames in the order they should be displayed by the wallet
    """
    display: Optional[list[MetadataDisplay]] = None
    claims: Optional[dict] = None
    """
    Either `{claim: MetadataClaim}` or nested by namespace `{namespace: {claim: MetadataClaim}}`
    """


class OpenIDCredentialIssuerData(BaseModel):
    """
    Credential issuer metadata published at /.well-known/openid-credential-issuer
    """

    issuer: Optional[str] = None
    credential_issuer: str
    authorization_servers: Optional[list[str]] = None
    authorization_endpoint: Optional[str] = None
    token_endpoint: Optional[str] = None
    credential_endpoint: str
    pre_authorized_grant_anonymous_access_supported: Optional[bool] = None
    display: Optional[list[MetadataDisplay]] = None
    credential_configurations_supported: dict[str, MetadataCredentialConfiguration]
    token_endpoint_auth_methods_supported: Optional[list[str]] = None
    code_challenge_methods_supported: Optional[list[str]] = None
    grant_types_supported: Optional[list[str]] = None


####################
# Credential Offer #
####################


class OfferPreauthorizedGrantType(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pre_authorized_code: str = Field(alias="pre-authorized_code")
    """
    The pre-authorized code used for requesting the token
    """
    user_pin_required: Optional[bool] = None
    """
    Does the pre-auth code come with a pin (provided by a differnt way)
    """
    tx_code: Optional[str] = None


class CredentialOfferGrant(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pre_authorized_code: OfferPreauthorizedGrantType = Field(alias=PRE_AUTHORIZED_CODE_GRANT)


class CredentialOfferParameters(BaseModel):
    """
    4.1.1 Credential Offer Parameters
    """

    credential_issuer: str
    """
    The URL of the Credential Issuer from which the Wallet is requested to obtain one or more Credentials
    """
    credential_configuration_ids: list[str]
    grants: CredentialOfferGrant
    supported_formats: Optional[dict[str, dict[str, list[str]]]] = None

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


######################
# Credential Request #
######################


class CredentialProof(BaseModel):
    proof_type: str = "jwt"
    jwt: Optional[str] = None


class CredentialRequest(BaseModel):
    """
    https://openid.net/specs/openid-4-verifiable-credential-issuance-1_0.html#name-credential-request
    """

    model_config = ConfigDict(extra='allow')

    format: Optional[str] = None
    credential_type: Optional[str] = None
    """
    Defaults to the PID credential type if not provided
    """
    proof: Optional[CredentialProof] = None
    """
    Proof of possession of the key material the issued Credential shall be bound to.
    """


class CredentialResponse(BaseModel):
    format: str
    credential: str
    c_nonce: str
    c_nonce_expires_in: int
